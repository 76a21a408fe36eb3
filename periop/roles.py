"""Staff roles and the role gates applied by workflow operations.

Authentication happens upstream; operations receive an already
authenticated Actor and only check that its role is allowed.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable

from .errors import AuthorizationError, ValidationError

logger = logging.getLogger(__name__)


class StaffRole(str, Enum):
    """Perioperative staff roles."""
    ANAESTHETIST = "anaesthetist"
    CONSULTANT_ANAESTHETIST = "consultant_anaesthetist"
    SURGEON = "surgeon"
    PHARMACIST = "pharmacist"
    RECOVERY_ROOM_NURSE = "recovery_room_nurse"
    THEATRE_MANAGER = "theatre_manager"
    THEATRE_CHAIRMAN = "theatre_chairman"
    STORE_KEEPER = "store_keeper"
    ADMIN = "admin"

    @classmethod
    def display_name(cls, role: "StaffRole | str") -> str:
        """Get human-readable display name for a role."""
        if isinstance(role, str) and not isinstance(role, cls):
            try:
                role = cls(role)
            except ValueError:
                return role.replace("_", " ").title()
        return {
            cls.ANAESTHETIST: "Anaesthetist",
            cls.CONSULTANT_ANAESTHETIST: "Consultant Anaesthetist",
            cls.SURGEON: "Surgeon",
            cls.PHARMACIST: "Pharmacist",
            cls.RECOVERY_ROOM_NURSE: "Recovery Room Nurse",
            cls.THEATRE_MANAGER: "Theatre Manager",
            cls.THEATRE_CHAIRMAN: "Theatre Chairman",
            cls.STORE_KEEPER: "Store Keeper",
            cls.ADMIN: "Administrator",
        }[role]


REVIEW_SUBMITTERS = frozenset({
    StaffRole.ANAESTHETIST,
    StaffRole.CONSULTANT_ANAESTHETIST,
    StaffRole.ADMIN,
})

REVIEW_APPROVERS = frozenset({
    StaffRole.CONSULTANT_ANAESTHETIST,
    StaffRole.ADMIN,
    StaffRole.THEATRE_MANAGER,
})

PHARMACY_ROLES = frozenset({
    StaffRole.PHARMACIST,
    StaffRole.ADMIN,
})

PACU_ALERT_RAISERS = frozenset({
    StaffRole.RECOVERY_ROOM_NURSE,
    StaffRole.ADMIN,
    StaffRole.THEATRE_MANAGER,
})

ALERT_HANDLERS = frozenset({
    StaffRole.THEATRE_MANAGER,
    StaffRole.THEATRE_CHAIRMAN,
    StaffRole.ADMIN,
})


@dataclass(frozen=True)
class Actor:
    """An authenticated staff member performing an operation."""
    id: str
    role: StaffRole
    name: str | None = None

    @property
    def label(self) -> str:
        return self.name or self.id

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "role": self.role.value}

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "Actor":
        """Build an Actor from a request payload.

        Raises:
            ValidationError: if id or role is missing or the role is unknown
        """
        if not data or not data.get("id"):
            raise ValidationError("actor.id is required")
        try:
            role = StaffRole(data.get("role"))
        except ValueError:
            raise ValidationError(
                f"actor.role must be one of: {', '.join(r.value for r in StaffRole)}",
                details={"role": data.get("role")},
            )
        return cls(id=str(data["id"]), role=role, name=data.get("name"))


def require_role(actor: Actor, allowed: Iterable[StaffRole], action: str) -> None:
    """Raise AuthorizationError unless the actor holds one of the allowed roles."""
    allowed = frozenset(allowed)
    if actor.role in allowed:
        return

    required = ", ".join(sorted(StaffRole.display_name(r) for r in allowed))
    logger.warning(
        f"Denied {action} for {actor.id} (role {actor.role.value}); requires one of: {required}"
    )
    raise AuthorizationError(
        f"{StaffRole.display_name(actor.role)} may not {action}. Required: {required}",
        details={"role": actor.role.value, "allowed": sorted(r.value for r in allowed)},
    )
