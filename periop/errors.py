"""Error taxonomy for the perioperative engine.

Every rejected operation raises one of these with a machine-readable code.
The dashboard maps ``http_status`` straight onto the response.
"""

from typing import Any

# Not raised. Composite results flag missing sub-scores with incomplete=True
# and the API echoes this code in its warnings list.
INCOMPLETE_INPUT_WARNING = "incomplete_input"


class PeriopError(Exception):
    """Base class for engine errors."""
    code = "periop_error"
    http_status = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            result["details"] = self.details
        return result


class ValidationError(PeriopError):
    """A required field is missing or malformed. Nothing was written."""
    code = "validation_error"
    http_status = 400


class AuthorizationError(PeriopError):
    """The actor's role may not perform this operation."""
    code = "forbidden"
    http_status = 403


class NotFoundError(PeriopError):
    """The referenced record does not exist."""
    code = "not_found"
    http_status = 404


class ConflictError(PeriopError):
    """The record already left the state this transition requires.

    Callers must re-fetch and show the actual outcome; never retry.
    """
    code = "conflict"
    http_status = 409
