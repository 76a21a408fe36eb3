"""Data models for composite readiness."""

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from ..risk_scoring.models import NutritionalBand, RiskFactorInput, RiskKind, RiskScoreResult


class FitnessCategory(str, Enum):
    """Clinician-entered fitness recommendation."""
    FIT = "fit"
    FIT_WITH_PRECAUTIONS = "fit_with_precautions"
    HIGH_RISK = "high_risk"
    UNFIT = "unfit"

    @classmethod
    def all_options(cls) -> list[tuple[str, str]]:
        """Get all options as (value, display_name) tuples for dropdowns."""
        return [(c.value, c.value.replace("_", " ").title()) for c in cls]


class AsaClass(str, Enum):
    """ASA physical status classification."""
    ASA_I = "ASA_I"
    ASA_II = "ASA_II"
    ASA_III = "ASA_III"
    ASA_IV = "ASA_IV"
    ASA_V = "ASA_V"
    ASA_VI = "ASA_VI"

    @classmethod
    def parse(cls, value: "AsaClass | str | int") -> "AsaClass":
        """Accept "ASA_III", "ASA III", "III" or 3.

        Raises:
            ValueError: if the value names no ASA class
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            if 1 <= value <= 6:
                return list(cls)[value - 1]
            raise ValueError(f"ASA class out of range: {value}")

        text = str(value).strip().upper().replace(" ", "_")
        if not text.startswith("ASA_"):
            text = f"ASA_{text.removeprefix('ASA')}"
        if text[4:].isdigit():
            return cls.parse(int(text[4:]))
        return cls(text)


@dataclass(frozen=True)
class CompositeFitness:
    """Composite of the DVT, bleeding and inverted Braden scores.

    The nutritional band and ASA class ride along as advisory context only.
    """
    final_score: float | None
    fitness_category: FitnessCategory
    asa_class: AsaClass | None = None
    nutritional_band: NutritionalBand | None = None
    incomplete: bool = False
    missing_components: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "final_score": round(self.final_score, 2) if self.final_score is not None else None,
            "fitness_category": self.fitness_category.value,
            "asa_class": self.asa_class.value if self.asa_class else None,
            "nutritional_band": self.nutritional_band.value if self.nutritional_band else None,
            "incomplete": self.incomplete,
            "missing_components": list(self.missing_components),
        }


@dataclass(frozen=True)
class RiskAssessment:
    """Four sub-scores plus the composite, computed from one input."""
    factors: RiskFactorInput
    results: dict[RiskKind, RiskScoreResult]
    composite: CompositeFitness

    def to_dict(self) -> dict[str, Any]:
        """Convert to the assessment response shape."""
        dvt = self.results[RiskKind.DVT]
        bleeding = self.results[RiskKind.BLEEDING]
        braden = self.results[RiskKind.PRESSURE_SORE]
        nutritional = self.results[RiskKind.NUTRITIONAL]
        return {
            "dvt": {"score": dvt.raw_score, "band": _band(dvt)},
            "bleeding": {"score": bleeding.raw_score, "band": _band(bleeding)},
            "braden": {"score": braden.raw_score, "band": _band(braden)},
            "nutritional": {
                "bmi": nutritional.bmi,
                "score": nutritional.raw_score,
                "band": _band(nutritional),
            },
            "composite": self.composite.to_dict(),
            "details": {kind.value: result.to_dict() for kind, result in self.results.items()},
        }


def _band(result: RiskScoreResult) -> str:
    return result.band.value if result.band else "unavailable"


@dataclass
class PatientRiskProfile:
    """A stored assessment attached to a scheduled surgery."""
    id: str
    surgery_id: str
    patient_id: str
    factors: dict = field(default_factory=dict)
    results: dict = field(default_factory=dict)
    final_score: float | None = None
    fitness_category: str = ""
    asa_class: str | None = None
    incomplete: bool = False
    assessed_by: str | None = None
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "surgery_id": self.surgery_id,
            "patient_id": self.patient_id,
            "factors": self.factors,
            "results": self.results,
            "final_score": round(self.final_score, 2) if self.final_score is not None else None,
            "fitness_category": self.fitness_category,
            "asa_class": self.asa_class,
            "incomplete": self.incomplete,
            "assessed_by": self.assessed_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    @classmethod
    def from_row(cls, row) -> "PatientRiskProfile":
        """Create from a sqlite3.Row."""
        return cls(
            id=row["id"],
            surgery_id=row["surgery_id"],
            patient_id=row["patient_id"],
            factors=json.loads(row["factors"]) if row["factors"] else {},
            results=json.loads(row["results"]) if row["results"] else {},
            final_score=row["final_score"],
            fitness_category=row["fitness_category"],
            asa_class=row["asa_class"],
            incomplete=bool(row["incomplete"]),
            assessed_by=row["assessed_by"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )
