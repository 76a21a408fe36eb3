"""Data models for perioperative risk scoring."""

import math
from dataclasses import asdict, dataclass, field, fields
from enum import Enum
from typing import Any

from ..errors import ValidationError

TRUE_STRINGS = frozenset({"true", "yes", "y", "1"})
FALSE_STRINGS = frozenset({"false", "no", "n", "0", ""})


def _as_bool(name: str, value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str) and value.strip().lower() in TRUE_STRINGS | FALSE_STRINGS:
        return value.strip().lower() in TRUE_STRINGS
    raise ValidationError(f"{name} must be true or false", details={name: value})


def _as_number(name: str, value: Any, kind: type) -> int | float | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ValidationError(f"{name} must be a number", details={name: value})
    try:
        number = float(value)
    except ValueError:
        raise ValidationError(f"{name} must be a number", details={name: value})
    if not math.isfinite(number):
        raise ValidationError(f"{name} must be a number", details={name: value})
    if kind is int:
        if not number.is_integer():
            raise ValidationError(f"{name} must be a whole number", details={name: value})
        return int(number)
    return value if isinstance(value, (int, float)) else number


class RiskKind(str, Enum):
    """The four independent sub-scales."""
    DVT = "dvt"
    BLEEDING = "bleeding"
    PRESSURE_SORE = "pressure_sore"
    NUTRITIONAL = "nutritional"


class RiskBand(str, Enum):
    """Bands used by the DVT and bleeding scales."""
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"


class BradenBand(str, Enum):
    """Braden bands. Lower raw score means higher risk."""
    VERY_HIGH = "very_high"
    HIGH = "high"
    MODERATE = "moderate"
    MILD = "mild"
    NO_RISK = "no_risk"


class NutritionalBand(str, Enum):
    """Nutritional risk bands."""
    WELL_NOURISHED = "well_nourished"
    AT_RISK = "at_risk"
    MODERATE_MALNUTRITION = "moderate_malnutrition"
    SEVERE_MALNUTRITION = "severe_malnutrition"


@dataclass(frozen=True)
class DVTFactors:
    """Caprini-style venous thromboembolism factors."""
    age: float | None = None
    major_surgery: bool = False
    active_cancer: bool = False
    prior_dvt: bool = False
    immobilization: bool = False
    pregnancy: bool = False
    obesity: bool = False
    oral_contraceptives: bool = False
    varicose_veins: bool = False


@dataclass(frozen=True)
class BleedingFactors:
    """HAS-BLED-style bleeding factors."""
    age: float | None = None
    bleeding_history: bool = False
    liver_disease: bool = False
    renal_impairment: bool = False
    thrombocytopenia: bool = False
    anticoagulants: bool = False
    nsaids_or_antiplatelets: bool = False
    alcohol_abuse: bool = False


@dataclass(frozen=True)
class BradenSubscales:
    """Braden subscale ratings; None means not assessed."""
    sensory_perception: int | None = None
    moisture: int | None = None
    activity: int | None = None
    mobility: int | None = None
    nutrition: int | None = None
    friction_shear: int | None = None


@dataclass(frozen=True)
class NutritionalFactors:
    """Anthropometrics and labs for nutritional screening."""
    height_cm: float | None = None
    weight_kg: float | None = None
    albumin_gdl: float | None = None
    lymphocytes_per_ul: float | None = None
    weight_loss: bool = False
    poor_intake: bool = False


@dataclass(frozen=True)
class RiskFactorInput:
    """All raw factors for one assessment.

    Immutable: a re-assessment builds a new input rather than editing this one.
    """
    dvt: DVTFactors = field(default_factory=DVTFactors)
    bleeding: BleedingFactors = field(default_factory=BleedingFactors)
    braden: BradenSubscales = field(default_factory=BradenSubscales)
    nutritional: NutritionalFactors = field(default_factory=NutritionalFactors)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "dvt": asdict(self.dvt),
            "bleeding": asdict(self.bleeding),
            "braden": asdict(self.braden),
            "nutritional": asdict(self.nutritional),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RiskFactorInput":
        """Build from a nested dict; unknown keys are ignored.

        A top-level ``age`` is shared by the DVT and bleeding scales unless
        either section sets its own. JSON strings such as ``"70"`` or
        ``"false"`` are coerced to the field's type.

        Raises:
            ValidationError: if a section is not an object or a value cannot
                be read as the field's type
        """
        if not isinstance(data, dict):
            raise ValidationError("factors must be an object", details={"factors": data})
        age = data.get("age")

        def section(name, model):
            raw = data.get(name) or {}
            if not isinstance(raw, dict):
                raise ValidationError(f"{name} must be an object", details={name: raw})
            raw = dict(raw)
            if "age" in model.__dataclass_fields__ and raw.get("age") is None:
                raw["age"] = age
            values = {}
            for f in fields(model):
                if f.name not in raw:
                    continue
                label = f"{name}.{f.name}"
                if f.default is False:
                    values[f.name] = _as_bool(label, raw[f.name])
                elif model is BradenSubscales:
                    values[f.name] = _as_number(label, raw[f.name], int)
                else:
                    values[f.name] = _as_number(label, raw[f.name], float)
            return model(**values)

        return cls(
            dvt=section("dvt", DVTFactors),
            bleeding=section("bleeding", BleedingFactors),
            braden=section("braden", BradenSubscales),
            nutritional=section("nutritional", NutritionalFactors),
        )


@dataclass(frozen=True)
class RiskScoreResult:
    """One sub-scale result.

    ``available`` is False when required inputs were absent; raw_score and
    band are then None rather than a silent zero.
    """
    kind: RiskKind
    raw_score: int | None
    band: RiskBand | BradenBand | NutritionalBand | None
    available: bool = True
    contributing_factors: tuple[str, ...] = ()
    bmi: float | None = None

    @classmethod
    def unavailable(cls, kind: RiskKind, missing: tuple[str, ...]) -> "RiskScoreResult":
        return cls(
            kind=kind,
            raw_score=None,
            band=None,
            available=False,
            contributing_factors=tuple(f"missing:{name}" for name in missing),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result = {
            "kind": self.kind.value,
            "score": self.raw_score,
            "band": self.band.value if self.band else None,
            "available": self.available,
            "factors": list(self.contributing_factors),
        }
        if self.kind == RiskKind.NUTRITIONAL:
            result["bmi"] = self.bmi
        return result
