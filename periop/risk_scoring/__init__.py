"""Pure scoring functions for the DVT, bleeding, Braden and nutritional scales."""

from .models import (
    BleedingFactors,
    BradenBand,
    BradenSubscales,
    DVTFactors,
    NutritionalBand,
    NutritionalFactors,
    RiskBand,
    RiskFactorInput,
    RiskKind,
    RiskScoreResult,
)
from .scoring import (
    BRADEN_MAX_SCORE,
    calculate_bmi,
    compute_bleeding_score,
    compute_braden_score,
    compute_dvt_score,
    compute_nutritional_risk,
    score_all,
)

__all__ = [
    "BRADEN_MAX_SCORE",
    "BleedingFactors",
    "BradenBand",
    "BradenSubscales",
    "DVTFactors",
    "NutritionalBand",
    "NutritionalFactors",
    "RiskBand",
    "RiskFactorInput",
    "RiskKind",
    "RiskScoreResult",
    "calculate_bmi",
    "compute_bleeding_score",
    "compute_braden_score",
    "compute_dvt_score",
    "compute_nutritional_risk",
    "score_all",
]
