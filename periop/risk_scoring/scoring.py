"""Point tables and scoring functions for the four perioperative risk scales.

All functions are pure: they read a frozen factor record and return a new
RiskScoreResult. No clock, randomness or I/O is involved, so identical input
always gives an identical result.
"""

import logging

from ..errors import ValidationError
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

logger = logging.getLogger(__name__)


# Age bands are exclusive; only the highest matching band scores.
DVT_AGE_POINTS = [
    (75, 5),
    (61, 3),
    (41, 1),
]

DVT_FACTOR_POINTS = {
    "major_surgery": 3,
    "active_cancer": 3,
    "prior_dvt": 3,
    "immobilization": 2,
    "pregnancy": 2,
    "obesity": 1,
    "oral_contraceptives": 1,
    "varicose_veins": 1,
}

BLEEDING_AGE_THRESHOLD = 65

BLEEDING_FACTORS = (
    "bleeding_history",
    "liver_disease",
    "renal_impairment",
    "thrombocytopenia",
    "anticoagulants",
    "nsaids_or_antiplatelets",
    "alcohol_abuse",
)

# subscale -> (min, max)
BRADEN_SUBSCALE_RANGES = {
    "sensory_perception": (1, 4),
    "moisture": (1, 4),
    "activity": (1, 4),
    "mobility": (1, 4),
    "nutrition": (1, 4),
    "friction_shear": (1, 3),
}

BRADEN_MAX_SCORE = 23

# Upper bound (inclusive) -> band, checked in order
BRADEN_BANDS = [
    (9, BradenBand.VERY_HIGH),
    (12, BradenBand.HIGH),
    (14, BradenBand.MODERATE),
    (18, BradenBand.MILD),
]

BMI_UNDERWEIGHT = 18.5
BMI_OBESE = 30.0
ALBUMIN_LOW_GDL = 3.5
LYMPHOCYTES_LOW_PER_UL = 1500

# Lower bound (inclusive) -> band, checked in order
NUTRITIONAL_BANDS = [
    (4, NutritionalBand.SEVERE_MALNUTRITION),
    (2, NutritionalBand.MODERATE_MALNUTRITION),
    (1, NutritionalBand.AT_RISK),
]


def dvt_band(score: int) -> RiskBand:
    if score >= 5:
        return RiskBand.HIGH
    if score >= 3:
        return RiskBand.MODERATE
    return RiskBand.LOW


def bleeding_band(score: int) -> RiskBand:
    if score >= 3:
        return RiskBand.HIGH
    if score >= 1:
        return RiskBand.MODERATE
    return RiskBand.LOW


def braden_band(score: int) -> BradenBand:
    for upper, band in BRADEN_BANDS:
        if score <= upper:
            return band
    return BradenBand.NO_RISK


def nutritional_band(points: int) -> NutritionalBand:
    for lower, band in NUTRITIONAL_BANDS:
        if points >= lower:
            return band
    return NutritionalBand.WELL_NOURISHED


def compute_dvt_score(factors: DVTFactors) -> RiskScoreResult:
    """Compute the DVT (Caprini-style) point total and band.

    An absent age contributes no age points.
    """
    score = 0
    contributing = []

    if factors.age is not None:
        for threshold, points in DVT_AGE_POINTS:
            if factors.age >= threshold:
                score += points
                contributing.append(f"age>={threshold}")
                break

    for name, points in DVT_FACTOR_POINTS.items():
        if getattr(factors, name):
            score += points
            contributing.append(name)

    return RiskScoreResult(
        kind=RiskKind.DVT,
        raw_score=score,
        band=dvt_band(score),
        contributing_factors=tuple(contributing),
    )


def compute_bleeding_score(factors: BleedingFactors) -> RiskScoreResult:
    """Compute the bleeding (HAS-BLED-style) point total and band (max 8)."""
    contributing = []

    if factors.age is not None and factors.age >= BLEEDING_AGE_THRESHOLD:
        contributing.append(f"age>={BLEEDING_AGE_THRESHOLD}")

    contributing.extend(name for name in BLEEDING_FACTORS if getattr(factors, name))

    score = len(contributing)
    return RiskScoreResult(
        kind=RiskKind.BLEEDING,
        raw_score=score,
        band=bleeding_band(score),
        contributing_factors=tuple(contributing),
    )


def compute_braden_score(subscales: BradenSubscales) -> RiskScoreResult:
    """Sum the six Braden subscales into a score in [6, 23].

    Lower is worse. Any unassessed subscale makes the result unavailable.

    Raises:
        ValidationError: if a subscale is outside its documented range
    """
    missing = tuple(
        name for name in BRADEN_SUBSCALE_RANGES if getattr(subscales, name) is None
    )
    if missing:
        logger.debug(f"Braden score unavailable, missing subscales: {missing}")
        return RiskScoreResult.unavailable(RiskKind.PRESSURE_SORE, missing)

    score = 0
    for name, (low, high) in BRADEN_SUBSCALE_RANGES.items():
        value = getattr(subscales, name)
        if isinstance(value, bool) or not isinstance(value, int) or not low <= value <= high:
            raise ValidationError(
                f"Braden {name} must be an integer between {low} and {high}",
                details={"field": name, "value": value},
            )
        score += value

    return RiskScoreResult(
        kind=RiskKind.PRESSURE_SORE,
        raw_score=score,
        band=braden_band(score),
    )


def calculate_bmi(height_cm: float | None, weight_kg: float | None) -> float | None:
    """Body-mass index, or None when height or weight is zero/absent."""
    if not height_cm or not weight_kg or height_cm <= 0 or weight_kg <= 0:
        return None
    height_m = height_cm / 100
    return weight_kg / (height_m * height_m)


def compute_nutritional_risk(
    height_cm: float | None,
    weight_kg: float | None,
    albumin_gdl: float | None = None,
    lymphocytes_per_ul: float | None = None,
    weight_loss: bool = False,
    poor_intake: bool = False,
) -> RiskScoreResult:
    """Count nutritional risk points and band them.

    Cut points use the unrounded BMI; the reported BMI is rounded to one
    decimal. Without height and weight the whole sub-score is unavailable.
    Absent albumin or lymphocyte values simply score no points.
    """
    bmi = calculate_bmi(height_cm, weight_kg)
    if bmi is None:
        missing = tuple(
            name for name, value in (("height_cm", height_cm), ("weight_kg", weight_kg))
            if not value or value <= 0
        )
        return RiskScoreResult.unavailable(RiskKind.NUTRITIONAL, missing)

    points = 0
    contributing = []

    if bmi < BMI_UNDERWEIGHT:
        points += 2
        contributing.append(f"bmi<{BMI_UNDERWEIGHT}")
    elif bmi >= BMI_OBESE:
        points += 1
        contributing.append(f"bmi>={BMI_OBESE:g}")

    if albumin_gdl is not None and albumin_gdl < ALBUMIN_LOW_GDL:
        points += 2
        contributing.append(f"albumin<{ALBUMIN_LOW_GDL}")

    if lymphocytes_per_ul is not None and lymphocytes_per_ul < LYMPHOCYTES_LOW_PER_UL:
        points += 1
        contributing.append(f"lymphocytes<{LYMPHOCYTES_LOW_PER_UL}")

    if weight_loss:
        points += 1
        contributing.append("weight_loss")

    if poor_intake:
        points += 1
        contributing.append("poor_intake")

    return RiskScoreResult(
        kind=RiskKind.NUTRITIONAL,
        raw_score=points,
        band=nutritional_band(points),
        contributing_factors=tuple(contributing),
        bmi=round(bmi, 1),
    )


def score_nutritional(factors: NutritionalFactors) -> RiskScoreResult:
    return compute_nutritional_risk(
        factors.height_cm,
        factors.weight_kg,
        factors.albumin_gdl,
        factors.lymphocytes_per_ul,
        factors.weight_loss,
        factors.poor_intake,
    )


def score_all(factors: RiskFactorInput) -> dict[RiskKind, RiskScoreResult]:
    """Compute all four sub-scores from one assessment input."""
    return {
        RiskKind.DVT: compute_dvt_score(factors.dvt),
        RiskKind.BLEEDING: compute_bleeding_score(factors.bleeding),
        RiskKind.PRESSURE_SORE: compute_braden_score(factors.braden),
        RiskKind.NUTRITIONAL: score_nutritional(factors.nutritional),
    }
