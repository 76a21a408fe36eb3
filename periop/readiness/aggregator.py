"""Combine the four sub-scores into one composite readiness result."""

import logging

from ..errors import ValidationError
from ..risk_scoring import BRADEN_MAX_SCORE, RiskFactorInput, RiskKind, RiskScoreResult, score_all
from .models import AsaClass, CompositeFitness, FitnessCategory, RiskAssessment

logger = logging.getLogger(__name__)


def _parse_fitness_category(value: FitnessCategory | str | None) -> FitnessCategory:
    if value is None or value == "":
        raise ValidationError("fitness_category is required")
    if isinstance(value, FitnessCategory):
        return value
    try:
        return FitnessCategory(str(value).strip().lower())
    except ValueError:
        raise ValidationError(
            f"fitness_category must be one of: {', '.join(c.value for c in FitnessCategory)}",
            details={"fitness_category": value},
        )


def _parse_asa_class(value: AsaClass | str | int | None) -> AsaClass | None:
    if value is None or value == "":
        return None
    try:
        return AsaClass.parse(value)
    except ValueError:
        raise ValidationError(
            "asa_class must be ASA_I through ASA_VI",
            details={"asa_class": value},
        )


def compute_composite_fitness(
    dvt: RiskScoreResult,
    bleeding: RiskScoreResult,
    braden: RiskScoreResult,
    nutritional: RiskScoreResult,
    asa_class: AsaClass | str | int | None,
    fitness_category: FitnessCategory | str | None,
) -> CompositeFitness:
    """Average the DVT, bleeding and inverted Braden raw scores.

    final_score = (dvt + bleeding + (23 - braden)) / 3, literally and without
    normalising the differing scale ranges. Braden is inverted so that a
    higher composite always means higher risk.

    The nutritional band and ASA class are carried through untouched. The
    fitness category is entered by the clinician; it is validated here,
    never derived.

    A missing component sets incomplete=True. If one of the three averaged
    terms is missing, final_score is None instead of treating it as zero.

    Raises:
        ValidationError: if fitness_category is absent or unknown, or
            asa_class is given but not ASA I-VI
    """
    category = _parse_fitness_category(fitness_category)
    asa = _parse_asa_class(asa_class)

    components = {
        RiskKind.DVT: dvt,
        RiskKind.BLEEDING: bleeding,
        RiskKind.PRESSURE_SORE: braden,
        RiskKind.NUTRITIONAL: nutritional,
    }
    missing = tuple(kind.value for kind, result in components.items() if not result.available)

    final_score = None
    if dvt.available and bleeding.available and braden.available:
        final_score = (dvt.raw_score + bleeding.raw_score + (BRADEN_MAX_SCORE - braden.raw_score)) / 3

    if missing:
        logger.debug(f"Composite fitness incomplete, missing: {', '.join(missing)}")

    return CompositeFitness(
        final_score=final_score,
        fitness_category=category,
        asa_class=asa,
        nutritional_band=nutritional.band if nutritional.available else None,
        incomplete=bool(missing),
        missing_components=missing,
    )


def assess(
    factors: RiskFactorInput,
    fitness_category: FitnessCategory | str | None,
    asa_class: AsaClass | str | int | None = None,
) -> RiskAssessment:
    """Score all four scales and aggregate them for one assessment input."""
    results = score_all(factors)
    composite = compute_composite_fitness(
        results[RiskKind.DVT],
        results[RiskKind.BLEEDING],
        results[RiskKind.PRESSURE_SORE],
        results[RiskKind.NUTRITIONAL],
        asa_class=asa_class,
        fitness_category=fitness_category,
    )
    return RiskAssessment(factors=factors, results=results, composite=composite)
