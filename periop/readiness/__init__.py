"""Composite readiness from the four risk sub-scores, plus profile storage."""

from .aggregator import assess, compute_composite_fitness
from .models import (
    AsaClass,
    CompositeFitness,
    FitnessCategory,
    PatientRiskProfile,
    RiskAssessment,
)
from .store import RiskProfileStore

__all__ = [
    "AsaClass",
    "CompositeFitness",
    "FitnessCategory",
    "PatientRiskProfile",
    "RiskAssessment",
    "RiskProfileStore",
    "assess",
    "compute_composite_fitness",
]
