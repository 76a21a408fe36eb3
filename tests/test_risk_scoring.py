"""Tests for the four risk scales."""

from dataclasses import fields, replace

import pytest

from periop.errors import ValidationError
from periop.risk_scoring import (
    BleedingFactors,
    BradenBand,
    BradenSubscales,
    DVTFactors,
    NutritionalBand,
    NutritionalFactors,
    RiskBand,
    RiskFactorInput,
    RiskKind,
    calculate_bmi,
    compute_bleeding_score,
    compute_braden_score,
    compute_dvt_score,
    compute_nutritional_risk,
    score_all,
)
from periop.risk_scoring.scoring import BRADEN_SUBSCALE_RANGES


def make_braden(total: int) -> BradenSubscales:
    """Spread a total over the six subscales, filling in order."""
    values = {name: low for name, (low, _) in BRADEN_SUBSCALE_RANGES.items()}
    remaining = total - sum(values.values())
    for name, (low, high) in BRADEN_SUBSCALE_RANGES.items():
        step = min(high - low, remaining)
        values[name] += step
        remaining -= step
    assert remaining == 0
    return BradenSubscales(**values)


def bool_fields(model):
    return [f.name for f in fields(model) if f.type in (bool, "bool")]


def test_dvt_age_bands_are_exclusive():
    """Only the highest matching age band scores."""
    assert compute_dvt_score(DVTFactors(age=30)).raw_score == 0
    assert compute_dvt_score(DVTFactors(age=41)).raw_score == 1
    assert compute_dvt_score(DVTFactors(age=60)).raw_score == 1
    assert compute_dvt_score(DVTFactors(age=61)).raw_score == 3
    assert compute_dvt_score(DVTFactors(age=74)).raw_score == 3
    assert compute_dvt_score(DVTFactors(age=75)).raw_score == 5
    assert compute_dvt_score(DVTFactors(age=None)).raw_score == 0


def test_dvt_factor_points():
    result = compute_dvt_score(DVTFactors(
        age=50, major_surgery=True, immobilization=True, obesity=True,
    ))
    assert result.raw_score == 1 + 3 + 2 + 1
    assert result.band == RiskBand.HIGH
    assert "major_surgery" in result.contributing_factors
    assert "age>=41" in result.contributing_factors


def test_dvt_band_boundaries():
    # 2 -> low, 3 -> moderate, 5 -> high
    assert compute_dvt_score(DVTFactors(immobilization=True)).band == RiskBand.LOW
    assert compute_dvt_score(DVTFactors(major_surgery=True)).band == RiskBand.MODERATE
    four = compute_dvt_score(DVTFactors(major_surgery=True, obesity=True))
    assert (four.raw_score, four.band) == (4, RiskBand.MODERATE)
    five = compute_dvt_score(DVTFactors(major_surgery=True, pregnancy=True))
    assert (five.raw_score, five.band) == (5, RiskBand.HIGH)


def test_bleeding_band_boundaries():
    assert compute_bleeding_score(BleedingFactors()).band == RiskBand.LOW
    one = compute_bleeding_score(BleedingFactors(age=65))
    assert (one.raw_score, one.band) == (1, RiskBand.MODERATE)
    two = compute_bleeding_score(BleedingFactors(liver_disease=True, anticoagulants=True))
    assert (two.raw_score, two.band) == (2, RiskBand.MODERATE)
    three = compute_bleeding_score(BleedingFactors(
        age=70, liver_disease=True, anticoagulants=True,
    ))
    assert (three.raw_score, three.band) == (3, RiskBand.HIGH)


def test_bleeding_maximum_is_eight():
    every = BleedingFactors(age=90, **{name: True for name in bool_fields(BleedingFactors)})
    assert compute_bleeding_score(every).raw_score == 8


@pytest.mark.parametrize("total,band", [
    (6, BradenBand.VERY_HIGH),
    (9, BradenBand.VERY_HIGH),
    (10, BradenBand.HIGH),
    (12, BradenBand.HIGH),
    (13, BradenBand.MODERATE),
    (14, BradenBand.MODERATE),
    (15, BradenBand.MILD),
    (18, BradenBand.MILD),
    (19, BradenBand.NO_RISK),
    (23, BradenBand.NO_RISK),
])
def test_braden_band_boundaries(total, band):
    result = compute_braden_score(make_braden(total))
    assert result.raw_score == total
    assert result.band == band


def test_braden_missing_subscale_is_unavailable():
    result = compute_braden_score(replace(make_braden(15), moisture=None))
    assert not result.available
    assert result.raw_score is None
    assert result.band is None
    assert "missing:moisture" in result.contributing_factors


def test_braden_rejects_out_of_range_subscale():
    with pytest.raises(ValidationError):
        compute_braden_score(replace(make_braden(15), friction_shear=4))
    with pytest.raises(ValidationError):
        compute_braden_score(replace(make_braden(15), activity=0))


def test_nutritional_well_nourished_example():
    result = compute_nutritional_risk(170, 70, 4.0, 2000, False, False)
    assert result.bmi == 24.2
    assert result.raw_score == 0
    assert result.band == NutritionalBand.WELL_NOURISHED


def test_nutritional_severe_example():
    result = compute_nutritional_risk(150, 40, 3.0, 1200, True, True)
    assert result.bmi == 17.8
    assert result.raw_score == 7
    assert result.band == NutritionalBand.SEVERE_MALNUTRITION


def test_nutritional_obesity_and_missing_labs():
    """BMI >= 30 scores one point; absent labs score nothing."""
    result = compute_nutritional_risk(160, 85)
    assert result.bmi == 33.2
    assert result.raw_score == 1
    assert result.band == NutritionalBand.AT_RISK


def test_nutritional_cut_points_use_unrounded_bmi():
    # 18.46... rounds to 18.5 for display but is still underweight
    height, weight = 180, 59.8
    assert calculate_bmi(height, weight) < 18.5
    result = compute_nutritional_risk(height, weight)
    assert result.bmi == 18.5
    assert "bmi<18.5" in result.contributing_factors


def test_nutritional_without_height_or_weight_is_unavailable():
    for height, weight in [(0, 70), (170, 0), (None, 70), (170, None)]:
        result = compute_nutritional_risk(height, weight, 3.0, 1000, True, True)
        assert not result.available
        assert result.bmi is None
        assert result.band is None


@pytest.mark.parametrize("model,scorer,base", [
    (DVTFactors, compute_dvt_score, DVTFactors(age=50)),
    (BleedingFactors, compute_bleeding_score, BleedingFactors(age=50)),
])
def test_boolean_factors_never_lower_the_score(model, scorer, base):
    """Turning any factor on keeps the score the same or raises it."""
    before = scorer(base).raw_score
    for name in bool_fields(model):
        assert scorer(replace(base, **{name: True})).raw_score >= before


def test_nutritional_boolean_factors_never_lower_the_score():
    base = NutritionalFactors(height_cm=170, weight_kg=70, albumin_gdl=4.0, lymphocytes_per_ul=2000)
    before = compute_nutritional_risk(170, 70, 4.0, 2000).raw_score
    for name in ("weight_loss", "poor_intake"):
        flipped = replace(base, **{name: True})
        after = compute_nutritional_risk(
            flipped.height_cm, flipped.weight_kg, flipped.albumin_gdl,
            flipped.lymphocytes_per_ul, flipped.weight_loss, flipped.poor_intake,
        ).raw_score
        assert after >= before


def test_rescoring_is_idempotent():
    factors = RiskFactorInput.from_dict({
        "age": 68,
        "dvt": {"major_surgery": True},
        "bleeding": {"anticoagulants": True},
        "braden": {"sensory_perception": 3, "moisture": 3, "activity": 2,
                   "mobility": 2, "nutrition": 3, "friction_shear": 2},
        "nutritional": {"height_cm": 165, "weight_kg": 52, "albumin_gdl": 3.2},
    })
    assert score_all(factors) == score_all(factors)
    assert factors == RiskFactorInput.from_dict(factors.to_dict())


def test_shared_age_feeds_dvt_and_bleeding():
    factors = RiskFactorInput.from_dict({"age": 80})
    results = score_all(factors)
    assert results[RiskKind.DVT].raw_score == 5
    assert results[RiskKind.BLEEDING].raw_score == 1


def test_json_strings_are_coerced_to_field_types():
    factors = RiskFactorInput.from_dict({
        "age": "70",
        "dvt": {"major_surgery": "false", "prior_dvt": "true"},
        "braden": {"moisture": "3"},
    })
    assert factors.dvt.age == 70
    assert factors.dvt.major_surgery is False
    assert factors.dvt.prior_dvt is True
    assert factors.braden.moisture == 3

    baseline = RiskFactorInput.from_dict({"age": 70, "dvt": {"prior_dvt": True}})
    assert score_all(factors)[RiskKind.DVT].raw_score == score_all(baseline)[RiskKind.DVT].raw_score


@pytest.mark.parametrize("payload", [
    {"age": "seventy"},
    {"dvt": {"major_surgery": "maybe"}},
    {"bleeding": {"anticoagulants": 2}},
    {"braden": {"mobility": 2.5}},
    {"nutritional": {"weight_kg": [60]}},
    {"dvt": "yes"},
])
def test_malformed_factor_values_rejected(payload):
    with pytest.raises(ValidationError):
        RiskFactorInput.from_dict(payload)
