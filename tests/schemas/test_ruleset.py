"""Masking rulesets are validated data."""

import pytest
from pydantic import ValidationError

from gapcube.schemas.ruleset import BitRule, RangeRule, Ruleset, ValueRule, SENSOR_RULESETS

pytestmark = pytest.mark.unit


def test_builtin_sensor_families():
    assert set(SENSOR_RULESETS) == {"landsat7", "landsat8", "sentinel2", "modis"}
    assert SENSOR_RULESETS["landsat8"].quality_var == "QA_PIXEL"
    assert SENSOR_RULESETS["sentinel2"].quality_var == "SCL"
    assert "cirrus" in SENSOR_RULESETS["landsat8"].conditions
    assert "cirrus" not in SENSOR_RULESETS["landsat7"].conditions


def test_conditions_are_parsed_by_kind():
    ruleset = Ruleset(
        sensor="test",
        quality_var="qa",
        conditions={
            "cloud": {"kind": "bits", "start_bit": 3},
            "water": {"kind": "values", "values": [6]},
            "saturated": {"kind": "range", "min": 10000},
        },
        exclude=["cloud", "saturated"],
    )
    assert isinstance(ruleset.conditions["cloud"], BitRule)
    assert isinstance(ruleset.conditions["water"], ValueRule)
    assert isinstance(ruleset.conditions["saturated"], RangeRule)
    assert ruleset.conditions["cloud"].values == [1]


def test_exclude_must_name_known_conditions():
    with pytest.raises(ValidationError, match="unknown conditions"):
        Ruleset(
            sensor="test",
            quality_var="qa",
            conditions={"cloud": {"kind": "bits", "start_bit": 3}},
            exclude=["cloud", "snow"],
        )


def test_range_rule_needs_a_bound():
    with pytest.raises(ValidationError, match="needs 'min', 'max'"):
        RangeRule()


def test_unknown_rule_kind_is_rejected():
    with pytest.raises(ValidationError):
        Ruleset(
            sensor="test",
            quality_var="qa",
            conditions={"cloud": {"kind": "fuzzy"}},
            exclude=[],
        )


def test_with_valid_returns_copy():
    original = SENSOR_RULESETS["sentinel2"]
    relaxed = original.with_valid("snow", "cirrus")

    assert "snow" not in relaxed.exclude and "cirrus" not in relaxed.exclude
    assert "snow" in original.exclude
    assert relaxed.conditions == original.conditions
