"""Test config resolution and validation with Pydantic."""

import pytest
from pydantic import ValidationError

from gapcube.schemas import ParamConfig, UserConfig, CLIConfig, InternalConfig, SENSOR_RULESETS
from gapcube.schemas.resolve import deep_merge, resolve_config
from gapcube.schemas.user import UserSmoothingConfig, UserMaskConfig

from tests.helpers.fake_tiles import GRID

pytestmark = pytest.mark.unit


class TestDeepMerge:

    def test_nested_dicts_are_merged(self):
        base = {"a": 1, "b": {"c": 2, "d": 3}}
        override = {"b": {"d": 4, "e": 5}, "f": 6}
        assert deep_merge(base, override) == {"a": 1, "b": {"c": 2, "d": 4, "e": 5}, "f": 6}

    def test_base_is_not_mutated(self):
        base = {"b": {"c": 2}}
        deep_merge(base, {"b": {"c": 3}})
        assert base == {"b": {"c": 2}}


class TestConfigResolution:
    """Test resolve_config() precedence and merging."""

    def test_resolve_config_all_defaults(self):
        """Resolving with only a grid uses all ParamConfig defaults."""
        config = resolve_config(ParamConfig(), {"GRID": GRID}, None)

        assert isinstance(config, InternalConfig)
        assert config.grid.shape == (6, 8)
        assert config.mosaic.tie_break == "last"
        assert config.composite.reducer == "median"
        assert config.composite.frequency == "MS"
        assert config.smoothing.method == "whittaker"
        assert config.smoothing.min_valid == 2
        assert config.smoothing.max_iterations == 5
        assert config.processor.workers == 4
        assert set(config.mask.rulesets) == set(SENSOR_RULESETS)

    def test_grid_is_required(self):
        """No layer sets a grid: resolution fails loudly."""
        with pytest.raises(ValueError, match="No grid"):
            resolve_config(ParamConfig(), None, None)

    def test_grid_from_param_layer(self):
        param = ParamConfig(grid=GRID)
        config = resolve_config(param, None, None)
        assert config.grid.crs == "EPSG:32630"

    def test_user_config_overrides_param_config(self):
        user = UserConfig(GRID=GRID, REDUCER="first", PENALTY=50)
        config = resolve_config(ParamConfig(), user, None)

        assert config.composite.reducer == "first"
        assert config.smoothing.penalty == 50.0

    def test_nested_user_section_overrides_flat_alias(self):
        user = UserConfig(
            GRID=GRID,
            SMOOTHING_METHOD="linear",
            smoothing=UserSmoothingConfig(method="spline", robust=False),
        )
        config = resolve_config(ParamConfig(), user, None)

        assert config.smoothing.method == "spline"
        assert config.smoothing.robust is False

    def test_internal_config_is_frozen(self, internal_config):
        with pytest.raises(ValidationError):
            internal_config.smoothing.penalty = 1.0
        with pytest.raises(ValidationError):
            internal_config.grid.cell_size = 1.0

    def test_maximum_of_requires_index_band(self):
        with pytest.raises(ValidationError, match="index_band"):
            resolve_config(ParamConfig(), UserConfig(GRID=GRID, REDUCER="maximum_of"), None)

    def test_maximum_of_with_index_band(self):
        user = UserConfig(GRID=GRID, REDUCER="maximum-of", INDEX_BAND="ndvi")
        config = resolve_config(ParamConfig(), user, None)
        assert config.composite.reducer == "maximum_of"
        assert config.composite.index_band == "ndvi"


class TestMaskResolution:
    """Run-wide mask settings are folded into every ruleset."""

    def test_treat_as_valid_drops_condition_everywhere(self):
        config = resolve_config(ParamConfig(), UserConfig(GRID=GRID, TREAT_AS_VALID=["snow"]), None)

        for ruleset in config.mask.rulesets.values():
            assert "snow" not in ruleset.exclude
            assert "cloud" in ruleset.exclude
            assert "snow" in ruleset.conditions

    def test_buffer_and_band_specific_apply_to_all_rulesets(self):
        user = UserConfig(
            GRID=GRID,
            BUFFER_PIXELS=2,
            mask=UserMaskConfig(band_specific=True),
        )
        config = resolve_config(ParamConfig(), user, None)

        assert all(r.buffer_pixels == 2 for r in config.mask.rulesets.values())
        assert all(r.band_specific for r in config.mask.rulesets.values())

    def test_builtin_rulesets_are_not_modified(self):
        resolve_config(ParamConfig(), UserConfig(GRID=GRID, TREAT_AS_VALID=["snow"]), None)
        assert "snow" in SENSOR_RULESETS["landsat8"].exclude

    def test_default_sensor_must_have_ruleset(self):
        with pytest.raises(ValueError, match="no ruleset"):
            resolve_config(ParamConfig(), UserConfig(GRID=GRID, SENSOR="hyperion"), None)

    def test_user_defined_ruleset(self):
        user = UserConfig(
            GRID=GRID,
            SENSOR="planet",
            mask=UserMaskConfig(rulesets={
                "planet": {
                    "sensor": "planet",
                    "quality_var": "udm",
                    "conditions": {"cloud": {"kind": "values", "values": [2]}},
                    "exclude": ["cloud"],
                },
            }),
        )
        config = resolve_config(ParamConfig(), user, None)

        assert config.mask.default_sensor == "planet"
        assert config.mask.rulesets["planet"].quality_var == "udm"
        assert "landsat8" in config.mask.rulesets

    def test_partial_override_of_builtin_ruleset(self):
        user = UserConfig(
            GRID=GRID,
            mask=UserMaskConfig(rulesets={"sentinel2": {"exclude": ["cloud"]}}),
        )
        config = resolve_config(ParamConfig(), user, None)

        assert config.mask.rulesets["sentinel2"].exclude == ["cloud"]
        assert config.mask.rulesets["sentinel2"].quality_var == "SCL"
