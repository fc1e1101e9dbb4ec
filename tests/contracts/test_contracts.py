"""Tests for pipeline contracts.

These tests check that stage-boundary contracts reject malformed tiles,
cubes, masks and composites with a ContractViolation.
"""

import pytest
import xarray as xr
import pandas as pd
import numpy as np

pytestmark = pytest.mark.unit

from gapcube.contracts import (
    ContractViolation,
    FailurePolicy,
    GridMismatchError,
    HeterogeneousInputError,
    InsufficientDataError,
    StackingError,
    assert_composited,
    assert_cube,
    assert_mask,
    assert_smoothed,
    assert_tile,
    require,
)
from tests.helpers.fake_tiles import landsat_tile, make_cube, make_mask


class TestRequire:

    def test_require_passes_silently(self):
        require(True, "never raised")

    def test_require_raises_contract_violation(self):
        with pytest.raises(ContractViolation, match="broken"):
            require(False, "broken")


class TestFailureTaxonomy:
    """Each data-level error carries the policy the orchestrator applies."""

    def test_grid_mismatch_is_fatal(self):
        assert GridMismatchError.policy == FailurePolicy.FAIL_FAST
        assert issubclass(GridMismatchError, StackingError)

    def test_heterogeneous_input_skips_item(self):
        assert HeterogeneousInputError.policy == FailurePolicy.SKIP_ITEM

    def test_insufficient_data_flags_item(self):
        e = InsufficientDataError(1, 2)
        assert e.policy == FailurePolicy.FLAG_ITEM
        assert e.n_valid == 1 and e.min_valid == 2
        assert "1 valid sample(s), at least 2 required" in str(e)

    def test_contract_violation_is_not_a_stacking_error(self):
        assert not issubclass(ContractViolation, StackingError)
        assert ContractViolation.policy == FailurePolicy.FAIL_FAST


class TestTileContract:

    def test_tile_contract_passes(self, grid):
        assert_tile(landsat_tile(grid, "2020-01-05"))

    def test_tile_contract_fails_without_time(self, grid):
        tile = landsat_tile(grid, "2020-01-05")
        del tile.attrs["time"]
        with pytest.raises(ContractViolation, match="missing 'time'"):
            assert_tile(tile)

    def test_tile_contract_fails_without_x(self):
        ds = xr.Dataset(
            {"red": (("y", "x"), np.ones((2, 2)))},
            coords={"y": [1.0, 0.0]},
            attrs={"time": "2020-01-05", "crs": "EPSG:32630", "cell_size": 1.0},
        )
        with pytest.raises(ContractViolation, match="missing 'x'"):
            assert_tile(ds)

    def test_tile_contract_fails_on_3d_variable(self, grid):
        tile = landsat_tile(grid, "2020-01-05")
        tile["stack"] = (("band", "y", "x"), np.ones((2,) + grid.shape))
        with pytest.raises(ContractViolation, match="'stack' has dims"):
            assert_tile(tile)


class TestCubeContract:

    def test_cube_contract_passes(self, grid):
        cube = make_cube(np.zeros((2,) + grid.shape + (3,)), ["2020-01-01", "2020-02-01"], grid=grid)
        assert_cube(cube, *grid.shape)

    def test_cube_contract_fails_on_shape(self, grid):
        cube = make_cube(np.zeros((1, 2, 2, 3)), ["2020-01-01"])
        with pytest.raises(ContractViolation, match="spatial shape"):
            assert_cube(cube, *grid.shape)

    def test_cube_contract_fails_on_duplicate_dates(self):
        cube = make_cube(np.zeros((2, 2, 2, 3)), ["2020-01-01", "2020-01-01"])
        with pytest.raises(ContractViolation, match="strictly increasing"):
            assert_cube(cube, 2, 2)

    def test_cube_contract_fails_on_integer_dtype(self):
        cube = make_cube(np.zeros((1, 2, 2, 3)), ["2020-01-01"]).astype(int)
        with pytest.raises(ContractViolation, match="expected float"):
            assert_cube(cube, 2, 2)

    def test_cube_contract_fails_on_wrong_dims(self):
        cube = make_cube(np.zeros((1, 2, 2, 3)), ["2020-01-01"]).transpose("band", ...)
        with pytest.raises(ContractViolation, match="dims are"):
            assert_cube(cube, 2, 2)


class TestMaskContract:

    def test_mask_contract_passes(self):
        cube = make_cube(np.zeros((2, 2, 2, 1)), ["2020-01-01", "2020-01-02"], bands=["red"])
        assert_mask(make_mask(np.ones((2, 2, 2)), cube), cube)

    def test_mask_contract_fails_on_dtype(self):
        cube = make_cube(np.zeros((1, 2, 2, 1)), ["2020-01-01"], bands=["red"])
        mask = make_mask(np.ones((1, 2, 2)), cube).astype(int)
        with pytest.raises(ContractViolation, match="expected bool"):
            assert_mask(mask, cube)

    def test_mask_contract_fails_on_time_length(self):
        cube = make_cube(np.zeros((2, 2, 2, 1)), ["2020-01-01", "2020-01-02"], bands=["red"])
        other = make_cube(np.zeros((1, 2, 2, 1)), ["2020-01-01"], bands=["red"])
        with pytest.raises(ContractViolation, match="'time' has length 1"):
            assert_mask(make_mask(np.ones((1, 2, 2)), other), cube)


class TestCompositedContract:

    def test_valid_cells_must_be_finite(self):
        cube = make_cube(np.full((1, 1, 1, 1), np.nan), ["2020-01-01"], bands=["red"])
        mask = make_mask(np.ones((1, 1, 1)), cube)
        with pytest.raises(ContractViolation, match="finite"):
            assert_composited(cube, mask, 1)

    def test_invalid_cells_must_be_no_data(self):
        cube = make_cube(np.zeros((1, 1, 1, 1)), ["2020-01-01"], bands=["red"])
        mask = make_mask(np.zeros((1, 1, 1)), cube)
        with pytest.raises(ContractViolation, match="no data"):
            assert_composited(cube, mask, 1)

    def test_period_count_is_checked(self):
        cube = make_cube(np.zeros((1, 1, 1, 1)), ["2020-01-01"], bands=["red"])
        mask = make_mask(np.ones((1, 1, 1)), cube)
        with pytest.raises(ContractViolation, match="expected 2"):
            assert_composited(cube, mask, 2)


class TestSmoothedContract:

    def test_smoothed_contract_passes(self):
        assert_smoothed(np.arange(3.0), 3)

    def test_smoothed_contract_rejects_nan(self):
        with pytest.raises(ContractViolation, match="NaN or Inf"):
            assert_smoothed(np.array([0.0, np.nan]), 2)

    def test_smoothed_contract_rejects_wrong_length(self):
        with pytest.raises(ContractViolation, match="shape"):
            assert_smoothed(np.zeros(2), 3)
