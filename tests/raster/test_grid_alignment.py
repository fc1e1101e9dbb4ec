"""align_to_grid: placing provider tiles on the run grid."""

import numpy as np
import pytest

from gapcube.contracts import ContractViolation, GridMismatchError
from gapcube.raster.grid import align_to_grid, band_names, make_tile, tile_time, window_slices

from tests.helpers.fake_tiles import landsat_tile

pytestmark = pytest.mark.unit


def test_aligned_tile_gets_grid_coordinates(grid):
    tile = landsat_tile(grid, "2020-01-05", shape=(2, 3), row_start=1, col_start=2)
    aligned = align_to_grid(tile, grid)

    assert aligned.attrs["window"] == (1, 2, 2, 3)
    np.testing.assert_array_equal(aligned["x"].values, grid.x_coords()[2:5])
    np.testing.assert_array_equal(aligned["y"].values, grid.y_coords()[1:3])
    np.testing.assert_array_equal(aligned["red"].values, tile["red"].values)


def test_coarser_tile_is_block_replicated(grid):
    red = np.array([[0.1, 0.2], [0.3, 0.4]])
    tile = make_tile({"red": red}, "2020-01-05", grid, row_start=2, col_start=4, cell_size=20.0)
    aligned = align_to_grid(tile, grid)

    assert aligned.attrs["window"] == (2, 4, 4, 4)
    assert aligned.attrs["cell_size"] == grid.cell_size
    expected = np.array([
        [0.1, 0.1, 0.2, 0.2],
        [0.1, 0.1, 0.2, 0.2],
        [0.3, 0.3, 0.4, 0.4],
        [0.3, 0.3, 0.4, 0.4],
    ])
    np.testing.assert_array_equal(aligned["red"].values, expected)
    assert aligned["red"].attrs["role"] == "band"


@pytest.mark.parametrize("cell_size", [15.0, 5.0])
def test_non_multiple_cell_size_is_rejected(grid, cell_size):
    tile = make_tile({"red": np.zeros((2, 2))}, "2020-01-05", grid, cell_size=cell_size)
    with pytest.raises(GridMismatchError, match="whole multiple"):
        align_to_grid(tile, grid)


def test_crs_mismatch_is_rejected(grid):
    tile = landsat_tile(grid, "2020-01-05", crs="EPSG:32631")
    with pytest.raises(GridMismatchError, match="CRS"):
        align_to_grid(tile, grid)


def test_crs_comparison_ignores_case(grid):
    tile = landsat_tile(grid, "2020-01-05", crs="epsg:32630")
    assert align_to_grid(tile, grid).attrs["window"] == (0, 0, 6, 8)


def test_half_cell_offset_is_rejected(grid):
    tile = make_tile({"red": np.zeros((2, 2))}, "2020-01-05", grid, row_start=0.5, col_start=1)
    with pytest.raises(GridMismatchError, match="cell edges"):
        align_to_grid(tile, grid)


def test_overhanging_tile_is_cropped_to_the_grid(grid):
    red = np.arange(9, dtype=float).reshape(3, 3) / 10.0
    tile = landsat_tile(grid, "2020-01-05", shape=(3, 3), row_start=5, col_start=-1, red=red)
    aligned = align_to_grid(tile, grid)

    assert aligned.attrs["window"] == (5, 0, 1, 2)
    np.testing.assert_array_equal(aligned["red"].values, red[:1, 1:])
    np.testing.assert_array_equal(aligned["x"].values, grid.x_coords()[0:2])
    np.testing.assert_array_equal(aligned["y"].values, grid.y_coords()[5:6])
    assert aligned["QA_PIXEL"].shape == (1, 2)


def test_overhanging_coarse_tile_is_cropped_after_upsampling(grid):
    red = np.array([[0.1, 0.2], [0.3, 0.4]])
    tile = make_tile({"red": red}, "2020-01-05", grid, row_start=-1, col_start=6, cell_size=20.0)
    aligned = align_to_grid(tile, grid)

    assert aligned.attrs["window"] == (0, 6, 3, 2)
    expected = np.array([
        [0.1, 0.1],
        [0.3, 0.3],
        [0.3, 0.3],
    ])
    np.testing.assert_array_equal(aligned["red"].values, expected)


def test_tile_without_overlap_is_rejected(grid):
    tile = landsat_tile(grid, "2020-01-05", shape=(2, 2), row_start=6, col_start=0)
    with pytest.raises(GridMismatchError, match="does not overlap"):
        align_to_grid(tile, grid)


def test_irregular_coordinates_are_rejected(grid):
    tile = landsat_tile(grid, "2020-01-05", shape=(2, 3))
    x = tile["x"].values.copy()
    x[-1] += 3.0
    tile = tile.assign_coords(x=x)
    with pytest.raises(GridMismatchError, match="regularly spaced"):
        align_to_grid(tile, grid)


def test_tile_contract_is_checked(grid):
    tile = landsat_tile(grid, "2020-01-05")
    del tile.attrs["crs"]
    with pytest.raises(ContractViolation, match="crs"):
        align_to_grid(tile, grid)


def test_tile_helpers(grid):
    tile = landsat_tile(grid, "2020-01-05T10:30:00")
    assert band_names(tile) == ["red", "nir", "ndvi"]
    assert tile_time(tile).hour == 10
    assert window_slices((1, 2, 3, 4)) == (slice(1, 4), slice(2, 6))


def test_make_tile_rejects_mismatched_layers(grid):
    with pytest.raises(ValueError, match="shape"):
        make_tile({"red": np.zeros((2, 2)), "nir": np.zeros((2, 3))}, "2020-01-05", grid)
