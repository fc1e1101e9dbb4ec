"""Pipeline runner: config files, CLI overrides and a full run."""

import numpy as np
import pytest

from gapcube.cli.run_stack import build_config, load_user_config_dict, run_stack_pipeline

from tests.helpers.fake_tiles import GRID, landsat_tile

pytestmark = [pytest.mark.unit, pytest.mark.pipeline]


def _write_config(tmp_path, body):
    path = tmp_path / "user_config.py"
    path.write_text(body)
    return path


def test_load_user_config_dict(tmp_path):
    path = _write_config(tmp_path, 'CONFIG = {"REDUCER": "median", "WORKERS": 2}\n')
    assert load_user_config_dict(str(path)) == {"REDUCER": "median", "WORKERS": 2}


def test_missing_config_file(tmp_path):
    with pytest.raises(FileNotFoundError, match="Config not found"):
        load_user_config_dict(str(tmp_path / "nope.py"))


def test_config_file_without_config_dict(tmp_path):
    path = _write_config(tmp_path, "SETTINGS = {}\n")
    with pytest.raises(ValueError, match="No CONFIG dict"):
        load_user_config_dict(str(path))


def test_build_config_from_file(tmp_path):
    path = _write_config(
        tmp_path,
        f"CONFIG = {{'GRID': {GRID!r}, 'SMOOTHING_METHOD': 'Spline', 'WORKERS': 3}}\n",
    )
    config = build_config(path)
    assert config.grid.n_cols == GRID["n_cols"]
    assert config.smoothing.method == "spline"
    assert config.processor.workers == 3


def test_cli_args_override_user_config():
    user = {"GRID": GRID, "WORKERS": 3, "SMOOTHING_METHOD": "spline"}
    config = build_config(user, cli_args={"workers": 8, "smoothing_method": "linear", "chunk_size": None})

    assert config.processor.workers == 8
    assert config.smoothing.method == "linear"
    assert config.processor.chunk_size == 128


def test_verbose_forces_debug_logging():
    assert build_config({"GRID": GRID}, verbose=True).logging.level == "DEBUG"
    explicit = build_config({"GRID": GRID}, cli_args={"log_level": "WARNING"}, verbose=True)
    assert explicit.logging.level == "WARNING"


def test_run_stack_pipeline(grid, restore_root_logging):
    tiles = [landsat_tile(grid, date) for date in ("2020-01-10", "2020-02-10", "2020-03-10")]
    result = run_stack_pipeline(
        tiles,
        {"GRID": GRID, "REDUCER": "maximum_of", "INDEX_BAND": "ndvi", "SMOOTHING_METHOD": "linear"},
        cli_args={"workers": 2, "chunk_size": 3},
    )

    assert result.composite.attrs["reducer"] == "maximum_of"
    assert result.summary.n_chunks == 6
    assert result.summary.failures.empty
    np.testing.assert_allclose(result.smoothed.sel(band="red").values, 0.1)
