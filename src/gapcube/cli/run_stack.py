"""Run the stacking pipeline from a user CONFIG file plus CLI overrides.

``scripts/run_stack_pipeline.py`` only parses arguments and loads tiles;
everything from configuration to the returned StackResult lives here.
"""

import json
import logging
import importlib.util
from pathlib import Path
from typing import Optional, Dict, Any, Union

from gapcube.pipeline.orchestrator import StackOrchestrator, StackResult
from gapcube.schemas import resolve_config, InternalConfig, ParamConfig, UserConfig, CLIConfig


logger = logging.getLogger(__name__)


def load_user_config_dict(config_path: str) -> dict:
    """Execute a Python config file and return its ``CONFIG`` dict.

    A module-level name ``CONFIG`` is preferred; otherwise the first dict
    whose name starts with ``CONFIG`` is used. The dict is returned as
    written, before validation.

    Raises
    ------
    FileNotFoundError
        ``config_path`` does not exist.
    ValueError
        The file defines no CONFIG dict.
    """
    path = Path(config_path)
    if not path.is_file():
        raise FileNotFoundError(f"Config not found: {path}")

    loader_spec = importlib.util.spec_from_file_location(f"gapcube_user_config_{path.stem}", path)
    module = importlib.util.module_from_spec(loader_spec)
    loader_spec.loader.exec_module(module)

    names = ["CONFIG"] + sorted(n for n in vars(module) if n.startswith("CONFIG") and n != "CONFIG")
    for name in names:
        candidate = getattr(module, name, None)
        if isinstance(candidate, dict):
            return candidate

    raise ValueError(f"No CONFIG dict found in {path}")


def build_config(
    user_config: Union[str, Path, dict],
    cli_args: Optional[Dict[str, Any]] = None,
    verbose: bool = False,
) -> InternalConfig:
    """Resolve the run configuration (Param < User < CLI).

    Parameters
    ----------
    user_config : str, Path or dict
        Path to a user config Python file, or the CONFIG dict itself.

    cli_args : dict, optional
        CLI argument overrides. Keys: workers, chunk_size, smoothing_method,
        log_level, log_file. None values are ignored.

    verbose : bool, optional
        If True, force DEBUG logging.

    Returns
    -------
    InternalConfig
        Immutable run context.
    """
    if isinstance(user_config, dict):
        user_cfg_dict = user_config
    else:
        user_cfg_dict = load_user_config_dict(str(user_config))
    user_cfg = UserConfig.model_validate(user_cfg_dict)

    cli_args = dict(cli_args or {})
    if verbose and cli_args.get("log_level") is None:
        cli_args["log_level"] = "DEBUG"

    # Filter None values
    cli_dict = {k: v for k, v in cli_args.items() if v is not None}
    cli_cfg = CLIConfig.model_validate(cli_dict) if cli_dict else CLIConfig()

    return resolve_config(ParamConfig(), user_cfg, cli_cfg)


def run_stack_pipeline(
    tiles,
    user_config: Union[str, Path, dict],
    cli_args: Optional[Dict[str, Any]] = None,
    verbose: bool = False,
    **run_kwargs,
) -> StackResult:
    """Execute the stacking pipeline on tiles supplied by a provider client.

    This is the core pipeline execution function. It:
    1. Loads and resolves configuration (Param < User < CLI)
    2. Configures logging
    3. Runs the orchestrator and returns its result

    Parameters
    ----------
    tiles : sequence of xr.Dataset or sequence of sequences
        Tiles (grouped by date) or explicit per-pass tile groups.

    user_config : str, Path or dict
        Path to user config file (Python file with CONFIG dict) or the dict.

    cli_args : dict, optional
        CLI argument overrides (see build_config).

    verbose : bool, optional
        If True, enable DEBUG logging and print full resolved config.

    **run_kwargs
        Passed to StackOrchestrator.run (periods, target_dates, covariates).

    Returns
    -------
    StackResult
        Cubes, composites, smoothed stack, flags and run summary.

    Raises
    ------
    FileNotFoundError
        If the user config path does not exist.
    ValueError
        If configuration validation fails.
    GridMismatchError
        If a tile is misaligned with the configured grid.

    Examples
    --------
    Run with user config only::

        result = run_stack_pipeline(tiles, "config/my_config.py")

    Run with CLI overrides::

        result = run_stack_pipeline(
            tiles,
            "config/my_config.py",
            cli_args={"workers": 8, "smoothing_method": "linear"},
        )
    """
    config = build_config(user_config, cli_args, verbose)

    orchestrator = StackOrchestrator(config)
    orchestrator.setup_logging()

    logger.info("Grid:     %s cells of %s %s", config.grid.shape, config.grid.cell_size, config.grid.crs)
    logger.info("Reducer:  %s (%s)", config.composite.reducer, config.composite.frequency)
    logger.info("Smoother: %s", config.smoothing.method)

    if verbose:
        logger.debug("Full Internal Configuration:\n%s", json.dumps(config.model_dump(), indent=2, default=str))

    return orchestrator.run(tiles, **run_kwargs)
