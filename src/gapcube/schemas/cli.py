"""CLIConfig: Command-line operational overrides.

Minimal configuration for operational parameters that commonly change
between runs: worker count, chunk size, smoothing method, verbosity.

This schema handles command-line arguments parsed by argparse.
"""

from typing import Literal, Optional
from pydantic import Field
from gapcube.schemas.base import GapcubeBaseModel


class CLIConfig(GapcubeBaseModel):
    """Command-line configuration overrides.

    Operational-only settings that override user and param configs.
    Highest priority in config resolution.

    Usage
    -----
        cli_cfg = CLIConfig(workers=8, log_level="DEBUG")
        internal = resolve_config(param_cfg, user_cfg, cli_cfg)
    """

    workers: Optional[int] = Field(None, ge=1)
    chunk_size: Optional[int] = Field(None, ge=1)
    smoothing_method: Optional[Literal["linear", "spline", "periodic_spline", "whittaker"]] = None
    log_level: Optional[Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]] = None
    log_file: Optional[str] = None

    def to_internal_overrides(self) -> dict:
        """Convert CLI config to internal config structure.

        Returns
        -------
        dict
            Nested dictionary matching InternalConfig structure
        """
        overrides = {}

        processor = {}
        if self.workers is not None:
            processor["workers"] = self.workers
        if self.chunk_size is not None:
            processor["chunk_size"] = self.chunk_size
        if processor:
            overrides["processor"] = processor

        if self.smoothing_method is not None:
            overrides["smoothing"] = {"method": self.smoothing_method}

        logging_cfg = {}
        if self.log_level is not None:
            logging_cfg["level"] = self.log_level
        if self.log_file is not None:
            logging_cfg["log_file"] = self.log_file
        if logging_cfg:
            overrides["logging"] = logging_cfg

        return overrides
