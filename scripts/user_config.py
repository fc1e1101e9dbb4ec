"""gapcube User Configuration.

This is the user-facing configuration file. Modify settings here to customize
the pipeline behavior. Advanced settings are in gapcube.schemas.param.

Usage:
    python scripts/run_stack_pipeline.py scripts/user_config.py tiles/*.nc
    python scripts/run_stack_pipeline.py scripts/user_config.py tiles/*.nc --workers 8
"""

CONFIG = {
    # ========================================================================
    # GRID (all tiles must align to it)
    # ========================================================================
    "GRID": {
        "origin_x": 399960.0,     # Upper-left corner, CRS units
        "origin_y": 4500000.0,
        "cell_size": 10.0,
        "n_rows": 1024,
        "n_cols": 1024,
        "crs": "EPSG:32630",
    },

    # ========================================================================
    # MASKING
    # ========================================================================
    "SENSOR": "sentinel2",        # Ruleset for tiles without a 'sensor' attr
    "TREAT_AS_VALID": [],         # e.g. ["snow"] for winter studies
    "BUFFER_PIXELS": 2,           # Dilate cloud/shadow by N cells

    # ========================================================================
    # MOSAIC & COMPOSITE
    # ========================================================================
    "TIE_BREAK": "prefer_valid",  # "last", "prefer_valid", "lowest_cloud"
    "REDUCER": "maximum_of",      # "maximum_of", "median", "mean", "first", "last"
    "INDEX_BAND": "ndvi",         # Required by maximum_of
    "COMPOSITE_FREQUENCY": "MS",  # pandas offset alias

    # ========================================================================
    # GAP FILLING / SMOOTHING
    # ========================================================================
    "SMOOTHING_METHOD": "whittaker",
    "PENALTY": 10.0,
    "VALUE_RANGE": (-1.0, 1.0),
    "MIN_VALID": 3,
    "TARGET_FREQUENCY": "SMS",    # Semi-month output axis

    # ========================================================================
    # WORKERS
    # ========================================================================
    "WORKERS": 4,
    "CHUNK_SIZE": 128,
    "LOG_LEVEL": "INFO",
}
