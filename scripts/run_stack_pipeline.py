#!/usr/bin/env python3
"""``gapcube`` stacking pipeline runner.

Tiles are NetCDF files already written in the gapcube tile layout by a
provider client (2-D ``y``/``x`` variables with ``time``, ``crs`` and
``cell_size`` attributes).

Usage:
    python scripts/run_stack_pipeline.py scripts/user_config.py tiles/*.nc
    python scripts/run_stack_pipeline.py scripts/user_config.py tiles/*.nc --workers 8
    python scripts/run_stack_pipeline.py scripts/user_config.py tiles/*.nc --method linear -v
"""

import argparse

import xarray as xr

from gapcube.cli import run_stack_pipeline


def main():
    parser = argparse.ArgumentParser(description="Build a gap-free cube from satellite tiles")
    parser.add_argument("config", help="Path to user config file")
    parser.add_argument("tiles", nargs="+", help="Tile NetCDF files")
    parser.add_argument("--workers", type=int, help="Override chunk worker count")
    parser.add_argument("--chunk-size", type=int, help="Override chunk edge length (cells)")
    parser.add_argument("--method", choices=["linear", "spline", "periodic_spline", "whittaker"],
                        help="Override smoothing method")
    parser.add_argument("--log-file", help="Also write the log to this file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args()

    tiles = [xr.load_dataset(path) for path in args.tiles]

    result = run_stack_pipeline(
        tiles,
        args.config,
        cli_args={
            "workers": args.workers,
            "chunk_size": args.chunk_size,
            "smoothing_method": args.method,
            "log_file": args.log_file,
        },
        verbose=args.verbose,
    )

    print(f"\n{'='*60}")
    print("gapcube stacking run")
    print('='*60)
    print(f"Dates:   {result.summary.n_dates} (skipped {result.summary.n_skipped_dates})")
    print(f"Periods: {result.summary.n_periods}")
    print(f"Output:  {dict(result.smoothed.sizes)}")
    print('='*60)
    failures = result.summary.failures
    if not failures.empty:
        print(failures.groupby("stage").size().to_string())


if __name__ == "__main__":
    main()
