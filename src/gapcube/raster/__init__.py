"""Raster stages: grid alignment, mosaicking, masking, compositing.

- grid: Tile model and alignment onto the run grid
- mosaicker: Same-date tile mosaicking with explicit tie-breaks
- masker: Ruleset-driven cloud/quality masking
- cube: Date grouping and cube assembly
- compositor: Period compositing with selectable reducers
"""

from gapcube.raster.grid import Grid, align_to_grid, band_names, make_tile
from gapcube.raster.masker import QualityMasker
from gapcube.raster.mosaicker import TileMosaicker
from gapcube.raster.cube import CubeBuilder, group_by_date
from gapcube.raster.compositor import CompositePeriods, Compositor

__all__ = [
    "Grid",
    "align_to_grid",
    "band_names",
    "make_tile",
    "QualityMasker",
    "TileMosaicker",
    "CubeBuilder",
    "group_by_date",
    "CompositePeriods",
    "Compositor",
]
