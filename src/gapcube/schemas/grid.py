"""Grid: the canonical 2-D raster addressing scheme of a run.

Every tile and cube is addressed on one Grid. The grid is immutable and
travels inside the run configuration, so workers never share mutable
spatial state.
"""

import numpy as np
from pydantic import ConfigDict, Field

from gapcube.schemas.base import GapcubeBaseModel


class Grid(GapcubeBaseModel):
    """Immutable raster grid.

    Parameters
    ----------
    origin_x, origin_y : float
        Upper-left corner of the grid in CRS units.
    cell_size : float
        Square cell edge length in CRS units.
    n_rows, n_cols : int
        Grid shape.
    crs : str
        Coordinate reference system identifier (e.g. "EPSG:32630").

    Notes
    -----
    Cell centres are ``x = origin_x + (col + 0.5) * cell_size`` and
    ``y = origin_y - (row + 0.5) * cell_size`` (rows run north to south).
    """

    origin_x: float
    origin_y: float
    cell_size: float = Field(gt=0)
    n_rows: int = Field(ge=1)
    n_cols: int = Field(ge=1)
    crs: str = Field(min_length=1)

    model_config = ConfigDict(
        extra='forbid',
        validate_assignment=True,
        str_strip_whitespace=True,
        frozen=True,
    )

    @property
    def shape(self) -> tuple[int, int]:
        return (self.n_rows, self.n_cols)

    @property
    def bounds(self) -> tuple[float, float, float, float]:
        """(left, bottom, right, top) in CRS units."""
        return (
            self.origin_x,
            self.origin_y - self.n_rows * self.cell_size,
            self.origin_x + self.n_cols * self.cell_size,
            self.origin_y,
        )

    def x_coords(self) -> np.ndarray:
        return self.origin_x + (np.arange(self.n_cols) + 0.5) * self.cell_size

    def y_coords(self) -> np.ndarray:
        return self.origin_y - (np.arange(self.n_rows) + 0.5) * self.cell_size

    def window_of(self, tile) -> tuple[int, int, int, int]:
        """Grid window covered by a tile.

        Parameters
        ----------
        tile : xr.Dataset
            Tile whose ``x``/``y`` coordinates are cell centres and whose
            ``cell_size`` attribute is its own cell edge length.

        Returns
        -------
        tuple
            ``(row_start, col_start, n_rows, n_cols)`` in grid cells. The
            window may extend beyond the grid; callers check containment.
        """
        tile_cell = float(tile.attrs["cell_size"])
        left = float(tile["x"].values[0]) - tile_cell / 2.0
        top = float(tile["y"].values[0]) + tile_cell / 2.0
        factor = tile_cell / self.cell_size
        row_start = int(round((self.origin_y - top) / self.cell_size))
        col_start = int(round((left - self.origin_x) / self.cell_size))
        n_rows = int(round(tile.sizes["y"] * factor))
        n_cols = int(round(tile.sizes["x"] * factor))
        return row_start, col_start, n_rows, n_cols
