"""`gapcube` - gap-free analytic cubes from irregular satellite tiles.

Subpackages:
- schemas: Layered pydantic configuration
- contracts: Stage invariants and failure taxonomy
- raster: Grid alignment, mosaicking, masking, compositing
- timeseries: Gap filling and smoothing
- pipeline: Orchestrator and chunk workers
"""

__version__ = "0.1.0"
