"""Pipeline contracts: fail-fast enforcement of stage invariants.

This package enforces semantic guarantees between pipeline stages.
Contracts fail immediately and loudly when pipeline stages don't produce
their promised invariants.

Key principle:
- Pydantic validates config correctness
- Contracts validate pipeline correctness
- Typed StackingErrors carry data problems with an explicit policy
"""

from gapcube.contracts.failure import (
    ContractViolation,
    FailurePolicy,
    StackingError,
    GridMismatchError,
    HeterogeneousInputError,
    InsufficientDataError,
)
from gapcube.contracts.base import require
from gapcube.contracts.grid import assert_tile, assert_cube
from gapcube.contracts.masking import assert_mask
from gapcube.contracts.compositing import assert_composited
from gapcube.contracts.smoothing import assert_smoothed

__all__ = [
    "ContractViolation",
    "FailurePolicy",
    "StackingError",
    "GridMismatchError",
    "HeterogeneousInputError",
    "InsufficientDataError",
    "require",
    "assert_tile",
    "assert_cube",
    "assert_mask",
    "assert_composited",
    "assert_smoothed",
]
