"""Centralized failure policy for the stacking pipeline.

Contract violations fail fast, loud, and once. Data-level failures carry
the policy the orchestrator applies to them, so each stage raises a typed
error and never decides by itself whether the run survives.
"""

from enum import Enum


class FailurePolicy(str, Enum):
    """What the orchestrator does with a failure.

    FAIL_FAST: Stop the run (configuration or upstream alignment defect)
    SKIP_ITEM: Report the offending item (e.g. one date) and continue
    FLAG_ITEM: Record a flagged output for the item (e.g. one pixel)
    """
    FAIL_FAST = "fail_fast"
    SKIP_ITEM = "skip_item"
    FLAG_ITEM = "flag_item"


class ContractViolation(RuntimeError):
    """Raised when a pipeline contract is violated.

    This indicates a bug in pipeline logic, not bad input data. It means a
    stage did not produce the invariants it promised.

    Key distinction:
    - ValueError: User/config error (handled by Pydantic)
    - ContractViolation: Pipeline bug (programmer error)
    - StackingError subclasses: data problems with an explicit policy
    """
    policy = FailurePolicy.FAIL_FAST


class StackingError(Exception):
    """Base class for data-level failures raised by pipeline stages."""
    policy = FailurePolicy.FAIL_FAST


class GridMismatchError(StackingError):
    """Tile resolution or CRS is incompatible with the run grid.

    Signals a defect in the upstream provider client. Not retriable.
    """
    policy = FailurePolicy.FAIL_FAST


class HeterogeneousInputError(StackingError):
    """Tiles handed to one mosaic operation do not share a capture date."""
    policy = FailurePolicy.SKIP_ITEM


class InsufficientDataError(StackingError):
    """A pixel series has fewer valid samples than the configured minimum."""
    policy = FailurePolicy.FLAG_ITEM

    def __init__(self, n_valid: int, min_valid: int):
        self.n_valid = n_valid
        self.min_valid = min_valid
        super().__init__(
            f"{n_valid} valid sample(s), at least {min_valid} required"
        )
