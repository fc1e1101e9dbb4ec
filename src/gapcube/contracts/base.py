"""Base contract enforcement utilities.

The require() function is the single enforcement mechanism for all contracts.
It enforces semantic invariants between pipeline stages.
"""

from gapcube.contracts.failure import ContractViolation


def require(condition: bool, message: str) -> None:
    """Enforce a pipeline contract.

    This is called at stage boundaries to verify the preceding stage
    produced the guaranteed invariants. It is fail-fast: no recovery,
    no fallback, no silence.

    Parameters
    ----------
    condition : bool
        The invariant that must be true. If False, ContractViolation is raised.

    message : str
        Error message explaining the contract violation (for debugging).

    Raises
    ------
    ContractViolation
        If condition is False. This indicates a bug in pipeline logic.

    Examples
    --------
    >>> require("y" in tile.coords, "Tile contract: missing 'y' coordinate")
    >>> require(mask.dtype == bool, "Mask contract: boolean dtype expected")
    """
    if not condition:
        raise ContractViolation(message)
