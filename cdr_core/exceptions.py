# cdr_core/exceptions.py

from typing import Optional, Tuple


class CDREngineError(Exception):
    """Base class for all engine errors."""


class ValidationError(CDREngineError, ValueError):
    """A flight record is malformed or incomplete. The record is skipped."""

    def __init__(self, message: str, index: Optional[int] = None, acid: Optional[str] = None):
        super().__init__(message)
        self.index = index
        self.acid = acid


class ConfigurationError(CDREngineError, ValueError):
    """Invalid engine configuration. Fatal: the run does not start."""


class UnresolvableConflict(CDREngineError):
    """No non-repeating mitigation is left for a conflicting pair."""

    def __init__(self, pair: Tuple[str, str]):
        super().__init__(f"No mitigation left for {pair[0]}/{pair[1]}")
        self.pair = pair


class IterationCapReached(CDREngineError):
    """The resolution loop hit max_iterations with conflicts still open."""

    def __init__(self, iterations: int, remaining: int):
        super().__init__(f"Iteration cap {iterations} reached with {remaining} conflict(s) open")
        self.iterations = iterations
        self.remaining = remaining
