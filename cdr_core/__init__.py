"""
Flight conflict detection and resolution engine.

Detects pairwise separation violations between scheduled flights, resolves
them by delaying or re-levelling flights, and reports conflicts, hotspots
and the resolution log.
"""

from .config import EngineConfig
from .engine import analyze, run_analysis
from .exceptions import (
    CDREngineError,
    ConfigurationError,
    IterationCapReached,
    UnresolvableConflict,
    ValidationError,
)

__all__ = [
    "analyze",
    "run_analysis",
    "EngineConfig",
    "CDREngineError",
    "ConfigurationError",
    "IterationCapReached",
    "UnresolvableConflict",
    "ValidationError",
]
