"""
Generate orchestration.

The turn loop that alternates between a model and the tools it requests.
"""

from .generate import (
    DEFAULT_MAX_TURNS,
    GenerateOrchestrator,
    GenerateRunResult,
)

__all__ = [
    "DEFAULT_MAX_TURNS",
    "GenerateOrchestrator",
    "GenerateRunResult",
]
