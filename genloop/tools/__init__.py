"""
Tool execution package.
"""

from .executor import ToolExecutor, ToolOutcome

__all__ = [
    "ToolExecutor",
    "ToolOutcome",
]
