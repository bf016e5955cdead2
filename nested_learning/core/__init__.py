"""
Core components of the level hierarchy

Includes:
- ContextChannel: Compressible context exchanged between levels
- NestedOptimizationLevel: One independently-clocked node of the optimizer tree
"""

from .context import ContextChannel, FlowDirection
from .level import NestedOptimizationLevel

__all__ = [
    "ContextChannel",
    "FlowDirection",
    "NestedOptimizationLevel",
]
