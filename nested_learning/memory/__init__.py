"""
Memory Systems for Nested Learning

Includes:
- AssociativeMemory: Bounded key-value store with a surprise metric
- SurpriseBasedMemory: Priority cache with decay and reinforcement
- ContinuumMemorySystem: Multi-frequency memory storage
"""

from .associative import AssociativeMemory
from .surprise import MemoryEntry, SurpriseBasedMemory
from .memory_types import MemoryType
from .module import MemoryModule
from .continuum import ContinuumMemorySystem

__all__ = [
    "AssociativeMemory",
    "MemoryEntry",
    "SurpriseBasedMemory",
    "MemoryType",
    "MemoryModule",
    "ContinuumMemorySystem",
]
