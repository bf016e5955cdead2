"""
Memory timescales of the Continuum Memory System

Memory is a spectrum rather than a short/long-term binary:

    SHORT_TERM       f=1.0    every step
    MEDIUM_TERM      f=0.1    every 10 steps
    LONG_TERM        f=0.01   every 100 steps
    ULTRA_LONG_TERM  f=0.001  every 1000 steps
"""

from enum import Enum


class MemoryType(Enum):
    SHORT_TERM = (1.0, "short-term memory")
    MEDIUM_TERM = (0.1, "medium-term memory")
    LONG_TERM = (0.01, "long-term memory")
    ULTRA_LONG_TERM = (0.001, "ultra-long-term memory")

    def __init__(self, update_frequency: float, description: str):
        self.update_frequency = update_frequency
        self.description = description

    @classmethod
    def from_frequency(cls, frequency: float) -> "MemoryType":
        """Memory type whose update frequency is closest to `frequency`."""
        return min(cls, key=lambda memory_type: abs(memory_type.update_frequency - frequency))
