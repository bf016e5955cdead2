"""
Memory Module: one timescale of the Continuum Memory System

Wraps an AssociativeMemory with a fixed-interval update cadence. Every time the
module fires, its forgetting mechanism prunes entries whose surprise is below

    surprise_threshold * forgetting_rate
"""

import math
import logging
from typing import Optional

import torch

from nested_learning.memory.associative import AssociativeMemory
from nested_learning.memory.memory_types import MemoryType

logger = logging.getLogger(__name__)


class MemoryModule:
    """
    Args:
        memory_type: Timescale of this module
        capacity: Maximum number of entries
        forgetting_rate: Scales the prune threshold, clamped to [0, 1]
        surprise_threshold: Surprise threshold of the underlying store
    """

    def __init__(
        self,
        memory_type: MemoryType,
        capacity: int = 100,
        forgetting_rate: float = 0.01,
        surprise_threshold: float = 0.5,
    ):
        self.memory_type = memory_type
        self.memory = AssociativeMemory(capacity, surprise_threshold)
        self._forgetting_rate = max(0.0, min(1.0, float(forgetting_rate)))
        self.enable_forgetting = True
        self.last_update_step = -1

    @property
    def update_frequency(self) -> float:
        return self.memory_type.update_frequency

    @property
    def forgetting_rate(self) -> float:
        return self._forgetting_rate

    @forgetting_rate.setter
    def forgetting_rate(self, value: float):
        self._forgetting_rate = max(0.0, min(1.0, float(value)))

    @property
    def size(self) -> int:
        return len(self.memory)

    @property
    def capacity(self) -> int:
        return self.memory.capacity

    def store(self, key: Optional[torch.Tensor], value: Optional[torch.Tensor]) -> bool:
        if key is None or value is None:
            return False
        return self.memory.store(key, value)

    def retrieve(self, query: Optional[torch.Tensor]) -> Optional[torch.Tensor]:
        if query is None:
            return None
        return self.memory.retrieve(query)

    def compute_surprise(self, key: Optional[torch.Tensor]) -> float:
        return self.memory.compute_surprise(key)

    def should_update(self, current_step: int) -> bool:
        if current_step <= 0 or self.last_update_step < 0:
            return True
        interval = max(1, int(math.floor(1.0 / self.update_frequency + 1e-9)))
        return current_step % interval == 0

    def update(self, current_step: int) -> bool:
        """
        Run the forgetting mechanism if the module is due.

        Returns:
            True if the module fired
        """
        if not self.should_update(current_step):
            return False

        if self.enable_forgetting:
            threshold = self.memory.surprise_threshold * self._forgetting_rate
            removed = self.memory.prune(threshold)
            if removed:
                logger.debug(f"{self.memory_type.name}: forgot {removed} entries at step {current_step}")

        self.last_update_step = current_step
        return True

    def clear(self):
        self.memory.clear()
        self.last_update_step = -1
