"""
Continuum Memory System (CMS) from Nested Learning.

Instead of binary short/long-term memory, CMS keeps a SPECTRUM of memory
modules, each updating at a different frequency:

- Short (f=1.0):        every step - immediate context
- Medium (f=0.1):       every 10 steps - recent patterns
- Long (f=0.01):        every 100 steps - medium-term
- Ultra-long (f=0.001): every 1000 steps - long-term knowledge

Consolidation:
--------------
Every `consolidation_interval` steps, entries that were unsurprising when they
were written (recorded surprise < consolidation_threshold) are considered
stable and are copied one level down the spectrum:

    short-term -> medium-term -> long-term

Memory Budget: O(1) - every module is capacity-bounded.
"""

import logging
from typing import Dict, List, Optional, Union

import numpy as np
import torch

from nested_learning.exceptions import InvalidArgumentError
from nested_learning.memory.memory_types import MemoryType
from nested_learning.memory.module import MemoryModule

logger = logging.getLogger(__name__)

DEFAULT_CAPACITIES = {
    MemoryType.SHORT_TERM: 50,
    MemoryType.MEDIUM_TERM: 100,
    MemoryType.LONG_TERM: 200,
    MemoryType.ULTRA_LONG_TERM: 500,
}


def _resolve_type(memory_type: Union[MemoryType, str]) -> MemoryType:
    if isinstance(memory_type, MemoryType):
        return memory_type
    try:
        return MemoryType[str(memory_type).upper()]
    except KeyError:
        raise InvalidArgumentError(f"Unknown memory type: {memory_type}") from None


class ContinuumMemorySystem:
    """
    Multi-timescale memory built from one MemoryModule per MemoryType.

    Args:
        type_capacities: Capacity per memory type (MemoryType or its name);
            missing types default to 100
        consolidation_threshold: Recorded surprise below which an entry is
            considered stable enough to consolidate
        consolidation_interval: Steps between two consolidations (>= 1)
        forgetting_rate: Forgetting rate of every module
    """

    def __init__(
        self,
        type_capacities: Optional[Dict[Union[MemoryType, str], int]] = None,
        consolidation_threshold: float = 0.3,
        consolidation_interval: int = 100,
        forgetting_rate: float = 0.01,
    ):
        if type_capacities is None:
            capacities = dict(DEFAULT_CAPACITIES)
        else:
            capacities = {_resolve_type(t): c for t, c in type_capacities.items()}

        self.consolidation_threshold = consolidation_threshold
        self._consolidation_interval = max(1, int(consolidation_interval))
        self.enable_auto_consolidation = True
        self.last_consolidation_step = -1

        self.modules: Dict[MemoryType, MemoryModule] = {}
        for memory_type in MemoryType:
            self.modules[memory_type] = MemoryModule(
                memory_type,
                capacity=capacities.get(memory_type, 100),
                forgetting_rate=forgetting_rate,
            )

        # Fast -> slow
        self._ordered: List[MemoryModule] = sorted(
            self.modules.values(), key=lambda m: m.update_frequency, reverse=True
        )

        logger.info(f"CMS initialized: levels={len(self._ordered)}")
        logger.info(f"  Capacities: {[m.capacity for m in self._ordered]}")
        logger.info(f"  Update freqs: {[m.update_frequency for m in self._ordered]}")

    @property
    def consolidation_interval(self) -> int:
        return self._consolidation_interval

    @consolidation_interval.setter
    def consolidation_interval(self, value: int):
        self._consolidation_interval = max(1, int(value))

    def get_memory_module(self, memory_type: Union[MemoryType, str]) -> MemoryModule:
        return self.modules[_resolve_type(memory_type)]

    def get_all_modules(self) -> List[MemoryModule]:
        return list(self._ordered)

    # ------------------------------------------------------------------
    # Store / retrieve
    # ------------------------------------------------------------------

    def store(
        self,
        key: Optional[torch.Tensor],
        value: Optional[torch.Tensor],
        memory_type: Union[MemoryType, str] = MemoryType.SHORT_TERM,
    ) -> bool:
        """Store into one module (short-term by default)."""
        return self.get_memory_module(memory_type).store(key, value)

    def retrieve(
        self,
        query: Optional[torch.Tensor],
        memory_type: Optional[Union[MemoryType, str]] = None,
    ) -> Optional[torch.Tensor]:
        """
        Retrieve from one module, or from the fastest module that has a match.
        """
        if query is None:
            return None
        if memory_type is not None:
            return self.get_memory_module(memory_type).retrieve(query)

        for module in self._ordered:
            result = module.retrieve(query)
            if result is not None:
                return result
        return None

    # ------------------------------------------------------------------
    # Update / consolidation
    # ------------------------------------------------------------------

    def update(self, current_step: int):
        """
        Advance every module and consolidate when due.

        Args:
            current_step: Global training step
        """
        for module in self._ordered:
            module.update(current_step)

        if self.enable_auto_consolidation and self._should_consolidate(current_step):
            self.consolidate()
            self.last_consolidation_step = current_step

    def _should_consolidate(self, current_step: int) -> bool:
        if self.last_consolidation_step < 0:
            return True
        return (current_step - self.last_consolidation_step) >= self._consolidation_interval

    def consolidate(self) -> int:
        """
        Copy stable entries short -> medium and medium -> long.

        Returns:
            Number of entries written to slower modules
        """
        moved = self._consolidate_between(
            self.modules[MemoryType.SHORT_TERM], self.modules[MemoryType.MEDIUM_TERM]
        )
        moved += self._consolidate_between(
            self.modules[MemoryType.MEDIUM_TERM], self.modules[MemoryType.LONG_TERM]
        )
        if moved:
            logger.debug(f"CMS consolidated {moved} entries")
        return moved

    def _consolidate_between(self, source: MemoryModule, target: MemoryModule) -> int:
        moved = 0
        for entry_id in source.memory.entry_ids():
            surprise = source.memory.get_surprise(entry_id)
            if surprise is None or surprise >= self.consolidation_threshold:
                continue
            key, value = source.memory.get_entry(entry_id)
            if key in target.memory:
                continue
            if target.store(key, value):
                moved += 1
        return moved

    def compute_average_surprise(self, key: Optional[torch.Tensor]) -> float:
        """Mean surprise over non-empty modules (1.0 when all are empty)."""
        if key is None:
            return 1.0
        surprises = [m.compute_surprise(key) for m in self._ordered if m.size > 0]
        if not surprises:
            return 1.0
        return float(np.mean(surprises))

    def clear(self):
        for module in self._ordered:
            module.clear()
        self.last_consolidation_step = -1

    def get_stats(self) -> Dict[str, float]:
        """Get fill statistics per memory type."""
        stats = {}
        for module in self._ordered:
            name = module.memory_type.name.lower()
            stats[f'{name}_size'] = module.size
            stats[f'{name}_capacity'] = module.capacity
            stats[f'{name}_fill'] = module.size / module.capacity
        stats['last_consolidation_step'] = self.last_consolidation_step
        return stats
