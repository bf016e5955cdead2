"""
Surprise-Based Memory

A capacity-bounded priority cache on top of AssociativeMemory. Each entry is
prioritized by its surprise score:

- High surprise: admitted and retained
- Low surprise: rejected at the door, or evicted when something more
  surprising arrives

Admission Policy (min-eviction, max-retention):
-----------------------------------------------
    store(k, v):       s = surprise(k); admit only if s >= threshold
    full cache:        admit only if s > min(queue), evicting exactly the minimum

Over time scores decay (s <- s * (1 - decay_rate)) and entries that fall below
the threshold are dropped. Frequently retrieved entries can be reinforced with
boost_frequent_memories (s <- s * (1 + access_count * boost_factor)).

The queue is a heapq min-heap over (surprise, insertion_seq, entry_id): the
eviction candidate is always at the top, insert/evict are O(log n), and decay /
boost / prune rebuild it in O(n log n).
"""

import heapq
import time
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import torch

from nested_learning.memory.associative import AssociativeMemory

logger = logging.getLogger(__name__)


@dataclass
class MemoryEntry:
    """A single memory and its bookkeeping."""
    key: torch.Tensor
    value: torch.Tensor
    surprise: float
    timestamp: float
    access_count: int = 0
    entry_id: int = 0


def _clamp_unit(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


class SurpriseBasedMemory:
    """
    Surprise-prioritized associative cache.

    Args:
        max_capacity: Maximum number of entries (clamped to >= 1)
        surprise_threshold: Minimum surprise to be admitted / retained, clamped to [0, 1]
        decay_rate: Fraction of surprise lost per apply_decay() call, clamped to [0, 1]
    """

    def __init__(
        self,
        max_capacity: int = 100,
        surprise_threshold: float = 0.3,
        decay_rate: float = 0.001,
    ):
        self.max_capacity = max(1, int(max_capacity))
        self._surprise_threshold = _clamp_unit(surprise_threshold)
        self._decay_rate = _clamp_unit(decay_rate)
        self.enable_decay = True

        self.memory = AssociativeMemory(self.max_capacity, self._surprise_threshold)

        self._entries: Dict[int, MemoryEntry] = {}
        self._heap: List[Tuple[float, int, int]] = []
        self._seq = 0

        logger.debug(
            f"SurpriseBasedMemory: capacity={self.max_capacity}, "
            f"threshold={self._surprise_threshold:.3f}, decay={self._decay_rate:.4f}"
        )

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    @property
    def surprise_threshold(self) -> float:
        return self._surprise_threshold

    @surprise_threshold.setter
    def surprise_threshold(self, value: float):
        self._surprise_threshold = _clamp_unit(value)
        self.memory.surprise_threshold = self._surprise_threshold

    @property
    def decay_rate(self) -> float:
        return self._decay_rate

    @decay_rate.setter
    def decay_rate(self, value: float):
        self._decay_rate = _clamp_unit(value)

    # ------------------------------------------------------------------
    # Priority queue helpers
    # ------------------------------------------------------------------

    def _push(self, entry: MemoryEntry):
        heapq.heappush(self._heap, (entry.surprise, self._seq, entry.entry_id))
        self._seq += 1

    def _rebuild_queue(self):
        # Insertion order breaks ties
        order = {entry_id: seq for _, seq, entry_id in self._heap}
        self._heap = [
            (entry.surprise, order.get(entry_id, self._seq), entry_id)
            for entry_id, entry in self._entries.items()
        ]
        heapq.heapify(self._heap)

    def _drop(self, entry_id: int):
        self._entries.pop(entry_id, None)
        self.memory.remove(entry_id)

    def lowest_surprise(self) -> Optional[float]:
        if not self._heap:
            return None
        return self._heap[0][0]

    # ------------------------------------------------------------------
    # Store / retrieve
    # ------------------------------------------------------------------

    def compute_surprise(self, key: Optional[torch.Tensor]) -> float:
        return self.memory.compute_surprise(key)

    def store(self, key: Optional[torch.Tensor], value: Optional[torch.Tensor]) -> bool:
        """
        Store a memory if it is surprising enough.

        Returns:
            True if the memory was admitted
        """
        if key is None or value is None:
            return False

        surprise = self.compute_surprise(key)
        if surprise < self._surprise_threshold:
            logger.debug(f"Rejected memory: surprise {surprise:.4f} < {self._surprise_threshold:.4f}")
            return False
        return self.store_with_surprise(key, value, surprise)

    def store_with_surprise(
        self,
        key: Optional[torch.Tensor],
        value: Optional[torch.Tensor],
        surprise: float,
    ) -> bool:
        """
        Store a memory with an explicit surprise score.

        When the cache is full the new memory must be strictly more surprising
        than the current minimum, which is then evicted.

        Returns:
            True if the memory was admitted
        """
        if key is None or value is None:
            return False

        surprise = float(surprise)
        entry_id = AssociativeMemory.entry_id(key)

        existing = self._entries.get(entry_id)
        if existing is not None:
            existing.value = value
            existing.surprise = surprise
            existing.timestamp = time.time()
            self.memory.store(key, value, surprise)
            self._rebuild_queue()
            return True

        if len(self._entries) >= self.max_capacity:
            lowest_surprise, _, lowest_id = self._heap[0]
            if not surprise > lowest_surprise:
                return False
            heapq.heappop(self._heap)
            self._drop(lowest_id)
            logger.debug(f"Evicted memory (surprise={lowest_surprise:.4f}) for new memory (surprise={surprise:.4f})")

        entry = MemoryEntry(
            key=key,
            value=value,
            surprise=surprise,
            timestamp=time.time(),
            entry_id=entry_id,
        )
        self._entries[entry_id] = entry
        self.memory.store(key, value, surprise)
        self._push(entry)
        return True

    def retrieve(self, query: Optional[torch.Tensor]) -> Optional[torch.Tensor]:
        """
        Nearest-match lookup. Counts the access on the matched entry but does
        not change its priority.
        """
        if query is None:
            return None

        entry_id = self.memory.find_nearest(query)
        if entry_id is None:
            return None

        entry = self._entries.get(entry_id)
        if entry is None:
            return None
        entry.access_count += 1
        return entry.value

    # ------------------------------------------------------------------
    # Decay / reinforcement / forgetting
    # ------------------------------------------------------------------

    def apply_decay(self) -> int:
        """
        Decay every score and drop entries that fall below the threshold.

        Returns:
            Number of entries dropped
        """
        if not self.enable_decay or not self._entries:
            return 0

        factor = 1.0 - self._decay_rate
        doomed = []
        for entry_id, entry in self._entries.items():
            entry.surprise *= factor
            self.memory.set_surprise(entry_id, entry.surprise)
            if entry.surprise < self._surprise_threshold:
                doomed.append(entry_id)

        for entry_id in doomed:
            self._drop(entry_id)
        self._rebuild_queue()

        if doomed:
            logger.debug(f"Decay dropped {len(doomed)} memories, {len(self._entries)} remain")
        return len(doomed)

    def boost_frequent_memories(self, boost_factor: float):
        """Reinforce entries in proportion to how often they were retrieved."""
        for entry_id, entry in self._entries.items():
            entry.surprise *= 1.0 + entry.access_count * boost_factor
            self.memory.set_surprise(entry_id, entry.surprise)
        self._rebuild_queue()

    def prune(self, threshold: float) -> int:
        """
        Drop every entry whose surprise is below `threshold`.

        Returns:
            Number of entries dropped
        """
        doomed = [entry_id for entry_id, entry in self._entries.items() if entry.surprise < threshold]
        for entry_id in doomed:
            self._drop(entry_id)
        if doomed:
            self._rebuild_queue()
        return len(doomed)

    def clear(self):
        self.memory.clear()
        self._entries.clear()
        self._heap.clear()
        self._seq = 0

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def get_top_surprising(self, top_k: int) -> List[MemoryEntry]:
        """Entries with the highest surprise, in descending order."""
        if top_k <= 0:
            return []
        best = heapq.nlargest(top_k, self._heap)
        return [self._entries[entry_id] for _, _, entry_id in best]

    def entries(self) -> List[MemoryEntry]:
        return list(self._entries.values())

    def get_entry(self, key: torch.Tensor) -> Optional[MemoryEntry]:
        return self._entries.get(AssociativeMemory.entry_id(key))

    def average_surprise(self) -> float:
        if not self._entries:
            return 0.0
        return float(np.mean([entry.surprise for entry in self._entries.values()]))

    def get_stats(self) -> Dict[str, float]:
        """Get statistics about the cache."""
        return {
            'size': len(self._entries),
            'max_capacity': self.max_capacity,
            'average_surprise': self.average_surprise(),
            'surprise_threshold': self._surprise_threshold,
            'decay_rate': self._decay_rate,
            'total_accesses': int(sum(entry.access_count for entry in self._entries.values())),
        }

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key) -> bool:
        return AssociativeMemory.entry_id(key) in self._entries

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def state_dict(self) -> Dict[str, Any]:
        """Snapshot of the cache as (key, value, surprise, timestamp, access_count) tuples."""
        ordered = sorted(self._heap, key=lambda item: item[1])
        return {
            'max_capacity': self.max_capacity,
            'surprise_threshold': self._surprise_threshold,
            'decay_rate': self._decay_rate,
            'entries': [
                (
                    self._entries[entry_id].key,
                    self._entries[entry_id].value,
                    self._entries[entry_id].surprise,
                    self._entries[entry_id].timestamp,
                    self._entries[entry_id].access_count,
                )
                for _, _, entry_id in ordered
            ],
        }

    def load_state_dict(self, state: Dict[str, Any]):
        self.clear()
        self.max_capacity = max(1, int(state.get('max_capacity', self.max_capacity)))
        self.memory.capacity = self.max_capacity
        self.surprise_threshold = state.get('surprise_threshold', self._surprise_threshold)
        self.decay_rate = state.get('decay_rate', self._decay_rate)

        for key, value, surprise, timestamp, access_count in state.get('entries', []):
            if self.store_with_surprise(key, value, surprise):
                entry = self._entries[AssociativeMemory.entry_id(key)]
                entry.timestamp = timestamp
                entry.access_count = access_count
