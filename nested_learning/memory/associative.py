"""
Associative Memory for Nested Learning.

A bounded key -> value store. Keys are compared by cosine similarity and every
entry carries a surprise score recorded when it was written:

    surprise(x) = 1 - clamp(max_k cos(x, k), 0, 1)

An empty store is maximally surprised (1.0). The more a candidate key differs
from everything already stored, the higher its surprise.

When the store is full, a new entry replaces the lowest-surprise entry only if
its own surprise is strictly greater (ties favour the incumbent).
"""

import logging
from typing import Dict, List, Optional, Tuple

import torch

logger = logging.getLogger(__name__)


class AssociativeMemory:
    """
    Bounded associative store keyed by key identity.

    Args:
        capacity: Maximum number of entries (clamped to >= 1)
        surprise_threshold: Threshold used by forgetting / admission policies, clamped to [0, 1]
    """

    def __init__(self, capacity: int = 100, surprise_threshold: float = 0.5):
        self.capacity = max(1, int(capacity))
        self._surprise_threshold = max(0.0, min(1.0, float(surprise_threshold)))

        # entry_id -> (key, value); dict preserves insertion order
        self._entries: Dict[int, Tuple[torch.Tensor, torch.Tensor]] = {}
        self._scores: Dict[int, float] = {}

    @property
    def surprise_threshold(self) -> float:
        return self._surprise_threshold

    @surprise_threshold.setter
    def surprise_threshold(self, value: float):
        self._surprise_threshold = max(0.0, min(1.0, float(value)))

    @property
    def is_full(self) -> bool:
        return len(self._entries) >= self.capacity

    @staticmethod
    def entry_id(key: torch.Tensor) -> int:
        return id(key)

    # ------------------------------------------------------------------
    # Similarity / surprise
    # ------------------------------------------------------------------

    @staticmethod
    def similarity(a: Optional[torch.Tensor], b: Optional[torch.Tensor]) -> float:
        """
        Cosine similarity of two flattened tensors.

        Tensors of different sizes are compared over their common prefix.

        Returns:
            Similarity in [-1, 1], 0.0 when either tensor is missing or has zero norm
        """
        if a is None or b is None:
            return 0.0

        flat_a = a.detach().reshape(-1).to(torch.float32)
        flat_b = b.detach().reshape(-1).to(torch.float32)
        length = min(flat_a.numel(), flat_b.numel())
        if length == 0:
            return 0.0
        flat_a = flat_a[:length]
        flat_b = flat_b[:length].to(flat_a.device)

        norm_a = flat_a.norm()
        norm_b = flat_b.norm()
        if norm_a.item() == 0.0 or norm_b.item() == 0.0:
            return 0.0
        return (torch.dot(flat_a, flat_b) / (norm_a * norm_b)).item()

    def compute_surprise(self, key: Optional[torch.Tensor]) -> float:
        """
        Novelty of a candidate key relative to stored keys.

        Returns:
            Surprise in [0, 1] (1.0 for an empty store or a missing key)
        """
        if key is None or not self._entries:
            return 1.0

        max_similarity = max(
            self.similarity(key, stored_key) for stored_key, _ in self._entries.values()
        )
        return 1.0 - max(0.0, min(1.0, max_similarity))

    # ------------------------------------------------------------------
    # Store / retrieve
    # ------------------------------------------------------------------

    def _lowest_entry(self) -> Optional[Tuple[int, float]]:
        if not self._scores:
            return None
        entry_id = min(self._scores, key=self._scores.get)
        return entry_id, self._scores[entry_id]

    def store(
        self,
        key: Optional[torch.Tensor],
        value: Optional[torch.Tensor],
        surprise: Optional[float] = None,
    ) -> bool:
        """
        Write a key/value pair.

        Args:
            key: Key tensor
            value: Value tensor
            surprise: Priority of the entry (computed from stored keys when None)

        Returns:
            True if the pair is now stored
        """
        if key is None or value is None:
            return False

        entry_id = self.entry_id(key)
        if entry_id in self._entries:
            if surprise is None:
                surprise = self.compute_surprise(key)
            self._entries[entry_id] = (key, value)
            self._scores[entry_id] = float(surprise)
            return True

        if surprise is None:
            surprise = self.compute_surprise(key)
        surprise = float(surprise)

        if self.is_full:
            lowest_id, lowest_surprise = self._lowest_entry()
            if surprise <= lowest_surprise:
                return False
            self.remove(lowest_id)
            logger.debug(
                f"Replaced entry (surprise={lowest_surprise:.4f}) with new entry (surprise={surprise:.4f})"
            )

        self._entries[entry_id] = (key, value)
        self._scores[entry_id] = surprise
        return True

    def find_nearest(self, query: Optional[torch.Tensor]) -> Optional[int]:
        """Entry id of the most similar stored key (first wins on ties)."""
        if query is None or not self._entries:
            return None

        best_id = None
        best_similarity = float('-inf')
        for entry_id, (stored_key, _) in self._entries.items():
            similarity = self.similarity(query, stored_key)
            if similarity > best_similarity:
                best_similarity = similarity
                best_id = entry_id
        return best_id

    def retrieve(self, query: Optional[torch.Tensor]) -> Optional[torch.Tensor]:
        """
        Return the value whose key is most similar to the query.

        Returns:
            Stored value, or None when the store is empty
        """
        entry_id = self.find_nearest(query)
        if entry_id is None:
            return None
        return self._entries[entry_id][1]

    def get_entry(self, entry_id: int) -> Optional[Tuple[torch.Tensor, torch.Tensor]]:
        return self._entries.get(entry_id)

    def get_surprise(self, entry_id: int) -> Optional[float]:
        return self._scores.get(entry_id)

    def set_surprise(self, entry_id: int, surprise: float):
        if entry_id in self._scores:
            self._scores[entry_id] = float(surprise)

    def remove(self, entry_id: int) -> bool:
        if entry_id not in self._entries:
            return False
        del self._entries[entry_id]
        del self._scores[entry_id]
        return True

    def prune(self, threshold: float) -> int:
        """
        Drop every entry whose surprise is below `threshold`.

        Returns:
            Number of entries removed
        """
        doomed = [entry_id for entry_id, score in self._scores.items() if score < threshold]
        for entry_id in doomed:
            self.remove(entry_id)
        if doomed:
            logger.debug(f"Pruned {len(doomed)} entries below surprise {threshold:.4f}")
        return len(doomed)

    def clear(self):
        self._entries.clear()
        self._scores.clear()

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def keys(self) -> List[torch.Tensor]:
        return [key for key, _ in self._entries.values()]

    @property
    def values(self) -> List[torch.Tensor]:
        return [value for _, value in self._entries.values()]

    @property
    def surprise_scores(self) -> List[float]:
        return list(self._scores.values())

    def entry_ids(self) -> List[int]:
        return list(self._entries.keys())

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key) -> bool:
        return self.entry_id(key) in self._entries

    def __repr__(self) -> str:
        return (f"AssociativeMemory(size={len(self)}/{self.capacity}, "
                f"threshold={self._surprise_threshold:.3f})")
