"""
Multi-Frequency Attention

Keeps one associative memory per timescale and answers a query from the first
timescale that holds anything. Slower timescales get larger memories
(capacity 100 * (i + 1)). Queries and keys must have head_dim features in
their last dimension.
"""

from typing import List, Optional

import torch
import torch.nn as nn

from nested_learning.exceptions import ShapeMismatchError
from nested_learning.memory.associative import AssociativeMemory


class MultiFrequencyAttention(nn.Module):
    """
    Args:
        num_frequencies: Number of timescales (>= 1)
        head_dim: Width of the last dimension of queries and keys
    """

    def __init__(self, num_frequencies: int = 3, head_dim: int = 64):
        super().__init__()
        self.num_frequencies = max(1, int(num_frequencies))
        self.head_dim = head_dim
        self.frequency_memories: List[AssociativeMemory] = [
            AssociativeMemory(capacity=100 * (i + 1)) for i in range(self.num_frequencies)
        ]

    def _check_width(self, tensor: torch.Tensor, context: str):
        if tensor.shape[-1] != self.head_dim:
            raise ShapeMismatchError(
                (*tensor.shape[:-1], self.head_dim), tensor.shape, context=context
            )

    def forward(self, query: torch.Tensor) -> torch.Tensor:
        self._check_width(query, "MultiFrequencyAttention query")
        for memory in self.frequency_memories:
            value = memory.retrieve(query)
            if value is not None:
                return value
        return query

    def update_memory(
        self,
        frequency_index: int,
        key: Optional[torch.Tensor],
        value: Optional[torch.Tensor],
    ) -> bool:
        if 0 <= frequency_index < self.num_frequencies:
            if key is not None:
                self._check_width(key, "MultiFrequencyAttention key")
            return self.frequency_memories[frequency_index].store(key, value)
        return False

    def get_memory(self, index: int) -> Optional[AssociativeMemory]:
        if 0 <= index < self.num_frequencies:
            return self.frequency_memories[index]
        return None
