"""Neural network blocks built on the level hierarchy"""

from .nested_block import NestedLearningBlock
from .multi_frequency import MultiFrequencyAttention

__all__ = [
    "NestedLearningBlock",
    "MultiFrequencyAttention",
]
