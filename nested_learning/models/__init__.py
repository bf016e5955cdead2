"""Models composed from nested learning blocks and memory"""

from .nested_model import NestedLearningModel

__all__ = ["NestedLearningModel"]
