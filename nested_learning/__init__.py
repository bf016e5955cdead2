"""
nested_learning: Multi-timescale nested optimization core

A library for training models as a hierarchy of nested optimization problems:
- Optimization levels that update at their own frequency (fast/slow weights)
- Context channels that carry compressed context between levels
- Surprise-based associative memory with decay and reinforcement
- Continuum Memory System (CMS) spanning short- to ultra-long-term memory
- Deep optimizers (NestedAdam, NestedSGD) that only step the levels due to fire
"""

__version__ = "1.0.0"

from nested_learning.config import (
    Config,
    HierarchyConfig,
    OptimizerConfig,
    MemoryConfig,
    SystemConfig,
    default_config,
    get_fast_adaptation_config,
    get_long_horizon_config,
)
from nested_learning.exceptions import (
    NestedLearningError,
    ShapeMismatchError,
    InvalidArgumentError,
)
from nested_learning.logging_config import setup_logging, get_log_file
from nested_learning.core import ContextChannel, FlowDirection, NestedOptimizationLevel
from nested_learning.memory import (
    AssociativeMemory,
    MemoryEntry,
    SurpriseBasedMemory,
    MemoryType,
    MemoryModule,
    ContinuumMemorySystem,
)
from nested_learning.optimizers import (
    UpdateRule,
    SGDRule,
    AdamRule,
    DeepOptimizer,
    NestedAdam,
    NestedSGD,
    create_optimizer,
)
from nested_learning.blocks import NestedLearningBlock, MultiFrequencyAttention
from nested_learning.models import NestedLearningModel

__all__ = [
    "Config",
    "HierarchyConfig",
    "OptimizerConfig",
    "MemoryConfig",
    "SystemConfig",
    "default_config",
    "get_fast_adaptation_config",
    "get_long_horizon_config",
    "NestedLearningError",
    "ShapeMismatchError",
    "InvalidArgumentError",
    "setup_logging",
    "get_log_file",
    "ContextChannel",
    "FlowDirection",
    "NestedOptimizationLevel",
    "AssociativeMemory",
    "MemoryEntry",
    "SurpriseBasedMemory",
    "MemoryType",
    "MemoryModule",
    "ContinuumMemorySystem",
    "UpdateRule",
    "SGDRule",
    "AdamRule",
    "DeepOptimizer",
    "NestedAdam",
    "NestedSGD",
    "create_optimizer",
    "NestedLearningBlock",
    "MultiFrequencyAttention",
    "NestedLearningModel",
]
