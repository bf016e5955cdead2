"""
Nested Learning Model

A NestedLearningBlock plus two memories that advance on the block's clock:

    forward(x):
        y = block(x)                         # layers, context flow, level advance
        memory_system.update(block.step)     # forgetting + consolidation
        surprise_memory.apply_decay()        # every step
        surprise_memory.boost_frequent_memories(boost_factor)
                                             # whenever the CMS consolidated
        return y

The optimizer is optional and never stepped by the model; a training loop
calls optimizer.step() after backward.
"""

import logging
from typing import Any, Dict, Iterable, Optional, Union

import torch
import torch.nn as nn

from nested_learning.blocks.nested_block import NestedLearningBlock
from nested_learning.config import Config, OptimizerConfig
from nested_learning.memory.continuum import ContinuumMemorySystem
from nested_learning.memory.memory_types import MemoryType
from nested_learning.memory.surprise import SurpriseBasedMemory
from nested_learning.optimizers import DeepOptimizer, create_optimizer

logger = logging.getLogger(__name__)


class NestedLearningModel(nn.Module):
    """
    Args:
        block: Level hierarchy over the model layers
        memory_system: Continuum memory (a default one is created when None)
        optimizer: Nested optimizer driving the block levels (optional)
        surprise_memory: Surprise-gated episodic cache (a default one is created when None)
        boost_factor: Reinforcement applied to frequently recalled memories
    """

    def __init__(
        self,
        block: NestedLearningBlock,
        memory_system: Optional[ContinuumMemorySystem] = None,
        optimizer: Optional[DeepOptimizer] = None,
        surprise_memory: Optional[SurpriseBasedMemory] = None,
        boost_factor: float = 0.1,
    ):
        super().__init__()
        self.block = block
        self.memory_system = memory_system if memory_system is not None else ContinuumMemorySystem()
        self.surprise_memory = surprise_memory if surprise_memory is not None else SurpriseBasedMemory()
        self.boost_factor = max(0.0, float(boost_factor))
        self.optimizer = optimizer

        logger.info(
            f"NestedLearningModel: levels={block.num_levels}, "
            f"surprise capacity={self.surprise_memory.max_capacity}, boost={self.boost_factor}"
        )

    @classmethod
    def from_config(
        cls,
        layers: Optional[Iterable[nn.Module]],
        config: Optional[Config] = None,
    ) -> "NestedLearningModel":
        """Build block, memory system and optimizer from a master Config."""
        if config is None:
            config = Config()

        block = NestedLearningBlock.from_config(layers, config.hierarchy)
        memory_system = ContinuumMemorySystem(
            type_capacities=config.memory.type_capacities,
            consolidation_threshold=config.memory.consolidation_threshold,
            consolidation_interval=config.memory.consolidation_interval,
            forgetting_rate=config.memory.forgetting_rate,
        )
        surprise_memory = SurpriseBasedMemory(
            max_capacity=config.memory.capacity,
            surprise_threshold=config.memory.surprise_threshold,
            decay_rate=config.memory.decay_rate,
        )
        model = cls(
            block,
            memory_system,
            surprise_memory=surprise_memory,
            boost_factor=config.memory.boost_factor,
        )
        model.build_optimizer(config.optimizer)
        return model

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        output = self.block(x)
        step = self.block.current_step
        self.memory_system.update(step)

        self.surprise_memory.apply_decay()
        if self.memory_system.last_consolidation_step == step:
            self.surprise_memory.boost_frequent_memories(self.boost_factor)
        return output

    @property
    def current_step(self) -> int:
        return self.block.current_step

    def set_optimizer(self, optimizer: Optional[DeepOptimizer]):
        self.optimizer = optimizer

    def build_optimizer(self, config: Optional[OptimizerConfig] = None) -> DeepOptimizer:
        """Create an optimizer over the block levels and attach it."""
        self.optimizer = create_optimizer(self.block.levels, config)
        return self.optimizer

    def remember(
        self,
        key: Optional[torch.Tensor],
        value: Optional[torch.Tensor],
        memory_type: Union[MemoryType, str] = MemoryType.SHORT_TERM,
    ) -> bool:
        return self.memory_system.store(key, value, memory_type)

    def memorize(self, key: Optional[torch.Tensor], value: Optional[torch.Tensor]) -> bool:
        """Offer a memory to the surprise cache (admitted only if surprising enough)."""
        return self.surprise_memory.store(key, value)

    def recall(self, query: Optional[torch.Tensor]) -> Optional[torch.Tensor]:
        """Look up the continuum memory first, then the surprise cache."""
        result = self.memory_system.retrieve(query)
        if result is None:
            result = self.surprise_memory.retrieve(query)
        return result

    def get_stats(self) -> Dict[str, Any]:
        stats = {
            'block': self.block.get_level_statistics(),
            'memory': self.memory_system.get_stats(),
            'surprise_memory': self.surprise_memory.get_stats(),
        }
        if self.optimizer is not None:
            stats['optimizer'] = self.optimizer.get_state_info()
        return stats
