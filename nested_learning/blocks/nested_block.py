"""
Nested Learning Block

Organizes ordinary layers into a hierarchy of nested optimization levels, each
with its own update frequency and learning rate:

    Level i:  frequency = frequency_decay ** i      (1.0, 0.1, 0.01, ...)
              learning_rate = base_lr * frequency
              context compression = 1 - compression_step * i

Parameter Partition:
--------------------
Layers are assigned to levels contiguously:

    layers_per_level = max(1, num_layers // num_levels)
    level(layer_i)   = min(i // layers_per_level, num_levels - 1)

so when the division is not exact the trailing layers all land in the last
(slowest) level.

Forward Pass:
-------------
    Forward           run layers sequentially
    ContextPropagate  children -> parents sweep, then parents -> children sweep
                      (both ascending by level index) on the detached output
    LevelAdvance      step += 1, stamp last_update_step on the levels that fire

The block counts firings in fire_counts. A level's update_count is left to
the optimizer that actually applies its updates.

The block never calls the optimizer itself. A training loop queries
current_step / should_update_level and calls the optimizer's step().
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

import torch
import torch.nn as nn

from nested_learning.config import HierarchyConfig
from nested_learning.core.context import ContextChannel, FlowDirection
from nested_learning.core.level import NestedOptimizationLevel

logger = logging.getLogger(__name__)


class NestedLearningBlock(nn.Module):
    """
    Args:
        layers: Layers run sequentially in forward (any nn.Module)
        num_levels: Number of optimization levels (>= 1)
        base_learning_rate: Learning rate of level 0
        frequency_decay: Ratio between the frequencies of consecutive levels
        compression_step: Context compression added per level
        enable_context_flow: Propagate context through the level tree on forward
    """

    def __init__(
        self,
        layers: Optional[Iterable[nn.Module]] = None,
        num_levels: int = 3,
        base_learning_rate: float = 1e-3,
        frequency_decay: float = 0.1,
        compression_step: float = 0.2,
        enable_context_flow: bool = True,
    ):
        super().__init__()
        self.layers = nn.ModuleList(layers or [])
        self.num_levels = max(1, int(num_levels))
        self.base_learning_rate = base_learning_rate
        self.frequency_decay = frequency_decay
        self.compression_step = compression_step
        self.enable_context_flow = enable_context_flow

        self.current_step = 0
        self.levels: List[NestedOptimizationLevel] = []
        self.context_channels: List[ContextChannel] = []

        self._initialize_levels()
        self.fire_counts: List[int] = [0] * self.num_levels
        self.distribute_parameters_to_levels()

        logger.info(f"NestedLearningBlock: layers={len(self.layers)}, levels={self.num_levels}")
        logger.info(f"  Frequencies: {[f'{l.update_frequency:.4f}' for l in self.levels]}")
        logger.info(f"  Params per level: {[len(l.parameters) for l in self.levels]}")

    @classmethod
    def from_config(
        cls,
        layers: Optional[Iterable[nn.Module]],
        config: HierarchyConfig,
    ) -> "NestedLearningBlock":
        return cls(
            layers=layers,
            num_levels=config.num_levels,
            base_learning_rate=config.base_learning_rate,
            frequency_decay=config.frequency_decay,
            compression_step=config.compression_step,
            enable_context_flow=config.enable_context_flow,
        )

    def _initialize_levels(self):
        """Create levels from fast to slow and chain them into a tree."""
        for i in range(self.num_levels):
            frequency = self.frequency_decay ** i
            channel = ContextChannel(
                None, FlowDirection.BIDIRECTIONAL, 1.0 - self.compression_step * i
            )
            level = NestedOptimizationLevel(
                i,
                update_frequency=frequency,
                learning_rate=self.base_learning_rate * frequency,
                context_channel=channel,
            )
            self.levels.append(level)
            self.context_channels.append(channel)

        for parent, child in zip(self.levels, self.levels[1:]):
            parent.add_child(child)

    def distribute_parameters_to_levels(self):
        """Assign every layer's parameters to a level by contiguous partition."""
        for level in self.levels:
            level.set_parameters([])

        if len(self.layers) == 0:
            return

        layers_per_level = max(1, len(self.layers) // self.num_levels)
        for i, layer in enumerate(self.layers):
            level_index = min(i // layers_per_level, self.num_levels - 1)
            for param in layer.parameters():
                self.levels[level_index].add_parameter(param)

    def add_layer(self, layer: nn.Module):
        """Append a layer and re-partition parameters."""
        self.layers.append(layer)
        self.distribute_parameters_to_levels()

    # ------------------------------------------------------------------
    # Forward
    # ------------------------------------------------------------------

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        y = x
        for layer in self.layers:
            y = layer(y)

        if self.enable_context_flow:
            self.propagate_context(y.detach())

        self.update_levels()
        return y

    def propagate_context(self, output: Optional[torch.Tensor]):
        """Flow the output up toward parents, then down toward children."""
        if output is None or not self.levels:
            return

        for level in self.levels:
            level.propagate_to_parent(output)

        for level in self.levels:
            level.propagate_to_children(output)

    def update_levels(self) -> List[int]:
        """
        Advance the block step and record which levels fire.

        Returns:
            Indices of the levels that fired
        """
        self.current_step += 1
        fired = []
        for level in self.levels:
            if level.should_update(self.current_step):
                # update_count belongs to the optimizer that applies the update
                level.last_update_step = self.current_step
                self.fire_counts[level.level_index] += 1
                fired.append(level.level_index)
        return fired

    def should_update_level(self, level_index: int) -> bool:
        if level_index < 0 or level_index >= len(self.levels):
            return False
        return self.levels[level_index].should_update(self.current_step)

    def get_level(self, level_index: int) -> Optional[NestedOptimizationLevel]:
        if 0 <= level_index < len(self.levels):
            return self.levels[level_index]
        return None

    def get_level_statistics(self) -> Dict[str, Any]:
        return {
            'current_step': self.current_step,
            'num_levels': self.num_levels,
            'levels': [
                {
                    'index': level.level_index,
                    'frequency': level.update_frequency,
                    'learning_rate': level.learning_rate,
                    'last_update_step': level.last_update_step,
                    'fire_count': self.fire_counts[level.level_index],
                    'update_count': level.update_count,
                    'num_params': len(level.parameters),
                }
                for level in self.levels
            ],
        }

    def reset_levels(self):
        self.current_step = 0
        self.fire_counts = [0] * self.num_levels
        for level in self.levels:
            level.reset()
