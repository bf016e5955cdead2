"""
Nested optimizers

Includes:
- DeepOptimizer: Multi-timescale scheduler over optimization levels
- NestedAdam / NestedSGD: DeepOptimizer with a fixed update rule
- create_optimizer: Factory from an OptimizerConfig
"""

import logging
from typing import Iterable, Optional

from nested_learning.config import OptimizerConfig
from nested_learning.core.level import NestedOptimizationLevel
from nested_learning.exceptions import InvalidArgumentError

from .rules import UpdateRule, SGDRule, AdamRule
from .deep_optimizer import DeepOptimizer
from .nested_adam import NestedAdam
from .nested_sgd import NestedSGD

logger = logging.getLogger(__name__)


def create_optimizer(
    levels: Iterable[NestedOptimizationLevel],
    config: Optional[OptimizerConfig] = None,
) -> DeepOptimizer:
    """
    Create a nested optimizer from configuration.

    Args:
        levels: Optimization levels to drive
        config: Optimizer configuration (defaults to OptimizerConfig())

    Returns:
        NestedAdam or NestedSGD instance
    """
    if config is None:
        config = OptimizerConfig()

    name = config.optimizer.lower()
    if name in ("adam", "amsgrad"):
        optimizer = NestedAdam(
            levels,
            lr=config.learning_rate,
            beta1=config.beta1,
            beta2=config.beta2,
            eps=config.epsilon,
            weight_decay=config.weight_decay,
            amsgrad=config.amsgrad or name == "amsgrad",
            gradient_clipping=config.gradient_clipping,
            clip_threshold=config.clip_threshold,
        )
    elif name == "sgd":
        optimizer = NestedSGD(
            levels,
            lr=config.learning_rate,
            momentum=config.momentum,
            weight_decay=config.weight_decay,
            nesterov=config.nesterov,
            gradient_clipping=config.gradient_clipping,
            clip_threshold=config.clip_threshold,
        )
    else:
        raise InvalidArgumentError(f"Unknown optimizer: {config.optimizer}")

    logger.info(f"Created {type(optimizer).__name__} from config ({name})")
    return optimizer


__all__ = [
    "UpdateRule",
    "SGDRule",
    "AdamRule",
    "DeepOptimizer",
    "NestedAdam",
    "NestedSGD",
    "create_optimizer",
]
