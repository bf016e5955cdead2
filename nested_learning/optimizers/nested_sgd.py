"""
Nested SGD: per-level SGD with optional momentum, Nesterov and weight decay
"""

from typing import Any, Dict, Iterable, Optional

from nested_learning.core.level import NestedOptimizationLevel
from nested_learning.optimizers.deep_optimizer import DeepOptimizer
from nested_learning.optimizers.rules import SGDRule


class NestedSGD(DeepOptimizer):
    """
    Args:
        levels: Optimization levels
        lr: Global learning rate (levels with lr=0 use it)
        momentum: Momentum coefficient
        weight_decay: L2 penalty
        nesterov: Use Nesterov momentum
        gradient_clipping: Clip gradients by L2 norm
        clip_threshold: Clipping norm
    """

    def __init__(
        self,
        levels: Optional[Iterable[NestedOptimizationLevel]] = None,
        lr: float = 1e-3,
        momentum: float = 0.0,
        weight_decay: float = 0.0,
        nesterov: bool = False,
        gradient_clipping: bool = False,
        clip_threshold: float = 5.0,
    ):
        super().__init__(
            levels=levels,
            lr=lr,
            update_rule=SGDRule(momentum, weight_decay, nesterov),
            gradient_clipping=gradient_clipping,
            clip_threshold=clip_threshold,
        )

    @property
    def momentum(self) -> float:
        return self.update_rule.momentum

    @momentum.setter
    def momentum(self, value: float):
        self.update_rule.momentum = max(0.0, min(1.0, float(value)))

    @property
    def weight_decay(self) -> float:
        return self.update_rule.weight_decay

    @weight_decay.setter
    def weight_decay(self, value: float):
        self.update_rule.weight_decay = max(0.0, float(value))

    @property
    def nesterov(self) -> bool:
        return self.update_rule.nesterov

    @nesterov.setter
    def nesterov(self, value: bool):
        self.update_rule.nesterov = bool(value)

    def get_velocities(self) -> Dict[Any, Any]:
        return {
            param: state['momentum_buffer']
            for param, state in self.state.items()
            if 'momentum_buffer' in state
        }

    def get_config(self) -> Dict[str, Any]:
        config = {'optimizer': 'NestedSGD', 'lr': self.lr}
        config.update(self.update_rule.hyperparameters())
        config['gradient_clipping'] = self.gradient_clipping
        config['clip_threshold'] = self.clip_threshold
        return config
