"""
Nested Adam: Adam moment estimation applied independently per level

Each level keeps its own cadence; the first/second moments and the
bias-correction step t of a parameter only advance on the steps its level
fires. A parameter of a level with frequency 0.01 therefore reaches t=3 after
300 global steps, not t=300.
"""

from typing import Any, Dict, Iterable, Optional

from nested_learning.core.level import NestedOptimizationLevel
from nested_learning.optimizers.deep_optimizer import DeepOptimizer
from nested_learning.optimizers.rules import AdamRule


class NestedAdam(DeepOptimizer):
    """
    Args:
        levels: Optimization levels
        lr: Global learning rate (levels with lr=0 use it)
        beta1: First moment decay
        beta2: Second moment decay
        eps: Numerical stability term (floored at 1e-8)
        weight_decay: L2 penalty added to the gradient before the moment update
        amsgrad: Use the AMSGrad variant
        gradient_clipping: Clip gradients by L2 norm
        clip_threshold: Clipping norm
    """

    def __init__(
        self,
        levels: Optional[Iterable[NestedOptimizationLevel]] = None,
        lr: float = 1e-3,
        beta1: float = 0.9,
        beta2: float = 0.999,
        eps: float = 1e-8,
        weight_decay: float = 0.0,
        amsgrad: bool = False,
        gradient_clipping: bool = False,
        clip_threshold: float = 5.0,
    ):
        super().__init__(
            levels=levels,
            lr=lr,
            update_rule=AdamRule(beta1, beta2, eps, weight_decay, amsgrad),
            gradient_clipping=gradient_clipping,
            clip_threshold=clip_threshold,
        )

    @property
    def beta1(self) -> float:
        return self.update_rule.beta1

    @beta1.setter
    def beta1(self, value: float):
        self.update_rule.beta1 = max(0.0, min(1.0, float(value)))

    @property
    def beta2(self) -> float:
        return self.update_rule.beta2

    @beta2.setter
    def beta2(self, value: float):
        self.update_rule.beta2 = max(0.0, min(1.0, float(value)))

    @property
    def eps(self) -> float:
        return self.update_rule.eps

    @eps.setter
    def eps(self, value: float):
        self.update_rule.eps = max(1e-8, float(value))

    @property
    def weight_decay(self) -> float:
        return self.update_rule.weight_decay

    @weight_decay.setter
    def weight_decay(self, value: float):
        self.update_rule.weight_decay = max(0.0, float(value))

    @property
    def amsgrad(self) -> bool:
        return self.update_rule.amsgrad

    @amsgrad.setter
    def amsgrad(self, value: bool):
        self.update_rule.amsgrad = bool(value)

    def get_config(self) -> Dict[str, Any]:
        config = {'optimizer': 'NestedAdam', 'lr': self.lr}
        config.update(self.update_rule.hyperparameters())
        config['gradient_clipping'] = self.gradient_clipping
        config['clip_threshold'] = self.clip_threshold
        return config
