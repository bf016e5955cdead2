"""
Deep Optimizer: multi-timescale scheduler over nested optimization levels

Unlike a flat optimizer that updates every parameter on every step, the deep
optimizer drives a global step counter and lets each level decide whether it
fires:

    for each global step t:
        t <- t + 1
        for level in levels:
            if level.should_update(t):
                g <- clip(grad) for each parameter of the level
                rule.update(param, g, lr_level or lr_global)
                level.last_update_step <- t

Per-parameter state (momentum buffers, Adam moments, step counters) is owned
exclusively by the optimizer and keyed by parameter identity. It is created
lazily on a parameter's first update and only advances when that parameter's
level fires.

Not thread-safe: aggregate gradients externally, then call step() from a
single thread.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

import torch
import torch.nn as nn

from nested_learning.core.level import NestedOptimizationLevel
from nested_learning.optimizers.rules import SGDRule, UpdateRule

logger = logging.getLogger(__name__)


class DeepOptimizer:
    """
    Scheduler that dispatches gradients to independently clocked levels.

    Args:
        levels: Optimization levels (non-owning; parameters belong to the model)
        lr: Global learning rate, used by levels whose own rate is 0
        update_rule: Rule applied to firing levels (default: plain SGD)
        gradient_clipping: Clip each gradient by its L2 norm before the update
        clip_threshold: Maximum L2 norm per gradient
    """

    def __init__(
        self,
        levels: Optional[Iterable[NestedOptimizationLevel]] = None,
        lr: float = 1e-3,
        update_rule: Optional[UpdateRule] = None,
        gradient_clipping: bool = False,
        clip_threshold: float = 5.0,
    ):
        self.levels: List[NestedOptimizationLevel] = []
        self.update_rule = update_rule if update_rule is not None else SGDRule()

        self._lr = max(0.0, float(lr))
        self.current_step = 0
        self.gradient_clipping = gradient_clipping
        self._clip_threshold = max(0.0, float(clip_threshold))

        self.state: Dict[nn.Parameter, Dict[str, Any]] = {}

        for level in levels or []:
            self.add_level(level)

        logger.info(
            f"{type(self).__name__}: levels={len(self.levels)}, lr={self._lr}, "
            f"rule={self.update_rule}, clipping={self.gradient_clipping}"
        )

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    @property
    def lr(self) -> float:
        return self._lr

    @lr.setter
    def lr(self, value: float):
        self._lr = max(0.0, float(value))

    @property
    def clip_threshold(self) -> float:
        return self._clip_threshold

    @clip_threshold.setter
    def clip_threshold(self, value: float):
        self._clip_threshold = max(0.0, float(value))

    def add_level(self, level: Optional[NestedOptimizationLevel]):
        if level is None or any(existing is level for existing in self.levels):
            return
        self.levels.append(level)

    def parameters(self) -> List[nn.Parameter]:
        """Parameters currently held by the levels, read on every call."""
        return [param for level in self.levels for param in level.parameters]

    def _level_lr(self, level: NestedOptimizationLevel) -> float:
        return level.learning_rate if level.learning_rate != 0.0 else self._lr

    # ------------------------------------------------------------------
    # Step
    # ------------------------------------------------------------------

    def _gather_gradients(self) -> Dict[nn.Parameter, torch.Tensor]:
        return {param: param.grad for param in self.parameters() if param.grad is not None}

    def clip_gradient(self, grad: Optional[torch.Tensor]) -> Optional[torch.Tensor]:
        """
        Rescale a gradient so that its L2 norm is at most clip_threshold.

        scale = min(1, clip_threshold / ||grad||_2)
        """
        if grad is None:
            return None
        norm = grad.detach().norm(2).item()
        if norm == 0.0 or norm <= self._clip_threshold:
            return grad
        return grad * (self._clip_threshold / norm)

    def _collect_level_gradients(
        self,
        level: NestedOptimizationLevel,
        gradients: Dict[nn.Parameter, torch.Tensor],
    ) -> List[Tuple[nn.Parameter, torch.Tensor]]:
        pairs = []
        for param in level.parameters:
            grad = gradients.get(param)
            if grad is None:
                continue
            if self.gradient_clipping:
                grad = self.clip_gradient(grad)
            pairs.append((param, grad))
        return pairs

    def update_level(
        self,
        level: NestedOptimizationLevel,
        pairs: List[Tuple[nn.Parameter, torch.Tensor]],
    ):
        """Apply the update rule to every (parameter, gradient) pair of a firing level."""
        lr = self._level_lr(level)
        for param, grad in pairs:
            state = self.state.setdefault(param, {})
            self.update_rule.update(param, grad, lr, state)

    def step(self, gradients: Optional[Dict[nn.Parameter, torch.Tensor]] = None) -> List[int]:
        """
        Advance the global step and update every level that fires.

        Args:
            gradients: Map from parameter to gradient. When None, the `.grad`
                recorded by the backward pass is used.

        Returns:
            Indices of the levels that fired
        """
        if gradients is None:
            gradients = self._gather_gradients()

        self.current_step += 1

        fired = []
        for level in self.levels:
            if not level.should_update(self.current_step):
                continue
            pairs = self._collect_level_gradients(level, gradients)
            self.update_level(level, pairs)
            level.record_update(self.current_step)
            fired.append(level.level_index)

        logger.debug(f"Step {self.current_step}: fired levels {fired}")
        return fired

    # ------------------------------------------------------------------
    # Gradients / state
    # ------------------------------------------------------------------

    def zero_grad(self):
        """Clear the recorded gradient of every managed parameter."""
        for param in self.parameters():
            if param.grad is not None:
                param.grad = None

    clear_grads = zero_grad

    def reset(self):
        """Zero the global step and drop all per-parameter state."""
        self.current_step = 0
        self.state.clear()
        logger.info(f"{type(self).__name__} reset")

    def get_state_info(self) -> Dict[str, Any]:
        return {
            'current_step': self.current_step,
            'global_lr': self._lr,
            'num_levels': len(self.levels),
            'levels': [
                {
                    'index': level.level_index,
                    'frequency': level.update_frequency,
                    'learning_rate': level.learning_rate,
                    'num_params': len(level.parameters),
                    'last_update_step': level.last_update_step,
                    'update_count': level.update_count,
                }
                for level in self.levels
            ],
        }

    def state_dict(self) -> Dict[str, Any]:
        """
        Serializable optimizer state. Parameters are referenced by their
        position in `parameters()`, which is stable for a fixed level tree.
        """
        index_of = {param: i for i, param in enumerate(self.parameters())}
        return {
            'current_step': self.current_step,
            'lr': self._lr,
            'levels': [
                {
                    'frequency': level.update_frequency,
                    'learning_rate': level.learning_rate,
                    'last_update_step': level.last_update_step,
                    'update_count': level.update_count,
                }
                for level in self.levels
            ],
            'state': {
                index_of[param]: {
                    k: (v.clone() if torch.is_tensor(v) else v) for k, v in param_state.items()
                }
                for param, param_state in self.state.items()
                if param in index_of
            },
        }

    def load_state_dict(self, state_dict: Dict[str, Any]):
        self.current_step = int(state_dict.get('current_step', 0))
        self.lr = state_dict.get('lr', self._lr)

        for level, level_state in zip(self.levels, state_dict.get('levels', [])):
            level.update_frequency = level_state['frequency']
            level.learning_rate = level_state['learning_rate']
            level.last_update_step = level_state['last_update_step']
            level.update_count = level_state.get('update_count', 0)

        params = self.parameters()
        self.state.clear()
        for index, param_state in state_dict.get('state', {}).items():
            index = int(index)
            if index >= len(params):
                logger.warning(f"Dropping state for unknown parameter index {index}")
                continue
            param = params[index]
            self.state[param] = {
                k: (v.to(device=param.device, dtype=param.dtype) if torch.is_tensor(v) else v)
                for k, v in param_state.items()
            }
