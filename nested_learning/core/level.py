"""
Nested Optimization Level

A learning model decomposed into a tree of nested optimization problems.
Each level owns a subset of the model parameters and updates them at its own
frequency:

    Level 0 (f=1.0):   every step        - fast weights, immediate context
    Level 1 (f=0.1):   every 10 steps    - medium-term patterns
    Level 2 (f=0.01):  every 100 steps   - slow weights, long-term knowledge

Scheduling Policy:
------------------
Fixed interval: interval = floor(1 / f), fire when step % interval == 0.
Step <= 0 always fires (bootstrap). Frequencies whose reciprocal is not an
integer are rounded down to the nearest interval, so e.g. f=0.3 fires every
3 steps (an effective rate of 0.333). This drift is not compensated.

Ownership:
----------
Parameters are shared with the model that runs the forward pass; the level
only holds references. The parent is held through a weak reference, children
through strong references, so the tree never forms a reference cycle.
"""

import math
import weakref
import logging
from typing import List, Optional, Sequence

import torch
import torch.nn as nn

from nested_learning.core.context import ContextChannel
from nested_learning.exceptions import InvalidArgumentError

logger = logging.getLogger(__name__)

MIN_FREQUENCY = 1e-4
MAX_FREQUENCY = 1.0


def _clamp_frequency(frequency: float) -> float:
    return max(MIN_FREQUENCY, min(MAX_FREQUENCY, float(frequency)))


class NestedOptimizationLevel:
    """
    One node in the tree of nested optimizers.

    Args:
        level_index: Position in the hierarchy (0 = highest frequency by convention)
        update_frequency: Fraction of steps on which the level fires, clamped to [1e-4, 1]
        learning_rate: Level learning rate (0 = use the optimizer's global rate)
        context_channel: Channel through which the level receives context
    """

    def __init__(
        self,
        level_index: int,
        update_frequency: float = 1.0,
        learning_rate: float = 1e-3,
        context_channel: Optional[ContextChannel] = None,
    ):
        self.level_index = max(0, int(level_index))
        self._update_frequency = _clamp_frequency(update_frequency)
        self._learning_rate = max(0.0, float(learning_rate))
        self.context_channel = context_channel

        self.parameters: List[nn.Parameter] = []
        self.children: List["NestedOptimizationLevel"] = []
        self._parent_ref: Optional[weakref.ReferenceType] = None

        self.last_update_step = -1
        self.update_count = 0

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    @property
    def update_frequency(self) -> float:
        return self._update_frequency

    @update_frequency.setter
    def update_frequency(self, value: float):
        self._update_frequency = _clamp_frequency(value)

    @property
    def learning_rate(self) -> float:
        return self._learning_rate

    @learning_rate.setter
    def learning_rate(self, value: float):
        self._learning_rate = max(0.0, float(value))

    @property
    def update_interval(self) -> int:
        """Number of global steps between two firings."""
        # 1/f can land just under an integer in floating point (e.g. 9.999999)
        return max(1, int(math.floor(1.0 / self._update_frequency + 1e-9)))

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def should_update(self, current_step: int) -> bool:
        """
        Decide whether this level fires at the given global step.

        Args:
            current_step: Global training step

        Returns:
            True on bootstrap (step <= 0) or when the step is a multiple of the interval
        """
        if current_step <= 0:
            return True
        return current_step % self.update_interval == 0

    def record_update(self, step: int):
        """Mark that the level fired at `step`."""
        self.last_update_step = step
        self.update_count += 1

    # ------------------------------------------------------------------
    # Parameters
    # ------------------------------------------------------------------

    def add_parameter(self, parameter: Optional[nn.Parameter]):
        if parameter is not None:
            self.parameters.append(parameter)

    def set_parameters(self, parameters: Optional[Sequence[nn.Parameter]]):
        self.parameters = list(parameters) if parameters is not None else []

    @torch.no_grad()
    def update_parameters(self, gradients: Optional[Sequence[Optional[torch.Tensor]]]):
        """
        Plain SGD fallback: param <- param - learning_rate * grad, in place.

        Gradients are paired with parameters by position. Extra entries on
        either side are ignored; the truncation is only logged at DEBUG.

        Args:
            gradients: Gradient per parameter (None entries are skipped)
        """
        if gradients is None or not self.parameters:
            return

        if len(gradients) != len(self.parameters):
            logger.debug(
                f"Level {self.level_index}: {len(gradients)} gradients for "
                f"{len(self.parameters)} parameters, truncating"
            )

        for param, grad in zip(self.parameters, gradients):
            if param is None or grad is None:
                continue
            param.sub_(grad.to(param.dtype), alpha=self._learning_rate)

    def compute_local_error(
        self,
        prediction: Optional[torch.Tensor],
        target: Optional[torch.Tensor],
    ) -> Optional[torch.Tensor]:
        """
        Local reconstruction error of this level.

        Returns:
            Mean squared error over the batch dimension (keepdim), or None
        """
        if prediction is None or target is None:
            return None
        diff = prediction - target
        return (diff * diff).mean(dim=0, keepdim=True)

    # ------------------------------------------------------------------
    # Tree structure
    # ------------------------------------------------------------------

    @property
    def parent(self) -> Optional["NestedOptimizationLevel"]:
        if self._parent_ref is None:
            return None
        return self._parent_ref()

    @property
    def is_root(self) -> bool:
        return self.parent is None

    def depth(self) -> int:
        """Distance from the root (root = 0)."""
        depth = 0
        node = self.parent
        while node is not None:
            depth += 1
            node = node.parent
        return depth

    def _is_ancestor(self, other: "NestedOptimizationLevel") -> bool:
        node = self
        while node is not None:
            if node is other:
                return True
            node = node.parent
        return False

    def add_child(self, child: Optional["NestedOptimizationLevel"]):
        """
        Attach a child level. The tree topology is fixed once built.

        Raises:
            InvalidArgumentError: if the child is this level, one of its
                ancestors, or already has a different parent
        """
        if child is None or any(c is child for c in self.children):
            return
        if self._is_ancestor(child):
            raise InvalidArgumentError(
                f"Level {child.level_index} is an ancestor of level {self.level_index}; "
                f"adding it as a child would create a cycle"
            )
        current_parent = child.parent
        if current_parent is not None and current_parent is not self:
            raise InvalidArgumentError(
                f"Level {child.level_index} already has parent level {current_parent.level_index}"
            )

        self.children.append(child)
        child._parent_ref = weakref.ref(self)

    # ------------------------------------------------------------------
    # Context propagation
    # ------------------------------------------------------------------

    def propagate_to_parent(self, context: Optional[torch.Tensor]):
        """Flow context into the parent's channel (no-op without parent, channel or data)."""
        parent = self.parent
        if parent is None or context is None:
            return
        if parent.context_channel is not None:
            parent.context_channel.flow(context)

    def propagate_to_children(self, context: Optional[torch.Tensor]):
        """Flow context into every child's channel."""
        if not self.children or context is None:
            return
        for child in self.children:
            if child.context_channel is not None:
                child.context_channel.flow(context)

    def reset(self):
        self.last_update_step = -1
        self.update_count = 0

    def __repr__(self) -> str:
        return (f"NestedOptimizationLevel(index={self.level_index}, "
                f"frequency={self._update_frequency:.4f}, lr={self._learning_rate:.6f}, "
                f"params={len(self.parameters)}, last_update={self.last_update_step})")
