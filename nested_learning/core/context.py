"""
Context Flow between Nested Optimization Levels

In the Nested Learning view every level of the hierarchy is its own
optimization problem. Levels exchange information through context channels:
an intermediate tensor flows up toward slower levels and back down toward
faster ones, optionally compressed on the way.

Compression:
------------
For a 2-D payload of shape (batch, width) a channel with rate r keeps the
first max(1, round(width * r)) feature columns. Rate 1.0 is lossless.

Merging:
--------
Two channels merge by elementwise averaging of their payloads into a NEW
channel that inherits the receiver's direction and compression settings.
"""

import math
import logging
from enum import Enum
from typing import Optional

import torch

from nested_learning.exceptions import ShapeMismatchError

logger = logging.getLogger(__name__)


class FlowDirection(Enum):
    """Direction in which context travels through the level tree."""
    UPWARD = "upward"
    DOWNWARD = "downward"
    BIDIRECTIONAL = "bidirectional"


def _clamp_rate(rate: float) -> float:
    return max(0.0, min(1.0, float(rate)))


class ContextChannel:
    """
    Carries a single piece of context data between two optimization levels.

    Args:
        payload: Initial context tensor (optional)
        direction: FlowDirection of the channel
        compression_rate: Fraction of features kept, clamped to [0, 1]
            (1.0 = no compression)
    """

    def __init__(
        self,
        payload: Optional[torch.Tensor] = None,
        direction: FlowDirection = FlowDirection.BIDIRECTIONAL,
        compression_rate: float = 1.0,
    ):
        self.payload = payload
        self.direction = direction
        self._compression_rate = _clamp_rate(compression_rate)

    @property
    def compression_rate(self) -> float:
        return self._compression_rate

    @compression_rate.setter
    def compression_rate(self, value: float):
        self._compression_rate = _clamp_rate(value)

    def flow(self, context: Optional[torch.Tensor]) -> Optional[torch.Tensor]:
        """
        Push context through the channel.

        Args:
            context: Incoming context tensor (None leaves the channel untouched)

        Returns:
            The (possibly compressed) context now held by the channel
        """
        if context is None:
            return self.payload

        processed = context
        if self._compression_rate < 1.0:
            processed = self.compress(context, self._compression_rate)

        self.payload = processed
        return processed

    @staticmethod
    def compress(context: Optional[torch.Tensor], rate: float) -> Optional[torch.Tensor]:
        """
        Keep the leading feature columns of a 2-D context.

        Args:
            context: Context tensor
            rate: Fraction of columns kept

        Returns:
            context[:, :new_width], or the input unchanged when it is not 2-D
            or no reduction is needed
        """
        if context is None or rate >= 1.0:
            return context
        if context.dim() != 2:
            return context

        width = context.shape[1]
        # Round half up
        new_width = max(1, int(math.floor(width * rate + 0.5)))
        if new_width < width:
            return context[:, :new_width]
        return context

    def merge(self, other: Optional["ContextChannel"]) -> "ContextChannel":
        """
        Merge another channel into a new one.

        Args:
            other: Channel to merge with (None returns self)

        Returns:
            New ContextChannel with the averaged payload and this channel's settings
        """
        if other is None:
            return self

        merged = self.payload
        if other.payload is not None:
            if self.payload is not None:
                if self.payload.shape != other.payload.shape:
                    raise ShapeMismatchError(
                        self.payload.shape, other.payload.shape, context="ContextChannel.merge"
                    )
                merged = (self.payload + other.payload) / 2
            else:
                merged = other.payload

        return ContextChannel(merged, self.direction, self._compression_rate)

    def __repr__(self) -> str:
        shape = tuple(self.payload.shape) if self.payload is not None else None
        return (f"ContextChannel(direction={self.direction.name}, "
                f"compression_rate={self._compression_rate:.2f}, payload_shape={shape})")
