"""
Exceptions for the nested learning core.

Out-of-range configuration is clamped, never raised. These errors are reserved
for programmer mistakes that would otherwise corrupt optimizer or memory state.
"""


class NestedLearningError(Exception):
    """Base class for all nested learning errors."""


class ShapeMismatchError(NestedLearningError, ValueError):
    """Two tensors that must share a shape do not."""

    def __init__(self, expected, actual, context: str = ""):
        self.expected = tuple(expected)
        self.actual = tuple(actual)
        prefix = f"{context}: " if context else ""
        super().__init__(f"{prefix}expected shape {self.expected}, got {self.actual}")


class InvalidArgumentError(NestedLearningError, ValueError):
    """An argument cannot be clamped into a valid value (e.g. a cycle in the level tree)."""
