"""
exceptions.py
~~~~~~~~~~~~~

Error types raised by the network trainers and their collaborators.

Every error derives from ``NetworkError`` and from the builtin exception
that best describes it, so callers can catch either.
"""


class NetworkError(Exception):
    """Base class for all trainer errors."""


class ShapeMismatch(NetworkError, ValueError):
    """An input or label vector does not match the expected layer width."""

    def __init__(self, expected: int, actual: int, what: str = 'input'):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Expected {what} of size {expected}, got {actual}"
        )


class InvalidTopology(NetworkError, ValueError):
    """A topology has fewer than two layers or a non-positive layer size."""


class EmptyGradientAccumulator(NetworkError, ZeroDivisionError):
    """Gradients were applied with no accumulated samples."""


class WorkerFailure(NetworkError, RuntimeError):
    """A concurrent worker failed; the enclosing round was abandoned."""


class SnapshotError(NetworkError, ValueError):
    """A persisted network snapshot is malformed."""
