"""
metrics.py
~~~~~~~~~~

The squash function shared by both trainers and the measurements used to
validate a network against a labelled data set.
"""

from dataclasses import dataclass, asdict
from typing import Any, Dict, Iterable

import numpy as np


def sigmoid(z):
    """The logistic function, mapping any real value into (0, 1)."""
    return 1.0 / (1.0 + np.exp(-z))


def is_correct(output: np.ndarray, label: np.ndarray) -> bool:
    """Return True if the strongest output is the strongest label entry."""
    return int(np.argmax(output)) == int(np.argmax(label))


def distance(output: np.ndarray, label: np.ndarray) -> float:
    """Euclidean distance between a network output and its label."""
    return float(np.sqrt(np.sum((np.asarray(output) - np.asarray(label)) ** 2)))


@dataclass(frozen=True)
class ValidationTally:
    """Partial validation result for one range of examples."""
    num_correct: int
    total_error: float
    num_examples: int


@dataclass(frozen=True)
class ValidationSummary:
    """
    Outcome of validating a network against a test set.

    Attributes:
        total_examples: Number of examples evaluated
        num_correct: Examples whose strongest output matched the label
        mean_error: Mean Euclidean distance between output and label
    """
    total_examples: int
    num_correct: int
    mean_error: float

    @property
    def percentage(self) -> int:
        """Whole-number success rate, truncated."""
        if self.total_examples == 0:
            return 0
        return (self.num_correct * 100) // self.total_examples

    @property
    def accuracy(self) -> float:
        if self.total_examples == 0:
            return 0.0
        return self.num_correct / self.total_examples

    @classmethod
    def from_tallies(cls, tallies: Iterable[ValidationTally]) -> 'ValidationSummary':
        """Merge per-range tallies by summation."""
        num_correct = 0
        total_error = 0.0
        total_examples = 0
        for tally in tallies:
            num_correct += tally.num_correct
            total_error += tally.total_error
            total_examples += tally.num_examples
        mean_error = total_error / total_examples if total_examples else 0.0
        return cls(total_examples, num_correct, mean_error)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['percentage'] = self.percentage
        data['accuracy'] = self.accuracy
        return data

    def describe(self) -> str:
        return (
            f"Network chose correctly in {self.num_correct} / "
            f"{self.total_examples} cases ({self.percentage}%) with an "
            f"average error of {self.mean_error} per input."
        )
