"""
workers.py
~~~~~~~~~~

Work partitioning and worker tasks for the parallel network.

Each task computes into buffers it owns exclusively; the weights and biases
it reads are not modified while tasks run.  ``WorkerPool`` runs a batch of
tasks on a bounded thread pool and blocks until every one of them finishes,
so no partial result is visible before the whole round is done.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .exceptions import WorkerFailure
from .metrics import ValidationTally, distance, is_correct, sigmoid

logger = logging.getLogger(__name__)

Range = Tuple[int, int]


def partition_round(
    cursor: int,
    total: int,
    num_workers: int,
    samples_per_worker: int
) -> Tuple[List[Range], int]:
    """
    Cut the next training round out of the data set.

    Args:
        cursor: Index of the first example not yet trained on
        total: Number of examples in the data set
        num_workers: Maximum number of ranges in the round
        samples_per_worker: Maximum size of each range

    Returns:
        The non-empty ``(start, end)`` ranges of the round and the cursor
        for the next round
    """
    ranges = []
    for _ in range(num_workers):
        if cursor >= total:
            break
        end = min(cursor + samples_per_worker, total)
        ranges.append((cursor, end))
        cursor = end
    return ranges, cursor


def partition_evenly(total: int, num_workers: int) -> List[Range]:
    """
    Split ``total`` examples into ``num_workers`` contiguous ranges.

    Every range holds ``total // num_workers`` examples except the last,
    which absorbs the remainder.  Ranges may be empty.
    """
    size = total // num_workers
    ranges = []
    start = 0
    for i in range(num_workers):
        end = total if i == num_workers - 1 else start + size
        ranges.append((start, end))
        start = end
    return ranges


def feed_forward(
    weights: Sequence[np.ndarray],
    biases: Sequence[np.ndarray],
    inputs: np.ndarray
) -> List[np.ndarray]:
    """
    Propagate a batch of examples, one per row.

    Returns:
        The activations of every layer, starting with ``inputs``
    """
    activations = [inputs]
    for w, b in zip(weights, biases):
        activations.append(sigmoid(activations[-1] @ w.T - b))
    return activations


@dataclass
class GradientResult:
    """Summed gradients of one training range."""
    weight_gradients: List[np.ndarray]
    bias_gradients: List[np.ndarray]
    num_samples: int


class TrainingTask:
    """Forward and backward passes over one contiguous range of examples."""

    def __init__(self, weights, biases, data, labels, range_start: int, range_end: int):
        self.weights = weights
        self.biases = biases
        self.data = data
        self.labels = labels
        self.range_start = range_start
        self.range_end = range_end

    def run(self) -> GradientResult:
        inputs = self.data[self.range_start:self.range_end]
        labels = self.labels[self.range_start:self.range_end]
        num_layers = len(self.weights)

        activations = feed_forward(self.weights, self.biases, inputs)

        weight_gradients: List[Optional[np.ndarray]] = [None] * num_layers
        bias_gradients: List[Optional[np.ndarray]] = [None] * num_layers

        # Output layer errors, then hidden layers back to front
        actual = activations[-1]
        errors = (actual - labels) * actual * (1.0 - actual)
        for i in range(num_layers - 1, -1, -1):
            weight_gradients[i] = errors.T @ activations[i]
            bias_gradients[i] = errors.sum(axis=0)
            if i > 0:
                previous = activations[i]
                errors = (errors @ self.weights[i]) * previous * (1.0 - previous)

        return GradientResult(weight_gradients, bias_gradients, len(inputs))

    def __repr__(self) -> str:
        return f"TrainingTask({self.range_start}, {self.range_end})"


class ValidationTask:
    """Evaluates one contiguous range of examples and tallies the results."""

    def __init__(self, weights, biases, data, labels, range_start: int, range_end: int):
        self.weights = weights
        self.biases = biases
        self.data = data
        self.labels = labels
        self.range_start = range_start
        self.range_end = range_end

    def run(self) -> ValidationTally:
        inputs = self.data[self.range_start:self.range_end]
        labels = self.labels[self.range_start:self.range_end]
        outputs = feed_forward(self.weights, self.biases, inputs)[-1]

        num_correct = 0
        total_error = 0.0
        for output, label in zip(outputs, labels):
            if is_correct(output, label):
                num_correct += 1
            total_error += distance(output, label)
        return ValidationTally(num_correct, total_error, len(inputs))

    def __repr__(self) -> str:
        return f"ValidationTask({self.range_start}, {self.range_end})"


class WorkerPool:
    """
    A bounded pool of worker threads reused across rounds.

    Use as a context manager; ``run_all`` is the per-round barrier.
    """

    def __init__(self, num_workers: int, name: str = 'backprop-worker'):
        if num_workers < 1:
            raise ValueError(f"num_workers must be positive, got {num_workers}")
        self.num_workers = num_workers
        self.name = name
        self._executor: Optional[ThreadPoolExecutor] = None

    def __enter__(self) -> 'WorkerPool':
        self._executor = ThreadPoolExecutor(
            max_workers=self.num_workers, thread_name_prefix=self.name
        )
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()

    def shutdown(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def run_all(self, tasks: Sequence) -> list:
        """
        Run every task and wait for all of them.

        Returns:
            Task results, in task order

        Raises:
            WorkerFailure: If any task raised; the first error is chained
        """
        if self._executor is None:
            raise RuntimeError("WorkerPool is not running; use it as a context manager")

        futures = [self._executor.submit(task.run) for task in tasks]
        try:
            wait(futures)
        except BaseException:
            # Interrupted while waiting: drop whatever has not started yet
            for future in futures:
                future.cancel()
            raise

        failures = []
        for task, future in zip(tasks, futures):
            error = future.exception()
            if error is not None:
                logger.error(f"Worker {task!r} failed: {error}")
                failures.append(error)

        if failures:
            raise WorkerFailure(
                f"{len(failures)} of {len(tasks)} workers failed: {failures[0]}"
            ) from failures[0]

        return [future.result() for future in futures]
