"""
network.py
~~~~~~~~~~

Multithreaded full-batch trainer operating on flat weight and bias arrays.

Gradients are computed in rounds.  Each round hands contiguous ranges of the
training set to worker threads, waits for all of them, sums their local
gradients and applies the result to the network.  The weights and biases are
only changed between rounds, never while workers are running.

``ask`` and ``validate`` only read the weights and may run concurrently with
each other, but must not overlap with ``train``.
"""

import logging
import time
from typing import Any, Callable, Dict, List, Optional, Sequence

import numpy as np

from .metrics import ValidationSummary, sigmoid
from .neuron import INIT_RANGE
from .snapshot import NetworkSnapshot
from .utils import as_data_set, as_vector, check_topology
from .workers import (
    TrainingTask,
    ValidationTask,
    WorkerPool,
    partition_evenly,
    partition_round,
)

logger = logging.getLogger(__name__)


class Network:
    """
    Feedforward sigmoid network with ``weights[l]`` shaped
    ``(topology[l + 1], topology[l])`` and ``biases[l]`` shaped
    ``(topology[l + 1],)``.

    Args:
        topology: Layer sizes, input width first and output width last
        rng: Random generator used to initialize weights and biases
        seed: Seed for a fresh generator when ``rng`` is not given
    """

    KIND = 'parallel'

    def __init__(
        self,
        topology: Sequence[int],
        rng: Optional[np.random.Generator] = None,
        seed: Optional[int] = None
    ):
        self.topology = check_topology(topology)
        self.completed_cycles = 0

        if rng is None:
            rng = np.random.default_rng(seed)
        self.weights: List[np.ndarray] = []
        self.biases: List[np.ndarray] = []
        for previous, size in zip(self.topology[:-1], self.topology[1:]):
            self.weights.append(rng.uniform(-INIT_RANGE, INIT_RANGE, (size, previous)))
            self.biases.append(rng.uniform(-INIT_RANGE, INIT_RANGE, size))

    def evaluate(self, inputs) -> np.ndarray:
        """
        Ask the network to classify ``inputs``.

        Raises:
            ShapeMismatch: If ``inputs`` does not match the input width
        """
        activation = as_vector(inputs, self.topology[0])
        for w, b in zip(self.weights, self.biases):
            activation = sigmoid(w @ activation - b)
        return activation

    ask = evaluate

    def train(
        self,
        training_data,
        training_labels,
        learning_rate: float,
        num_workers: int,
        samples_per_worker: int,
        callback: Optional[Callable[[Dict[str, Any]], None]] = None
    ) -> None:
        """
        Run one training cycle over the whole data set.

        Every round gives up to ``num_workers`` workers a range of at most
        ``samples_per_worker`` examples.  The summed gradients of a round are
        divided by ``num_workers * samples_per_worker``, even when the last
        range of the data set is shorter, scaled by ``learning_rate`` and
        subtracted from the weights and biases.

        Args:
            training_data: Matrix of examples, one row per example
            training_labels: Matrix of one-hot labels, one row per example
            learning_rate: Multiplier applied to each round's gradients
            num_workers: Worker threads per round
            samples_per_worker: Examples per worker per round
            callback: Called after each round with progress information

        Raises:
            ShapeMismatch: If the data set does not fit the topology
            WorkerFailure: If a worker fails; that round is not applied
        """
        if num_workers < 1:
            raise ValueError(f"num_workers must be positive, got {num_workers}")
        if samples_per_worker < 1:
            raise ValueError(
                f"samples_per_worker must be positive, got {samples_per_worker}"
            )
        data, labels = as_data_set(
            training_data, training_labels, self.topology[0], self.topology[-1]
        )
        total = len(data)
        update_interval = num_workers * samples_per_worker

        logger.info(
            f"Starting training cycle {self.completed_cycles + 1} on {total} "
            f"examples: workers={num_workers}, "
            f"samples_per_worker={samples_per_worker}, lr={learning_rate}"
        )
        start_time = time.time()

        cursor = 0
        round_number = 0
        with WorkerPool(num_workers, name='backprop-train') as pool:
            while cursor < total:
                ranges, cursor = partition_round(
                    cursor, total, num_workers, samples_per_worker
                )
                tasks = [
                    TrainingTask(self.weights, self.biases, data, labels, start, end)
                    for start, end in ranges
                ]
                results = pool.run_all(tasks)

                weight_gradients = [np.zeros_like(w) for w in self.weights]
                bias_gradients = [np.zeros_like(b) for b in self.biases]
                for result in results:
                    for i in range(len(self.weights)):
                        weight_gradients[i] += result.weight_gradients[i]
                        bias_gradients[i] += result.bias_gradients[i]

                for i in range(len(self.weights)):
                    self.weights[i] -= learning_rate * weight_gradients[i] / update_interval
                    self.biases[i] -= learning_rate * bias_gradients[i] / update_interval

                round_number += 1
                logger.debug(
                    f"Round {round_number}: {len(tasks)} workers, "
                    f"{cursor}/{total} examples processed"
                )
                if callback is not None:
                    callback({
                        'round': round_number,
                        'samples_processed': cursor,
                        'total_samples': total
                    })

        self.completed_cycles += 1
        logger.info(
            f"Training cycle {self.completed_cycles} complete: "
            f"{round_number} rounds in {time.time() - start_time:.2f}s"
        )

    def validate(self, test_data, test_labels, num_workers: int) -> ValidationSummary:
        """
        Measure the network against a labelled data set.

        The set is split into ``num_workers`` contiguous ranges, the last
        one absorbing the remainder, which are evaluated concurrently.

        Raises:
            ShapeMismatch: If the data set does not fit the topology
            WorkerFailure: If a worker fails
        """
        if num_workers < 1:
            raise ValueError(f"num_workers must be positive, got {num_workers}")
        data, labels = as_data_set(
            test_data, test_labels, self.topology[0], self.topology[-1]
        )
        logger.info(
            f"Starting validation ({self.completed_cycles} training cycles completed)."
        )

        tasks = [
            ValidationTask(self.weights, self.biases, data, labels, start, end)
            for start, end in partition_evenly(len(data), num_workers)
            if end > start
        ]
        with WorkerPool(num_workers, name='backprop-validate') as pool:
            tallies = pool.run_all(tasks)

        summary = ValidationSummary.from_tallies(tallies)
        logger.info(summary.describe())
        return summary

    def snapshot(self) -> NetworkSnapshot:
        """Return the persistable state, including the cycle counter."""
        return NetworkSnapshot(
            kind=self.KIND,
            topology=list(self.topology),
            weights=[w.copy() for w in self.weights],
            biases=[b.copy() for b in self.biases],
            completed_cycles=self.completed_cycles
        )

    @classmethod
    def from_snapshot(cls, snapshot: NetworkSnapshot) -> 'Network':
        """
        Rebuild a network from a snapshot.

        Raises:
            SnapshotError: If the snapshot is malformed
        """
        snapshot.validate()
        network = cls.__new__(cls)
        network.topology = list(snapshot.topology)
        network.weights = [np.array(w, dtype=np.float64) for w in snapshot.weights]
        network.biases = [np.array(b, dtype=np.float64) for b in snapshot.biases]
        network.completed_cycles = snapshot.completed_cycles
        return network

    def __repr__(self) -> str:
        return (
            f"Network(topology={self.topology}, "
            f"completed_cycles={self.completed_cycles})"
        )
