"""
neural_network.py
~~~~~~~~~~~~~~~~~

Single-threaded mini-batch trainer built from neuron layers.

Training uses the quadratic cost backpropagation algorithm.  For each
example the network computes its output, the error of every neuron against
the label, and adds the resulting gradients to sums kept in each neuron.
The sums are only applied to the weights and biases when a mini-batch
completes or the training set is exhausted.
"""

import logging
import time
from typing import Any, Callable, Dict, List, Optional, Sequence

import numpy as np

from .layer import NeuronLayer
from .metrics import ValidationSummary, distance, is_correct
from .snapshot import NetworkSnapshot
from .utils import as_data_set, as_vector, check_topology

logger = logging.getLogger(__name__)


class NeuralNetwork:
    """
    Feedforward network of sigmoid layers trained one example at a time.

    Args:
        topology: Layer sizes, input width first and output width last
        learning_rate: Fixed multiplier applied to averaged gradients
        rng: Random generator used to initialize weights and biases
        seed: Seed for a fresh generator when ``rng`` is not given
    """

    KIND = 'sequential'

    def __init__(
        self,
        topology: Sequence[int],
        learning_rate: float,
        rng: Optional[np.random.Generator] = None,
        seed: Optional[int] = None
    ):
        self.topology = check_topology(topology)
        self.input_layer_size = self.topology[0]
        self.learning_rate = float(learning_rate)
        self.layers: List[NeuronLayer] = [
            NeuronLayer(size, previous)
            for previous, size in zip(self.topology[:-1], self.topology[1:])
        ]
        # Number of flushes that actually changed the weights
        self.gradient_applications = 0

        if rng is None:
            rng = np.random.default_rng(seed)
        self.fill_with_random_values(rng)

    @classmethod
    def from_layer_sizes(
        cls,
        input_size: int,
        hidden_size: int,
        output_size: int,
        num_hidden_layers: int,
        learning_rate: float,
        **kwargs
    ) -> 'NeuralNetwork':
        """Build a network whose hidden layers all share ``hidden_size``."""
        topology = [input_size] + [hidden_size] * num_hidden_layers + [output_size]
        return cls(topology, learning_rate, **kwargs)

    @property
    def output_layer_size(self) -> int:
        return self.topology[-1]

    @property
    def num_hidden_layers(self) -> int:
        return len(self.layers) - 1

    def fill_with_random_values(self, rng: np.random.Generator) -> None:
        """Fill every layer with random weights and biases."""
        for layer in self.layers:
            layer.initialize(rng)

    def propagate_forward(self, inputs) -> np.ndarray:
        """
        Run ``inputs`` through every layer.

        Overwrites the outputs stored in each layer.

        Returns:
            A copy of the output layer's values

        Raises:
            ShapeMismatch: If ``inputs`` does not match the input width
        """
        current = as_vector(inputs, self.input_layer_size)
        for layer in self.layers:
            current = layer.forward(current)
        return current.copy()

    ask = propagate_forward

    def _backpropagate(self, inputs: np.ndarray, expected: np.ndarray) -> None:
        output_layer = self.layers[-1]
        output_layer.compute_output_error(expected)
        for index in range(len(self.layers) - 2, -1, -1):
            self.layers[index].compute_hidden_error(self.layers[index + 1])

        previous_outputs = inputs
        for layer in self.layers:
            layer.accumulate_gradients(previous_outputs)
            previous_outputs = layer.outputs

    def apply_gradients(self) -> bool:
        """
        Apply and clear the gradients stored in every layer.

        A flush over empty accumulators changes nothing and is not counted.

        Returns:
            True if the weights were updated
        """
        if not all(layer.has_gradients for layer in self.layers):
            logger.debug("Skipping gradient flush: no accumulated samples")
            return False
        for layer in self.layers:
            layer.apply_gradients(self.learning_rate)
        self.gradient_applications += 1
        return True

    def train(
        self,
        training_data,
        training_labels,
        num_epochs: int,
        mini_batch_size: int,
        callback: Optional[Callable[[Dict[str, Any]], None]] = None,
        yield_func: Optional[Callable[[], None]] = None
    ) -> None:
        """
        Train on the data set for ``num_epochs`` passes.

        Examples are visited in their original order.  Gradients are applied
        after example ``i`` whenever ``i != 0`` and ``i`` is a multiple of
        ``mini_batch_size``, and once more after the last example of each
        epoch.

        Args:
            training_data: Matrix of examples, one row per example
            training_labels: Matrix of one-hot labels, one row per example
            num_epochs: Number of passes over the data set
            mini_batch_size: Examples between gradient applications
            callback: Called after each epoch with progress information
            yield_func: Called after each example, lets cooperative
                schedulers run other tasks

        Raises:
            ShapeMismatch: If the data set does not fit the topology
            ValueError: If ``num_epochs`` or ``mini_batch_size`` is not positive
        """
        if num_epochs < 1:
            raise ValueError(f"num_epochs must be positive, got {num_epochs}")
        if mini_batch_size < 1:
            raise ValueError(
                f"mini_batch_size must be positive, got {mini_batch_size}"
            )
        inputs, labels = as_data_set(
            training_data, training_labels,
            self.input_layer_size, self.output_layer_size
        )

        logger.info(
            f"Training {self.topology} on {len(inputs)} examples: "
            f"epochs={num_epochs}, mini_batch_size={mini_batch_size}, "
            f"lr={self.learning_rate}"
        )
        start_time = time.time()

        for epoch in range(num_epochs):
            for set_number in range(len(inputs)):
                self.propagate_forward(inputs[set_number])
                self._backpropagate(inputs[set_number], labels[set_number])

                if set_number != 0 and set_number % mini_batch_size == 0:
                    self.apply_gradients()

                if yield_func is not None:
                    yield_func()

            # Make sure the tail of the training set is used
            self.apply_gradients()

            elapsed = time.time() - start_time
            logger.debug(f"Epoch {epoch + 1}/{num_epochs} complete ({elapsed:.2f}s)")
            if callback is not None:
                callback({
                    'epoch': epoch + 1,
                    'total_epochs': num_epochs,
                    'elapsed_time': elapsed
                })

    def total_squared_error(self, data, labels) -> float:
        """Sum of squared output errors over a data set."""
        inputs, targets = as_data_set(
            data, labels, self.input_layer_size, self.output_layer_size
        )
        total = 0.0
        for x, y in zip(inputs, targets):
            total += float(np.sum((self.propagate_forward(x) - y) ** 2))
        return total

    def validate(self, test_data, test_labels) -> ValidationSummary:
        """Count correct guesses and the mean error over a data set."""
        inputs, targets = as_data_set(
            test_data, test_labels, self.input_layer_size, self.output_layer_size
        )
        num_correct = 0
        total_error = 0.0
        for x, y in zip(inputs, targets):
            output = self.propagate_forward(x)
            if is_correct(output, y):
                num_correct += 1
            total_error += distance(output, y)

        mean_error = total_error / len(inputs) if len(inputs) else 0.0
        summary = ValidationSummary(len(inputs), num_correct, mean_error)
        logger.info(summary.describe())
        return summary

    def snapshot(self) -> NetworkSnapshot:
        """Return the persistable state: topology, weights and biases."""
        return NetworkSnapshot(
            kind=self.KIND,
            topology=list(self.topology),
            weights=[layer.weights.copy() for layer in self.layers],
            biases=[layer.biases.copy() for layer in self.layers],
            learning_rate=self.learning_rate
        )

    @classmethod
    def from_snapshot(cls, snapshot: NetworkSnapshot) -> 'NeuralNetwork':
        """
        Rebuild a network from a snapshot.

        Raises:
            SnapshotError: If the snapshot is malformed
        """
        snapshot.validate()
        learning_rate = snapshot.learning_rate
        network = cls(snapshot.topology, learning_rate if learning_rate is not None else 0.0)
        for layer, weights, biases in zip(network.layers, snapshot.weights, snapshot.biases):
            layer.weights[...] = weights
            layer.biases[...] = biases
        return network

    def __repr__(self) -> str:
        return (
            f"NeuralNetwork(topology={self.topology}, "
            f"learning_rate={self.learning_rate})"
        )
