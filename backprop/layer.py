"""
layer.py
~~~~~~~~

A fully-connected layer of sigmoid neurons for the sequential network.

The layer drives its units through their shared ``LayerBuffers``, so the
forward pass, the error terms and the gradient sums are computed for every
unit in one array operation.
"""

from typing import List

import numpy as np

from .exceptions import EmptyGradientAccumulator
from .metrics import sigmoid
from .neuron import LayerBuffers, Neuron
from .utils import as_vector


class NeuronLayer:
    """An ordered vector of neurons sharing the same previous-layer width."""

    def __init__(self, layer_size: int, previous_layer_size: int):
        self.layer_size = layer_size
        self.previous_layer_size = previous_layer_size
        self.buffers = LayerBuffers(layer_size, previous_layer_size)
        self.neurons: List[Neuron] = [
            Neuron(previous_layer_size, self.buffers, i)
            for i in range(layer_size)
        ]
        self.errors = np.zeros(layer_size)

    def __len__(self) -> int:
        return self.layer_size

    @property
    def weights(self) -> np.ndarray:
        """Weight matrix of shape (layer_size, previous_layer_size)."""
        return self.buffers.weights

    @property
    def biases(self) -> np.ndarray:
        return self.buffers.biases

    @property
    def outputs(self) -> np.ndarray:
        return self.buffers.outputs

    @property
    def has_gradients(self) -> bool:
        return bool(np.all(self.buffers.sample_counts > 0))

    def weight(self, previous_layer_index: int, this_layer_index: int) -> float:
        """Weight a unit of this layer places on a unit of the previous one."""
        return float(self.buffers.weights[this_layer_index, previous_layer_index])

    def initialize(self, rng: np.random.Generator) -> None:
        for neuron in self.neurons:
            neuron.initialize(rng)

    def forward(self, inputs) -> np.ndarray:
        """Compute and store the output of every unit for ``inputs``."""
        inputs = as_vector(inputs, self.previous_layer_size)
        self.buffers.outputs[:] = sigmoid(
            self.buffers.weights @ inputs - self.buffers.biases
        )
        return self.buffers.outputs

    def compute_output_error(self, expected) -> np.ndarray:
        """Error terms of the terminal layer against the label vector."""
        expected = as_vector(expected, self.layer_size, 'label')
        actual = self.buffers.outputs
        self.errors[:] = (actual - expected) * actual * (1.0 - actual)
        return self.errors

    def compute_hidden_error(self, next_layer: 'NeuronLayer') -> np.ndarray:
        """
        Error terms of a hidden layer from its successor.

        ``next_layer`` must already hold its error terms for this pass.
        """
        actual = self.buffers.outputs
        propagated = next_layer.weights.T @ next_layer.errors
        self.errors[:] = propagated * actual * (1.0 - actual)
        return self.errors

    def accumulate_gradients(self, previous_outputs) -> None:
        """Add this example's gradients to every unit's running sums."""
        previous_outputs = as_vector(previous_outputs, self.previous_layer_size)
        self.buffers.weight_gradients += np.outer(self.errors, previous_outputs)
        self.buffers.bias_gradients += self.errors
        self.buffers.sample_counts += 1

    def apply_gradients(self, learning_rate: float) -> None:
        """
        Apply every unit's averaged gradients and clear them.

        Raises:
            EmptyGradientAccumulator: If any unit has no accumulated samples
        """
        counts = self.buffers.sample_counts
        if np.any(counts == 0):
            raise EmptyGradientAccumulator(
                "Cannot apply layer gradients: no samples accumulated"
            )
        self.buffers.weights -= (
            learning_rate * self.buffers.weight_gradients / counts[:, np.newaxis]
        )
        self.buffers.biases -= learning_rate * self.buffers.bias_gradients / counts
        self.buffers.clear_gradients()

    def __repr__(self) -> str:
        return (
            f"NeuronLayer(layer_size={self.layer_size}, "
            f"previous_layer_size={self.previous_layer_size})"
        )
