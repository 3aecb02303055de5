"""
neuron.py
~~~~~~~~~

A single sigmoid unit of the sequential network.

The state of every neuron in a layer lives in one ``LayerBuffers`` object:
contiguous weight, bias, output and gradient arrays indexed by unit.  A
``Neuron`` is a view over one row of those buffers, so the layer can work on
all of its units at once while each unit can still be driven on its own.
"""

import numpy as np

from .exceptions import EmptyGradientAccumulator
from .metrics import sigmoid
from .utils import as_vector

# Weights and biases start uniformly inside [-INIT_RANGE, INIT_RANGE)
INIT_RANGE = 0.5


class LayerBuffers:
    """Contiguous storage for ``layer_size`` units of width ``previous_layer_size``."""

    def __init__(self, layer_size: int, previous_layer_size: int):
        self.layer_size = layer_size
        self.previous_layer_size = previous_layer_size
        self.weights = np.zeros((layer_size, previous_layer_size))
        self.biases = np.zeros(layer_size)
        self.outputs = np.zeros(layer_size)
        self.weight_gradients = np.zeros((layer_size, previous_layer_size))
        self.bias_gradients = np.zeros(layer_size)
        self.sample_counts = np.zeros(layer_size, dtype=np.int64)

    def clear_gradients(self, index=slice(None)) -> None:
        self.weight_gradients[index] = 0.0
        self.bias_gradients[index] = 0.0
        self.sample_counts[index] = 0


class Neuron:
    """
    One unit: a weight per previous-layer unit plus a bias.

    Weights and bias persist; the output, the gradient sums and the sample
    counter only describe the current accumulation window.
    """

    def __init__(self, previous_layer_size: int, buffers: LayerBuffers = None,
                 index: int = 0):
        if buffers is None:
            buffers = LayerBuffers(1, previous_layer_size)
        elif buffers.previous_layer_size != previous_layer_size:
            raise ValueError(
                f"Buffers hold units of width {buffers.previous_layer_size}, "
                f"not {previous_layer_size}"
            )
        self._buffers = buffers
        self._index = index

    @property
    def previous_layer_size(self) -> int:
        return self._buffers.previous_layer_size

    @property
    def weights(self) -> np.ndarray:
        """Weight row (a live view, one entry per previous-layer unit)."""
        return self._buffers.weights[self._index]

    @property
    def bias(self) -> float:
        return float(self._buffers.biases[self._index])

    @bias.setter
    def bias(self, value: float) -> None:
        self._buffers.biases[self._index] = value

    @property
    def output(self) -> float:
        return float(self._buffers.outputs[self._index])

    @property
    def weight_gradients(self) -> np.ndarray:
        return self._buffers.weight_gradients[self._index]

    @property
    def bias_gradient(self) -> float:
        return float(self._buffers.bias_gradients[self._index])

    @property
    def sample_count(self) -> int:
        return int(self._buffers.sample_counts[self._index])

    @property
    def has_gradients(self) -> bool:
        return self.sample_count > 0

    def weight(self, previous_layer_index: int) -> float:
        """Weight this neuron places on one unit of the previous layer."""
        return float(self._buffers.weights[self._index, previous_layer_index])

    def initialize(self, rng: np.random.Generator) -> None:
        """Overwrite the weights and bias with uniform random values."""
        self._buffers.weights[self._index] = rng.uniform(
            -INIT_RANGE, INIT_RANGE, self.previous_layer_size
        )
        self._buffers.biases[self._index] = rng.uniform(-INIT_RANGE, INIT_RANGE)

    def forward(self, inputs) -> float:
        """
        Squash the weighted input sum against the bias.

        The bias is subtracted from the summation before squashing.

        Raises:
            ShapeMismatch: If ``inputs`` is not one value per weight
        """
        inputs = as_vector(inputs, self.previous_layer_size)
        summation = float(np.dot(self.weights, inputs))
        output = float(sigmoid(summation - self.bias))
        self._buffers.outputs[self._index] = output
        return output

    def accumulate_gradient(self, error: float, inputs) -> None:
        """Add one example's gradient to the running sums."""
        inputs = as_vector(inputs, self.previous_layer_size)
        self._buffers.weight_gradients[self._index] += error * inputs
        self._buffers.bias_gradients[self._index] += error
        self._buffers.sample_counts[self._index] += 1

    def apply_gradient(self, learning_rate: float) -> None:
        """
        Apply the averaged gradients, then clear them.

        Raises:
            EmptyGradientAccumulator: If no samples were accumulated since
                the last application
        """
        count = self.sample_count
        if count == 0:
            raise EmptyGradientAccumulator(
                "Cannot apply gradients: no samples accumulated"
            )
        buffers = self._buffers
        buffers.weights[self._index] -= (
            learning_rate * buffers.weight_gradients[self._index] / count
        )
        buffers.biases[self._index] -= (
            learning_rate * buffers.bias_gradients[self._index] / count
        )
        buffers.clear_gradients(self._index)

    def __repr__(self) -> str:
        return (
            f"Neuron(previous_layer_size={self.previous_layer_size}, "
            f"bias={self.bias:.4f})"
        )
