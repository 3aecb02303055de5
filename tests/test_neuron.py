"""
test_neuron.py
~~~~~~~~~~~~~~

Unit tests for a single sigmoid neuron.
"""

import math

import numpy as np
import pytest

from backprop.exceptions import EmptyGradientAccumulator, ShapeMismatch
from backprop.neuron import INIT_RANGE, LayerBuffers, Neuron


def _sigmoid(x):
    return 1.0 / (1.0 + math.exp(-x))


@pytest.fixture
def neuron():
    """A two-input neuron with weights [1, 2] and bias 0.5."""
    n = Neuron(2)
    n.weights[:] = [1.0, 2.0]
    n.bias = 0.5
    return n


@pytest.mark.unit
class TestNeuronForward:
    """Test the output computation."""

    def test_forward_subtracts_bias(self, neuron):
        """Test that the bias is subtracted from the weighted sum."""
        output = neuron.forward([1.0, 1.0])

        assert output == pytest.approx(_sigmoid(3.0 - 0.5))
        assert neuron.output == pytest.approx(output)

    def test_forward_output_in_unit_interval(self, neuron):
        """Test that outputs are squashed into (0, 1)."""
        assert 0.0 < neuron.forward([-100.0, -100.0]) < 0.5
        assert 0.5 < neuron.forward([100.0, 100.0]) <= 1.0

    def test_forward_rejects_wrong_size(self, neuron):
        """Test that a wrongly sized input raises ShapeMismatch."""
        with pytest.raises(ShapeMismatch) as exc_info:
            neuron.forward([1.0, 2.0, 3.0])

        assert exc_info.value.expected == 2
        assert exc_info.value.actual == 3

    def test_weight_accessor(self, neuron):
        """Test that individual weights can be read by index."""
        assert neuron.weight(0) == 1.0
        assert neuron.weight(1) == 2.0


@pytest.mark.unit
class TestNeuronInitialization:
    """Test random initialization."""

    def test_initialize_within_range(self):
        """Test that weights and bias are drawn from the symmetric interval."""
        n = Neuron(50)
        n.initialize(np.random.default_rng(0))

        assert np.all(np.abs(n.weights) <= INIT_RANGE)
        assert abs(n.bias) <= INIT_RANGE
        assert np.any(n.weights != 0.0)

    def test_initialize_is_reproducible(self):
        """Test that the same seed yields the same weights."""
        a, b = Neuron(5), Neuron(5)
        a.initialize(np.random.default_rng(42))
        b.initialize(np.random.default_rng(42))

        np.testing.assert_array_equal(a.weights, b.weights)
        assert a.bias == b.bias

    def test_buffers_width_must_match(self):
        """Test that a neuron cannot view buffers of another width."""
        with pytest.raises(ValueError):
            Neuron(3, LayerBuffers(2, 4), 0)


@pytest.mark.unit
class TestNeuronGradients:
    """Test gradient accumulation and application."""

    def test_accumulate_gradient(self, neuron):
        """Test that gradients are summed and samples counted."""
        neuron.accumulate_gradient(0.5, [1.0, 2.0])
        neuron.accumulate_gradient(-0.25, [4.0, 0.0])

        np.testing.assert_allclose(neuron.weight_gradients, [-0.5, 1.0])
        assert neuron.bias_gradient == pytest.approx(0.25)
        assert neuron.sample_count == 2

    def test_apply_gradient_averages(self, neuron):
        """Test that applied gradients are averaged over the samples."""
        neuron.accumulate_gradient(0.5, [1.0, 2.0])
        neuron.accumulate_gradient(-0.25, [4.0, 0.0])

        neuron.apply_gradient(learning_rate=2.0)

        # weight -= lr * grad / count
        np.testing.assert_allclose(neuron.weights, [1.0 + 0.5, 2.0 - 1.0])
        assert neuron.bias == pytest.approx(0.5 - 2.0 * 0.25 / 2)

    def test_apply_gradient_resets_accumulators(self, neuron):
        """Test that gradients and sample count are exactly zero afterwards."""
        neuron.accumulate_gradient(0.3, [1.0, 1.0])
        neuron.apply_gradient(0.1)

        assert np.all(neuron.weight_gradients == 0.0)
        assert neuron.bias_gradient == 0.0
        assert neuron.sample_count == 0
        assert not neuron.has_gradients

    def test_apply_gradient_twice_raises(self, neuron):
        """Test that applying an empty accumulator raises and changes nothing."""
        neuron.accumulate_gradient(0.3, [1.0, 1.0])
        neuron.apply_gradient(0.1)
        weights_before = neuron.weights.copy()
        bias_before = neuron.bias

        with pytest.raises(EmptyGradientAccumulator):
            neuron.apply_gradient(0.1)

        np.testing.assert_array_equal(neuron.weights, weights_before)
        assert neuron.bias == bias_before

    def test_empty_accumulator_is_zero_division(self, neuron):
        """Test that the empty-accumulator error is a ZeroDivisionError."""
        with pytest.raises(ZeroDivisionError):
            neuron.apply_gradient(0.1)

    def test_accumulate_rejects_wrong_size(self, neuron):
        """Test that gradient inputs must match the weight count."""
        with pytest.raises(ShapeMismatch):
            neuron.accumulate_gradient(0.1, [1.0])
        assert neuron.sample_count == 0
