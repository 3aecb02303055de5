"""
test_consistency.py
~~~~~~~~~~~~~~~~~~~

Cross-checks between the sequential and the parallel trainer.
"""

import numpy as np
import pytest

from backprop.network import Network
from backprop.neural_network import NeuralNetwork
from backprop.snapshot import NetworkSnapshot

TOPOLOGY = [3, 4, 2]
LEARNING_RATE = 0.7


@pytest.fixture
def data_set():
    rng = np.random.default_rng(21)
    inputs = rng.uniform(0.0, 1.0, (6, 3))
    labels = np.eye(2)[[0, 1, 1, 0, 1, 0]]
    return inputs, labels


@pytest.fixture
def twins():
    """A sequential network and a parallel network with the same weights."""
    sequential = NeuralNetwork(TOPOLOGY, LEARNING_RATE, seed=8)
    state = sequential.snapshot()
    parallel = Network.from_snapshot(NetworkSnapshot(
        kind=Network.KIND,
        topology=state.topology,
        weights=state.weights,
        biases=state.biases
    ))
    return sequential, parallel


@pytest.mark.integration
class TestTrainerConsistency:
    """Test that both trainers compute the same thing."""

    def test_same_outputs(self, twins, data_set):
        """Test that equal weights give equal outputs."""
        sequential, parallel = twins
        inputs, _ = data_set

        for x in inputs:
            np.testing.assert_allclose(sequential.ask(x), parallel.ask(x))

    def test_one_round_matches_full_batch(self, twins, data_set):
        """Test that one full round equals one full-batch sequential epoch."""
        sequential, parallel = twins
        inputs, labels = data_set

        sequential.train(inputs, labels, num_epochs=1, mini_batch_size=len(inputs))
        parallel.train(inputs, labels, LEARNING_RATE,
                       num_workers=2, samples_per_worker=3)

        for layer, weights, biases in zip(
                sequential.layers, parallel.weights, parallel.biases):
            np.testing.assert_allclose(layer.weights, weights, rtol=1e-10, atol=1e-12)
            np.testing.assert_allclose(layer.biases, biases, rtol=1e-10, atol=1e-12)

    def test_same_validation(self, twins, data_set):
        """Test that both trainers report the same validation summary."""
        sequential, parallel = twins
        inputs, labels = data_set

        a = sequential.validate(inputs, labels)
        b = parallel.validate(inputs, labels, num_workers=4)

        assert a.num_correct == b.num_correct
        assert a.mean_error == pytest.approx(b.mean_error)
