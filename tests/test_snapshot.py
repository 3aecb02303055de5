"""
test_snapshot.py
~~~~~~~~~~~~~~~~

Tests for network snapshots and file persistence.
"""

import json
import os

import numpy as np
import pytest

from backprop.exceptions import SnapshotError
from backprop.network import Network
from backprop.neural_network import NeuralNetwork
from backprop.snapshot import (
    NetworkSnapshot,
    load_from_file,
    network_from_snapshot,
    save_to_file,
)


@pytest.fixture
def parallel_network():
    net = Network([3, 4, 2], seed=1)
    net.completed_cycles = 5
    return net


@pytest.fixture
def sequential_network():
    return NeuralNetwork([3, 4, 2], learning_rate=0.25, seed=1)


@pytest.mark.unit
class TestSnapshotSchema:
    """Test the snapshot schema and its validation."""

    def test_json_fields(self, parallel_network):
        """Test that the JSON document carries the documented fields."""
        data = json.loads(parallel_network.snapshot().to_json())

        assert data['kind'] == 'parallel'
        assert data['topology'] == [3, 4, 2]
        assert np.shape(data['weights'][0]) == (4, 3)
        assert np.shape(data['biases'][1]) == (2,)
        assert data['completed_cycles'] == 5

    def test_parallel_round_trip(self, parallel_network):
        """Test that a parallel network survives a JSON round trip."""
        text = parallel_network.snapshot().to_json()
        restored = network_from_snapshot(NetworkSnapshot.from_json(text))

        assert isinstance(restored, Network)
        assert restored.completed_cycles == 5
        x = [0.2, 0.4, 0.6]
        np.testing.assert_array_equal(restored.ask(x), parallel_network.ask(x))

    def test_sequential_round_trip(self, sequential_network):
        """Test that a sequential network keeps its weights and learning rate."""
        text = sequential_network.snapshot().to_json()
        restored = network_from_snapshot(NetworkSnapshot.from_json(text))

        assert isinstance(restored, NeuralNetwork)
        assert restored.learning_rate == 0.25
        x = [0.2, 0.4, 0.6]
        np.testing.assert_array_equal(restored.ask(x), sequential_network.ask(x))

    def test_invalid_json(self):
        """Test that unparseable text raises SnapshotError."""
        with pytest.raises(SnapshotError):
            NetworkSnapshot.from_json('{not json')

    def test_not_an_object(self):
        """Test that a JSON array is not a snapshot."""
        with pytest.raises(SnapshotError):
            NetworkSnapshot.from_json('[1, 2, 3]')

    def test_missing_field(self, parallel_network):
        """Test that a missing field raises SnapshotError."""
        data = json.loads(parallel_network.snapshot().to_json())
        del data['weights']

        with pytest.raises(SnapshotError):
            NetworkSnapshot.from_dict(data)

    def test_wrong_weight_shape(self, parallel_network):
        """Test that misshapen weights raise SnapshotError."""
        data = json.loads(parallel_network.snapshot().to_json())
        data['weights'][0] = [[0.0] * 3] * 5

        with pytest.raises(SnapshotError):
            NetworkSnapshot.from_dict(data)

    def test_wrong_bias_shape(self, parallel_network):
        """Test that misshapen biases raise SnapshotError."""
        data = json.loads(parallel_network.snapshot().to_json())
        data['biases'][1] = [0.0]

        with pytest.raises(SnapshotError):
            NetworkSnapshot.from_dict(data)

    def test_unknown_kind(self, parallel_network):
        """Test that an unknown network kind raises SnapshotError."""
        data = json.loads(parallel_network.snapshot().to_json())
        data['kind'] = 'recurrent'

        with pytest.raises(SnapshotError):
            NetworkSnapshot.from_dict(data)

    def test_bad_topology(self):
        """Test that a one-layer topology raises SnapshotError."""
        data = {'kind': 'parallel', 'topology': [3], 'weights': [], 'biases': []}

        with pytest.raises(SnapshotError):
            NetworkSnapshot.from_dict(data)

    def test_negative_cycles(self, parallel_network):
        """Test that a negative cycle count raises SnapshotError."""
        data = json.loads(parallel_network.snapshot().to_json())
        data['completed_cycles'] = -1

        with pytest.raises(SnapshotError):
            NetworkSnapshot.from_dict(data)

    def test_scalar_topology(self):
        """Test that a topology that is not a list raises SnapshotError."""
        data = {'kind': 'parallel', 'topology': 5, 'weights': [], 'biases': []}

        with pytest.raises(SnapshotError):
            NetworkSnapshot.from_dict(data)

    def test_non_numeric_learning_rate(self, sequential_network):
        """Test that a learning rate that is not a number raises SnapshotError."""
        data = json.loads(sequential_network.snapshot().to_json())
        data['learning_rate'] = 'fast'

        with pytest.raises(SnapshotError):
            NetworkSnapshot.from_dict(data)

    @pytest.mark.parametrize('metadata', [[1], 'notes', 3])
    def test_metadata_must_be_object(self, parallel_network, metadata):
        """Test that metadata other than an object raises SnapshotError."""
        data = json.loads(parallel_network.snapshot().to_json())
        data['metadata'] = metadata

        with pytest.raises(SnapshotError):
            NetworkSnapshot.from_dict(data)


@pytest.mark.unit
class TestSnapshotFiles:
    """Test saving and loading snapshot files."""

    def test_save_and_load(self, parallel_network, tmp_path):
        """Test that a saved network loads back identically."""
        path = os.path.join(str(tmp_path), 'nested', 'net.json')

        save_to_file(parallel_network, path)
        restored = load_from_file(path)

        assert restored.topology == parallel_network.topology
        for a, b in zip(restored.weights, parallel_network.weights):
            np.testing.assert_array_equal(a, b)

    def test_load_missing_file(self, tmp_path):
        """Test that a missing file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            load_from_file(str(tmp_path / 'absent.json'))

    def test_load_corrupt_file(self, tmp_path):
        """Test that a corrupt file raises SnapshotError."""
        path = tmp_path / 'corrupt.json'
        path.write_text('{"kind": "parallel"}')

        with pytest.raises(SnapshotError):
            load_from_file(str(path))
