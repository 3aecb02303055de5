"""
snapshot.py
~~~~~~~~~~~

Explicit, encoding-independent schema for a network's trainable state.

A snapshot holds the topology, one weight matrix of shape
``(layer_size, previous_size)`` and one bias vector of shape
``(layer_size,)`` per layer, and for the parallel network the number of
completed training cycles.  Snapshots are written as JSON text.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import numpy as np

from .exceptions import InvalidTopology, SnapshotError
from .utils import check_topology

logger = logging.getLogger(__name__)

SNAPSHOT_KINDS = ('sequential', 'parallel')


class NetworkEncoder(json.JSONEncoder):
    """Custom JSON encoder that handles numpy arrays and scalars."""

    def default(self, obj: Any) -> Any:
        """
        Convert numpy values to JSON-serializable Python values.

        Args:
            obj: Object to serialize

        Returns:
            JSON-serializable representation
        """
        if isinstance(obj, np.ndarray):
            return obj.tolist()
        if isinstance(obj, np.generic):
            return obj.item()
        return super().default(obj)


@dataclass
class NetworkSnapshot:
    """
    The complete trainable state of a network.

    Attributes:
        kind: ``'sequential'`` or ``'parallel'``
        topology: Layer sizes, input first
        weights: One ``(layer_size, previous_size)`` matrix per layer
        biases: One ``(layer_size,)`` vector per layer
        completed_cycles: Training calls completed (parallel network)
        learning_rate: Fixed learning rate (sequential network)
    """
    kind: str
    topology: List[int]
    weights: List[np.ndarray]
    biases: List[np.ndarray]
    completed_cycles: int = 0
    learning_rate: Optional[float] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def validate(self) -> None:
        """
        Check the schema and every tensor shape.

        Raises:
            SnapshotError: If anything is missing or misshapen
        """
        if self.kind not in SNAPSHOT_KINDS:
            raise SnapshotError(f"Unknown network kind: {self.kind!r}")
        try:
            topology = check_topology(self.topology)
        except (InvalidTopology, TypeError, ValueError) as e:
            raise SnapshotError(f"Invalid topology in snapshot: {e}") from e

        num_layers = len(topology) - 1
        if len(self.weights) != num_layers or len(self.biases) != num_layers:
            raise SnapshotError(
                f"Expected {num_layers} weight and bias layers, got "
                f"{len(self.weights)} and {len(self.biases)}"
            )
        for i in range(num_layers):
            expected_weights = (topology[i + 1], topology[i])
            if np.shape(self.weights[i]) != expected_weights:
                raise SnapshotError(
                    f"Layer {i} weights should have shape {expected_weights}, "
                    f"got {np.shape(self.weights[i])}"
                )
            if np.shape(self.biases[i]) != (topology[i + 1],):
                raise SnapshotError(
                    f"Layer {i} biases should have shape ({topology[i + 1]},), "
                    f"got {np.shape(self.biases[i])}"
                )
        if not isinstance(self.completed_cycles, int) or self.completed_cycles < 0:
            raise SnapshotError(
                f"completed_cycles must be a non-negative integer, "
                f"got {self.completed_cycles!r}"
            )

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'kind': self.kind,
            'topology': list(self.topology),
            'weights': [np.asarray(w) for w in self.weights],
            'biases': [np.asarray(b) for b in self.biases],
            'completed_cycles': self.completed_cycles,
        }
        if self.learning_rate is not None:
            data['learning_rate'] = self.learning_rate
        if self.metadata:
            data['metadata'] = self.metadata
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'NetworkSnapshot':
        """
        Build and validate a snapshot from decoded JSON.

        Raises:
            SnapshotError: If a field is missing or a tensor is misshapen
        """
        if not isinstance(data, dict):
            raise SnapshotError(
                f"Snapshot must be a JSON object, got {type(data).__name__}"
            )
        missing = [key for key in ('kind', 'topology', 'weights', 'biases')
                   if key not in data]
        if missing:
            raise SnapshotError(f"Snapshot is missing fields: {missing}")

        try:
            topology = list(data['topology'])
            weights = [np.asarray(w, dtype=np.float64) for w in data['weights']]
            biases = [np.asarray(b, dtype=np.float64) for b in data['biases']]
            learning_rate = data.get('learning_rate')
            if learning_rate is not None:
                learning_rate = float(learning_rate)
        except (TypeError, ValueError) as e:
            raise SnapshotError(f"Snapshot fields have the wrong type: {e}") from e

        metadata = data.get('metadata') or {}
        if not isinstance(metadata, dict):
            raise SnapshotError(
                f"Snapshot metadata must be an object, got {type(metadata).__name__}"
            )

        snapshot = cls(
            kind=data['kind'],
            topology=topology,
            weights=weights,
            biases=biases,
            completed_cycles=data.get('completed_cycles', 0),
            learning_rate=learning_rate,
            metadata=metadata
        )
        snapshot.validate()
        return snapshot

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), cls=NetworkEncoder)

    @classmethod
    def from_json(cls, text: str) -> 'NetworkSnapshot':
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise SnapshotError(f"Snapshot is not valid JSON: {e}") from e
        return cls.from_dict(data)


def network_from_snapshot(snapshot: NetworkSnapshot):
    """Rebuild whichever network variant the snapshot describes."""
    from .network import Network
    from .neural_network import NeuralNetwork

    snapshot.validate()
    if snapshot.kind == Network.KIND:
        return Network.from_snapshot(snapshot)
    return NeuralNetwork.from_snapshot(snapshot)


def save_to_file(network, path: str) -> None:
    """Write a network's snapshot to ``path`` as JSON."""
    directory = os.path.dirname(path)
    if directory and not os.path.exists(directory):
        os.makedirs(directory)
    snapshot = network.snapshot()
    with open(path, 'w', encoding='utf-8') as f:
        f.write(snapshot.to_json())
    logger.info(f"Saved {snapshot.kind} network {snapshot.topology} to {path}")


def load_from_file(path: str):
    """
    Read a network from a JSON snapshot file.

    Raises:
        FileNotFoundError: If ``path`` does not exist
        SnapshotError: If the file does not hold a valid snapshot
    """
    with open(path, 'r', encoding='utf-8') as f:
        snapshot = NetworkSnapshot.from_json(f.read())
    logger.info(f"Loaded {snapshot.kind} network {snapshot.topology} from {path}")
    return network_from_snapshot(snapshot)
