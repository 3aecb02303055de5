"""
backprop package
~~~~~~~~~~~~~~~~

From-scratch feedforward neural network trainer.
Contains the single-threaded mini-batch trainer, the multithreaded
full-batch trainer, snapshot persistence, MNIST data loading utilities,
and the API server.
"""

from .exceptions import (
    EmptyGradientAccumulator,
    InvalidTopology,
    NetworkError,
    ShapeMismatch,
    SnapshotError,
    WorkerFailure,
)
from .metrics import ValidationSummary
from .network import Network
from .neural_network import NeuralNetwork
from .snapshot import NetworkSnapshot, load_from_file, save_to_file

__version__ = "1.0.0"

__all__ = [
    'EmptyGradientAccumulator',
    'InvalidTopology',
    'NetworkError',
    'NetworkSnapshot',
    'Network',
    'NeuralNetwork',
    'ShapeMismatch',
    'SnapshotError',
    'ValidationSummary',
    'WorkerFailure',
    'load_from_file',
    'save_to_file',
]
