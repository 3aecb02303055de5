#!/usr/bin/env python3
"""
Train the sequential network on a small binary classification problem.

Each input is the 10-bit binary encoding of its index (least significant
bit first); the label is one of five classes, one per block of 200
indices.  This is a quick smoke test, so the network is validated against
its own training set.

Usage:
    python scripts/binary_classification_example.py
"""

import numpy as np

from backprop.config import Settings, configure_logging
from backprop.neural_network import NeuralNetwork

BINARY_INPUT_SIZE = 10
BINARY_OUTPUT_SIZE = 5
BINARY_DATA_SET_SIZE = 1000


def generate_training_inputs() -> np.ndarray:
    indices = np.arange(BINARY_DATA_SET_SIZE)
    bits = np.arange(BINARY_INPUT_SIZE)
    return ((indices[:, None] >> bits) & 1).astype(np.float64)


def generate_training_labels() -> np.ndarray:
    labels = np.zeros((BINARY_DATA_SET_SIZE, BINARY_OUTPUT_SIZE))
    labels[np.arange(BINARY_DATA_SET_SIZE), np.arange(BINARY_DATA_SET_SIZE) // 200] = 1.0
    return labels


def run_binary_example(hidden_layer_size: int, num_hidden_layers: int,
                       learning_rate: float, num_epochs: int,
                       mini_batch_size: int, seed: int = 0) -> None:
    inputs = generate_training_inputs()
    labels = generate_training_labels()

    network = NeuralNetwork.from_layer_sizes(
        BINARY_INPUT_SIZE, hidden_layer_size, BINARY_OUTPUT_SIZE,
        num_hidden_layers, learning_rate, seed=seed
    )

    before = network.validate(inputs, labels)
    network.train(inputs, labels, num_epochs, mini_batch_size)
    after = network.validate(inputs, labels)

    print(f"Before training: {before.describe()}")
    print(f"After training:  {after.describe()}")


if __name__ == '__main__':
    configure_logging(Settings.from_env())
    run_binary_example(hidden_layer_size=20, num_hidden_layers=1,
                       learning_rate=2.0, num_epochs=50,
                       mini_batch_size=10)
