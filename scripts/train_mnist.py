#!/usr/bin/env python3
"""
Create, improve, or test a parallel network on MNIST.

The network is saved as a JSON snapshot after every training cycle, so a
run can be stopped and picked up later with ``improve``.

Usage:
    python scripts/train_mnist.py create --hidden 100 30 --cycles 10 --lr 1.0
    python scripts/train_mnist.py improve --cycles 10 --lr 0.5
    python scripts/train_mnist.py test
"""

import argparse
import logging
import sys

from backprop import mnist_loader
from backprop.config import Settings, configure_logging
from backprop.exceptions import NetworkError
from backprop.network import Network
from backprop.snapshot import load_from_file, save_to_file

logger = logging.getLogger('backprop.train_mnist')

MNIST_NETWORK_FILE_NAME = 'mnist-network.json'
MNIST_INPUT_SIZE = 28 * 28
MNIST_OUTPUT_SIZE = 10


def train_cycles(network, training, test, args) -> None:
    """Train for ``args.cycles`` cycles, validating and saving after each."""
    network.validate(test.inputs, test.labels, args.workers)
    for _ in range(args.cycles):
        network.train(
            training.inputs, training.labels, args.lr,
            args.workers, args.samples_per_worker
        )
        summary = network.validate(test.inputs, test.labels, args.workers)
        save_to_file(network, args.network_file)
        print(
            f"Cycle {network.completed_cycles}: {summary.num_correct}/"
            f"{summary.total_examples} ({summary.percentage}%), "
            f"mean error {summary.mean_error:.4f}"
        )


def main() -> int:
    parser = argparse.ArgumentParser(description='Train a network on MNIST.')
    parser.add_argument('command', choices=['create', 'improve', 'test'])
    parser.add_argument('--hidden', type=int, nargs='*', default=[100, 30],
                        help='hidden layer sizes (create only)')
    parser.add_argument('--cycles', type=int, default=10)
    parser.add_argument('--lr', type=float, default=1.0)
    parser.add_argument('--workers', type=int, default=5)
    parser.add_argument('--samples-per-worker', type=int, default=10)
    parser.add_argument('--seed', type=int, default=None)
    parser.add_argument('--network-file', default=MNIST_NETWORK_FILE_NAME)
    args = parser.parse_args()

    settings = Settings.from_env()
    configure_logging(settings)

    try:
        training, test = mnist_loader.load_data_wrapper(settings.data_dir)
    except FileNotFoundError as e:
        logger.error(f"Cannot load MNIST data: {e}")
        return 1

    try:
        if args.command == 'create':
            topology = [MNIST_INPUT_SIZE] + args.hidden + [MNIST_OUTPUT_SIZE]
            network = Network(topology, seed=args.seed)
            train_cycles(network, training, test, args)
        elif args.command == 'improve':
            network = load_from_file(args.network_file)
            train_cycles(network, training, test, args)
        else:
            network = load_from_file(args.network_file)
            summary = network.validate(test.inputs, test.labels, args.workers)
            print(summary.describe())
    except FileNotFoundError:
        logger.error(f"No saved network at {args.network_file}; run 'create' first")
        return 1
    except NetworkError as e:
        logger.error(f"Training aborted: {e}")
        return 1

    return 0


if __name__ == '__main__':
    sys.exit(main())
