"""
mnist_loader.py
~~~~~~~~~~~~~~~

Utilities for loading the MNIST handwriting database as the matrices the
trainers consume: one row of pixels per image and one one-hot label row
per image.

Two on-disk formats are supported: the binary IDX files distributed with
MNIST, and a staged ``mnist.npz`` archive written by
``scripts/convert_mnist_to_npz.py``.
"""

import gzip
import logging
import os
import struct
from typing import NamedTuple, Tuple

import numpy as np

logger = logging.getLogger(__name__)

IMAGES_MAGIC = 2051
LABELS_MAGIC = 2049

# Pixels brighter than this are "ink" when binarizing
BINARIZE_THRESHOLD = 30

NPZ_FILE_NAME = 'mnist.npz'
TRAINING_IMAGES = 'train-images-idx3-ubyte'
TRAINING_LABELS = 'train-labels-idx1-ubyte'
TEST_IMAGES = 't10k-images-idx3-ubyte'
TEST_LABELS = 't10k-labels-idx1-ubyte'


class Dataset(NamedTuple):
    """Examples as an (N, width) matrix and one-hot labels as (N, classes)."""
    inputs: np.ndarray
    labels: np.ndarray

    def __len__(self) -> int:
        return len(self.inputs)


def _open(path: str):
    if path.endswith('.gz'):
        return gzip.open(path, 'rb')
    return open(path, 'rb')


def _find(data_dir: str, name: str) -> str:
    """Locate an IDX file, accepting the '.' and '-' spellings and gzip."""
    candidates = [name, name.replace('-idx', '.idx')]
    for candidate in candidates:
        for suffix in ('', '.gz'):
            path = os.path.join(data_dir, candidate + suffix)
            if os.path.exists(path):
                return path
    raise FileNotFoundError(f"MNIST file {name} not found in {data_dir}")


def read_idx_images(path: str, binarize: bool = False) -> np.ndarray:
    """
    Read an IDX image file.

    Args:
        path: Path to the file (optionally gzip-compressed)
        binarize: Map pixels above the threshold to 1 and the rest to -1
            instead of scaling them into [0, 1]

    Returns:
        Float matrix of shape (num_images, rows * cols)

    Raises:
        ValueError: If the file does not start with the image magic number
    """
    with _open(path) as f:
        magic, count, rows, cols = struct.unpack('>IIII', f.read(16))
        if magic != IMAGES_MAGIC:
            raise ValueError(
                f"This MNIST DB file {path} should start with the number "
                f"{IMAGES_MAGIC}, got {magic}."
            )
        pixels = np.frombuffer(f.read(count * rows * cols), dtype=np.uint8)

    images = pixels.reshape(count, rows * cols)
    logger.debug(f"Read {count} images of {rows}x{cols} from {path}")
    if binarize:
        return np.where(images > BINARIZE_THRESHOLD, 1.0, -1.0)
    return images.astype(np.float64) / 255.0


def read_idx_labels(path: str) -> np.ndarray:
    """
    Read an IDX label file as a vector of digit values.

    Raises:
        ValueError: If the file does not start with the label magic number
    """
    with _open(path) as f:
        magic, count = struct.unpack('>II', f.read(8))
        if magic != LABELS_MAGIC:
            raise ValueError(
                f"This MNIST DB file {path} should start with the number "
                f"{LABELS_MAGIC}, got {magic}."
            )
        labels = np.frombuffer(f.read(count), dtype=np.uint8)
    logger.debug(f"Read {count} labels from {path}")
    return labels.astype(np.int64)


def one_hot(labels: np.ndarray, num_classes: int = 10) -> np.ndarray:
    """Return an (N, num_classes) matrix with a 1.0 at each label's index."""
    labels = np.asarray(labels).astype(int).ravel()
    encoded = np.zeros((labels.size, num_classes))
    encoded[np.arange(labels.size), labels] = 1.0
    return encoded


def save_npz(path: str, training: Dataset, test: Dataset) -> None:
    """Write the staged archive read by ``load_npz``."""
    np.savez_compressed(
        path,
        train_images=training.inputs,
        train_labels=training.labels,
        test_images=test.inputs,
        test_labels=test.labels
    )


def load_npz(path: str) -> Tuple[Dataset, Dataset]:
    """Read a staged archive as ``(training, test)`` data sets."""
    with np.load(path) as data:
        training = Dataset(data['train_images'], data['train_labels'])
        test = Dataset(data['test_images'], data['test_labels'])
    return training, test


def load_idx(data_dir: str, binarize: bool = False) -> Tuple[Dataset, Dataset]:
    """Read the four IDX files in ``data_dir`` as ``(training, test)``."""
    training = Dataset(
        read_idx_images(_find(data_dir, TRAINING_IMAGES), binarize),
        one_hot(read_idx_labels(_find(data_dir, TRAINING_LABELS)))
    )
    test = Dataset(
        read_idx_images(_find(data_dir, TEST_IMAGES), binarize),
        one_hot(read_idx_labels(_find(data_dir, TEST_LABELS)))
    )
    return training, test


def load_data_wrapper(data_dir: str = 'data') -> Tuple[Dataset, Dataset]:
    """
    Load MNIST in the form the trainers expect.

    Prefers the staged ``mnist.npz`` archive and falls back to the raw IDX
    files.

    Returns:
        ``(training, test)`` data sets with one-hot labels

    Raises:
        FileNotFoundError: If neither format is present in ``data_dir``
    """
    npz_path = os.path.join(data_dir, NPZ_FILE_NAME)
    if os.path.exists(npz_path):
        logger.info(f"Opening staged MNIST archive {npz_path}")
        training, test = load_npz(npz_path)
    else:
        logger.info(f"Opening MNIST IDX files in {data_dir}")
        training, test = load_idx(data_dir)

    logger.info(
        f"MNIST loaded: {len(training)} training, {len(test)} test examples"
    )
    return training, test
