#!/usr/bin/env python3
"""
Stage the binary MNIST IDX files as a single NPZ archive.

Reading the four IDX files and one-hot encoding the labels on every start is
slow; this script does it once and writes data/mnist.npz, which
backprop.mnist_loader prefers over the raw files.

Usage:
    python scripts/convert_mnist_to_npz.py [--binarize]

The script will:
1. Read the IDX image and label files from data/
2. Save them as mnist.npz in the same directory
3. Verify the conversion was successful
"""

import argparse
import os
import sys
from typing import Tuple

import numpy as np

from backprop import mnist_loader
from backprop.mnist_loader import Dataset


def load_idx_mnist(data_dir: str, binarize: bool) -> Tuple[Dataset, Dataset]:
    """
    Load MNIST data from the IDX files.

    Parameters:
    -----------
    data_dir : str
        Directory holding the four IDX files
    binarize : bool
        Store pixels as 1 / -1 instead of [0, 1] intensities

    Returns:
    --------
    tuple
        (training, test) data sets
    """
    print(f"📂 Loading MNIST IDX files from: {data_dir}")

    training, test = mnist_loader.load_idx(data_dir, binarize=binarize)

    print(f"✅ Loaded successfully:")
    print(f"   - Training: {len(training)} images")
    print(f"   - Test: {len(test)} images")

    return training, test


def save_as_npz(data: Tuple[Dataset, Dataset], filepath: str) -> None:
    """Save the data sets in the staged NPZ format."""
    print(f"\n💾 Converting to NPZ format: {filepath}")

    training, test = data
    mnist_loader.save_npz(filepath, training, test)

    npz_size = os.path.getsize(filepath) / (1024 * 1024)  # MB
    print(f"✅ Saved successfully (size: {npz_size:.2f} MB)")


def verify_conversion(npz_filepath: str, original_data: Tuple[Dataset, Dataset]) -> bool:
    """
    Verify that the NPZ file contains the same data as the IDX files.

    Returns:
    --------
    bool
        True if verification passes
    """
    print(f"\n🔍 Verifying conversion...")

    training, test = original_data
    staged_training, staged_test = mnist_loader.load_npz(npz_filepath)

    for name, original, staged in (
        ('Training', training, staged_training),
        ('Test', test, staged_test),
    ):
        if not np.array_equal(original.inputs, staged.inputs):
            print(f"❌ {name} images don't match!")
            return False
        if not np.array_equal(original.labels, staged.labels):
            print(f"❌ {name} labels don't match!")
            return False

    print("✅ Verification passed! Data is identical.")
    return True


def main():
    """Main conversion function."""
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument('--data-dir', default=None,
                        help='directory holding the IDX files (default: data/)')
    parser.add_argument('--binarize', action='store_true',
                        help='store pixels as 1 (ink) / -1 (background)')
    args = parser.parse_args()

    print("=" * 60)
    print("MNIST Data Format Converter")
    print("IDX files → NPZ archive")
    print("=" * 60)

    script_dir = os.path.dirname(os.path.abspath(__file__))
    project_root = os.path.dirname(script_dir)
    data_dir = args.data_dir or os.path.join(project_root, 'data')
    npz_path = os.path.join(data_dir, mnist_loader.NPZ_FILE_NAME)

    if os.path.exists(npz_path):
        response = input(f"\n⚠️  {npz_path} already exists. Overwrite? (y/N): ")
        if response.lower() != 'y':
            print("❌ Conversion cancelled.")
            sys.exit(0)

    try:
        original_data = load_idx_mnist(data_dir, args.binarize)
        save_as_npz(original_data, npz_path)
        if not verify_conversion(npz_path, original_data):
            sys.exit(1)
    except (FileNotFoundError, ValueError) as e:
        print(f"\n❌ Error during conversion: {e}")
        sys.exit(1)

    print("\n" + "=" * 60)
    print("✅ CONVERSION COMPLETE!")
    print("=" * 60)
    print(f"\n📁 Staged archive: {npz_path}")


if __name__ == '__main__':
    main()
