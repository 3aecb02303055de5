"""
utils.py
~~~~~~~~

Argument checks shared by both network variants.
"""

from typing import List, Sequence, Tuple

import numpy as np

from .exceptions import InvalidTopology, ShapeMismatch


def check_topology(topology: Sequence[int]) -> List[int]:
    """
    Validate a topology and return it as a list of ints.

    Raises:
        InvalidTopology: If there are fewer than two layers or a layer
            size is not a positive integer
    """
    sizes = list(topology)
    if len(sizes) < 2:
        raise InvalidTopology(
            f"Network needs at least two layers to function, got {sizes}"
        )
    for size in sizes:
        if not isinstance(size, (int, np.integer)) or isinstance(size, bool) \
                or size < 1:
            raise InvalidTopology(
                f"Layer sizes must be positive integers, got {sizes}"
            )
    return [int(size) for size in sizes]


def as_vector(values, expected_size: int, what: str = 'input') -> np.ndarray:
    """
    Return ``values`` as a 1-D float array of ``expected_size``.

    Raises:
        ShapeMismatch: If ``values`` is not a vector of ``expected_size``
    """
    vector = np.asarray(values, dtype=np.float64)
    if vector.ndim != 1:
        raise ShapeMismatch(expected_size, vector.size, f"{what} vector")
    if vector.shape[0] != expected_size:
        raise ShapeMismatch(expected_size, vector.shape[0], what)
    return vector


def as_data_set(
    data,
    labels,
    input_size: int,
    output_size: int
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Return examples and labels as 2-D float matrices.

    Raises:
        ShapeMismatch: If a row width is wrong or the counts differ
    """
    inputs = np.asarray(data, dtype=np.float64)
    targets = np.asarray(labels, dtype=np.float64)
    if inputs.ndim == 1 and inputs.size == 0:
        inputs = inputs.reshape(0, input_size)
    if targets.ndim == 1 and targets.size == 0:
        targets = targets.reshape(0, output_size)
    if inputs.ndim != 2 or inputs.shape[1] != input_size:
        actual = inputs.shape[-1] if inputs.ndim else 0
        raise ShapeMismatch(input_size, actual, 'input')
    if targets.ndim != 2 or targets.shape[1] != output_size:
        actual = targets.shape[-1] if targets.ndim else 0
        raise ShapeMismatch(output_size, actual, 'label')
    if inputs.shape[0] != targets.shape[0]:
        raise ShapeMismatch(inputs.shape[0], targets.shape[0], 'label count')
    return inputs, targets
