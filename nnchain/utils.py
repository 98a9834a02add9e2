"""
Utility Functions
=================

Helper functions for:
- One-hot encoding of labels
- Shuffling several arrays with the same permutation
- Seeding
"""

import logging

import numpy as np

log = logging.getLogger(__name__)


def one_hot_encode(labels, num_classes=None):
    """
    Convert integer labels to one-hot encoded vectors.

    Args:
        labels: Integer labels, shape (N,) or (N, 1)
        num_classes: Number of classes (inferred if None)

    Returns:
        One-hot matrix, shape (N, num_classes)
    """
    labels = np.asarray(labels)

    if labels.ndim == 2:
        if labels.shape[1] != 1:
            raise ValueError(f"array must have only one column, actually: {labels.shape[1]}")
        labels = labels[:, 0]

    labels = labels.astype(int)

    if num_classes is None:
        num_classes = labels.max() + 1

    one_hot = np.zeros((len(labels), num_classes), dtype=np.float64)
    one_hot[np.arange(len(labels)), labels] = 1.0

    return one_hot


def shuffle_arrays(*arrays):
    """
    Shuffle arrays along their first axis with one shared permutation.

    Args:
        *arrays: Arrays with the same number of rows

    Returns:
        List of shuffled copies, in the given order
    """
    lengths = {len(array) for array in arrays}
    if len(lengths) > 1:
        raise ValueError("arrays must have the same length")

    indices = np.random.permutation(lengths.pop() if lengths else 0)
    return [np.asarray(array)[indices] for array in arrays]


def set_random_seed(seed):
    """Set random seed for reproducibility."""
    np.random.seed(seed)
    log.debug(f"Random seed set to {seed}")
