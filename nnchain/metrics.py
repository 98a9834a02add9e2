"""
Accuracy metrics used to evaluate a network after each epoch.
"""

import numpy as np


def categorical_accuracy(y_pred, y_true):
    """
    Fraction of rows where argmax(y_pred) == argmax(y_true).

    Both arrays must be one-hot shaped, i.e. have at least two columns.
    """
    if y_pred.shape[1] < 2 or y_true.shape[1] < 2:
        raise ValueError("array must be one hot encoding")

    pred_labels = np.argmax(y_pred, axis=1)
    true_labels = np.argmax(y_true, axis=1)
    return float(np.mean(pred_labels == true_labels))


ACCURACIES = {
    'categorical_accuracy': categorical_accuracy,
}


def accuracy(name, y_pred, y_true):
    """
    Compute the accuracy function registered under ``name``.

    Args:
        name: Accuracy function name (e.g. 'categorical_accuracy')
        y_pred: Predictions, shape (N, C)
        y_true: Ground truth, shape (N, C)

    Returns:
        Accuracy as float
    """
    y_pred = np.asarray(y_pred, dtype=np.float64)
    y_true = np.asarray(y_true, dtype=np.float64)

    if y_pred.shape != y_true.shape:
        raise ValueError(f"shapes are not equals {y_pred.shape} != {y_true.shape}")

    if name not in ACCURACIES:
        raise ValueError(f"unknown accuracy function '{name}'")

    return ACCURACIES[name](y_pred, y_true)
