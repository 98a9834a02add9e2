"""
Loss Functions
==============

Loss functions measure how wrong a single prediction is. The training loop
calls them once per sample, with row vectors of shape (1, n).

Each loss implements:
- forward(y_true, y_pred): scalar loss value
- backward(y_true, y_pred): gradient of the loss w.r.t. y_pred

Argument order is (ground truth, prediction) throughout.
"""

import numpy as np


class Loss:
    """Base class for loss functions."""

    name = None

    def forward(self, y_true, y_pred):
        """Compute loss value."""
        raise NotImplementedError

    def backward(self, y_true, y_pred):
        """Compute gradient of loss w.r.t. predictions."""
        raise NotImplementedError

    def __call__(self, y_true, y_pred):
        return self.forward(y_true, y_pred)

    def __repr__(self):
        return f"{self.__class__.__name__}()"


class MSELoss(Loss):
    """
    Mean Squared Error.

    Formula: L = (1/n) * sum((y_true - y_pred)^2)

    Gradient: dL/dy_pred = (2/n) * (y_pred - y_true)
    """

    name = 'MSE'

    def forward(self, y_true, y_pred):
        return float(np.mean((y_true - y_pred) ** 2))

    def backward(self, y_true, y_pred):
        return 2.0 * (y_pred - y_true) / y_true.size


class CategoricalCrossEntropyLoss(Loss):
    """
    Categorical Cross-Entropy for one-hot targets.

    Formula: L = -sum(y_true * log(y_pred + epsilon))

    Gradient: dL/dy_pred = -y_true / (y_pred + epsilon)

    Chained through the softmax Jacobian this reduces to y_pred - y_true.

    Args:
        epsilon: Small constant to prevent log(0)
    """

    name = 'categorical_cross_entropy'

    def __init__(self, epsilon=1e-10):
        self.epsilon = epsilon

    def forward(self, y_true, y_pred):
        return float(-np.sum(y_true * np.log(y_pred + self.epsilon)))

    def backward(self, y_true, y_pred):
        return -y_true / (y_pred + self.epsilon)


# ============================================================================
# Loss Registry
# ============================================================================

LOSSES = {
    'mse': MSELoss,
    'categorical_cross_entropy': CategoricalCrossEntropyLoss,
}


def get_loss(name):
    """
    Get loss function by name.

    Args:
        name: Case-insensitive name ('MSE', 'categorical_cross_entropy') or Loss instance

    Returns:
        Loss instance
    """
    if isinstance(name, Loss):
        return name

    if not isinstance(name, str) or name.lower() not in LOSSES:
        available = ', '.join(cls.name for cls in LOSSES.values())
        raise ValueError(f"unknown loss '{name}'. Available: {available}")

    return LOSSES[name.lower()]()
