"""
Activation Functions
====================

Pointwise non-linearities used by the activation layer.
Each activation implements the function itself (forward) and its derivative
evaluated at the pre-activation input (backward).

Available activations:
- Tanh: zero-centered squashing to (-1, 1)
- Relu: max(0, x)
- Sigmoid: squashing to (0, 1)
- Softmax: single-row probability distribution, derivative is a full Jacobian

Every activation carries a canonical ``name`` which is what gets written to a
saved model. Names are matched case-insensitively on load.
"""

import numpy as np


class Activation:
    """Base class for all activation functions."""

    name = None

    def forward(self, x):
        """Apply activation function."""
        raise NotImplementedError

    def backward(self, x):
        """Compute derivative of activation w.r.t. input."""
        raise NotImplementedError

    def __call__(self, x):
        return self.forward(x)

    def __repr__(self):
        return f"{self.__class__.__name__}()"


class ReLU(Activation):
    """
    Rectified Linear Unit: f(x) = max(0, x)

    Derivative:
        f'(x) = 1 if x > 0 else 0
    """

    name = 'Relu'

    def forward(self, x):
        return np.maximum(0.0, x)

    def backward(self, x):
        return (x > 0).astype(np.float64)


class Sigmoid(Activation):
    """
    Sigmoid: f(x) = 1 / (1 + exp(-x))

    Derivative:
        f'(x) = f(x) * (1 - f(x))
    """

    name = 'Sigmoid'

    def forward(self, x):
        # Clip for numerical stability
        x_clipped = np.clip(x, -500, 500)
        return 1.0 / (1.0 + np.exp(-x_clipped))

    def backward(self, x):
        s = self.forward(x)
        return s * (1 - s)


class Tanh(Activation):
    """
    Hyperbolic Tangent: f(x) = tanh(x)

    Derivative:
        f'(x) = 1 - tanh(x)^2
    """

    name = 'Tanh'

    def forward(self, x):
        return np.tanh(x)

    def backward(self, x):
        t = np.tanh(x)
        return 1 - t ** 2


class Softmax(Activation):
    """
    Softmax: f(x_i) = exp(x_i) / sum(exp(x_j))

    Only defined on a single row of shape (1, n). The per-sample training
    loop never hands it anything else, so a multi-row input is a caller bug.

    Unlike the other activations the derivative is not elementwise: backward
    returns the (n, n) Jacobian J[i, j] = s_i * (delta_ij - s_j). The
    activation layer multiplies the incoming gradient by it instead of taking
    a Hadamard product.
    """

    name = 'Softmax'

    def forward(self, x):
        if x.ndim != 2 or x.shape[0] != 1:
            rows = x.shape[0] if x.ndim == 2 else x.ndim
            raise ValueError(f"array must have only one row to apply softmax, actually {rows}")

        # Subtracting the max leaves the result unchanged and avoids overflow
        exp_x = np.exp(x - np.max(x))
        return exp_x / np.sum(exp_x)

    def backward(self, x):
        s = self.forward(x)
        return np.diagflat(s) - s.T @ s


# ====================================
# Activation Registry
# ====================================

ACTIVATIONS = {
    'tanh': Tanh,
    'relu': ReLU,
    'sigmoid': Sigmoid,
    'softmax': Softmax,
}


def get_activation(name):
    """
    Get activation function by name.

    Args:
        name: Case-insensitive name ('Tanh', 'relu', ...) or Activation instance

    Returns:
        Activation instance

    Example:
        >>> act = get_activation('Relu')
        >>> act(np.array([[-1.0, 0.0, 1.0]]))
        array([[0., 0., 1.]])
    """
    if isinstance(name, Activation):
        return name

    if not isinstance(name, str) or name.lower() not in ACTIVATIONS:
        available = ', '.join(cls.name for cls in ACTIVATIONS.values())
        raise ValueError(f"unknown activation '{name}'. Available: {available}")

    return ACTIVATIONS[name.lower()]()
