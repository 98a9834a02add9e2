"""
Layers - From Scratch Implementation
====================================

This module contains the building blocks of a network implemented using only NumPy.
Each layer implements a forward pass and a backward pass that both computes the
gradient to hand upstream and applies a plain gradient descent step to its own
parameters.

Layers are driven one sample at a time:
- Dense / Activation: row vectors, shape (1, features)
- Conv2D: 2D grid (height, width) -> feature maps (height, width, channels)
- MaxPool2D: feature maps -> downsampled feature maps
- Flatten: feature maps -> row vector (and back)

Every layer keeps its own copy of the input seen by the most recent forward call;
backward must follow a forward on the same layer instance.

Each layer serializes to a (name, state) pair. ``name`` is the canonical layer kind
used in saved models ('FCLayer', 'ActivationLayer', ...) and ``state`` is the JSON
text of the dict understood by ``from_dict``.
"""

import json

import numpy as np
from .activations import Softmax, get_activation


class Layer:
    """Base class for all layers."""

    name = None

    def __init__(self):
        self.params = {}    # Trainable parameters
        self.grads = {}     # Gradients from the last backward pass
        self.cache = {}     # Last forward input

    def forward(self, x):
        """Forward pass."""
        raise NotImplementedError

    def backward(self, grad_output, learning_rate):
        """Backward pass, updates parameters in place."""
        raise NotImplementedError

    @property
    def shape(self):
        raise NotImplementedError

    def to_dict(self):
        """Serializable layer state."""
        raise NotImplementedError

    def to_string(self):
        """Layer state as JSON text, the form stored in saved models."""
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, state):
        """Rebuild a layer from ``to_dict`` output."""
        raise NotImplementedError

    def __call__(self, x):
        return self.forward(x)

    def _remember(self, x):
        x = np.array(x, dtype=np.float64)
        self.cache['x'] = x
        return x

    def _last_input(self):
        if 'x' not in self.cache:
            raise ValueError(f"{self.name}: backward called before forward")
        return self.cache['x']


class Dense(Layer):
    """
    Fully Connected (Dense) Layer.

    Args:
        input_size: Number of input features
        output_size: Number of output features

    Forward: output = input @ W + b

    Weights and bias are drawn uniformly from [-0.5, 0.5).
    """

    name = 'FCLayer'

    def __init__(self, input_size, output_size):
        super().__init__()

        self.input_size = input_size
        self.output_size = output_size

        self.params['weights'] = np.random.rand(input_size, output_size) - 0.5
        self.params['bias'] = np.random.rand(1, output_size) - 0.5

    def forward(self, x):
        """Forward pass: y = x @ W + b"""
        x = self._remember(x)
        return x @ self.params['weights'] + self.params['bias']

    def backward(self, grad_output, learning_rate):
        """
        Backward pass.

        dL/dx = grad_output @ W.T    (with the weights before the update)
        dL/dW = x.T @ grad_output
        dL/db = grad_output
        """
        x = self._last_input()

        input_error = grad_output @ self.params['weights'].T

        self.grads['weights'] = x.T @ grad_output
        self.grads['bias'] = np.sum(grad_output, axis=0, keepdims=True)

        self.params['weights'] -= learning_rate * self.grads['weights']
        self.params['bias'] -= learning_rate * self.grads['bias']

        return input_error

    @property
    def shape(self):
        return (self.input_size, self.output_size)

    def to_dict(self):
        return {
            'weights': self.params['weights'].ravel().tolist(),
            'bias': self.params['bias'].ravel().tolist(),
            'shape': list(self.shape),
        }

    @classmethod
    def from_dict(cls, state):
        input_size, output_size = state['shape']
        layer = cls(input_size, output_size)
        layer.params['weights'] = np.array(state['weights'], dtype=np.float64).reshape(input_size, output_size)
        layer.params['bias'] = np.array(state['bias'], dtype=np.float64).reshape(1, output_size)
        return layer

    def __repr__(self):
        return f"Dense({self.input_size}, {self.output_size})"


class Activation(Layer):
    """
    Activation layer wrapper.

    Wraps activation functions as layers for use in sequential models.
    ``input_size``/``output_size`` are descriptive only; activations keep the
    input shape.
    """

    name = 'ActivationLayer'

    def __init__(self, activation='Tanh', input_size=None, output_size=None):
        super().__init__()
        self.activation = get_activation(activation)
        self.input_size = input_size
        self.output_size = output_size

    def forward(self, x):
        """Apply activation function."""
        x = self._remember(x)
        return self.activation.forward(x)

    def backward(self, grad_output, learning_rate):
        """Multiply by activation derivative. No parameters to update."""
        x = self._last_input()

        # Softmax derivative is a Jacobian, not an elementwise factor
        if isinstance(self.activation, Softmax):
            return grad_output @ self.activation.backward(x)

        return grad_output * self.activation.backward(x)

    @property
    def shape(self):
        return (self.input_size, self.output_size)

    def to_dict(self):
        return {
            'activation': self.activation.name,
            'shape': list(self.shape),
        }

    @classmethod
    def from_dict(cls, state):
        input_size, output_size = state['shape']
        return cls(state['activation'], input_size, output_size)

    def __repr__(self):
        return f"Activation({self.activation.name})"


class Conv2D(Layer):
    """
    2D Convolutional Layer over a single-channel grid.

    Slides each (kernel_size x kernel_size) kernel over the input with stride 1
    and no padding, producing one feature map per kernel.

    Args:
        kernel_size: Size of each square kernel
        kernel_count: Number of kernels (output channels)

    Input shape: (height, width)
    Output shape: (height - kernel_size + 1, width - kernel_size + 1, kernel_count)

    Kernels are drawn uniformly from [0, 1) and scaled by 1 / kernel_size^2.

    The backward pass returns the kernel gradient, not an input gradient, so this
    layer has to be the first one of a network.
    """

    name = 'ConvLayer'

    def __init__(self, kernel_size, kernel_count):
        super().__init__()

        self.kernel_size = kernel_size
        self.kernel_count = kernel_count

        self.params['kernels'] = (np.random.rand(kernel_count, kernel_size, kernel_size)
                                  / kernel_size ** 2)

    def _patches(self, x):
        """
        View of every (kernel_size x kernel_size) patch of x.

        Uses numpy stride tricks, no memory copy.

        Returns:
            patches: Shape (h_out, w_out, kernel_size, kernel_size)
        """
        k = self.kernel_size
        h_out = x.shape[0] - k + 1
        w_out = x.shape[1] - k + 1

        shape = (h_out, w_out, k, k)
        strides = (x.strides[0], x.strides[1], x.strides[0], x.strides[1])

        return np.lib.stride_tricks.as_strided(x, shape=shape, strides=strides, writeable=False)

    def forward(self, x):
        """
        Forward pass.

        Args:
            x: Input grid, shape (height, width)

        Returns:
            Feature maps, shape (h_out, w_out, kernel_count)
        """
        x = np.asarray(x)
        if x.ndim != 2:
            raise ValueError(f"ConvLayer expects a 2D input, got shape {x.shape}")
        if x.shape[0] < self.kernel_size or x.shape[1] < self.kernel_size:
            raise ValueError(f"input {x.shape} is smaller than kernel size {self.kernel_size}")

        x = self._remember(x)
        patches = self._patches(x)

        # (h_out, w_out, k, k) . (kernel_count, k, k) -> (h_out, w_out, kernel_count)
        return np.tensordot(patches, self.params['kernels'], axes=([2, 3], [1, 2]))

    def backward(self, grad_output, learning_rate):
        """
        Backward pass.

        Args:
            grad_output: Gradient w.r.t. the feature maps, shape (h_out, w_out, kernel_count)

        Returns:
            Kernel gradient, shape (kernel_count, kernel_size, kernel_size)
        """
        patches = self._patches(self._last_input())

        # Sum over output positions of patch * grad_output[position, kernel]
        kernel_gradient = np.tensordot(grad_output, patches, axes=([0, 1], [0, 1]))

        self.grads['kernels'] = kernel_gradient
        self.params['kernels'] -= learning_rate * kernel_gradient

        return kernel_gradient

    @property
    def shape(self):
        return (self.kernel_count, self.kernel_size, self.kernel_size)

    def to_dict(self):
        return {
            'kernel_size': self.kernel_size,
            'kernel_count': self.kernel_count,
            'kernels': self.params['kernels'].ravel().tolist(),
        }

    @classmethod
    def from_dict(cls, state):
        layer = cls(state['kernel_size'], state['kernel_count'])
        layer.params['kernels'] = np.array(state['kernels'], dtype=np.float64).reshape(layer.shape)
        return layer

    def __repr__(self):
        return f"Conv2D(kernel_size={self.kernel_size}, kernel_count={self.kernel_count})"


class MaxPool2D(Layer):
    """
    Max Pooling Layer.

    Splits each channel into non-overlapping (kernel_size x kernel_size) tiles and
    keeps the maximum of every tile. Rows and columns that do not fill a whole
    tile are dropped.

    Args:
        kernel_size: Tile size (default: 2)

    Input shape: (height, width, channels)
    Output shape: (height // kernel_size, width // kernel_size, channels)

    Backprop: the gradient of a tile goes to every position holding that tile's
    maximum, zero elsewhere.

    Every channel picks its own tile maximum; channels do not share a winner.
    """

    name = 'MaxPoolingLayer'
    tolerance = 1e-8

    def __init__(self, kernel_size=2):
        super().__init__()
        self.kernel_size = kernel_size

    def _tiles(self, x):
        """Crop x to whole tiles, return (cropped, tiles) with tiles (h_out, k, w_out, k, C)."""
        k = self.kernel_size
        h_out = x.shape[0] // k
        w_out = x.shape[1] // k

        cropped = x[:h_out * k, :w_out * k, :]
        return cropped, cropped.reshape(h_out, k, w_out, k, x.shape[2])

    def forward(self, x):
        """
        Forward pass.

        Args:
            x: Feature maps, shape (height, width, channels)

        Returns:
            Pooled maps, shape (height // k, width // k, channels)
        """
        x = np.asarray(x)
        if x.ndim != 3:
            raise ValueError(f"MaxPoolingLayer expects a 3D input, got shape {x.shape}")
        if x.shape[0] < self.kernel_size or x.shape[1] < self.kernel_size:
            raise ValueError(f"input {x.shape} is smaller than kernel size {self.kernel_size}")

        x = self._remember(x)
        _, tiles = self._tiles(x)
        return tiles.max(axis=(1, 3))

    def backward(self, grad_output, learning_rate):
        """Route each tile's gradient to the position(s) of its maximum."""
        x = self._last_input()
        k = self.kernel_size

        cropped, tiles = self._tiles(x)
        winners = tiles.max(axis=(1, 3))

        # Broadcast winners and gradients back to input resolution
        winners_up = np.repeat(np.repeat(winners, k, axis=0), k, axis=1)
        grad_up = np.repeat(np.repeat(grad_output, k, axis=0), k, axis=1)

        mask = (cropped - winners_up) ** 2 < self.tolerance

        grad_input = np.zeros(x.shape, dtype=np.float64)
        grad_input[:cropped.shape[0], :cropped.shape[1], :] = mask * grad_up

        return grad_input

    @property
    def shape(self):
        return (self.kernel_size, self.kernel_size)

    def to_dict(self):
        return {'kernel_size': self.kernel_size}

    @classmethod
    def from_dict(cls, state):
        return cls(state['kernel_size'])

    def __repr__(self):
        return f"MaxPool2D(kernel_size={self.kernel_size})"


class Flatten(Layer):
    """
    Flatten layer: reshapes feature maps to a row vector.

    Input: (height, width, channels)
    Output: (1, height * width * channels), row-major order

    Used to connect convolutional layers to dense layers.
    """

    name = 'FlattenLayer'

    def __init__(self):
        super().__init__()
        self.input_shape = None

    def forward(self, x):
        """Flatten input, remembering its shape."""
        x = self._remember(x)
        self.input_shape = x.shape
        return x.reshape(1, -1)

    def backward(self, grad_output, learning_rate=0.0):
        """Reshape gradient back to the remembered shape."""
        if self.input_shape is None:
            raise ValueError(f"{self.name}: backward called before forward")

        grad_output = np.asarray(grad_output)
        expected = int(np.prod(self.input_shape))
        if grad_output.size != expected:
            raise ValueError(f"cannot reshape {grad_output.size} elements to {self.input_shape}")

        return grad_output.reshape(self.input_shape)

    @property
    def shape(self):
        return self.input_shape

    def to_dict(self):
        return {}

    @classmethod
    def from_dict(cls, state):
        return cls()

    def __repr__(self):
        return "Flatten()"


# ============================================================================
# Layer Registry
# ============================================================================

LAYERS = {
    'fclayer': Dense,
    'activationlayer': Activation,
    'convlayer': Conv2D,
    'maxpoolinglayer': MaxPool2D,
    'flattenlayer': Flatten,
}


def layer_from_dict(name, state):
    """
    Rebuild a layer from its (name, state) pair.

    Args:
        name: Case-insensitive layer kind ('FCLayer', 'ActivationLayer', ...)
        state: Dict produced by the layer's ``to_dict``, or its JSON text as
            produced by ``to_string``

    Returns:
        Layer instance
    """
    if not isinstance(name, str) or name.lower() not in LAYERS:
        raise ValueError(f"unknown layer '{name}'")

    if isinstance(state, str):
        state = json.loads(state)

    return LAYERS[name.lower()].from_dict(state)
