"""
nnchain
=======

A small neural network training engine using only NumPy.
Networks are linear chains of layers trained by manual backpropagation and
per-sample gradient descent:
- Dense and activation layers for multilayer perceptrons
- 2D convolution, max pooling and flatten layers for convolutional networks
- Mean squared error and categorical cross-entropy losses
- JSON model persistence
- HTML/PNG training reports
"""

from .activations import ReLU, Sigmoid, Tanh, Softmax, get_activation
from .layers import Dense, Activation, Conv2D, MaxPool2D, Flatten, layer_from_dict
from .losses import MSELoss, CategoricalCrossEntropyLoss, get_loss
from .metrics import accuracy, categorical_accuracy
from .network import Network, MLP, CNN
from .report import Report
from .utils import one_hot_encode, shuffle_arrays, set_random_seed
from .netlog import setup_logging

__version__ = "0.1.0"
__all__ = [
    # Activations
    'ReLU', 'Sigmoid', 'Tanh', 'Softmax', 'get_activation',
    # Layers
    'Dense', 'Activation', 'Conv2D', 'MaxPool2D', 'Flatten', 'layer_from_dict',
    # Losses
    'MSELoss', 'CategoricalCrossEntropyLoss', 'get_loss',
    # Metrics
    'accuracy', 'categorical_accuracy',
    # Networks
    'Network', 'MLP', 'CNN',
    # Reporting
    'Report',
    # Utilities
    'one_hot_encode', 'shuffle_arrays', 'set_random_seed', 'setup_logging',
]
