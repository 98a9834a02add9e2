"""
Network Main Class
==================

This is the main class that ties everything together:
- Layer chaining
- Forward pass
- Backward pass (backpropagation)
- Per-sample stochastic gradient descent training loop
- Prediction
- Model saving/loading

Two topologies share the same machinery:
    MLP: Dense -> Activation -> ... -> Dense -> Activation
    CNN: Conv2D -> MaxPool2D -> Flatten -> Dense -> Softmax

Samples are processed one at a time: a row (1, features) of a 2D input, or a
(height, width) grid of a 3D input. Weights are updated after every sample, in
the order the samples are given.
"""

import json
import logging
import time

import numpy as np
from tqdm import tqdm

from .layers import (Activation, Conv2D, Dense, Flatten, MaxPool2D,
                     layer_from_dict)
from .losses import get_loss
from .metrics import ACCURACIES, accuracy

log = logging.getLogger(__name__)

DEFAULT_EPOCHS = 100
DEFAULT_LEARNING_RATE = 0.1
DEFAULT_REPORT_INTERVAL = 100


def _samples(x):
    """Yield the samples of x one by one, in order."""
    if x.ndim == 2:
        for r in range(x.shape[0]):
            yield x[r:r + 1]
    elif x.ndim == 3:
        for r in range(x.shape[0]):
            yield x[r]
    else:
        raise ValueError(f"expected a 2D (rows) or 3D (grids) input, got shape {x.shape}")


class Network:
    """
    A linear chain of layers trained with a single loss function.

    Example:
        >>> net = MLP('MSE')
        >>> net.add(Dense(2, 3))
        >>> net.add(Activation('Tanh', 3, 3))
        >>> net.add(Dense(3, 2))
        >>> net.add(Activation('Tanh', 3, 2))
        >>> history = net.fit(x_train, y_train, epochs=1000, learning_rate=0.1, verbose=False)
        >>> net.predict(x_test)
    """

    name = 'Network'

    def __init__(self, loss='MSE', layers=None):
        """
        Initialize Network.

        Args:
            loss: Loss instance or loss name ('MSE', 'categorical_cross_entropy')
            layers: Optional initial list of layers
        """
        self.loss = get_loss(loss)
        self.layers = []
        for layer in layers or []:
            self.add(layer)

    def add(self, layer):
        """Append a layer to the end of the chain."""
        self.layers.append(layer)
        return self

    def forward(self, x):
        """
        Forward pass of a single sample through the network.

        Args:
            x: One sample, shape (1, features) or (height, width)

        Returns:
            Output of the last layer
        """
        for layer in self.layers:
            x = layer.forward(x)
        return x

    def backward(self, grad, learning_rate):
        """
        Backward pass through the network, in reverse layer order.

        Each layer updates its own parameters and hands its returned gradient
        to the layer before it.

        Args:
            grad: Gradient of the loss w.r.t. the network output
            learning_rate: Gradient descent step size

        Returns:
            Gradient returned by the first layer
        """
        for layer in reversed(self.layers):
            grad = layer.backward(grad, learning_rate)
        return grad

    def output_size(self):
        """Width of the network output rows, 0 if no layer declares one."""
        for layer in reversed(self.layers):
            size = getattr(layer, 'output_size', None)
            if size is not None:
                return size
        return 0

    def predict(self, X):
        """
        Make predictions, one sample at a time.

        Args:
            X: Inputs, shape (N, features) or (N, height, width)

        Returns:
            Outputs stacked row-wise, shape (N, output_features)
        """
        X = np.asarray(X, dtype=np.float64)
        outputs = [self.forward(sample).reshape(1, -1) for sample in _samples(X)]
        if not outputs:
            return np.zeros((0, self.output_size()))
        return np.vstack(outputs)

    def fit(self, x_train, y_train, x_test=None, y_test=None, epochs=DEFAULT_EPOCHS,
            learning_rate=DEFAULT_LEARNING_RATE, accuracy_function='categorical_accuracy',
            report=None, report_interval=DEFAULT_REPORT_INTERVAL, verbose=True):
        """
        Train the network with per-sample gradient descent.

        Samples are visited in the given order every epoch (no shuffling).

        Args:
            x_train: Training inputs, shape (N, features) or (N, height, width)
            y_train: Training targets, shape (N, outputs)
            x_test: Optional test inputs
            y_test: Optional test targets (required together with x_test)
            epochs: Number of training epochs
            learning_rate: Gradient descent step size
            accuracy_function: Name of the accuracy function (see metrics.ACCURACIES)
            report: Optional Report receiving per-epoch metrics and snapshots
            report_interval: Emit a report snapshot every this many epochs
            verbose: Show a progress bar

        Returns:
            Training history dictionary with 'loss', 'accuracy' and 'test_accuracy'
        """
        x_train = np.asarray(x_train, dtype=np.float64)
        y_train = np.asarray(y_train, dtype=np.float64)

        if x_train.shape[0] == 0:
            raise ValueError("x_train is empty, nothing to train on")
        if x_train.shape[0] != y_train.shape[0]:
            raise ValueError(f"x_train and y_train have different lengths: "
                             f"{x_train.shape[0]} != {y_train.shape[0]}")
        if (x_test is None) != (y_test is None):
            raise ValueError("x_test and y_test must be given together")
        if accuracy_function not in ACCURACIES:
            raise ValueError(f"unknown accuracy function '{accuracy_function}'")
        if report_interval < 1:
            raise ValueError(f"report_interval must be positive, got {report_interval}")

        has_test = x_test is not None
        if has_test:
            x_test = np.asarray(x_test, dtype=np.float64)
            y_test = np.asarray(y_test, dtype=np.float64)

        history = {'loss': [], 'accuracy': [], 'test_accuracy': []}
        start_time = time.time()
        n_samples = x_train.shape[0]

        log.info(f"Training {self.name} on {n_samples} samples for {epochs} epochs "
                 f"(learning rate {learning_rate}, loss {self.loss.name})")

        pbar = tqdm(range(epochs), desc=self.name, disable=not verbose)
        for epoch in pbar:
            epoch_loss = 0.0

            for r, sample in enumerate(_samples(x_train)):
                y_true = y_train[r:r + 1]

                output = self.forward(sample)
                epoch_loss += self.loss(y_true, output)

                grad = self.loss.backward(y_true, output)
                self.backward(grad, learning_rate)

            train_loss = epoch_loss / n_samples
            train_accuracy = accuracy(accuracy_function, self.predict(x_train), y_train)
            test_accuracy = None
            if has_test:
                test_accuracy = accuracy(accuracy_function, self.predict(x_test), y_test)

            history['loss'].append(train_loss)
            history['accuracy'].append(train_accuracy)
            if has_test:
                history['test_accuracy'].append(test_accuracy)

            postfix = {'loss': f'{train_loss:.4f}', 'acc': f'{train_accuracy:.4f}'}
            msg = f"Epoch {epoch}/{epochs} - Loss: {train_loss:.6f} - Acc: {train_accuracy:.4f}"
            if has_test:
                postfix['test_acc'] = f'{test_accuracy:.4f}'
                msg += f" - Test Acc: {test_accuracy:.4f}"
            pbar.set_postfix(postfix)
            log.debug(msg)

            if report is not None:
                report.add_data(epoch, train_accuracy, train_loss, test_accuracy)

                is_last = epoch == epochs - 1
                if (epoch > 0 and epoch % report_interval == 0) or is_last:
                    report.generate(
                        self.name,
                        start_time,
                        epochs,
                        x_train.shape,
                        y_train.shape,
                        x_test.shape if has_test else None,
                        y_test.shape if has_test else None,
                        accuracy_function,
                        self.loss.name,
                    )

        log.info(f"Training finished in {time.time() - start_time:.1f}s")
        return history

    def summary(self):
        """Log model summary and return the number of trainable parameters."""
        lines = ["=" * 70, f"{self.name} Model Summary", "=" * 70]

        total_params = 0

        for i, layer in enumerate(self.layers):
            n_params = sum(param.size for param in layer.params.values())
            total_params += n_params
            lines.append(f"{i:3d}. {str(layer):<45} Params: {n_params:,}")

        lines.append("-" * 70)
        lines.append(f"Loss: {self.loss.name}")
        lines.append(f"Total trainable parameters: {total_params:,}")
        lines.append("=" * 70)

        log.info("\n" + "\n".join(lines))
        return total_params

    def to_json(self):
        """
        Serialize layers and loss to a JSON string.

        Layout: {"layers": [[kind_name, state_json_text], ...], "loss": loss_name}
        """
        model = {
            'layers': [[layer.name, layer.to_string()] for layer in self.layers],
            'loss': self.loss.name,
        }
        return json.dumps(model)

    @classmethod
    def from_json(cls, text):
        """Rebuild a network from ``to_json`` output."""
        model = json.loads(text)
        layers = [layer_from_dict(name, state) for name, state in model['layers']]
        return cls(model['loss'], layers)

    def save(self, filepath):
        """
        Save model to file.

        Args:
            filepath: Path to save file (.json)
        """
        with open(filepath, 'w') as f:
            f.write(self.to_json())
        log.info(f"Model saved to {filepath}")

    @classmethod
    def load(cls, filepath):
        """
        Load model from file.

        Args:
            filepath: Path to saved model (.json)
        """
        with open(filepath) as f:
            network = cls.from_json(f.read())
        log.info(f"Model loaded from {filepath}")
        return network

    def __len__(self):
        return len(self.layers)

    def __repr__(self):
        return f"{self.__class__.__name__}(layers={len(self.layers)}, loss={self.loss.name})"


class MLP(Network):
    """Fully connected multilayer network."""

    name = 'Mlp'


class CNN(Network):
    """Convolutional network over 2D inputs."""

    name = 'Cnn'

    @classmethod
    def build(cls, input_shape=(28, 28), num_classes=10, kernel_size=3, kernel_count=8,
              pool_size=2, loss='categorical_cross_entropy'):
        """
        Build the standard CNN architecture.

        Architecture:
            Conv2D(kernel_size, kernel_count) -> MaxPool2D(pool_size) -> Flatten
            -> Dense(num_classes) -> Softmax

        Args:
            input_shape: Input grid shape (height, width)
            num_classes: Number of output classes
            kernel_size: Convolution kernel size
            kernel_count: Number of convolution kernels
            pool_size: Max pooling tile size
            loss: Loss instance or name
        """
        height, width = input_shape

        # After convolution (valid) and pooling
        h = (height - kernel_size + 1) // pool_size
        w = (width - kernel_size + 1) // pool_size
        if h < 1 or w < 1:
            raise ValueError(f"input shape {input_shape} is too small for kernel {kernel_size} "
                             f"and pooling {pool_size}")
        flatten_dim = h * w * kernel_count

        return cls(loss, [
            Conv2D(kernel_size, kernel_count),
            MaxPool2D(pool_size),
            Flatten(),
            Dense(flatten_dim, num_classes),
            Activation('Softmax', num_classes, num_classes),
        ])
