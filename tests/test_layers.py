"""
Tests for Layers
================

Unit tests for dense, activation, convolution, pooling and flatten layers.
"""

import numpy as np
import pytest
import sys
import os

# Add repository root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from nnchain.layers import (Dense, Activation, Conv2D, MaxPool2D, Flatten,
                            layer_from_dict)


GRID = np.array([
    [6.0, 6.0, 7.0, 11.0],
    [4.0, 6.0, 7.0, 9.0],
    [2.0, 5.0, 7.0, 9.0],
    [6.0, 6.0, 7.0, 9.0],
])


def make_dense():
    dense = Dense(2, 3)
    dense.params['weights'] = np.array([[0.0, 1.0, 0.0], [0.5, 1.0, 0.5]])
    dense.params['bias'] = np.array([[1.0, 1.0, 0.25]])
    return dense


def make_conv():
    conv = Conv2D(kernel_size=2, kernel_count=2)
    conv.params['kernels'] = np.array([
        [[1.0, 0.5], [1.5, 2.5]],
        [[0.5, 3.5], [4.0, 1.5]],
    ])
    return conv


class TestDense:
    """Tests for Dense layer."""

    def test_init_shapes(self):
        """Test parameter shapes and init range."""
        dense = Dense(input_size=4, output_size=3)

        assert dense.shape == (4, 3)
        assert dense.params['weights'].shape == (4, 3)
        assert dense.params['bias'].shape == (1, 3)
        assert np.all(dense.params['weights'] >= -0.5)
        assert np.all(dense.params['weights'] < 0.5)

    def test_forward(self):
        """Test y = x @ W + b."""
        dense = make_dense()
        output = dense.forward(np.array([[1.0, 1.0]]))

        np.testing.assert_array_equal(output, [[1.5, 3.0, 0.75]])
        np.testing.assert_array_equal(dense.cache['x'], [[1.0, 1.0]])

    def test_forward_copies_input(self):
        """Mutating the caller's array must not change the remembered input."""
        dense = make_dense()
        x = np.array([[1.0, 0.5]])
        dense.forward(x)
        x[0, 0] = 100.0

        np.testing.assert_array_equal(dense.cache['x'], [[1.0, 0.5]])

    def test_backward_updates_weights_and_bias(self):
        """Test gradient descent step and returned input error."""
        dense = make_dense()
        dense.forward(np.array([[1.0, 0.5]]))
        result = dense.backward(np.array([[1.0, 0.0, 0.0]]), 0.5)

        np.testing.assert_array_equal(dense.params['bias'], [[0.5, 1.0, 0.25]])
        np.testing.assert_array_equal(dense.params['weights'], [[-0.5, 1.0, 0.0], [0.25, 1.0, 0.5]])
        np.testing.assert_array_equal(result, [[0.0, 0.5]])

    def test_backward_zero_learning_rate(self):
        """With learning rate 0 parameters stay put, input error is still returned."""
        np.random.seed(0)
        dense = Dense(5, 4)
        weights = dense.params['weights'].copy()
        bias = dense.params['bias'].copy()

        dense.forward(np.random.randn(1, 5))
        grad_output = np.random.randn(1, 4)
        result = dense.backward(grad_output, 0.0)

        np.testing.assert_array_equal(dense.params['weights'], weights)
        np.testing.assert_array_equal(dense.params['bias'], bias)
        np.testing.assert_allclose(result, grad_output @ weights.T)

    def test_backward_before_forward(self):
        """Backward without a forward pass is an error."""
        with pytest.raises(ValueError, match="backward called before forward"):
            Dense(2, 3).backward(np.ones((1, 3)), 0.1)

    def test_serialization(self):
        """Test to_dict layout."""
        state = make_dense().to_dict()

        assert state == {
            'weights': [0.0, 1.0, 0.0, 0.5, 1.0, 0.5],
            'bias': [1.0, 1.0, 0.25],
            'shape': [2, 3],
        }

    def test_deserialization(self):
        """Serialize then deserialize keeps shape and values."""
        np.random.seed(1)
        dense = Dense(3, 4)
        restored = Dense.from_dict(dense.to_dict())

        assert restored.shape == dense.shape
        np.testing.assert_allclose(restored.params['weights'], dense.params['weights'], atol=1e-5)
        np.testing.assert_allclose(restored.params['bias'], dense.params['bias'], atol=1e-5)


class TestActivation:
    """Tests for Activation wrapper layer."""

    def test_forward_tanh(self):
        """Test tanh forward."""
        act = Activation('Tanh', 2, 2)
        output = act.forward(np.array([[0.5, 1.0]]))

        np.testing.assert_allclose(output, [[0.46211715726000974, 0.7615941559557649]])
        np.testing.assert_array_equal(act.cache['x'], [[0.5, 1.0]])

    def test_backward_tanh(self):
        """Test backward is derivative at the pre-activation input times gradient."""
        act = Activation('Tanh', 2, 2)
        act.forward(np.array([[0.9, 0.5]]))
        result = act.backward(np.array([[1.0, 1.0]]), 0.0)

        assert result.shape == (1, 2)
        np.testing.assert_allclose(result, [[0.4869173611483415, 0.7864477329659274]])

    @pytest.mark.parametrize('name', ['Tanh', 'Relu', 'Sigmoid'])
    def test_backward_is_hadamard_product(self, name):
        """Test backward == f'(x) * grad for elementwise activations."""
        np.random.seed(3)
        act = Activation(name, 4, 4)
        x = np.random.randn(1, 4)
        grad = np.random.randn(1, 4)

        act.forward(x)
        result = act.backward(grad, 0.1)

        np.testing.assert_allclose(result, act.activation.backward(x) * grad)

    def test_relu(self):
        """Test ReLU activation."""
        act = Activation('relu')
        output = act.forward(np.array([[-1.0, 0.0, 1.0]]))

        np.testing.assert_array_equal(output, [[0.0, 0.0, 1.0]])

    def test_softmax(self):
        """Test softmax activation."""
        act = Activation('Softmax', 3, 3)
        output = act.forward(np.array([[1.0, 2.0, 3.0]]))

        # Softmax should sum to 1
        assert abs(np.sum(output) - 1.0) < 1e-6

    def test_softmax_backward_uses_jacobian(self):
        """Softmax backward is grad @ Jacobian, shape preserved."""
        act = Activation('Softmax', 3, 3)
        x = np.array([[0.2, -0.4, 1.0]])
        act.forward(x)
        grad = np.array([[1.0, 0.0, -1.0]])

        result = act.backward(grad, 0.1)

        assert result.shape == (1, 3)
        np.testing.assert_allclose(result, grad @ act.activation.backward(x))

    def test_shape_is_metadata(self):
        """Shape is whatever the layer was declared with."""
        act = Activation('Tanh', 3, 2)
        assert act.shape == (3, 2)

    def test_serialization(self):
        """Test to_dict / from_dict."""
        act = Activation('Tanh', 2, 3)

        assert act.to_dict() == {'activation': 'Tanh', 'shape': [2, 3]}

        restored = Activation.from_dict({'activation': 'tanh', 'shape': [2, 3]})
        assert restored.shape == (2, 3)
        assert restored.activation.name == 'Tanh'
        assert 'x' not in restored.cache

    def test_unknown_activation(self):
        """Unknown activation names are rejected."""
        with pytest.raises(ValueError, match="unknown activation 'Unknown'"):
            Activation('Unknown')


class TestConv2D:
    """Tests for Conv2D layer."""

    def test_init(self):
        """Test kernel shape and scaling."""
        conv = Conv2D(kernel_size=3, kernel_count=4)

        assert conv.params['kernels'].shape == (4, 3, 3)
        assert np.all(conv.params['kernels'] >= 0)
        assert np.all(conv.params['kernels'] < 1.0 / 9)

    def test_forward_shape(self):
        """Test output shape is (H-k+1, W-k+1, kernel_count)."""
        conv = Conv2D(kernel_size=3, kernel_count=8)
        output = conv.forward(np.random.randn(10, 12))

        assert output.shape == (8, 10, 8)

    def test_forward_values(self):
        """Test convolution against hand-computed values."""
        conv = make_conv()
        output = conv.forward(GRID)

        expected = np.array([
            30.0, 49.0, 36.0, 62.0, 45.5, 83.5, 22.5, 38.5, 34.5,
            58.0, 44.5, 76.5, 28.5, 51.5, 35.0, 61.5, 44.5, 76.5,
        ]).reshape(3, 3, 2)

        assert output.shape == (3, 3, 2)
        assert output[0, 0, 0] == 30.0
        assert output[0, 0, 1] == 49.0
        np.testing.assert_allclose(output, expected)

    def test_backward_corrects_kernels(self):
        """Test kernel gradient and kernel update."""
        conv = make_conv()
        conv.forward(GRID)

        grad_output = np.array([
            0.1, 0.2, 0.3, 0.4, 0.9, 1.0, 0.5, 0.6, 0.7,
            0.8, 1.1, 1.2, 1.5, 1.6, 1.7, 1.8, 1.9, 2.0,
        ]).reshape(3, 3, 2)

        kernel_gradient = conv.backward(grad_output, 0.1)

        expected_gradient = np.array([47.4, 66.9, 53.2, 66.1, 52.4, 73.6, 58.2, 72.6]).reshape(2, 2, 2)
        expected_kernels = np.array([-3.74, -6.19, -3.82, -4.11, -4.74, -3.86, -1.82, -5.76]).reshape(2, 2, 2)

        assert kernel_gradient.shape == (2, 2, 2)
        np.testing.assert_allclose(kernel_gradient, expected_gradient, atol=1e-6)
        np.testing.assert_allclose(conv.params['kernels'], expected_kernels, atol=1e-6)

    def test_input_too_small(self):
        """Inputs smaller than the kernel are rejected."""
        conv = Conv2D(kernel_size=3, kernel_count=2)

        with pytest.raises(ValueError):
            conv.forward(np.ones((2, 5)))

    def test_serialization(self):
        """Test to_dict / from_dict round trip."""
        conv = make_conv()
        restored = layer_from_dict(conv.name, conv.to_dict())

        assert isinstance(restored, Conv2D)
        np.testing.assert_array_equal(restored.params['kernels'], conv.params['kernels'])


class TestMaxPool2D:
    """Tests for MaxPool2D layer."""

    def test_forward_shape(self):
        """Test output shape after pooling."""
        pool = MaxPool2D(kernel_size=2)
        output = pool.forward(np.random.randn(28, 28, 8))

        assert output.shape == (14, 14, 8)

    def test_max_values(self):
        """Test that tile maxima are extracted."""
        pool = MaxPool2D(kernel_size=2)
        output = pool.forward(GRID[:, :, np.newaxis])

        np.testing.assert_array_equal(output[:, :, 0], [[6.0, 11.0], [6.0, 9.0]])

    def test_max_per_channel(self):
        """Each channel keeps its own tile maximum."""
        pool = MaxPool2D(kernel_size=2)
        x = np.stack([
            np.array([[1.0, 2.0], [3.0, 4.0]]),
            np.array([[8.0, 1.0], [1.0, 1.0]]),
        ], axis=-1)

        output = pool.forward(x)

        np.testing.assert_array_equal(output, [[[4.0, 8.0]]])

    def test_backward_gradient_routing(self):
        """Test that gradients are routed to max positions, ties included."""
        pool = MaxPool2D(kernel_size=2)
        pool.forward(GRID[:, :, np.newaxis])

        grad_input = pool.backward(np.ones((2, 2, 1)), 0.0)

        expected = np.array([
            [1.0, 1.0, 0.0, 1.0],
            [0.0, 1.0, 0.0, 0.0],
            [0.0, 0.0, 0.0, 1.0],
            [1.0, 1.0, 0.0, 1.0],
        ])
        assert grad_input.shape == (4, 4, 1)
        np.testing.assert_array_equal(grad_input[:, :, 0], expected)

    def test_backward_per_channel(self):
        """Each channel routes its gradient to its own maximum."""
        pool = MaxPool2D(kernel_size=2)
        x = np.stack([
            np.array([[1.0, 2.0], [3.0, 4.0]]),
            np.array([[8.0, 1.0], [1.0, 1.0]]),
        ], axis=-1)
        pool.forward(x)

        grad_input = pool.backward(np.array([[[1.0, 2.0]]]), 0.0)

        np.testing.assert_array_equal(grad_input[:, :, 0], [[0.0, 0.0], [0.0, 1.0]])
        np.testing.assert_array_equal(grad_input[:, :, 1], [[2.0, 0.0], [0.0, 0.0]])

    def test_trailing_rows_dropped(self):
        """Rows/columns that don't fill a tile are ignored and get no gradient."""
        pool = MaxPool2D(kernel_size=2)
        x = np.arange(25, dtype=np.float64).reshape(5, 5, 1)

        output = pool.forward(x)
        grad_input = pool.backward(np.ones(output.shape), 0.0)

        assert output.shape == (2, 2, 1)
        np.testing.assert_array_equal(output[:, :, 0], [[6.0, 8.0], [16.0, 18.0]])
        assert grad_input.shape == x.shape
        assert np.all(grad_input[4, :, :] == 0)
        assert np.all(grad_input[:, 4, :] == 0)
        assert grad_input.sum() == 4.0


class TestFlatten:
    """Tests for Flatten layer."""

    def test_forward_shape(self):
        """Test flattening in row-major order."""
        flatten = Flatten()
        x = np.random.randn(3, 3, 2)
        output = flatten.forward(x)

        assert output.shape == (1, 18)
        assert flatten.input_shape == (3, 3, 2)
        np.testing.assert_array_equal(output[0], x.ravel())

    def test_round_trip(self):
        """Backward of the forward output gives back the input."""
        flatten = Flatten()
        x = np.random.randn(4, 5, 3)

        output = flatten.forward(x)
        grad_input = flatten.backward(output)

        np.testing.assert_array_equal(grad_input, x)

    def test_backward_before_forward(self):
        """No remembered shape yet."""
        with pytest.raises(ValueError):
            Flatten().backward(np.ones((1, 4)))

    def test_backward_size_mismatch(self):
        """Gradient with the wrong element count is rejected."""
        flatten = Flatten()
        flatten.forward(np.ones((2, 2, 2)))

        with pytest.raises(ValueError):
            flatten.backward(np.ones((1, 7)))


class TestLayerRegistry:
    """Tests for rebuilding layers by name."""

    def test_known_names(self):
        """Names are case-insensitive."""
        dense = layer_from_dict('FCLayer', make_dense().to_dict())
        act = layer_from_dict('activationlayer', {'activation': 'Tanh', 'shape': [2, 3]})
        pool = layer_from_dict('MAXPOOLINGLAYER', {'kernel_size': 3})
        flatten = layer_from_dict('FlattenLayer', {})

        assert dense.name == 'FCLayer'
        assert act.name == 'ActivationLayer'
        assert pool.kernel_size == 3
        assert isinstance(flatten, Flatten)

    def test_text_state(self):
        """States stored as JSON text rebuild the same layer."""
        dense = make_dense()
        text = dense.to_string()

        assert isinstance(text, str)
        restored = layer_from_dict('FCLayer', text)
        np.testing.assert_array_equal(restored.params['weights'], dense.params['weights'])
        np.testing.assert_array_equal(restored.params['bias'], dense.params['bias'])

        act = layer_from_dict('ActivationLayer', '{"activation":"Tanh","shape":[2,3]}')
        assert act.to_string() == '{"activation": "Tanh", "shape": [2, 3]}'

    def test_unknown_name(self):
        """Unknown layer names fail with the name in the message."""
        with pytest.raises(ValueError, match="unknown layer 'Unknown'"):
            layer_from_dict('Unknown', {})


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
