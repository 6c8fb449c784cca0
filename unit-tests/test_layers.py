#!/usr/bin/env python3
"""
Unit tests for affine layers: concrete evaluation against torch references,
and agreement between concrete and symbolic evaluation at sample points.
"""

import unittest

import numpy as np
import torch
import torch.nn.functional as F

from nnsynth.back_end.coords import ImageCoordinates
from nnsynth.back_end.core import (DimensionMismatchError, NetInstrumentation,
                                   SynthState, VarSpace)
from nnsynth.back_end.layers import (AvgPoolLayer, ConvLayer, DataLayer, DenseLayer,
                                     FusedLayer, ReLULayer)


def symbolic_at(layer, point):
    """Evaluate ``layer`` symbolically over fresh variables and read the terms at ``point``."""
    space = VarSpace(len(point))
    state = SynthState(space, NetInstrumentation(), np.asarray(point))
    terms = layer.evaluate_symbolic(state, space.fresh_variables(len(point)))
    return np.array([t.evaluate(point) for t in terms])


class TestDataLayer(unittest.TestCase):

    def setUp(self):
        np.random.seed(0)
        self.coords = ImageCoordinates(2, 1, 2)

    def test_per_channel_mean_and_scale(self):
        layer = DataLayer(0, 4, scale=0.5, mean_channel=[1.0, 2.0], input_coords=self.coords)
        x = np.array([3.0, 5.0, 2.0, 6.0])
        np.testing.assert_allclose(layer.evaluate_concrete(x), [1.0, 2.0, 0.0, 2.0])
        np.testing.assert_allclose(symbolic_at(layer, x), layer.evaluate_concrete(x))

    def test_mean_image(self):
        layer = DataLayer(0, 4, scale=2.0, mean_image=[1.0, 1.0, 1.0, 1.0])
        x = np.random.rand(4)
        np.testing.assert_allclose(layer.evaluate_concrete(x), (x - 1.0) * 2.0)

    def test_both_means_rejected(self):
        with self.assertRaises(ValueError):
            DataLayer(0, 4, mean_image=np.zeros(4), mean_channel=[0.0], input_coords=self.coords)

    def test_mean_image_size_checked(self):
        with self.assertRaises(DimensionMismatchError):
            DataLayer(0, 4, mean_image=np.zeros(3))


class TestDenseLayer(unittest.TestCase):

    def setUp(self):
        np.random.seed(1)
        self.W = np.random.randn(3, 5)
        self.b = np.random.randn(3)
        self.layer = DenseLayer(0, self.W, self.b)

    def test_concrete(self):
        x = np.random.randn(5)
        np.testing.assert_allclose(self.layer.evaluate_concrete(x), self.W @ x + self.b)

    def test_symbolic_matches_concrete(self):
        x = np.random.randn(5)
        np.testing.assert_allclose(symbolic_at(self.layer, x), self.layer.evaluate_concrete(x))

    def test_wrong_input_size(self):
        with self.assertRaises(DimensionMismatchError):
            self.layer.evaluate_concrete(np.zeros(4))

    def test_bias_size_checked(self):
        with self.assertRaises(DimensionMismatchError):
            DenseLayer(0, self.W, np.zeros(2))


class TestConvLayer(unittest.TestCase):

    def setUp(self):
        torch.manual_seed(42)
        np.random.seed(42)

    def _reference(self, coords, kernels, bias, x, padding, stride):
        img = torch.from_numpy(x).view(1, coords.channels, coords.rows, coords.cols)
        out = F.conv2d(img, torch.from_numpy(kernels), torch.from_numpy(bias),
                       stride=stride, padding=padding)
        return out.reshape(-1).numpy()

    def _check(self, coords, n_kernels, k, padding, stride, workers=1):
        kernels = np.random.randn(n_kernels, coords.channels, k, k)
        bias = np.random.randn(n_kernels)
        layer = ConvLayer(0, coords, kernels, bias, k, padding=padding, stride=stride, workers=workers)
        x = np.random.randn(coords.size)
        expected = self._reference(coords, kernels, bias, x, padding, stride)
        np.testing.assert_allclose(layer.evaluate_concrete(x), expected, atol=1e-10)
        np.testing.assert_allclose(symbolic_at(layer, x), expected, atol=1e-10)

    def test_valid_convolution(self):
        self._check(ImageCoordinates(2, 5, 5), 3, 3, padding=0, stride=1)

    def test_padding_and_stride(self):
        self._check(ImageCoordinates(1, 5, 5), 2, 3, padding=1, stride=2)
        self._check(ImageCoordinates(3, 6, 6), 2, 3, padding=1, stride=2)

    def test_parallel_kernels(self):
        self._check(ImageCoordinates(2, 4, 4), 4, 3, padding=1, stride=1, workers=2)

    def test_identity_1x1_kernel(self):
        """A single 1x1 identity kernel reproduces a 2x2 image in both modes."""
        layer = ConvLayer(0, ImageCoordinates(1, 2, 2), [[1.0]], [0.0], 1)
        x = np.array([3.0, -1.0, 0.5, 7.0])
        np.testing.assert_array_equal(layer.evaluate_concrete(x), x)
        np.testing.assert_array_equal(symbolic_at(layer, x), x)
        self.assertEqual(layer.output_coords, ImageCoordinates(1, 2, 2))

    def test_repeated_concrete_calls_reuse_buffer(self):
        coords = ImageCoordinates(1, 3, 3)
        layer = ConvLayer(0, coords, np.ones((1, 1, 2, 2)), [0.0], 2)
        first = layer.evaluate_concrete(np.ones(9))
        second = layer.evaluate_concrete(np.zeros(9))
        np.testing.assert_allclose(first, [4.0, 4.0, 4.0, 4.0])
        np.testing.assert_allclose(second, [0.0, 0.0, 0.0, 0.0])

    def test_kernel_shape_checked(self):
        with self.assertRaises(DimensionMismatchError):
            ConvLayer(0, ImageCoordinates(2, 4, 4), np.zeros((1, 9)), [0.0], 3)


class TestAvgPoolLayer(unittest.TestCase):

    def setUp(self):
        np.random.seed(3)

    def test_legacy_divisor(self):
        """The legacy divisor is one more than the number of summed cells."""
        coords = ImageCoordinates(1, 2, 2)
        x = np.array([1.0, 2.0, 3.0, 4.0])
        legacy = AvgPoolLayer(0, coords, 2, 2, legacy_divisor=True)
        plain = AvgPoolLayer(0, coords, 2, 2, legacy_divisor=False)
        np.testing.assert_allclose(legacy.evaluate_concrete(x), [2.0])
        np.testing.assert_allclose(plain.evaluate_concrete(x), [2.5])

    def test_matches_torch_without_padding_counts(self):
        coords = ImageCoordinates(2, 4, 4)
        layer = AvgPoolLayer(0, coords, 3, 2, padding=1, ceil_mode=False, legacy_divisor=False)
        x = np.random.randn(coords.size)
        ref = F.avg_pool2d(torch.from_numpy(x).view(1, 2, 4, 4), 3, stride=2, padding=1,
                           ceil_mode=False, count_include_pad=False).reshape(-1).numpy()
        np.testing.assert_allclose(layer.evaluate_concrete(x), ref)
        np.testing.assert_allclose(symbolic_at(layer, x), ref)

    def test_matches_torch_counting_padding(self):
        coords = ImageCoordinates(2, 6, 6)
        x = np.random.randn(coords.size)
        for ceil_mode in (False, True):
            layer = AvgPoolLayer(0, coords, 3, 2, padding=1, ceil_mode=ceil_mode,
                                 legacy_divisor=False, count_include_pad=True)
            ref = F.avg_pool2d(torch.from_numpy(x).view(1, 2, 6, 6), 3, stride=2, padding=1,
                               ceil_mode=ceil_mode).reshape(-1).numpy()
            np.testing.assert_allclose(layer.evaluate_concrete(x), ref)
            np.testing.assert_allclose(symbolic_at(layer, x), ref)

    def test_divisor_override(self):
        layer = AvgPoolLayer(0, ImageCoordinates(1, 2, 2), 2, 2, divisor_override=8)
        np.testing.assert_allclose(layer.evaluate_concrete(np.array([1.0, 2.0, 3.0, 4.0])), [1.25])
        with self.assertRaises(ValueError):
            AvgPoolLayer(0, ImageCoordinates(1, 2, 2), 2, 2, divisor_override=0)

    def test_padding_windows_stay_in_bounds(self):
        layer = AvgPoolLayer(0, ImageCoordinates(1, 3, 3), 2, 2, padding=1)
        for win in layer.windows:
            self.assertTrue(all(0 <= i < 9 for i in win))
        self.assertEqual(layer.windows[0], [0])


class TestFusedLayer(unittest.TestCase):

    def setUp(self):
        np.random.seed(4)
        self.a = DenseLayer(0, np.random.randn(4, 3), np.random.randn(4))
        self.b = DenseLayer(1, np.random.randn(2, 4), np.random.randn(2))

    def test_equivalent_to_members(self):
        fused = FusedLayer([self.a, self.b])
        x = np.random.randn(3)
        expected = self.b.evaluate_concrete(self.a.evaluate_concrete(x))
        np.testing.assert_allclose(fused.evaluate_concrete(x), expected)
        np.testing.assert_allclose(symbolic_at(fused, x), expected)
        self.assertEqual((fused.index, fused.input_dim, fused.output_dim), (0, 3, 2))

    def test_rejects_non_affine(self):
        with self.assertRaises(ValueError):
            FusedLayer([self.a, ReLULayer(1, 4)])

    def test_rejects_mismatched_sizes(self):
        with self.assertRaises(DimensionMismatchError):
            FusedLayer([self.b, self.a])


if __name__ == '__main__':
    unittest.main()
