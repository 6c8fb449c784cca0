#!/usr/bin/env python3
"""
Unit tests for Net: construction checks, cropping, affine coalescing, and
conversion from torch nn.Sequential models.
"""

import unittest

import numpy as np
import torch
import torch.nn as nn

from nnsynth.back_end.coords import ImageCoordinates
from nnsynth.back_end.core import DimensionMismatchError, SynthState, VarSpace
from nnsynth.back_end.layers import DenseLayer, FusedLayer, LayerKind, ReLULayer
from nnsynth.back_end.net import CropTransform, Net
from nnsynth.back_end.net_factory import from_torch_sequential
from nnsynth.back_end.num import NumTerm

from test_configs import conv_pool_model, relu_net


def symbolic_outputs(net, x):
    instr = net.instrument(x)
    space = VarSpace(len(x))
    state = SynthState(space, instr, x)
    outputs = net.evaluate_symbolic(state, space.fresh_variables(len(x)))
    return np.array([t.evaluate(x) for t in outputs]), state


class TestNetConstruction(unittest.TestCase):

    def test_layer_sizes_must_chain(self):
        with self.assertRaises(DimensionMismatchError):
            Net([DenseLayer(0, np.eye(3), np.zeros(3)), DenseLayer(1, np.eye(2), np.zeros(2))])

    def test_crop_must_match_first_layer(self):
        crop = CropTransform(ImageCoordinates(1, 4, 4), 2)
        with self.assertRaises(DimensionMismatchError):
            Net([DenseLayer(0, np.eye(3), np.zeros(3))], crop)

    def test_empty_rejected(self):
        with self.assertRaises(ValueError):
            Net([])

    def test_dimensions(self):
        crop = CropTransform(ImageCoordinates(1, 4, 4), 2)
        net = Net([DenseLayer(0, np.ones((3, 4)), np.zeros(3))], crop)
        self.assertEqual(net.input_dim_pre_crop, 16)
        self.assertEqual(net.input_dim_post_crop, 4)
        self.assertEqual(net.output_dim, 3)
        self.assertEqual(len(net), 1)


class TestCropTransform(unittest.TestCase):

    def setUp(self):
        np.random.seed(0)
        self.coords = ImageCoordinates(2, 4, 4)
        self.crop = CropTransform(self.coords, 2)

    def test_center_region(self):
        self.assertEqual((self.crop.top, self.crop.left), (1, 1))
        np.testing.assert_array_equal(self.crop.index_map[:4], [5, 6, 9, 10])
        np.testing.assert_array_equal(self.crop.index_map[4:], [21, 22, 25, 26])

    def test_uncrop_restores_original(self):
        x = np.random.rand(self.coords.size)
        np.testing.assert_array_equal(self.crop.untransform(x, self.crop.transform_concrete(x)), x)

    def test_uncrop_writes_only_crop_region(self):
        x = np.random.rand(self.coords.size)
        patched = self.crop.untransform(x, np.zeros(8))
        self.assertEqual(int(np.count_nonzero(patched != x)), 8)
        np.testing.assert_array_equal(patched[self.crop.index_map], np.zeros(8))

    def test_symbolic_transform(self):
        space = VarSpace(self.coords.size)
        terms = space.fresh_variables(self.coords.size)
        out = self.crop.transform(NumTerm(space), terms)
        x = np.random.rand(self.coords.size)
        np.testing.assert_allclose([t.evaluate(x) for t in out], self.crop.transform_concrete(x))

    def test_crop_too_large(self):
        with self.assertRaises(DimensionMismatchError):
            CropTransform(self.coords, 5)


class TestNetEvaluation(unittest.TestCase):

    def setUp(self):
        np.random.seed(2)

    def test_symbolic_replay_matches_concrete(self):
        net = Net([
            DenseLayer(0, np.random.randn(5, 4), np.random.randn(5)),
            ReLULayer(1, 5),
            DenseLayer(2, np.random.randn(3, 5), np.random.randn(3)),
        ])
        x = np.random.randn(4)
        values, state = symbolic_outputs(net, x)
        np.testing.assert_allclose(values, net.evaluate_concrete(x))
        self.assertEqual(len(state.current) + len(state.deferred), 5)

    def test_coalesce_affine(self):
        net = Net([
            DenseLayer(0, np.random.randn(4, 3), np.random.randn(4)),
            DenseLayer(1, np.random.randn(4, 4), np.random.randn(4)),
            ReLULayer(2, 4),
            DenseLayer(3, np.random.randn(2, 4), np.random.randn(2)),
        ])
        fused = net.coalesce_affine()
        self.assertEqual([L.kind for L in fused.layers],
                         [LayerKind.FUSED, LayerKind.RELU, LayerKind.DENSE])
        self.assertIsInstance(fused.layers[0], FusedLayer)
        x = np.random.randn(3)
        np.testing.assert_allclose(fused.evaluate_concrete(x), net.evaluate_concrete(x))
        np.testing.assert_allclose(symbolic_outputs(fused, x)[0], net.evaluate_concrete(x))

    def test_wrong_input_size(self):
        with self.assertRaises(DimensionMismatchError):
            relu_net().evaluate_concrete(np.zeros(3))


class TestFromTorchSequential(unittest.TestCase):

    def setUp(self):
        torch.manual_seed(42)
        np.random.seed(42)

    def _torch_out(self, model, x, shape):
        with torch.no_grad():
            return model(torch.from_numpy(x).view(1, *shape)).reshape(-1).numpy()

    def test_conv_relu_maxpool_linear(self):
        model = conv_pool_model().double().eval()
        net = from_torch_sequential(model, (1, 5, 5))
        self.assertEqual([L.kind for L in net.layers],
                         [LayerKind.CONV2D, LayerKind.RELU, LayerKind.MAXPOOL2D, LayerKind.DENSE])
        x = np.random.randn(25)
        expected = self._torch_out(model, x, (1, 5, 5))
        np.testing.assert_allclose(net.evaluate_concrete(x), expected, atol=1e-10)
        np.testing.assert_allclose(symbolic_outputs(net, x)[0], expected, atol=1e-10)

    def test_avgpool_and_crop(self):
        model = nn.Sequential(
            nn.AvgPool2d(2, stride=2),
            nn.Flatten(),
            nn.Linear(2 * 2 * 2, 2),
        ).double().eval()
        net = from_torch_sequential(model, (2, 6, 6), crop=4)
        x = np.random.randn(72)
        cropped = net.crop_maybe(x)
        expected = self._torch_out(model, cropped, (2, 4, 4))
        np.testing.assert_allclose(net.evaluate_concrete(cropped), expected, atol=1e-10)
        self.assertEqual(net.input_dim_pre_crop, 72)

    def test_padded_avgpool_matches_torch(self):
        for pool in (nn.AvgPool2d(3, stride=2, padding=1),
                     nn.AvgPool2d(3, stride=2, padding=1, ceil_mode=True),
                     nn.AvgPool2d(3, stride=2, padding=1, divisor_override=5)):
            model = nn.Sequential(pool).double().eval()
            net = from_torch_sequential(model, (1, 6, 6))
            x = np.random.randn(36)
            expected = self._torch_out(model, x, (1, 6, 6))
            np.testing.assert_allclose(net.evaluate_concrete(x), expected, atol=1e-10)
            np.testing.assert_allclose(symbolic_outputs(net, x)[0], expected, atol=1e-10)

    def test_legacy_avgpool_divisor(self):
        model = nn.Sequential(nn.AvgPool2d(2, stride=2)).double().eval()
        net = from_torch_sequential(model, (1, 2, 2), avgpool_legacy_divisor=True)
        np.testing.assert_allclose(net.evaluate_concrete(np.array([1.0, 2.0, 3.0, 4.0])), [2.0])

    def test_conv_padding_mode(self):
        for mode in ("reflect", "replicate", "circular"):
            model = nn.Sequential(nn.Conv2d(1, 1, 3, padding=1, padding_mode=mode))
            with self.assertRaises(NotImplementedError):
                from_torch_sequential(model, (1, 4, 4))

    def test_scale_prepends_data_layer(self):
        model = nn.Sequential(nn.Flatten(), nn.Linear(4, 2)).double()
        net = from_torch_sequential(model, (1, 2, 2), scale=1.0 / 255)
        self.assertEqual(net.layers[0].kind, LayerKind.DATA)
        x = np.random.rand(4) * 255
        expected = self._torch_out(model, x / 255, (1, 2, 2))
        np.testing.assert_allclose(net.evaluate_concrete(x), expected, atol=1e-10)

    def test_unsupported_module(self):
        with self.assertRaises(NotImplementedError):
            from_torch_sequential(nn.Sequential(nn.Linear(2, 2), nn.Sigmoid()))

    def test_conv_needs_shape(self):
        with self.assertRaises(ValueError):
            from_torch_sequential(nn.Sequential(nn.Conv2d(1, 1, 3)))


if __name__ == '__main__':
    unittest.main()
