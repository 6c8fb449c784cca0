#===- nnsynth/back_end/net_factory.py - Torch to NNSynth Converter ------====#
# NNSynth: Neural Network Counterexample Synthesizer
# Copyright (C) 2025– NNSynth Team
#
# Licensed under the GNU Affero General Public License v3.0 or later (AGPLv3+).
# Distributed without any warranty; see <http://www.gnu.org/licenses/>.
#===---------------------------------------------------------------------===#
#
# Purpose:
#   Builds a Net from a torch nn.Sequential classifier.
#
#===---------------------------------------------------------------------===#

# Mapping:
#   nn.Linear     -> DenseLayer
#   nn.Conv2d     -> ConvLayer       (square kernel and stride, no dilation, one group)
#   nn.MaxPool2d  -> MaxPoolLayer
#   nn.AvgPool2d  -> AvgPoolLayer
#   nn.ReLU       -> ReLULayer
#   nn.Flatten    -> (nothing; vectors are already flat in channel, row, col order)

from __future__ import annotations

import logging
from typing import List, Optional, Tuple

import torch.nn as nn

from nnsynth.back_end.coords import ImageCoordinates
from nnsynth.back_end.layers import (AvgPoolLayer, ConvLayer, DataLayer, DenseLayer,
                                     Layer, MaxPoolLayer, ReLULayer)
from nnsynth.back_end.net import CropTransform, Net

logger = logging.getLogger(__name__)


def _square(value, what: str) -> int:
    if isinstance(value, (tuple, list)):
        if len(set(value)) != 1:
            raise NotImplementedError(f"Only square {what} are supported, got {value}")
        return int(value[0])
    return int(value)


def from_torch_sequential(model: nn.Sequential,
                          input_shape: Optional[Tuple[int, int, int]] = None,
                          crop: Optional[int] = None,
                          scale: Optional[float] = None,
                          threads: int = 1,
                          avgpool_legacy_divisor: bool = False) -> Net:
    """Translate ``model`` layer by layer.

    ``input_shape`` (channels, rows, cols) describes one pre-crop input and
    is required when the model contains spatial layers. With ``scale`` a
    leading DataLayer multiplies every input by it.
    """
    crop_t = None
    coords = ImageCoordinates(*input_shape) if input_shape is not None else None
    if crop is not None:
        if coords is None:
            raise ValueError("Cropping needs an input shape")
        crop_t = CropTransform(coords, crop)
        coords = crop_t.output_coords

    layers: List[Layer] = []
    dim = coords.size if coords is not None else None

    if scale is not None:
        if dim is None:
            raise ValueError("A leading scale needs an input shape")
        layers.append(DataLayer(len(layers), dim, scale=scale, input_coords=coords))

    for module in model:
        idx = len(layers)
        if isinstance(module, nn.Linear):
            W = module.weight.detach().cpu().double().numpy()
            b = (module.bias.detach().cpu().double().numpy() if module.bias is not None
                 else [0.0] * W.shape[0])
            layers.append(DenseLayer(idx, W, b, input_coords=coords))
            coords, dim = None, W.shape[0]
        elif isinstance(module, nn.Conv2d):
            if coords is None:
                raise ValueError("Conv2d needs spatial input coordinates")
            if _square(module.dilation, "dilations") != 1 or module.groups != 1:
                raise NotImplementedError("Dilated or grouped convolutions are not supported")
            if module.padding_mode != "zeros":
                raise NotImplementedError(f"Padding mode '{module.padding_mode}' is not supported")
            if isinstance(module.padding, str):
                raise NotImplementedError(f"Padding mode '{module.padding}' is not supported")
            W = module.weight.detach().cpu().double().numpy()
            b = (module.bias.detach().cpu().double().numpy() if module.bias is not None
                 else [0.0] * W.shape[0])
            L = ConvLayer(idx, coords, W, b, _square(module.kernel_size, "kernels"),
                          padding=_square(module.padding, "paddings"),
                          stride=_square(module.stride, "strides"), workers=threads)
            layers.append(L)
            coords, dim = L.output_coords, L.output_dim
        elif isinstance(module, (nn.MaxPool2d, nn.AvgPool2d)):
            if coords is None:
                raise ValueError(f"{module.__class__.__name__} needs spatial input coordinates")
            k = _square(module.kernel_size, "kernels")
            stride = _square(module.stride if module.stride is not None else k, "strides")
            pad = _square(module.padding, "paddings")
            if isinstance(module, nn.MaxPool2d):
                if _square(module.dilation, "dilations") != 1:
                    raise NotImplementedError("Dilated pooling is not supported")
                L = MaxPoolLayer(idx, coords, k, stride, pad, ceil_mode=module.ceil_mode)
            elif avgpool_legacy_divisor:
                logger.warning("AvgPool2d at layer %d uses the legacy divisor, not torch's", idx)
                L = AvgPoolLayer(idx, coords, k, stride, pad, ceil_mode=module.ceil_mode,
                                 legacy_divisor=True)
            else:
                L = AvgPoolLayer(idx, coords, k, stride, pad, ceil_mode=module.ceil_mode,
                                 legacy_divisor=False,
                                 count_include_pad=module.count_include_pad,
                                 divisor_override=module.divisor_override)
            layers.append(L)
            coords, dim = L.output_coords, L.output_dim
        elif isinstance(module, nn.ReLU):
            if dim is None:
                raise ValueError("ReLU before any layer with a known size")
            layers.append(ReLULayer(idx, dim, coords))
        elif isinstance(module, nn.Flatten):
            coords = None
        elif isinstance(module, nn.Identity):
            continue
        else:
            raise NotImplementedError(f"Unsupported module: {module.__class__.__name__}")

    logger.debug("Converted %d torch modules into %d layers", len(model), len(layers))
    return Net(layers, crop_t)
