#===- nnsynth/back_end/net.py - Network and Crop Transform --------------====#
# NNSynth: Neural Network Counterexample Synthesizer
# Copyright (C) 2025– NNSynth Team
#
# Licensed under the GNU Affero General Public License v3.0 or later (AGPLv3+).
# Distributed without any warranty; see <http://www.gnu.org/licenses/>.
#===---------------------------------------------------------------------===#
#
# Purpose:
#   Ordered layer sequence with an optional center crop in front of it.
#   Drives end-to-end concrete (optionally instrumented) and symbolic
#   evaluation, and fuses runs of affine layers.
#
#===---------------------------------------------------------------------===#

from __future__ import annotations

import logging
import time
from typing import List, Optional

import numpy as np

from nnsynth.back_end.coords import ImageCoordinates
from nnsynth.back_end.core import (DimensionMismatchError, LinTerm,
                                   NetInstrumentation, SynthState)
from nnsynth.back_end.layers import FusedLayer, Layer
from nnsynth.back_end.num import Num

logger = logging.getLogger(__name__)


class CropTransform:
    """Center crop of every channel to ``crop_size`` x ``crop_size``."""

    def __init__(self, input_coords: ImageCoordinates, crop_size: int):
        if crop_size <= 0 or crop_size > input_coords.rows or crop_size > input_coords.cols:
            raise DimensionMismatchError(
                f"Crop size {crop_size} does not fit a {input_coords.rows}x{input_coords.cols} image")
        self.input_coords = input_coords
        self.crop_size = crop_size
        self.output_coords = ImageCoordinates(input_coords.channels, crop_size, crop_size)
        self.top = input_coords.rows // 2 - crop_size // 2
        self.left = input_coords.cols // 2 - crop_size // 2
        oc = self.output_coords
        self.index_map = np.array(
            [input_coords.get_index(c, self.top + r, self.left + k)
             for c in range(oc.channels) for r in range(oc.rows) for k in range(oc.cols)],
            dtype=np.int64)

    @property
    def input_dim(self) -> int:
        return self.input_coords.size

    @property
    def output_dim(self) -> int:
        return self.output_coords.size

    def transform(self, num: Num, x):
        out = num.create_vector(self.output_dim)
        for o, i in enumerate(self.index_map):
            out[o] = num.add(num.const(0.0), x[i])
        return out

    def transform_concrete(self, x: np.ndarray) -> np.ndarray:
        if len(x) != self.input_dim:
            raise DimensionMismatchError(f"Crop expects {self.input_dim} inputs, got {len(x)}")
        return np.asarray(x, dtype=np.float64)[self.index_map]

    def untransform(self, original: np.ndarray, image: np.ndarray) -> np.ndarray:
        """Write a cropped image back over the crop region of ``original``."""
        if len(image) != self.output_dim:
            raise DimensionMismatchError(f"Uncrop expects {self.output_dim} values, got {len(image)}")
        result = np.array(original, dtype=np.float64, copy=True)
        result[self.index_map] = image
        return result


class Net:
    def __init__(self, layers: List[Layer], crop: Optional[CropTransform] = None):
        if not layers:
            raise ValueError("A network needs at least one layer")
        for a, b in zip(layers, layers[1:]):
            if a.output_dim != b.input_dim:
                raise DimensionMismatchError(
                    f"Layer {a.index} outputs {a.output_dim} values but layer {b.index} expects {b.input_dim}")
        if crop is not None and crop.output_dim != layers[0].input_dim:
            raise DimensionMismatchError(
                f"Crop produces {crop.output_dim} values, first layer expects {layers[0].input_dim}")
        self.layers = list(layers)
        self.crop = crop

    @property
    def input_dim_post_crop(self) -> int:
        return self.layers[0].input_dim

    @property
    def input_dim_pre_crop(self) -> int:
        return self.crop.input_dim if self.crop is not None else self.input_dim_post_crop

    @property
    def output_dim(self) -> int:
        return self.layers[-1].output_dim

    @property
    def input_coords(self) -> Optional[ImageCoordinates]:
        if self.crop is not None:
            return self.crop.input_coords
        return self.layers[0].input_coords

    def crop_maybe(self, x: np.ndarray) -> np.ndarray:
        if self.crop is None:
            return np.asarray(x, dtype=np.float64)
        return self.crop.transform_concrete(x)

    def uncrop_maybe(self, original: np.ndarray, x: np.ndarray) -> np.ndarray:
        if self.crop is None:
            return np.array(x, dtype=np.float64, copy=True)
        return self.crop.untransform(original, x)

    def evaluate_concrete(self, x: np.ndarray,
                          instr: Optional[NetInstrumentation] = None) -> np.ndarray:
        """Run a post-crop input through every layer, recording branch choices into ``instr``."""
        x = np.asarray(x, dtype=np.float64)
        for L in self.layers:
            y = L.evaluate_concrete(x)
            if instr is not None:
                L.instrument(instr, x, y)
            x = y
        return x

    def instrument(self, x: np.ndarray) -> NetInstrumentation:
        instr = NetInstrumentation()
        self.evaluate_concrete(x, instr)
        return instr

    def evaluate_symbolic(self, state: SynthState, inputs: List[LinTerm]) -> List[LinTerm]:
        x = inputs
        for L in self.layers:
            t0 = time.perf_counter()
            x = L.evaluate_symbolic(state, x)
            logger.debug("Symbolic layer %d (%s): %.3fs, %d current / %d deferred constraints",
                         L.index, L.kind.value, time.perf_counter() - t0,
                         len(state.current), len(state.deferred))
        return x

    def coalesce_affine(self) -> "Net":
        """Fuse each run of two or more consecutive affine layers."""
        fused: List[Layer] = []
        run: List[Layer] = []

        def flush():
            if len(run) > 1:
                fused.append(FusedLayer(run))
            else:
                fused.extend(run)
            run.clear()

        for L in self.layers:
            if L.is_affine():
                run.append(L)
            else:
                flush()
                fused.append(L)
        flush()
        return Net(fused, self.crop)

    def __len__(self) -> int:
        return len(self.layers)

    def __repr__(self) -> str:
        kinds = ", ".join(L.kind.value for L in self.layers)
        return f"Net([{kinds}], crop={self.crop.crop_size if self.crop else None})"
