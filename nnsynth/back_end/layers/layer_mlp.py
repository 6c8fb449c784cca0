#===- nnsynth/back_end/layers/layer_mlp.py - Vector Layers --------------====#
# NNSynth: Neural Network Counterexample Synthesizer
# Copyright (C) 2025– NNSynth Team
#
# Licensed under the GNU Affero General Public License v3.0 or later (AGPLv3+).
# Distributed without any warranty; see <http://www.gnu.org/licenses/>.
#===---------------------------------------------------------------------===#
#
# Purpose:
#   Element-wise and dense layers: input normalization, fully-connected
#   and rectified-linear units with replayable activation choices.
#
#===---------------------------------------------------------------------===#

from __future__ import annotations

import threading
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from nnsynth.back_end.coords import ImageCoordinates
from nnsynth.back_end.core import (ActivationChoice, Con, DimensionMismatchError,
                                   Ineq, LayerInstrumentation, LinTerm,
                                   NetInstrumentation, SynthState)
from nnsynth.back_end.layers.base import Layer, LayerKind
from nnsynth.back_end.num import Num


class DataLayer(Layer):
    """Input normalization ``(x - mean) * scale``.

    At most one of ``mean_image`` (one mean per input) and ``mean_channel``
    (one mean per channel, repeated cyclically when shorter than the channel
    count) may be given; with neither the layer only scales.
    """

    kind = LayerKind.DATA

    def __init__(self, index: int, input_dim: int, scale: float = 1.0,
                 mean_image: Optional[Sequence[float]] = None,
                 mean_channel: Optional[Sequence[float]] = None,
                 input_coords: Optional[ImageCoordinates] = None):
        super().__init__(index, input_dim, input_dim, input_coords, input_coords)
        if mean_image is not None and mean_channel is not None:
            raise ValueError("DataLayer takes a mean image or a per-channel mean, not both")
        self.scale = float(scale)
        self.mean_image = None
        self.mean_channel = None
        if mean_image is not None:
            mean_image = np.asarray(mean_image, dtype=np.float64).reshape(-1)
            if mean_image.shape[0] != input_dim:
                raise DimensionMismatchError(
                    f"Mean image has {mean_image.shape[0]} entries, layer has {input_dim} inputs")
            self.mean_image = mean_image
        elif mean_channel is not None:
            if input_coords is None:
                raise ValueError("A per-channel mean needs input coordinates")
            given = list(mean_channel)
            self.mean_channel = np.array(
                [given[c % len(given)] for c in range(input_coords.channels)], dtype=np.float64)
        self._mean = self._expand_mean()

    def _expand_mean(self) -> np.ndarray:
        if self.mean_image is not None:
            return self.mean_image
        if self.mean_channel is not None:
            coords = self.input_coords
            return np.repeat(self.mean_channel, coords.rows * coords.cols)
        return np.zeros(self.input_dim, dtype=np.float64)

    def forward(self, num: Num, x, state):
        out = num.create_vector(self.output_dim)
        for i in range(self.input_dim):
            acc = num.const(-self._mean[i])
            acc = num.add(acc, x[i])
            out[i] = num.mul(acc, self.scale)
        return out

    def evaluate_concrete(self, x: np.ndarray) -> np.ndarray:
        self.check_input(x)
        return (np.asarray(x, dtype=np.float64) - self._mean) * self.scale


class DenseLayer(Layer):
    """Fully-connected layer ``W @ x + b`` with ``W`` of shape (out, in)."""

    kind = LayerKind.DENSE

    def __init__(self, index: int, weights, bias,
                 input_coords: Optional[ImageCoordinates] = None):
        weights = np.asarray(weights, dtype=np.float64)
        bias = np.asarray(bias, dtype=np.float64).reshape(-1)
        if weights.ndim != 2 or weights.shape[0] != bias.shape[0]:
            raise DimensionMismatchError(
                f"Dense weights {weights.shape} do not match bias {bias.shape}")
        super().__init__(index, weights.shape[1], weights.shape[0], input_coords, None)
        self.weights = weights
        self.bias = bias

    def forward(self, num: Num, x, state):
        out = num.create_vector(self.output_dim)
        for i in range(self.output_dim):
            acc = num.const(self.bias[i])
            row = self.weights[i]
            for j in np.flatnonzero(row):
                acc = num.add_mul(acc, x[j], row[j])
            out[i] = acc
        return out

    def evaluate_concrete(self, x: np.ndarray) -> np.ndarray:
        self.check_input(x)
        return self.weights @ np.asarray(x, dtype=np.float64) + self.bias


class ActivationPatternLog:
    """Counts ReLU activation patterns seen more than once per layer."""

    def __init__(self):
        self._seen: Dict[Tuple[int, bytes], int] = {}
        self._lock = threading.Lock()
        self.collisions = 0

    def record(self, layer_index: int, active: np.ndarray) -> None:
        key = (layer_index, np.packbits(active).tobytes())
        with self._lock:
            if key in self._seen:
                self.collisions += 1
                self._seen[key] += 1
            else:
                self._seen[key] = 1

    def distinct_patterns(self, layer_index: Optional[int] = None) -> int:
        with self._lock:
            if layer_index is None:
                return len(self._seen)
            return sum(1 for (idx, _) in self._seen if idx == layer_index)


class ReLULayer(Layer):
    kind = LayerKind.RELU

    def __init__(self, index: int, dim: int,
                 coords: Optional[ImageCoordinates] = None,
                 pattern_log: Optional[ActivationPatternLog] = None):
        super().__init__(index, dim, dim, coords, coords)
        self.pattern_log = pattern_log

    def is_affine(self) -> bool:
        return False

    def evaluate_concrete(self, x: np.ndarray) -> np.ndarray:
        self.check_input(x)
        x = np.asarray(x, dtype=np.float64)
        active = x >= 0
        if self.pattern_log is not None:
            self.pattern_log.record(self.index, active)
        return np.where(active, x, 0.0)

    def instrument(self, instr: NetInstrumentation, x: np.ndarray, y: np.ndarray) -> None:
        rec = LayerInstrumentation.for_relu(self.input_dim)
        rec.choices[:] = np.where(np.asarray(x) >= 0,
                                  int(ActivationChoice.ACTIVE), int(ActivationChoice.INACTIVE))
        instr.record(self.index, rec)

    def evaluate_symbolic(self, state: SynthState, x: List[LinTerm]) -> List[LinTerm]:
        self.check_input(x)
        choices = state.instrumentation.get(self.index).choices
        if choices is None:
            raise ValueError(f"Layer {self.index} has no activation choices recorded")
        out: List[LinTerm] = []
        for i, term in enumerate(x):
            choice = choices[i]
            if choice == ActivationChoice.ACTIVE:
                con = Con(term, Ineq.GE)
                if state.defer_live():
                    state.deferred.add(con)
                else:
                    state.current.add(con)
                out.append(term)
            elif choice == ActivationChoice.INACTIVE:
                state.deferred.add(Con(term, Ineq.LT))
                out.append(state.space.const(0.0))
            else:
                raise ValueError(f"Unresolved activation choice for unit {i} of layer {self.index}")
        return out
