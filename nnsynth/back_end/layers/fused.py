#===- nnsynth/back_end/layers/fused.py - Fused Affine Layers ------------====#
# NNSynth: Neural Network Counterexample Synthesizer
# Copyright (C) 2025– NNSynth Team
#
# Licensed under the GNU Affero General Public License v3.0 or later (AGPLv3+).
# Distributed without any warranty; see <http://www.gnu.org/licenses/>.
#===---------------------------------------------------------------------===#
#
# Purpose:
#   A run of consecutive affine layers evaluated as a single layer.
#
#===---------------------------------------------------------------------===#

from __future__ import annotations

from typing import List

import numpy as np

from nnsynth.back_end.core import DimensionMismatchError, LinTerm, SynthState
from nnsynth.back_end.layers.base import Layer, LayerKind


class FusedLayer(Layer):
    kind = LayerKind.FUSED

    def __init__(self, layers: List[Layer]):
        if not layers:
            raise ValueError("FusedLayer needs at least one layer")
        for L in layers:
            if not L.is_affine():
                raise ValueError(f"Layer {L.index} ({L.kind.value}) is not affine and cannot be fused")
        for a, b in zip(layers, layers[1:]):
            if a.output_dim != b.input_dim:
                raise DimensionMismatchError(
                    f"Layer {a.index} outputs {a.output_dim} values, layer {b.index} expects {b.input_dim}")
        first, last = layers[0], layers[-1]
        super().__init__(first.index, first.input_dim, last.output_dim,
                         first.input_coords, last.output_coords)
        self.members = list(layers)

    def evaluate_concrete(self, x: np.ndarray) -> np.ndarray:
        for L in self.members:
            x = L.evaluate_concrete(x)
        return x

    def evaluate_symbolic(self, state: SynthState, x: List[LinTerm]) -> List[LinTerm]:
        for L in self.members:
            x = L.evaluate_symbolic(state, x)
        return x
