#===- nnsynth/back_end/layers/base.py - Layer Interface -----------------====#
# NNSynth: Neural Network Counterexample Synthesizer
# Copyright (C) 2025– NNSynth Team
#
# Licensed under the GNU Affero General Public License v3.0 or later (AGPLv3+).
# Distributed without any warranty; see <http://www.gnu.org/licenses/>.
#===---------------------------------------------------------------------===#
#
# Purpose:
#   Layer kinds and the common layer interface: concrete evaluation,
#   symbolic evaluation, instrumentation capture and affinity.
#
#===---------------------------------------------------------------------===#

from __future__ import annotations

import enum
from typing import Any, List, Optional

import numpy as np

from nnsynth.back_end.coords import ImageCoordinates
from nnsynth.back_end.core import (DimensionMismatchError, LayerInstrumentation,
                                   LinTerm, NetInstrumentation, SynthState)
from nnsynth.back_end.num import Num, NumDouble, NumTerm


class LayerKind(str, enum.Enum):
    DATA = "DATA"
    DENSE = "DENSE"
    CONV2D = "CONV2D"
    MAXPOOL2D = "MAXPOOL2D"
    AVGPOOL2D = "AVGPOOL2D"
    RELU = "RELU"
    FUSED = "FUSED"


_NUM_DOUBLE = NumDouble()


class Layer:
    """Base class of every network layer.

    Affine layers implement ``forward`` once against the ``Num`` interface
    and inherit both evaluation modes. Layers whose symbolic behaviour
    depends on recorded branch choices override the two ``evaluate_*``
    methods and ``instrument`` instead.
    """

    kind: LayerKind

    def __init__(self, index: int, input_dim: int, output_dim: int,
                 input_coords: Optional[ImageCoordinates] = None,
                 output_coords: Optional[ImageCoordinates] = None):
        if input_coords is not None and input_coords.size != input_dim:
            raise DimensionMismatchError(
                f"{self.__class__.__name__}: input coordinates {input_coords} do not cover {input_dim} inputs")
        if output_coords is not None and output_coords.size != output_dim:
            raise DimensionMismatchError(
                f"{self.__class__.__name__}: output coordinates {output_coords} do not cover {output_dim} outputs")
        self.index = index
        self.input_dim = input_dim
        self.output_dim = output_dim
        self.input_coords = input_coords
        self.output_coords = output_coords

    def forward(self, num: Num, x: Any, state: Optional[SynthState]) -> Any:
        raise NotImplementedError(f"{self.kind} has no shared forward rule")

    def evaluate_concrete(self, x: np.ndarray) -> np.ndarray:
        self.check_input(x)
        return np.asarray(self.forward(_NUM_DOUBLE, x, None), dtype=np.float64)

    def evaluate_symbolic(self, state: SynthState, x: List[LinTerm]) -> List[LinTerm]:
        self.check_input(x)
        return list(self.forward(NumTerm(state.space), x, state))

    def instrument(self, instr: NetInstrumentation, x: np.ndarray, y: np.ndarray) -> None:
        instr.record(self.index, LayerInstrumentation())

    def is_affine(self) -> bool:
        return True

    def check_input(self, x) -> None:
        if len(x) != self.input_dim:
            raise DimensionMismatchError(
                f"Layer {self.index} ({self.kind.value}) expects {self.input_dim} inputs, got {len(x)}")

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(index={self.index}, {self.input_dim} -> {self.output_dim})"
