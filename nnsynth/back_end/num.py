#===- nnsynth/back_end/num.py - Numeric Abstraction ---------------------====#
# NNSynth: Neural Network Counterexample Synthesizer
# Copyright (C) 2025– NNSynth Team
#
# Licensed under the GNU Affero General Public License v3.0 or later (AGPLv3+).
# Distributed without any warranty; see <http://www.gnu.org/licenses/>.
#===---------------------------------------------------------------------===#
#
# Purpose:
#   Scalar operations that let one layer routine run either on floats
#   (concrete evaluation) or on affine terms (symbolic evaluation).
#
#===---------------------------------------------------------------------===#

from __future__ import annotations

from typing import Any, List

import numpy as np

from nnsynth.back_end.core import LinTerm, VarSpace


class Num:
    """Operations a layer routine may use on its scalars.

    Every operation returns the updated accumulator; callers always rebind,
    e.g. ``acc = num.add_mul(acc, x[j], w)``. Accumulators must come from
    ``const`` so that no input element is ever updated.
    """

    def const(self, d: float) -> Any:  # pragma: no cover - abstract
        ...

    def add(self, tgt: Any, src: Any) -> Any:  # pragma: no cover - abstract
        ...

    def add_scalar(self, tgt: Any, d: float) -> Any:  # pragma: no cover - abstract
        ...

    def add_mul(self, tgt: Any, src: Any, d: float) -> Any:  # pragma: no cover - abstract
        ...

    def mul(self, tgt: Any, d: float) -> Any:  # pragma: no cover - abstract
        ...

    def create_vector(self, n: int) -> Any:  # pragma: no cover - abstract
        ...


class NumDouble(Num):
    """Concrete floats; containers are float64 numpy vectors."""

    def const(self, d: float) -> float:
        return float(d)

    def add(self, tgt: float, src: float) -> float:
        return tgt + src

    def add_scalar(self, tgt: float, d: float) -> float:
        return tgt + d

    def add_mul(self, tgt: float, src: float, d: float) -> float:
        return tgt + src * d

    def mul(self, tgt: float, d: float) -> float:
        return tgt * d

    def create_vector(self, n: int) -> np.ndarray:
        return np.zeros(n, dtype=np.float64)


class NumTerm(Num):
    """Affine terms over one variable space; containers are lists of terms."""

    def __init__(self, space: VarSpace):
        self.space = space

    def const(self, d: float) -> LinTerm:
        return self.space.const(d)

    def add(self, tgt: LinTerm, src: LinTerm) -> LinTerm:
        return tgt.add_(src)

    def add_scalar(self, tgt: LinTerm, d: float) -> LinTerm:
        return tgt.add_scalar_(d)

    def add_mul(self, tgt: LinTerm, src: LinTerm, d: float) -> LinTerm:
        return tgt.add_mul_(src, d)

    def mul(self, tgt: LinTerm, d: float) -> LinTerm:
        return tgt.mul_(d)

    def create_vector(self, n: int) -> List[LinTerm]:
        return [self.space.const(0.0) for _ in range(n)]
