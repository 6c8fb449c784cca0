#===- nnsynth/back_end/formulas.py - Robustness Formulas ----------------====#
# NNSynth: Neural Network Counterexample Synthesizer
# Copyright (C) 2025– NNSynth Team
#
# Licensed under the GNU Affero General Public License v3.0 or later (AGPLv3+).
# Distributed without any warranty; see <http://www.gnu.org/licenses/>.
#===---------------------------------------------------------------------===#
#
# Purpose:
#   Constraint builders over symbolic inputs and outputs: winning label,
#   origin bounds, epsilon ball, quantization safety, and the objectives.
#
#===---------------------------------------------------------------------===#

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence

import numpy as np

from nnsynth.back_end.core import ConSet, Ineq, LinTerm


class ObjectiveKind:
    MIN_LINF = "min-linf"
    MAX_CONF = "max-conf"


class ObjSense:
    MIN = "min"
    MAX = "max"


@dataclass
class Objective:
    term: LinTerm
    sense: str


def label_formula(outputs: List[LinTerm], label: int, confidence: float = 0.0) -> ConSet:
    """``outputs[label]`` beats every other output by at least ``confidence``."""
    cs = ConSet()
    for i, out in enumerate(outputs):
        if i == label:
            continue
        term = outputs[label] - out
        term.add_scalar_(-confidence)
        cs.add_term(term, Ineq.GE)
    return cs


def clipped_bounds(origin: np.ndarray, bound: float, min_value: float, max_value: float):
    """Per-coordinate ``origin -/+ bound`` clipped to ``[min_value, max_value]``.

    Coordinates whose clipped interval is empty keep the unclipped one.
    """
    origin = np.asarray(origin, dtype=np.float64)
    lo = np.maximum(min_value, origin - bound)
    hi = np.minimum(max_value, origin + bound)
    empty = lo > hi
    lo[empty] = origin[empty] - bound
    hi[empty] = origin[empty] + bound
    return lo, hi


def origin_bound_formula(inputs: List[LinTerm], origin: Sequence[float], bound: float,
                         min_value: float, max_value: float) -> ConSet:
    lo, hi = clipped_bounds(origin, bound, min_value, max_value)
    cs = ConSet()
    for x, l, h in zip(inputs, lo, hi):
        cs.add_term(x - l, Ineq.GE)
        cs.add_term(x - h, Ineq.LE)
    return cs


def epsilon_bounds(inputs: List[LinTerm], origin: Sequence[float], eps: LinTerm,
                   eps_max: float) -> ConSet:
    """Keep every input within ``eps`` of ``origin``, with ``0 < eps <= eps_max``."""
    cs = ConSet()
    for x, o in zip(inputs, origin):
        # origin - eps <= x
        cs.add_term(x + eps - float(o), Ineq.GE)
        # x <= origin + eps
        cs.add_term(x - eps - float(o), Ineq.LE)
    cs.add_term(eps.copy(), Ineq.GT)
    cs.add_term(eps - eps_max, Ineq.LE)
    return cs


def quantization_safety(inputs: List[LinTerm], origin: Sequence[float],
                        rng: np.random.Generator, step: float = 1.0) -> ConSet:
    """Force one randomly chosen input at least ``step`` above its origin value."""
    i = int(rng.integers(0, len(inputs)))
    cs = ConSet()
    cs.add_term(inputs[i] - (float(origin[i]) + step), Ineq.GE)
    return cs


def min_linf_objective(eps: LinTerm) -> Objective:
    return Objective(eps.copy(), ObjSense.MIN)


def max_conf_objective(outputs: List[LinTerm], orig_label: int, new_label: int) -> Objective:
    return Objective(outputs[new_label] - outputs[orig_label], ObjSense.MAX)


def build_objective(kind: str, eps: LinTerm, outputs: List[LinTerm],
                    orig_label: int, new_label: int) -> Objective:
    if kind == ObjectiveKind.MIN_LINF:
        return min_linf_objective(eps)
    if kind == ObjectiveKind.MAX_CONF:
        return max_conf_objective(outputs, orig_label, new_label)
    raise ValueError(f"Unknown objective kind: {kind}")
