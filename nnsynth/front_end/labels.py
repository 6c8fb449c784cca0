#===- nnsynth/front_end/labels.py - Labelling Utilities -----------------====#
# NNSynth: Neural Network Counterexample Synthesizer
# Copyright (C) 2025– NNSynth Team
#
# Licensed under the GNU Affero General Public License v3.0 or later (AGPLv3+).
# Distributed without any warranty; see <http://www.gnu.org/licenses/>.
#===---------------------------------------------------------------------===#
#
# Purpose:
#   Concrete labelling of inputs with softmax confidence, plus the distance
#   measures reported for synthesized counterexamples.
#
#===---------------------------------------------------------------------===#

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from nnsynth.back_end.core import NetInstrumentation
from nnsynth.back_end.net import Net


@dataclass
class LabelWithConfidence:
    datum: np.ndarray
    actual_label: int
    sec_best_label: int
    softmax_value: float
    diff_from_second_best: float


def softmax(outs: np.ndarray) -> np.ndarray:
    outs = np.asarray(outs, dtype=np.float64)
    e = np.exp(outs - (outs.max() - 4.0))
    return e / e.sum()


def max_with_index(v: np.ndarray) -> Tuple[float, int]:
    """Largest entry and its index; the first maximum wins."""
    i = int(np.argmax(v))
    return float(v[i]), i


def max_excluding(v: np.ndarray, exclude: int) -> Tuple[float, int]:
    if len(v) < 2:
        raise ValueError("Second-best label needs at least two outputs")
    best, best_i = -np.inf, -1
    for i, x in enumerate(v):
        if i != exclude and (best_i < 0 or x > best):
            best, best_i = float(x), i
    return best, best_i


def run_with_softmax(net: Net, datum: np.ndarray, crop: bool = True) -> np.ndarray:
    x = net.crop_maybe(datum) if crop else np.asarray(datum, dtype=np.float64)
    return softmax(net.evaluate_concrete(x))


def label_with_confidence(net: Net, datum: np.ndarray, crop: bool = True,
                          instr: Optional[NetInstrumentation] = None) -> LabelWithConfidence:
    """Label ``datum``; with ``crop`` it is cropped first. ``instr`` receives the branch choices."""
    x = net.crop_maybe(datum) if crop else np.asarray(datum, dtype=np.float64)
    outs = net.evaluate_concrete(x, instr)
    _, top = max_with_index(outs)
    _, second = max_excluding(outs, top)
    probs = softmax(outs)
    return LabelWithConfidence(
        datum=np.asarray(datum, dtype=np.float64),
        actual_label=top,
        sec_best_label=second,
        softmax_value=float(probs[top]),
        diff_from_second_best=float(abs(probs[top] - probs[second])),
    )


def label(net: Net, datum: np.ndarray, crop: bool = True) -> int:
    return label_with_confidence(net, datum, crop).actual_label


def linf_distance(a: np.ndarray, b: np.ndarray) -> float:
    return float(np.max(np.abs(np.asarray(a, dtype=np.float64) - np.asarray(b, dtype=np.float64))))


def l1_distance(a: np.ndarray, b: np.ndarray) -> float:
    """Mean absolute difference."""
    diff = np.abs(np.asarray(a, dtype=np.float64) - np.asarray(b, dtype=np.float64))
    return float(diff.sum() / len(diff))
