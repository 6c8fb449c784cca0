#===- nnsynth/front_end/accuracy.py - Accuracy and Dataset Filters ------====#
# NNSynth: Neural Network Counterexample Synthesizer
# Copyright (C) 2025– NNSynth Team
#
# Licensed under the GNU Affero General Public License v3.0 or later (AGPLv3+).
# Distributed without any warranty; see <http://www.gnu.org/licenses/>.
#===---------------------------------------------------------------------===#
#
# Purpose:
#   Accuracy and loss of a network over a dataset, and filters selecting
#   confidently classified or misclassified items.
#
#===---------------------------------------------------------------------===#

from __future__ import annotations

import logging
from typing import Callable

import numpy as np

from nnsynth.back_end.net import Net
from nnsynth.front_end.dataset import Dataset
from nnsynth.front_end.labels import label_with_confidence, run_with_softmax

logger = logging.getLogger(__name__)


def filter_dataset(net: Net, ds: Dataset, keep: Callable[[int, int, object], bool]) -> Dataset:
    """Items for which ``keep(index, true_label, labelled)`` holds."""
    kept = []
    for i in range(len(ds)):
        lab = label_with_confidence(net, ds.get_datum(i), crop=True)
        if keep(i, ds.get_label(i), lab):
            kept.append(i)
    return ds.subset(kept)


def keep_above_confidence_threshold(net: Net, ds: Dataset, threshold: float) -> Dataset:
    return filter_dataset(net, ds, lambda i, y, lab: lab.softmax_value >= threshold)


def keep_misclassified(net: Net, ds: Dataset) -> Dataset:
    return filter_dataset(net, ds, lambda i, y, lab: lab.actual_label != y)


def get_accuracy(net: Net, ds: Dataset) -> float:
    if len(ds) == 0:
        return 0.0
    correct = 0
    for i in range(len(ds)):
        if label_with_confidence(net, ds.get_datum(i), crop=True).actual_label == ds.get_label(i):
            correct += 1
    acc = correct / len(ds)
    logger.info("Accuracy on %s: %d/%d (%.2f%%)", ds.name, correct, len(ds), 100.0 * acc)
    log_activation_patterns(net)
    return acc


def log_activation_patterns(net: Net) -> None:
    """Report pattern collisions of every ReLU layer that keeps an activation log."""
    for L in net.layers:
        log = getattr(L, "pattern_log", None)
        if log is not None:
            logger.info("Layer %d: %d distinct activation patterns, %d collisions so far",
                        L.index, log.distinct_patterns(L.index), log.collisions)


def get_loss(net: Net, ds: Dataset) -> float:
    """Mean negative log softmax probability of the true label."""
    if len(ds) == 0:
        return 0.0
    total = 0.0
    for i in range(len(ds)):
        probs = run_with_softmax(net, ds.get_datum(i), crop=True)
        total -= np.log(max(probs[ds.get_label(i)], np.finfo(np.float64).tiny))
    return float(total / len(ds))
