#===- nnsynth/front_end/registry.py - Synthesis Results Registry --------====#
# NNSynth: Neural Network Counterexample Synthesizer
# Copyright (C) 2025– NNSynth Team
#
# Licensed under the GNU Affero General Public License v3.0 or later (AGPLv3+).
# Distributed without any warranty; see <http://www.gnu.org/licenses/>.
#===---------------------------------------------------------------------===#
#
# Purpose:
#   Thread-safe store of accepted counterexamples, optionally appended to a
#   CSV file as they are found.
#
#===---------------------------------------------------------------------===#

from __future__ import annotations

import csv
import logging
import os
import threading
from dataclasses import asdict, dataclass, fields
from typing import List, Optional

from nnsynth.front_end.labels import LabelWithConfidence, l1_distance, linf_distance

logger = logging.getLogger(__name__)


@dataclass
class SynthRecord:
    dataset_name: str
    dataset_index: int
    orig_label: int
    orig_confidence: float
    orig_margin: float
    synth_label: int
    synth_confidence: float
    synth_margin: float
    linf: float
    l1: float


class SynthRegistry:
    def __init__(self, name: str = "generic-registry", dataset_name: str = "dataset",
                 output_dir: Optional[str] = None):
        self.name = name
        self.dataset_name = dataset_name
        self.output_dir = output_dir
        self.records: List[SynthRecord] = []
        self._lock = threading.Lock()
        self.csv_path = None
        if output_dir is not None:
            os.makedirs(output_dir, exist_ok=True)
            self.csv_path = os.path.join(output_dir, f"{name}.csv")
            if not os.path.exists(self.csv_path):
                with open(self.csv_path, "w", newline="") as f:
                    csv.writer(f).writerow([fld.name for fld in fields(SynthRecord)])

    def record(self, dataset_index: int, orig: LabelWithConfidence,
               synth: LabelWithConfidence) -> SynthRecord:
        rec = SynthRecord(
            dataset_name=self.dataset_name,
            dataset_index=dataset_index,
            orig_label=orig.actual_label,
            orig_confidence=orig.softmax_value,
            orig_margin=orig.diff_from_second_best,
            synth_label=synth.actual_label,
            synth_confidence=synth.softmax_value,
            synth_margin=synth.diff_from_second_best,
            linf=linf_distance(orig.datum, synth.datum),
            l1=l1_distance(orig.datum, synth.datum),
        )
        with self._lock:
            self.records.append(rec)
            if self.csv_path is not None:
                with open(self.csv_path, "a", newline="") as f:
                    csv.writer(f).writerow(list(asdict(rec).values()))
        logger.debug("Registered counterexample for item %d: %d -> %d (linf %.4f)",
                     dataset_index, rec.orig_label, rec.synth_label, rec.linf)
        return rec

    def __len__(self) -> int:
        with self._lock:
            return len(self.records)
