#===- util.stats.py ----NNSynth Statistics -------------------------------#
#
#             NNSynth: Neural Network Counterexample Synthesizer
#
# Copyright (C) <2025->  NNSynth Team
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program.  If not, see <http://www.gnu.org/licenses/>.
#
# Purpose:
#   Counters of a synthesis run and process memory reporting.
#
#===----------------------------------------------------------------------===#

import logging
import os
from dataclasses import asdict, dataclass
from typing import Any, Dict

try:
    import psutil
    PSUTIL_AVAILABLE = True
except ImportError:
    PSUTIL_AVAILABLE = False

logger = logging.getLogger(__name__)


@dataclass
class SynthStats:
    """Outcome counters of a synthesis run; mutated under the run's lock."""
    processed: int = 0
    skipped_misclassified: int = 0
    skipped_low_confidence: int = 0
    found: int = 0
    aborted: int = 0
    errored: int = 0
    cegar_rounds: int = 0
    promoted: int = 0

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def log_summary(self) -> None:
        logger.info("Synthesis summary:")
        for key, value in self.as_dict().items():
            logger.info("  %s: %d", key, value)

    @staticmethod
    def get_memory_usage_mb() -> float:
        """
        Current process resident memory in MB.

        Returns:
            float: Process memory usage in MB, or 0 if psutil is unavailable
        """
        if not PSUTIL_AVAILABLE:
            return 0.0
        return psutil.Process(os.getpid()).memory_info().rss / 1024 / 1024

    @classmethod
    def log_memory_usage(cls, stage_name: str = "") -> float:
        if not PSUTIL_AVAILABLE:
            logger.debug("[%s] psutil not available, cannot monitor memory", stage_name)
            return 0.0
        memory_mb = cls.get_memory_usage_mb()
        system_memory = psutil.virtual_memory()
        total_mb = system_memory.total / 1024 / 1024
        logger.debug("[%s] Process: %.1f MB (%.1f%% of total), system: %.1f MB available",
                     stage_name, memory_mb, 100.0 * memory_mb / total_mb,
                     system_memory.available / 1024 / 1024)
        return memory_mb
