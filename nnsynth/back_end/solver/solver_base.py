#===- nnsynth/back_end/solver/solver_base.py - Base Solver Interface ----====#
# NNSynth: Neural Network Counterexample Synthesizer
# Copyright (C) 2025– NNSynth Team
#
# Licensed under the GNU Affero General Public License v3.0 or later (AGPLv3+).
# Distributed without any warranty; see <http://www.gnu.org/licenses/>.
#===---------------------------------------------------------------------===#
#
# Purpose:
#   Base Solver Interface. Row-oriented LP/MIP adapter contract consumed by
#   the program builder and the synthesis loop.
#
#===---------------------------------------------------------------------===#

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np


class SolveStatus:
    OPTIMAL = "OPTIMAL"
    FEASIBLE = "FEASIBLE"
    INFEASIBLE = "INFEASIBLE"
    TIMED_OUT = "TIMED_OUT"
    UNKNOWN = "UNKNOWN"


class RowSense:
    LE = "<="
    GE = ">="
    EQ = "="


@dataclass
class SolveResult:
    status: str
    values: Optional[np.ndarray] = None

    @property
    def has_solution(self) -> bool:
        return self.status in (SolveStatus.OPTIMAL, SolveStatus.FEASIBLE) and self.values is not None


class Solver:
    """Abstract solver interface used by the program builder.

    Variables and rows are identified by the integers their ``create_*``
    call returned. A row is a constraint once ``set_row_bound`` is called,
    or the objective once passed to ``set_objective``; its coefficients must
    be set before either. Rows may be added after a ``solve`` and the next
    ``solve`` takes them into account.
    """

    # --- Lifecycle ---
    def begin(self, name: str = "synth") -> None:  # pragma: no cover - abstract
        ...

    # --- Variables ---
    def create_variable(self, name: str = "") -> int:  # pragma: no cover - abstract
        ...

    def set_bounds(self, var: int, lo: float, hi: float) -> None:  # pragma: no cover - abstract
        ...

    def set_integral(self, var: int, integral: bool) -> None:  # pragma: no cover - abstract
        ...

    # --- Rows ---
    def create_row(self, name: str = "") -> int:  # pragma: no cover - abstract
        ...

    def set_coefficient(self, row: int, var: int, value: float) -> None:  # pragma: no cover - abstract
        ...

    def set_row_bound(self, row: int, sense: str, rhs: float) -> None:  # pragma: no cover - abstract
        ...

    # --- Objective & solve ---
    def set_objective(self, row: int, sense: str = "min") -> None:  # pragma: no cover - abstract
        ...

    def solve(self, time_limit: Optional[float] = None) -> SolveResult:  # pragma: no cover - abstract
        ...

    # --- Accessors ---
    @property
    def n(self) -> int:  # pragma: no cover - abstract
        ...

    @property
    def n_rows(self) -> int:  # pragma: no cover - abstract
        ...
