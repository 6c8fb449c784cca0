#===- nnsynth/back_end/solver/solver_scipy.py - SciPy HiGHS Backend -----====#
# NNSynth: Neural Network Counterexample Synthesizer
# Copyright (C) 2025– NNSynth Team
#
# Licensed under the GNU Affero General Public License v3.0 or later (AGPLv3+).
# Distributed without any warranty; see <http://www.gnu.org/licenses/>.
#===---------------------------------------------------------------------===#
#
# Purpose:
#   Open-source backend built on scipy.optimize.linprog (HiGHS). Rows are
#   accumulated and the whole program is handed to linprog on every solve,
#   so no commercial license is required.
#
#===---------------------------------------------------------------------===#

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple

import numpy as np
import scipy.sparse as sp
from scipy.optimize import linprog

from nnsynth.back_end.solver.solver_base import RowSense, Solver, SolveResult, SolveStatus

logger = logging.getLogger(__name__)

# linprog status codes
_LINPROG_STATUS = {
    0: "Optimization terminated successfully.",
    1: "Iteration or time limit reached.",
    2: "Problem appears to be infeasible.",
    3: "Problem appears to be unbounded.",
    4: "Numerical difficulties encountered.",
}


class ScipySolver(Solver):
    def __init__(self):
        self.begin()

    @property
    def n(self) -> int:
        return len(self._lb)

    @property
    def n_rows(self) -> int:
        return len(self._cons)

    def begin(self, name: str = "synth") -> None:
        self.name = name
        self._lb: List[float] = []
        self._ub: List[float] = []
        self._integral: List[int] = []
        self._rows: List[Dict[int, float]] = []
        self._cons: List[Tuple[int, str, float]] = []
        self._objective: Optional[Tuple[int, str]] = None

    def create_variable(self, name: str = "") -> int:
        self._lb.append(-np.inf)
        self._ub.append(np.inf)
        self._integral.append(0)
        return len(self._lb) - 1

    def set_bounds(self, var: int, lo: float, hi: float) -> None:
        self._lb[var] = float(lo)
        self._ub[var] = float(hi)

    def set_integral(self, var: int, integral: bool) -> None:
        self._integral[var] = 1 if integral else 0

    def create_row(self, name: str = "") -> int:
        self._rows.append({})
        return len(self._rows) - 1

    def set_coefficient(self, row: int, var: int, value: float) -> None:
        self._rows[row][var] = float(value)

    def set_row_bound(self, row: int, sense: str, rhs: float) -> None:
        if sense not in (RowSense.LE, RowSense.GE, RowSense.EQ):
            raise ValueError(f"Unknown row sense: {sense}")
        self._cons.append((row, sense, float(rhs)))

    def set_objective(self, row: int, sense: str = "min") -> None:
        self._objective = (row, sense)

    def _matrix(self, entries: List[Tuple[Dict[int, float], float]]):
        if not entries:
            return None, None
        data, rows, cols, rhs = [], [], [], []
        for r, (coeffs, b) in enumerate(entries):
            for var, a in coeffs.items():
                rows.append(r)
                cols.append(var)
                data.append(a)
            rhs.append(b)
        A = sp.csr_matrix((data, (rows, cols)), shape=(len(entries), self.n))
        return A, np.array(rhs, dtype=np.float64)

    def solve(self, time_limit: Optional[float] = None) -> SolveResult:
        c = np.zeros(self.n, dtype=np.float64)
        if self._objective is not None:
            row, sense = self._objective
            for var, a in self._rows[row].items():
                c[var] = a if sense == "min" else -a

        ub_entries, eq_entries = [], []
        for row, sense, rhs in self._cons:
            coeffs = self._rows[row]
            if sense == RowSense.LE:
                ub_entries.append((coeffs, rhs))
            elif sense == RowSense.GE:
                ub_entries.append(({v: -a for v, a in coeffs.items()}, -rhs))
            else:
                eq_entries.append((coeffs, rhs))
        A_ub, b_ub = self._matrix(ub_entries)
        A_eq, b_eq = self._matrix(eq_entries)

        options = {}
        if time_limit is not None:
            options["time_limit"] = float(time_limit)
        res = linprog(
            c,
            A_ub=A_ub, b_ub=b_ub,
            A_eq=A_eq, b_eq=b_eq,
            bounds=list(zip(self._lb, self._ub)),
            method="highs",
            integrality=np.array(self._integral) if any(self._integral) else None,
            options=options,
        )
        logger.debug("linprog (%d vars, %d rows): %s", self.n, self.n_rows,
                     _LINPROG_STATUS.get(res.status, "Unknown status code."))

        if res.status == 0:
            return SolveResult(SolveStatus.OPTIMAL, np.asarray(res.x, dtype=np.float64))
        if res.status == 1:
            if res.x is not None:
                return SolveResult(SolveStatus.FEASIBLE, np.asarray(res.x, dtype=np.float64))
            return SolveResult(SolveStatus.TIMED_OUT)
        if res.status == 2:
            return SolveResult(SolveStatus.INFEASIBLE)
        return SolveResult(SolveStatus.UNKNOWN)
