#===- nnsynth/back_end/cons_exportor.py - Constraint Export to Solvers --====#
# NNSynth: Neural Network Counterexample Synthesizer
# Copyright (C) 2025– NNSynth Team
#
# Licensed under the GNU Affero General Public License v3.0 or later (AGPLv3+).
# Distributed without any warranty; see <http://www.gnu.org/licenses/>.
#===---------------------------------------------------------------------===#
#
# Purpose:
#   Builds the linear program of one synthesis attempt on a solver backend:
#   one solver variable per decision variable, fixed variable bounds, and
#   constraints exported as rows, each at most once.
#
#===---------------------------------------------------------------------===#

from __future__ import annotations

import logging
import threading
from typing import Iterable, Optional

import numpy as np

from nnsynth.back_end.core import Con, Ineq, VarSpace
from nnsynth.back_end.formulas import Objective, clipped_bounds
from nnsynth.back_end.solver.solver_base import RowSense, Solver, SolveResult

logger = logging.getLogger(__name__)

# Strict inequalities become non-strict rows; no slack is added.
_ROW_SENSE = {
    Ineq.EQ: RowSense.EQ,
    Ineq.GE: RowSense.GE,
    Ineq.GT: RowSense.GE,
    Ineq.LE: RowSense.LE,
    Ineq.LT: RowSense.LE,
}


class LPSession:
    """Linear program over a VarSpace whose first ``len(origin)`` variables are image pixels.

    Image variables are bounded by ``origin -/+ bound`` clipped to
    ``[min_value, max_value]``; every other variable by ``[min_value, max_value]``.
    All bounds are fixed here, before any row exists.
    """

    def __init__(self, solver: Solver, space: VarSpace, origin: np.ndarray, bound: float,
                 min_value: float, max_value: float, integrality: bool = False,
                 name: str = "synth"):
        self.solver = solver
        self.space = space
        self.input_dim = len(origin)
        solver.begin(name)
        self.vars = [solver.create_variable(f"x{i}") for i in range(space.size)]
        lo, hi = clipped_bounds(origin, bound, min_value, max_value)
        for i, v in enumerate(self.vars):
            if i < self.input_dim:
                solver.set_bounds(v, lo[i], hi[i])
            else:
                solver.set_bounds(v, min_value, max_value)
            if integrality:
                solver.set_integral(v, True)
        self._lock = threading.RLock()
        self.rows_added = 0

    def add_constraint(self, con: Con) -> int:
        with self._lock:
            row = self.solver.create_row(f"c{self.rows_added}")
            idx, vals = con.term.nonzero()
            for i, a in zip(idx, vals):
                self.solver.set_coefficient(row, self.vars[i], float(a))
            self.solver.set_row_bound(row, _ROW_SENSE[con.ineq], -con.term.intercept)
            con.added = True
            self.rows_added += 1
            return row

    def add_constraints(self, cons: Iterable[Con]) -> int:
        """Add every constraint not yet in the solver; returns how many were added."""
        n = 0
        with self._lock:
            for con in cons:
                if not con.added:
                    self.add_constraint(con)
                    n += 1
        return n

    def promote(self, con: Con, limit: Optional[int] = None, counter: Optional[list] = None) -> bool:
        """Add ``con`` unless it is already in the solver or ``counter[0]`` reached ``limit``."""
        with self._lock:
            if con.added:
                return False
            if limit is not None and counter is not None:
                if counter[0] >= limit:
                    return False
                counter[0] += 1
            self.add_constraint(con)
            return True

    def set_objective(self, objective: Objective) -> None:
        row = self.solver.create_row("objective")
        idx, vals = objective.term.nonzero()
        for i, a in zip(idx, vals):
            self.solver.set_coefficient(row, self.vars[i], float(a))
        self.solver.set_objective(row, objective.sense)

    def solve(self, time_limit: Optional[float] = None) -> SolveResult:
        logger.debug("Solving %d variables, %d rows", len(self.vars), self.rows_added)
        return self.solver.solve(time_limit)
