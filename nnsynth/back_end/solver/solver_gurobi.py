#===- nnsynth/back_end/solver/solver_gurobi.py - Gurobi Backend ---------====#
# NNSynth: Neural Network Counterexample Synthesizer
# Copyright (C) 2025– NNSynth Team
#
# Licensed under the GNU Affero General Public License v3.0 or later (AGPLv3+).
# Distributed without any warranty; see <http://www.gnu.org/licenses/>.
#===---------------------------------------------------------------------===#
#
# Purpose:
#   Gurobi backend for exact LP/MILP solving. Rows are collected until
#   their bound is known and then added to the model, which is re-solved
#   incrementally as refinement adds rows.
#
#===---------------------------------------------------------------------===#

from __future__ import annotations

import functools
import logging
import os
from typing import Dict, List, Optional

import numpy as np

from nnsynth.back_end.solver.solver_base import RowSense, Solver, SolveResult, SolveStatus
from nnsynth.util.path_config import get_project_root

logger = logging.getLogger(__name__)

try:
    import gurobipy as gp
    from gurobipy import GRB
    GUROBI_AVAILABLE = True
except ImportError:
    gp = None
    GUROBI_AVAILABLE = False


def setup_gurobi_license() -> None:
    """Point GRB_LICENSE_FILE at ``<root>/gurobi/gurobi.lic`` when it is unset."""
    if 'GRB_LICENSE_FILE' in os.environ:
        logger.debug("Using existing Gurobi license: %s", os.environ['GRB_LICENSE_FILE'])
        return
    root = os.environ.get('NNSYNTH_HOME', get_project_root())
    license_path = os.path.abspath(os.path.join(root, 'gurobi', 'gurobi.lic'))
    if os.path.exists(license_path):
        os.environ['GRB_LICENSE_FILE'] = license_path
        logger.info("Gurobi license found and set: %s", license_path)
    else:
        logger.debug("No Gurobi license at %s, relying on the default lookup", license_path)


@functools.lru_cache(maxsize=None)
def gurobi_usable() -> bool:
    """Whether gurobipy imports and a model can be created with the available license."""
    if not GUROBI_AVAILABLE:
        return False
    setup_gurobi_license()
    try:
        gp.Model("probe").dispose()
    except gp.GurobiError as e:
        logger.warning("Gurobi cannot create a model: %s", e)
        return False
    return True


class GurobiSolver(Solver):
    """Gurobi backend (CPU-only)."""

    def __init__(self):
        if not GUROBI_AVAILABLE:
            raise RuntimeError("gurobipy is not available in this environment.")
        setup_gurobi_license()
        self.m = None
        self._x: List = []
        self._rows: List[Dict[int, float]] = []
        self._bound: List[bool] = []
        self._n_cons = 0

    @property
    def n(self) -> int:
        return len(self._x)

    @property
    def n_rows(self) -> int:
        return self._n_cons

    def begin(self, name: str = "synth") -> None:
        self.m = gp.Model(name)
        self.m.Params.OutputFlag = 0
        self._x = []
        self._rows = []
        self._bound = []
        self._n_cons = 0

    def create_variable(self, name: str = "") -> int:
        v = self.m.addVar(lb=-GRB.INFINITY, ub=GRB.INFINITY, name=name or f"x{len(self._x)}")
        self._x.append(v)
        return len(self._x) - 1

    def set_bounds(self, var: int, lo: float, hi: float) -> None:
        self._x[var].LB = float(lo)
        self._x[var].UB = float(hi)

    def set_integral(self, var: int, integral: bool) -> None:
        self._x[var].VType = GRB.INTEGER if integral else GRB.CONTINUOUS

    def create_row(self, name: str = "") -> int:
        self._rows.append({})
        self._bound.append(False)
        return len(self._rows) - 1

    def set_coefficient(self, row: int, var: int, value: float) -> None:
        if self._bound[row]:
            raise RuntimeError(f"Row {row} is already in the model")
        self._rows[row][var] = float(value)

    def _lexpr(self, row: int):
        coeffs = self._rows[row]
        e = gp.LinExpr()
        e.addTerms(list(coeffs.values()), [self._x[i] for i in coeffs])
        return e

    def set_row_bound(self, row: int, sense: str, rhs: float) -> None:
        e = self._lexpr(row)
        if sense == RowSense.LE:
            self.m.addConstr(e <= float(rhs))
        elif sense == RowSense.GE:
            self.m.addConstr(e >= float(rhs))
        elif sense == RowSense.EQ:
            self.m.addConstr(e == float(rhs))
        else:
            raise ValueError(f"Unknown row sense: {sense}")
        self._bound[row] = True
        self._rows[row] = {}
        self._n_cons += 1

    def set_objective(self, row: int, sense: str = "min") -> None:
        self.m.setObjective(self._lexpr(row), GRB.MINIMIZE if sense == "min" else GRB.MAXIMIZE)

    def _status(self) -> str:
        if self.m.Status in (GRB.OPTIMAL, GRB.SUBOPTIMAL):
            return SolveStatus.OPTIMAL
        if self.m.Status in (GRB.INFEASIBLE, GRB.INF_OR_UNBD):
            return SolveStatus.INFEASIBLE
        if self.m.SolCount > 0:
            return SolveStatus.FEASIBLE
        if self.m.Status == GRB.TIME_LIMIT:
            return SolveStatus.TIMED_OUT
        return SolveStatus.UNKNOWN

    def solve(self, time_limit: Optional[float] = None) -> SolveResult:
        if time_limit is not None:
            self.m.Params.TimeLimit = float(time_limit)
        self.m.update()
        self.m.optimize()
        status = self._status()
        if status in (SolveStatus.OPTIMAL, SolveStatus.FEASIBLE):
            return SolveResult(status, np.array([v.X for v in self._x], dtype=np.float64))
        return SolveResult(status)
