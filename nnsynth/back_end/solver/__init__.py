#===- nnsynth/back_end/solver/__init__.py - LP/MIP Solvers --------------====#
# NNSynth: Neural Network Counterexample Synthesizer
# Copyright (C) 2025– NNSynth Team
#
# Licensed under the GNU Affero General Public License v3.0 or later (AGPLv3+).
# Distributed without any warranty; see <http://www.gnu.org/licenses/>.
#===---------------------------------------------------------------------===#
#
# Purpose:
#   Solver adapters: Gurobi and SciPy (HiGHS) backends behind one interface,
#   plus backend selection by name.
#
#===---------------------------------------------------------------------===#

import logging

from .solver_base import RowSense, Solver, SolveResult, SolveStatus
from .solver_gurobi import GUROBI_AVAILABLE, GurobiSolver, gurobi_usable
from .solver_scipy import ScipySolver

logger = logging.getLogger(__name__)


def make_solver(kind: str = "auto") -> Solver:
    """Create a solver backend: ``gurobi``, ``scipy`` or ``auto``."""
    if kind == "gurobi":
        return GurobiSolver()
    if kind == "scipy":
        return ScipySolver()
    if kind == "auto":
        if gurobi_usable():
            return GurobiSolver()
        logger.warning("Gurobi not usable, falling back to the SciPy HiGHS backend")
        return ScipySolver()
    raise ValueError(f"Unknown solver backend: {kind}")


__all__ = [
    'Solver', 'SolveResult', 'SolveStatus', 'RowSense',
    'GurobiSolver', 'ScipySolver', 'GUROBI_AVAILABLE', 'gurobi_usable', 'make_solver',
]
