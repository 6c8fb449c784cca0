#!/usr/bin/env python3
"""
Single shared configuration file for synthesis testing.
Provides small networks, datasets and options reused across the unit tests.

This module provides:
- identity_net() / relu_net() for two-class vector classifiers
- conv_pool_model() for a torch nn.Sequential with spatial layers
- make_options() for synthesis options tuned for fast, deterministic runs
- ScriptedSolver, a Solver that records rows and replays scripted solutions

Used by:
- test_synthesizer.py
- test_net.py
- test_solver_scipy.py
"""

from typing import List, Optional, Sequence

import numpy as np
import torch.nn as nn

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..'))
from nnsynth.back_end.layers import DenseLayer, ReLULayer
from nnsynth.back_end.net import Net
from nnsynth.back_end.solver import Solver, SolveResult, SolveStatus
from nnsynth.util.options import SynthOptions


def identity_net(dim: int = 2) -> Net:
    """Single dense layer with identity weights and zero bias."""
    return Net([DenseLayer(0, np.eye(dim), np.zeros(dim))])


def relu_net() -> Net:
    """Identity dense layer, ReLU, identity dense layer (2 -> 2)."""
    return Net([
        DenseLayer(0, np.eye(2), np.zeros(2)),
        ReLULayer(1, 2),
        DenseLayer(2, np.eye(2), np.zeros(2)),
    ])


def conv_pool_model() -> nn.Sequential:
    return nn.Sequential(
        nn.Conv2d(1, 2, kernel_size=3, stride=1, padding=1),
        nn.ReLU(),
        nn.MaxPool2d(kernel_size=2, stride=2, ceil_mode=True),
        nn.Flatten(),
        nn.Linear(2 * 3 * 3, 3),
    )


def make_options(**overrides) -> SynthOptions:
    base = dict(
        solver="scipy",
        quantization_safety=False,
        live_constraint_sampling_ratio=1.0,
        lp_time_limit=30.0,
        seed=0,
    )
    base.update(overrides)
    return SynthOptions(**base)


class ScriptedSolver(Solver):
    """Solver double: records every row it receives and returns scripted values.

    Each ``solve`` pops the next entry of ``script``; ``None`` stands for an
    infeasible program. The last entry is repeated once the script runs out.
    """

    def __init__(self, script: Sequence[Optional[Sequence[float]]]):
        self.script: List = list(script)
        self.begin()

    def begin(self, name: str = "synth") -> None:
        self.bounds = []
        self.integral = []
        self.rows = []
        self.constraints = []
        self.objective = None
        self.solves = 0

    def create_variable(self, name: str = "") -> int:
        self.bounds.append((-np.inf, np.inf))
        self.integral.append(False)
        return len(self.bounds) - 1

    def set_bounds(self, var: int, lo: float, hi: float) -> None:
        self.bounds[var] = (float(lo), float(hi))

    def set_integral(self, var: int, integral: bool) -> None:
        self.integral[var] = integral

    def create_row(self, name: str = "") -> int:
        self.rows.append({})
        return len(self.rows) - 1

    def set_coefficient(self, row: int, var: int, value: float) -> None:
        self.rows[row][var] = value

    def set_row_bound(self, row: int, sense: str, rhs: float) -> None:
        self.constraints.append((row, sense, rhs))

    def set_objective(self, row: int, sense: str = "min") -> None:
        self.objective = (row, sense)

    def solve(self, time_limit: Optional[float] = None) -> SolveResult:
        self.solves += 1
        values = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if values is None:
            return SolveResult(SolveStatus.INFEASIBLE)
        return SolveResult(SolveStatus.OPTIMAL, np.asarray(values, dtype=np.float64))

    @property
    def n(self) -> int:
        return len(self.bounds)

    @property
    def n_rows(self) -> int:
        return len(self.constraints)
