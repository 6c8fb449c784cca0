#===- nnsynth/back_end/core.py - NNSynth Core Data Structures -----------====#
# NNSynth: Neural Network Counterexample Synthesizer
# Copyright (C) 2025– NNSynth Team
#
# Licensed under the GNU Affero General Public License v3.0 or later (AGPLv3+).
# Distributed without any warranty; see <http://www.gnu.org/licenses/>.
#===---------------------------------------------------------------------===#
#
# Purpose:
#   Core data structures for counterexample synthesis: the decision-variable
#   space, affine terms, constraints and constraint sets, the per-layer
#   instrumentation recorded by concrete passes, and the synthesis state.
#
#===---------------------------------------------------------------------===#

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Dict, Iterator, List, Optional

import numpy as np


class DimensionMismatchError(ValueError):
    """Inconsistent sizes between layers, parameters, datasets or terms."""


class VariableSpaceExhausted(RuntimeError):
    """More fresh variables were requested than the space holds."""


# -----------------------------------------------------------------------------
# Decision variables and affine terms
# -----------------------------------------------------------------------------

class VarSpace:
    """Fixed-size decision-variable space of one synthesis attempt.

    Every term created from a space carries a coefficient vector of exactly
    ``size`` entries. A new space is built for each attempt; terms of two
    different spaces never mix.
    """

    def __init__(self, size: int):
        if size <= 0:
            raise ValueError(f"Variable space size must be positive, got {size}")
        self.size = size
        self._next = 0

    @property
    def allocated(self) -> int:
        return self._next

    def const(self, value: float = 0.0) -> "LinTerm":
        return LinTerm(self, np.zeros(self.size, dtype=np.float64), float(value))

    def fresh_variable(self) -> "LinTerm":
        if self._next >= self.size:
            raise VariableSpaceExhausted(
                f"Requested variable {self._next + 1} of a space of size {self.size}")
        t = self.const(0.0)
        t.coeffs[self._next] = 1.0
        self._next += 1
        return t

    def fresh_variables(self, n: int) -> List["LinTerm"]:
        if self._next + n > self.size:
            raise VariableSpaceExhausted(
                f"Requested {n} variables with {self.size - self._next} left")
        return [self.fresh_variable() for _ in range(n)]


class LinTerm:
    """Affine function ``coeffs . x + intercept`` over a VarSpace.

    Methods ending in ``_`` update the term in place and return it; the
    arithmetic operators build new terms.
    """

    __slots__ = ("space", "coeffs", "intercept")

    def __init__(self, space: VarSpace, coeffs: np.ndarray, intercept: float = 0.0):
        if coeffs.shape != (space.size,):
            raise DimensionMismatchError(
                f"Coefficient vector of shape {coeffs.shape} for a space of size {space.size}")
        self.space = space
        self.coeffs = coeffs
        self.intercept = intercept

    def _check(self, other: "LinTerm") -> None:
        if other.space is not self.space:
            raise DimensionMismatchError("Terms belong to different variable spaces")

    def copy(self) -> "LinTerm":
        return LinTerm(self.space, self.coeffs.copy(), self.intercept)

    # in-place
    def add_(self, other: "LinTerm") -> "LinTerm":
        self._check(other)
        self.coeffs += other.coeffs
        self.intercept += other.intercept
        return self

    def sub_(self, other: "LinTerm") -> "LinTerm":
        self._check(other)
        self.coeffs -= other.coeffs
        self.intercept -= other.intercept
        return self

    def add_scalar_(self, d: float) -> "LinTerm":
        self.intercept += d
        return self

    def add_mul_(self, other: "LinTerm", d: float) -> "LinTerm":
        self._check(other)
        self.coeffs += d * other.coeffs
        self.intercept += d * other.intercept
        return self

    def mul_(self, d: float) -> "LinTerm":
        self.coeffs *= d
        self.intercept *= d
        return self

    # pure
    def __add__(self, other):
        if isinstance(other, LinTerm):
            return self.copy().add_(other)
        return self.copy().add_scalar_(float(other))

    def __sub__(self, other):
        if isinstance(other, LinTerm):
            return self.copy().sub_(other)
        return self.copy().add_scalar_(-float(other))

    def __mul__(self, d: float) -> "LinTerm":
        return self.copy().mul_(float(d))

    __rmul__ = __mul__

    def __neg__(self) -> "LinTerm":
        return self * -1.0

    def evaluate(self, assignment: np.ndarray) -> float:
        """Value of the term under a full assignment of the space."""
        return float(np.dot(self.coeffs, assignment) + self.intercept)

    def nonzero(self):
        idx = np.flatnonzero(self.coeffs)
        return idx, self.coeffs[idx]

    def is_constant(self) -> bool:
        return not np.any(self.coeffs)

    def __repr__(self) -> str:
        idx, vals = self.nonzero()
        parts = [f"{v:g}*x{i}" for i, v in zip(idx, vals)]
        parts.append(f"{self.intercept:g}")
        return "LinTerm(" + " + ".join(parts) + ")"


# -----------------------------------------------------------------------------
# Constraints
# -----------------------------------------------------------------------------

class Ineq:
    EQ = "EQ"
    GE = "GE"
    GT = "GT"
    LE = "LE"
    LT = "LT"


@dataclass(eq=False)
class Con:
    """``term <ineq> 0``; ``added`` is set once the row reaches the solver."""
    term: LinTerm
    ineq: str
    added: bool = False

    def satisfied_by(self, assignment: np.ndarray) -> bool:
        lhs = float(np.dot(self.term.coeffs, assignment))
        rhs = -self.term.intercept
        if self.ineq == Ineq.EQ:
            return lhs == rhs
        if self.ineq == Ineq.GE:
            return lhs >= rhs
        if self.ineq == Ineq.GT:
            return lhs > rhs
        if self.ineq == Ineq.LE:
            return lhs <= rhs
        if self.ineq == Ineq.LT:
            return lhs < rhs
        raise ValueError(f"Unknown inequality {self.ineq}")


class ConSet:
    """Constraint collection with O(1) append and O(1) union.

    A union keeps a reference to the other set instead of copying it, so
    constraints added to a child later are seen by the parent. Iteration
    yields the set's own constraints first, then each child's in union order;
    a set reachable through more than one path is visited once.
    """

    def __init__(self, cons: Optional[List[Con]] = None):
        self._own: List[Con] = list(cons) if cons else []
        self._children: List[ConSet] = []

    def add(self, con: Con) -> Con:
        self._own.append(con)
        return con

    def add_term(self, term: LinTerm, ineq: str) -> Con:
        return self.add(Con(term, ineq))

    def add_cmp(self, left: LinTerm, ineq: str, right: LinTerm) -> Con:
        """Add ``left - right <ineq> 0``."""
        return self.add(Con(left - right, ineq))

    def union(self, other: "ConSet") -> "ConSet":
        if other is self:
            raise ValueError("A constraint set cannot be unioned with itself")
        self._children.append(other)
        return self

    def _sets(self) -> Iterator["ConSet"]:
        seen = set()
        stack = [self]
        while stack:
            s = stack.pop()
            if id(s) in seen:
                continue
            seen.add(id(s))
            yield s
            stack.extend(reversed(s._children))

    def __iter__(self) -> Iterator[Con]:
        for s in self._sets():
            yield from s._own

    def __len__(self) -> int:
        return sum(len(s._own) for s in self._sets())

    def flatten(self) -> List[Con]:
        return list(self)


# -----------------------------------------------------------------------------
# Instrumentation
# -----------------------------------------------------------------------------

class ActivationChoice(IntEnum):
    ACTIVE = 0
    INACTIVE = 1
    EITHER = 2


@dataclass
class LayerInstrumentation:
    choices: Optional[np.ndarray] = None       # ReLU: one ActivationChoice per unit
    selections: Optional[np.ndarray] = None    # max pool: argmax input index per output

    @classmethod
    def for_relu(cls, n: int) -> "LayerInstrumentation":
        return cls(choices=np.full(n, int(ActivationChoice.EITHER), dtype=np.int8))

    @classmethod
    def for_maxpool(cls, n: int) -> "LayerInstrumentation":
        return cls(selections=np.full(n, -1, dtype=np.int64))


class NetInstrumentation:
    """Branch choices of one concrete pass, keyed by layer index."""

    def __init__(self):
        self.layers: Dict[int, LayerInstrumentation] = {}

    def record(self, layer_index: int, rec: LayerInstrumentation) -> None:
        self.layers[layer_index] = rec

    def get(self, layer_index: int) -> LayerInstrumentation:
        rec = self.layers.get(layer_index)
        if rec is None:
            raise ValueError(f"No instrumentation recorded for layer {layer_index}")
        return rec

    def __contains__(self, layer_index: int) -> bool:
        return layer_index in self.layers

    def __len__(self) -> int:
        return len(self.layers)


# -----------------------------------------------------------------------------
# Synthesis state
# -----------------------------------------------------------------------------

@dataclass
class SynthState:
    space: VarSpace
    instrumentation: NetInstrumentation
    origin: np.ndarray
    current: ConSet = field(default_factory=ConSet)
    deferred: ConSet = field(default_factory=ConSet)
    sampling_ratio: float = 1.0
    rng: np.random.Generator = field(default_factory=np.random.default_rng)

    def defer_live(self) -> bool:
        """Whether a live (binding) constraint is sent to the deferred set."""
        if self.sampling_ratio >= 1.0:
            return False
        return self.rng.random() >= self.sampling_ratio
