#===- nnsynth/back_end/synthesizer.py - CEGAR Counterexample Synthesis --====#
# NNSynth: Neural Network Counterexample Synthesizer
# Copyright (C) 2025– NNSynth Team
#
# Licensed under the GNU Affero General Public License v3.0 or later (AGPLv3+).
# Distributed without any warranty; see <http://www.gnu.org/licenses/>.
#===---------------------------------------------------------------------===#
#
# Purpose:
#   Counterexample synthesis by counterexample-guided abstraction
#   refinement. One attempt per input replays the input's branch choices
#   symbolically, solves the resulting linear program, and promotes
#   deferred constraints the solution violates until the candidate is a
#   genuine counterexample or the attempt gives up.
#
#===---------------------------------------------------------------------===#

# Public API:
#   - synthesize_counterexample(net, options, labelled, real_label, instr, ...) -> SynthOutcome
#   - synthesize_counterexamples(net, dataset, options, registry=None, ...) -> SynthReport
#
# Phases of one attempt:
#   BUILD -> SOLVE -> VALIDATE -> DONE
#                              -> REFINE -> SOLVE
#                              -> ABORT
#   SOLVE aborts when the solver has no solution or the iteration cap is
#   exceeded; REFINE aborts when no deferred constraint is violated.

from __future__ import annotations

import dataclasses
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from functools import partial
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np

from nnsynth.back_end.cons_exportor import LPSession
from nnsynth.back_end.core import (Con, DimensionMismatchError, LinTerm,
                                   NetInstrumentation, SynthState, VarSpace)
from nnsynth.back_end.formulas import (Objective, build_objective, epsilon_bounds,
                                       label_formula, quantization_safety)
from nnsynth.back_end.net import Net
from nnsynth.back_end.solver import Solver, make_solver
from nnsynth.front_end.dataset import Dataset
from nnsynth.front_end.labels import LabelWithConfidence, label_with_confidence, linf_distance
from nnsynth.front_end.registry import SynthRegistry
from nnsynth.util.options import SynthOptions
from nnsynth.util.stats import SynthStats

logger = logging.getLogger(__name__)


class SynthPhase:
    BUILD = "BUILD"
    SOLVE = "SOLVE"
    VALIDATE = "VALIDATE"
    REFINE = "REFINE"
    DONE = "DONE"
    ABORT = "ABORT"
    SKIPPED = "SKIPPED"


class SkipReason:
    MISCLASSIFIED = "misclassified"
    LOW_CONFIDENCE = "low-confidence"


@dataclass
class SynthOutcome:
    phase: str
    counterexample: Optional[LabelWithConfidence] = None
    unrounded: Optional[np.ndarray] = None
    iterations: int = 0
    promoted: int = 0
    reason: str = ""

    @property
    def found(self) -> bool:
        return self.phase == SynthPhase.DONE


# -----------------------------------------------------------------------------
# BUILD
# -----------------------------------------------------------------------------

@dataclass
class SymbolicInputs:
    space: VarSpace
    pixels: List[LinTerm]
    eps: LinTerm


def gen_symbolic_inputs(input_dim: int) -> SymbolicInputs:
    """One variable per post-crop input followed by the perturbation radius."""
    space = VarSpace(input_dim + 1)
    pixels = space.fresh_variables(input_dim)
    eps = space.fresh_variable()
    return SymbolicInputs(space, pixels, eps)


@dataclass
class SynthProblem:
    state: SynthState
    inputs: SymbolicInputs
    outputs: List[LinTerm]
    objective: Optional[Objective]
    target: int


def build_problem(net: Net, options: SynthOptions, origin: np.ndarray,
                  instr: NetInstrumentation, orig_label: int, target: int,
                  rng: np.random.Generator) -> SynthProblem:
    inputs = gen_symbolic_inputs(net.input_dim_post_crop)
    state = SynthState(inputs.space, instr, origin,
                       sampling_ratio=options.live_constraint_sampling_ratio, rng=rng)
    outputs = net.evaluate_symbolic(state, inputs.pixels)

    state.current.union(label_formula(outputs, target, options.label_confidence_diff))
    objective = None
    if options.do_optimization:
        state.current.union(epsilon_bounds(inputs.pixels, origin, inputs.eps, options.epsilon))
        objective = build_objective(options.objective, inputs.eps, outputs, orig_label, target)
    if options.quantization_safety:
        state.current.union(quantization_safety(inputs.pixels, origin, rng, options.quantization_step))
    if not options.cegar:
        state.current.union(state.deferred)
    return SynthProblem(state, inputs, outputs, objective, target)


# -----------------------------------------------------------------------------
# SOLVE / VALIDATE / REFINE
# -----------------------------------------------------------------------------

class CegarLoop:
    """Phase machine of one attempt, starting at SOLVE on a built session."""

    def __init__(self, net: Net, options: SynthOptions, problem: SynthProblem,
                 session: LPSession, real_label: int):
        self.net = net
        self.options = options
        self.problem = problem
        self.session = session
        self.real_label = real_label
        self.phase = SynthPhase.SOLVE
        self.iterations = 0
        self.promoted = 0
        self.solution: Optional[np.ndarray] = None
        self.candidate: Optional[LabelWithConfidence] = None
        self.reason = ""
        self._lock = threading.Lock()

    def run(self) -> SynthOutcome:
        steps = {
            SynthPhase.SOLVE: self.solve,
            SynthPhase.VALIDATE: self.validate,
            SynthPhase.REFINE: self.refine,
        }
        while self.phase in steps:
            steps[self.phase]()
        return SynthOutcome(
            phase=self.phase,
            counterexample=self.candidate if self.phase == SynthPhase.DONE else None,
            unrounded=None if self.solution is None else self.solution[:self.session.input_dim].copy(),
            iterations=self.iterations,
            promoted=self.promoted,
            reason=self.reason,
        )

    def _abort(self, reason: str) -> None:
        self.phase = SynthPhase.ABORT
        self.reason = reason

    def solve(self) -> None:
        if self.iterations > self.options.cegar_give_up_iterations:
            self._abort("refinement iteration cap reached")
            return
        self.iterations += 1
        result = self.session.solve(self.options.lp_time_limit)
        if not result.has_solution:
            self._abort(f"no solution ({result.status})")
            return
        self.solution = result.values
        self.phase = SynthPhase.VALIDATE

    def validate(self) -> None:
        candidate = self.solution[:self.session.input_dim].copy()
        if self.options.quantization_safety:
            candidate = np.round(candidate)
        lab = label_with_confidence(self.net, candidate, crop=False)
        self.candidate = lab
        if lab.actual_label == self.problem.target:
            self.phase = SynthPhase.DONE
        elif lab.actual_label == self.real_label:
            logger.debug("Spurious candidate (label %d) after %d solve(s)", lab.actual_label, self.iterations)
            self.phase = SynthPhase.REFINE
        else:
            self.phase = SynthPhase.DONE

    def _try_promote(self, con: Con, counter: list) -> bool:
        if con.satisfied_by(self.solution):
            return False
        if not self.session.promote(con, self.options.max_promotions_per_round, counter):
            return False
        with self._lock:
            self.problem.state.current.add(con)
        return True

    def refine(self) -> None:
        pending = [c for c in self.problem.state.deferred if not c.added]
        counter = [0]
        if self.options.threads > 1:
            with ThreadPoolExecutor(max_workers=self.options.threads) as pool:
                added = sum(pool.map(partial(self._try_promote, counter=counter), pending))
        else:
            added = 0
            for con in pending:
                if counter[0] >= self.options.max_promotions_per_round:
                    break
                added += self._try_promote(con, counter)
        logger.debug("Promoted %d of %d deferred constraints", added, len(pending))
        if added == 0:
            self._abort("no violated deferred constraint")
            return
        self.promoted += added
        self.phase = SynthPhase.SOLVE


# -----------------------------------------------------------------------------
# One attempt
# -----------------------------------------------------------------------------

def synthesize_counterexample(net: Net, options: SynthOptions, labelled: LabelWithConfidence,
                              real_label: int, instr: NetInstrumentation,
                              solver_factory: Optional[Callable[[], Solver]] = None,
                              rng: Optional[np.random.Generator] = None) -> SynthOutcome:
    """Search a counterexample for ``labelled``, whose branch choices are in ``instr``.

    ``labelled.datum`` is the pre-crop input; the counterexample returned is
    also in pre-crop coordinates.
    """
    orig_label = labelled.actual_label
    if real_label != orig_label:
        logger.info("Input already misclassified (%d instead of %d), skipping", orig_label, real_label)
        return SynthOutcome(SynthPhase.SKIPPED, reason=SkipReason.MISCLASSIFIED)
    if options.ignore_low_confidence and labelled.softmax_value < options.low_confidence_threshold:
        logger.info("Input classified with low confidence (%.3f), skipping", labelled.softmax_value)
        return SynthOutcome(SynthPhase.SKIPPED, reason=SkipReason.LOW_CONFIDENCE)

    rng = rng if rng is not None else np.random.default_rng(options.seed)
    origin = net.crop_maybe(labelled.datum)
    problem = build_problem(net, options, origin, instr, orig_label, labelled.sec_best_label, rng)

    solver = solver_factory() if solver_factory is not None else make_solver(options.solver)
    session = LPSession(solver, problem.inputs.space, origin, options.epsilon,
                        options.min_value, options.max_value, options.integrality)
    session.add_constraints(problem.state.current)
    if problem.objective is not None:
        session.set_objective(problem.objective)
    logger.debug("Built program: %d current, %d deferred constraints",
                 len(problem.state.current), len(problem.state.deferred))

    outcome = CegarLoop(net, options, problem, session, real_label).run()
    if outcome.found:
        outcome.counterexample.datum = net.uncrop_maybe(labelled.datum, outcome.counterexample.datum)
        outcome.unrounded = net.uncrop_maybe(labelled.datum, outcome.unrounded)
    return outcome


# -----------------------------------------------------------------------------
# Dataset driver
# -----------------------------------------------------------------------------

@dataclass
class DiffInfo:
    diff: np.ndarray
    number: int = 1


@dataclass
class SynthReport:
    results: List[LabelWithConfidence] = field(default_factory=list)
    stats: SynthStats = field(default_factory=SynthStats)
    diff_cache: Dict[Tuple[int, int], DiffInfo] = field(default_factory=dict)


def synthesize_counterexamples(net: Net, dataset: Dataset, options: SynthOptions,
                               registry: Optional[SynthRegistry] = None,
                               snapshot: Optional[Callable[[int, LabelWithConfidence], None]] = None,
                               solver_factory: Optional[Callable[[], Solver]] = None) -> SynthReport:
    """Attempt every item of the first ``dataset_percentage`` of ``dataset``.

    Accepted counterexamples are returned labelled with their item's true
    label, ready for retraining. Failures of one item never stop the run.
    """
    count = int(round(len(dataset) * options.dataset_percentage))
    report = SynthReport()
    lock = threading.Lock()

    def process(i: int) -> None:
        datum, real_label = dataset[i]
        rng = np.random.default_rng(None if options.seed is None else options.seed + i)
        try:
            instr = NetInstrumentation()
            labelled = label_with_confidence(net, datum, crop=True, instr=instr)
            outcome = synthesize_counterexample(net, options, labelled, real_label, instr,
                                                solver_factory, rng)
        except DimensionMismatchError:
            raise
        except Exception:
            logger.exception("Synthesis failed for item %d", i)
            with lock:
                report.stats.processed += 1
                report.stats.errored += 1
            return

        with lock:
            stats = report.stats
            stats.processed += 1
            stats.cegar_rounds += max(outcome.iterations - 1, 0)
            stats.promoted += outcome.promoted
            if outcome.phase == SynthPhase.SKIPPED:
                if outcome.reason == SkipReason.MISCLASSIFIED:
                    stats.skipped_misclassified += 1
                else:
                    stats.skipped_low_confidence += 1
            elif outcome.found:
                stats.found += 1
                ce = outcome.counterexample
                key = (labelled.actual_label, ce.actual_label)
                if key in report.diff_cache:
                    report.diff_cache[key].number += 1
                else:
                    report.diff_cache[key] = DiffInfo(outcome.unrounded - labelled.datum)
                if registry is not None:
                    registry.record(i, labelled, ce)
                for_retraining = dataclasses.replace(ce, actual_label=real_label)
                report.results.append(for_retraining)
                if snapshot is not None:
                    snapshot(i, for_retraining)
                logger.info("Item %d: counterexample %d -> %d, linf %.4f after %d solve(s)",
                            i, labelled.actual_label, ce.actual_label,
                            linf_distance(labelled.datum, ce.datum), outcome.iterations)
            else:
                stats.aborted += 1
                logger.info("Item %d: no counterexample (%s)", i, outcome.reason)
            logger.info("Progress: %d/%d processed, %d found", stats.processed, count, stats.found)
        SynthStats.log_memory_usage(f"item {i}")

    if options.workers > 1:
        with ThreadPoolExecutor(max_workers=options.workers) as pool:
            list(pool.map(process, range(count)))
    else:
        for i in range(count):
            process(i)

    report.stats.log_summary()
    return report
