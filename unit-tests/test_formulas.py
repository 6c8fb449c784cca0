#!/usr/bin/env python3
"""
Unit tests for the constraint builders: winning label, origin bounds,
epsilon ball, quantization safety and objectives.
"""

import unittest

import numpy as np

from nnsynth.back_end.core import Ineq, VarSpace
from nnsynth.back_end.formulas import (ObjectiveKind, ObjSense, build_objective,
                                       clipped_bounds, epsilon_bounds, label_formula,
                                       origin_bound_formula, quantization_safety)


class TestLabelFormula(unittest.TestCase):

    def setUp(self):
        self.space = VarSpace(3)
        self.outputs = self.space.fresh_variables(3)

    def test_one_constraint_per_other_label(self):
        cs = label_formula(self.outputs, 1)
        self.assertEqual(len(cs), 2)
        self.assertTrue(all(c.ineq == Ineq.GE for c in cs))

    def test_margin(self):
        cs = label_formula(self.outputs, 1, confidence=0.5)
        self.assertTrue(all(c.satisfied_by(np.array([1.0, 1.5, 0.0])) for c in cs))
        self.assertFalse(all(c.satisfied_by(np.array([1.0, 1.4, 0.0])) for c in cs))


class TestBounds(unittest.TestCase):

    def test_clipped_bounds(self):
        lo, hi = clipped_bounds(np.array([0.0, 250.0, 10.0]), 20.0, 0.0, 255.0)
        np.testing.assert_allclose(lo, [0.0, 230.0, 0.0])
        np.testing.assert_allclose(hi, [20.0, 255.0, 30.0])

    def test_empty_clip_falls_back_to_unclipped(self):
        lo, hi = clipped_bounds(np.array([300.0]), 20.0, 0.0, 255.0)
        np.testing.assert_allclose(lo, [280.0])
        np.testing.assert_allclose(hi, [320.0])

    def test_origin_bound_formula(self):
        space = VarSpace(2)
        xs = space.fresh_variables(2)
        cs = origin_bound_formula(xs, [5.0, 5.0], 2.0, 0.0, 6.0)
        self.assertEqual(len(cs), 4)
        self.assertTrue(all(c.satisfied_by(np.array([3.0, 6.0])) for c in cs))
        self.assertFalse(all(c.satisfied_by(np.array([3.0, 6.5])) for c in cs))


class TestEpsilonBounds(unittest.TestCase):

    def setUp(self):
        self.space = VarSpace(3)
        self.xs = self.space.fresh_variables(2)
        self.eps = self.space.fresh_variable()
        self.cs = epsilon_bounds(self.xs, [10.0, 0.0], self.eps, 20.0)

    def test_size(self):
        self.assertEqual(len(self.cs), 2 * 2 + 2)

    def test_inside_ball(self):
        self.assertTrue(all(c.satisfied_by(np.array([12.0, -3.0, 3.0])) for c in self.cs))

    def test_outside_ball(self):
        self.assertFalse(all(c.satisfied_by(np.array([14.0, 0.0, 3.0])) for c in self.cs))

    def test_epsilon_range(self):
        self.assertFalse(all(c.satisfied_by(np.array([10.0, 0.0, 0.0])) for c in self.cs))
        self.assertFalse(all(c.satisfied_by(np.array([10.0, 0.0, 21.0])) for c in self.cs))


class TestQuantizationSafety(unittest.TestCase):

    def setUp(self):
        self.space = VarSpace(4)
        self.xs = self.space.fresh_variables(4)
        self.origin = np.array([1.0, 2.0, 3.0, 4.0])

    def test_forces_one_step_above_origin(self):
        cs = quantization_safety(self.xs, self.origin, np.random.default_rng(0), step=1.0)
        (con,) = list(cs)
        i = int(np.flatnonzero(con.term.coeffs)[0])
        point = self.origin.copy()
        self.assertFalse(con.satisfied_by(point))
        point[i] += 1.0
        self.assertTrue(con.satisfied_by(point))

    def test_every_coordinate_can_be_chosen(self):
        rng = np.random.default_rng(1)
        chosen = set()
        for _ in range(200):
            (con,) = list(quantization_safety(self.xs, self.origin, rng))
            chosen.add(int(np.flatnonzero(con.term.coeffs)[0]))
        self.assertEqual(chosen, {0, 1, 2, 3})


class TestObjectives(unittest.TestCase):

    def setUp(self):
        self.space = VarSpace(3)
        self.out0, self.out1, self.eps = self.space.fresh_variables(3)

    def test_min_linf(self):
        obj = build_objective(ObjectiveKind.MIN_LINF, self.eps, [self.out0, self.out1], 0, 1)
        self.assertEqual(obj.sense, ObjSense.MIN)
        np.testing.assert_allclose(obj.term.coeffs, [0.0, 0.0, 1.0])

    def test_max_conf(self):
        obj = build_objective(ObjectiveKind.MAX_CONF, self.eps, [self.out0, self.out1], 0, 1)
        self.assertEqual(obj.sense, ObjSense.MAX)
        np.testing.assert_allclose(obj.term.coeffs, [-1.0, 1.0, 0.0])

    def test_unknown(self):
        with self.assertRaises(ValueError):
            build_objective("median", self.eps, [self.out0, self.out1], 0, 1)


if __name__ == '__main__':
    unittest.main()
