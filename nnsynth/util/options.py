#===- util.options.py ----NNSynth Parameters & Option Definitions --------#
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
#   Synthesis options with their defaults, and the command-line parser that
#   overrides them.
#
#===----------------------------------------------------------------------===#

import argparse
from dataclasses import dataclass
from typing import Optional

from nnsynth.back_end.formulas import ObjectiveKind


@dataclass
class SynthOptions:
    registry: str = "generic-registry"
    dataset_percentage: float = 1.0
    cegar: bool = True
    do_optimization: bool = True
    epsilon: float = 20.0
    min_value: float = 0.0
    max_value: float = 255.0
    label_confidence_diff: float = 0.0
    objective: str = ObjectiveKind.MIN_LINF
    lp_time_limit: float = 480.0
    ignore_low_confidence: bool = False
    low_confidence_threshold: float = 0.55
    cegar_give_up_iterations: int = 4
    live_constraint_sampling_ratio: float = 0.1
    quantization_safety: bool = True
    quantization_step: float = 1.0
    integrality: bool = False
    max_promotions_per_round: int = 700
    workers: int = 1
    threads: int = 1
    solver: str = "auto"
    seed: Optional[int] = None
    avgpool_legacy_divisor: bool = False
    output_dir: Optional[str] = None


def get_parser():

    parser = argparse.ArgumentParser(description='NNSynth - Counterexample synthesis for feed-forward classifiers')

    # Inputs
    parser.add_argument('--model_path', type=str, required=True,
                        help='Path to a torch-saved nn.Sequential classifier')
    parser.add_argument('--dataset', type=str, required=True,
                        help='Path to an .npz file with "data" (N x D) and "labels" (N) arrays')
    parser.add_argument('--input_shape', type=int, nargs=3, default=None, metavar=('C', 'H', 'W'),
                        help='Image shape (channels, rows, cols) of one dataset item; required for convolutional models')
    parser.add_argument('--crop', type=int, default=None,
                        help='Center-crop size applied before the first layer')
    parser.add_argument('--config', type=str, default=None,
                        help='YAML/JSON file with synthesis options; command-line flags take precedence')
    parser.add_argument('--log_level', type=str, default='INFO',
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                        help='Logging level')
    parser.add_argument('--log_activation_patterns', action='store_true',
                        help='Count repeated ReLU activation patterns during the accuracy run')

    # Solver
    parser.add_argument('--solver', type=str, default=None, choices=['auto', 'gurobi', 'scipy'],
                        help='LP backend. "auto": Gurobi when gurobipy is importable, otherwise SciPy HiGHS')
    parser.add_argument('--lp_time_limit', type=float, default=None,
                        help='Per-solve time limit in seconds')
    parser.add_argument('--integrality', action='store_true', default=None,
                        help='Declare all decision variables integral (MIP)')

    # Synthesis
    parser.add_argument('--epsilon', type=float, default=None,
                        help='Maximum L-infinity perturbation')
    parser.add_argument('--objective', type=str, default=None,
                        choices=[ObjectiveKind.MIN_LINF, ObjectiveKind.MAX_CONF],
                        help='"min-linf": smallest perturbation, "max-conf": largest target margin')
    parser.add_argument('--no_cegar', dest='cegar', action='store_false', default=None,
                        help='Solve with every deferred constraint from the start')
    parser.add_argument('--cegar_give_up_iterations', type=int, default=None,
                        help='Refinement rounds before giving up on an item')
    parser.add_argument('--no_quantization_safety', dest='quantization_safety', action='store_false', default=None,
                        help='Do not round candidates nor force a one-step change')
    parser.add_argument('--live_constraint_sampling_ratio', type=float, default=None,
                        help='Fraction of active-ReLU constraints solved immediately; the rest are deferred')
    parser.add_argument('--dataset_percentage', type=float, default=None,
                        help='Fraction of the dataset to process')
    parser.add_argument('--workers', type=int, default=None,
                        help='Dataset items synthesized in parallel')
    parser.add_argument('--threads', type=int, default=None,
                        help='Threads per item for convolution kernels and constraint promotion')
    parser.add_argument('--seed', type=int, default=None,
                        help='Seed for constraint sampling and quantization-safety choices')
    parser.add_argument('--output_dir', type=str, default=None,
                        help='Directory receiving the registry CSV')
    parser.add_argument('--registry', type=str, default=None,
                        help='Registry name, used as the CSV file name')
    return parser
