#===- nnsynth/back_end/__init__.py - Synthesis Back End ----------------------====#
# NNSynth: Neural Network Counterexample Synthesizer
# Copyright (C) 2025– NNSynth Team
#
# Licensed under the GNU Affero General Public License v3.0 or later (AGPLv3+).
# Distributed without any warranty; see <http://www.gnu.org/licenses/>.
#===---------------------------------------------------------------------===#
#
# Purpose:
#   Numeric core, layers, networks, formulas, solvers and the synthesizer.
#
#===---------------------------------------------------------------------===#
