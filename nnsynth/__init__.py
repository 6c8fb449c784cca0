#===- nnsynth/__init__.py - NNSynth Package -------------------------------====#
# NNSynth: Neural Network Counterexample Synthesizer
# Copyright (C) 2025– NNSynth Team
#
# Licensed under the GNU Affero General Public License v3.0 or later (AGPLv3+).
# Distributed without any warranty; see <http://www.gnu.org/licenses/>.
#===---------------------------------------------------------------------===#
#
# Purpose:
#   Counterexample synthesis for feed-forward classifiers.
#
#===---------------------------------------------------------------------===#

__version__ = "0.1.0"
