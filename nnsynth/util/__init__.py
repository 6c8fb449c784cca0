#===- nnsynth/util/__init__.py - NNSynth Utility Package ----------------====#
# NNSynth: Neural Network Counterexample Synthesizer
# Copyright (C) 2025– NNSynth Team
#
# Licensed under the GNU Affero General Public License v3.0 or later (AGPLv3+).
# Distributed without any warranty; see <http://www.gnu.org/licenses/>.
#===---------------------------------------------------------------------===#
#
# Purpose:
#   Synthesis options, configuration loading, paths and run statistics.
#
#===---------------------------------------------------------------------===#
