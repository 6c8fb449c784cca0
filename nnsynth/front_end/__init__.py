#===- nnsynth/front_end/__init__.py - Synthesis Front End --------------------====#
# NNSynth: Neural Network Counterexample Synthesizer
# Copyright (C) 2025– NNSynth Team
#
# Licensed under the GNU Affero General Public License v3.0 or later (AGPLv3+).
# Distributed without any warranty; see <http://www.gnu.org/licenses/>.
#===---------------------------------------------------------------------===#
#
# Purpose:
#   Datasets, labelling, accuracy and the results registry.
#
#===---------------------------------------------------------------------===#
