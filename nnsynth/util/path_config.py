#===- util.path_config.py ----NNSynth Path Configuration -----------------#
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
#   Locations of the project root, the bundled configuration files and the
#   default output directory for synthesis results.
#
#===----------------------------------------------------------------------===#

import os


def get_package_root() -> str:
    """Directory of the nnsynth package."""
    return os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


def get_project_root() -> str:
    """Parent directory of the nnsynth package."""
    return os.path.dirname(get_package_root())


def get_configs_dir() -> str:
    return os.path.join(get_package_root(), "configs")


def get_default_output_dir() -> str:
    return os.path.join(os.getcwd(), "synth_results")
