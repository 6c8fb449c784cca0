#===- nnsynth/back_end/layers/__init__.py - Layer Library ---------------====#
# NNSynth: Neural Network Counterexample Synthesizer
# Copyright (C) 2025– NNSynth Team
#
# Licensed under the GNU Affero General Public License v3.0 or later (AGPLv3+).
# Distributed without any warranty; see <http://www.gnu.org/licenses/>.
#===---------------------------------------------------------------------===#
#
# Purpose:
#   Layer library: every layer evaluates concretely and symbolically and
#   records the branch choices of its concrete passes.
#
#===---------------------------------------------------------------------===#

from .base import Layer, LayerKind
from .layer_mlp import ActivationPatternLog, DataLayer, DenseLayer, ReLULayer
from .layer_cnn import AvgPoolLayer, ConvLayer, MaxPoolLayer, PoolingLayer
from .fused import FusedLayer

__all__ = [
    'Layer', 'LayerKind',
    'DataLayer', 'DenseLayer', 'ReLULayer', 'ActivationPatternLog',
    'ConvLayer', 'PoolingLayer', 'MaxPoolLayer', 'AvgPoolLayer',
    'FusedLayer',
]
