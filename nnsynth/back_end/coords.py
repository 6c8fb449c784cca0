#===- nnsynth/back_end/coords.py - Image Coordinates --------------------====#
# NNSynth: Neural Network Counterexample Synthesizer
# Copyright (C) 2025– NNSynth Team
#
# Licensed under the GNU Affero General Public License v3.0 or later (AGPLv3+).
# Distributed without any warranty; see <http://www.gnu.org/licenses/>.
#===---------------------------------------------------------------------===#
#
# Purpose:
#   Bijection between flat feature-vector indices and (channel, row, col)
#   positions, plus the window-count rule shared by convolution and pooling.
#
#===---------------------------------------------------------------------===#

import math
from dataclasses import dataclass


@dataclass(frozen=True)
class ImageCoordinates:
    channels: int
    rows: int
    cols: int

    def __post_init__(self):
        if self.channels <= 0 or self.rows <= 0 or self.cols <= 0:
            raise ValueError(f"Coordinates must be positive, got {self.channels}x{self.rows}x{self.cols}")

    @property
    def size(self) -> int:
        return self.channels * self.rows * self.cols

    def get_index(self, channel: int, row: int, col: int) -> int:
        return self.rows * self.cols * channel + self.cols * row + col

    def get_channel(self, index: int) -> int:
        return index // (self.rows * self.cols)

    def get_row(self, index: int) -> int:
        return (index % (self.rows * self.cols)) // self.cols

    def get_col(self, index: int) -> int:
        return index % self.cols

    def unravel(self, index: int):
        return self.get_channel(index), self.get_row(index), self.get_col(index)

    def in_bounds(self, row: int, col: int) -> bool:
        return 0 <= row < self.rows and 0 <= col < self.cols


def compute_output_count(kernel_dim: int, image_dim: int, stride: int,
                         padding: int, pad_ending: bool) -> int:
    """Number of window positions along one spatial axis.

    With ``pad_ending`` the count is rounded up (pooling), otherwise down
    (convolution). A window that would start inside the trailing padding
    is dropped.
    """
    f = (image_dim + 2 * padding - kernel_dim) / stride + 1
    out = int(math.ceil(f)) if pad_ending else int(math.floor(f))
    if (out - 1) * stride >= image_dim + padding:
        out -= 1
    return out
