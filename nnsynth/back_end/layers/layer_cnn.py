#===- nnsynth/back_end/layers/layer_cnn.py - Spatial Layers -------------====#
# NNSynth: Neural Network Counterexample Synthesizer
# Copyright (C) 2025– NNSynth Team
#
# Licensed under the GNU Affero General Public License v3.0 or later (AGPLv3+).
# Distributed without any warranty; see <http://www.gnu.org/licenses/>.
#===---------------------------------------------------------------------===#
#
# Purpose:
#   Convolution and pooling layers over (channel, row, col) images.
#   Convolution evaluates concretely through an im2col matrix product and
#   symbolically through direct accumulation; max pooling records and
#   replays the argmax of every window.
#
#===---------------------------------------------------------------------===#

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional

import numpy as np
import torch
import torch.nn.functional as F

from nnsynth.back_end.coords import ImageCoordinates, compute_output_count
from nnsynth.back_end.core import (Con, DimensionMismatchError, Ineq,
                                   LayerInstrumentation, LinTerm,
                                   NetInstrumentation, SynthState)
from nnsynth.back_end.layers.base import Layer, LayerKind
from nnsynth.back_end.num import Num


class ConvLayer(Layer):
    """2-D convolution with square kernels and implicit zero padding.

    ``kernels`` has one row per output channel laid out in kernel
    coordinates ``(channel, i, j)``; a (K, C, k, k) tensor is accepted and
    flattened.
    """

    kind = LayerKind.CONV2D

    def __init__(self, index: int, input_coords: ImageCoordinates, kernels, bias,
                 kernel_dim: int, padding: int = 0, stride: int = 1, workers: int = 1):
        kernels = np.asarray(kernels, dtype=np.float64)
        kernels = np.ascontiguousarray(kernels.reshape(kernels.shape[0], -1))
        bias = np.asarray(bias, dtype=np.float64).reshape(-1)
        self.kernel_coords = ImageCoordinates(input_coords.channels, kernel_dim, kernel_dim)
        if kernels.shape[1] != self.kernel_coords.size:
            raise DimensionMismatchError(
                f"Kernel rows have {kernels.shape[1]} entries, expected {self.kernel_coords.size}")
        if bias.shape[0] != kernels.shape[0]:
            raise DimensionMismatchError(
                f"{kernels.shape[0]} kernels but {bias.shape[0]} intercepts")
        out_rows = compute_output_count(kernel_dim, input_coords.rows, stride, padding, False)
        out_cols = compute_output_count(kernel_dim, input_coords.cols, stride, padding, False)
        output_coords = ImageCoordinates(kernels.shape[0], out_rows, out_cols)
        super().__init__(index, input_coords.size, output_coords.size, input_coords, output_coords)
        self.kernels = kernels
        self.bias = bias
        self.kernel_dim = kernel_dim
        self.padding = padding
        self.stride = stride
        self.workers = max(1, int(workers))
        self._kernels_t = torch.from_numpy(self.kernels)
        self._bias_t = torch.from_numpy(self.bias)
        self._scratch = threading.local()

    # --- concrete: im2col ---
    def _im2col(self, x: np.ndarray) -> torch.Tensor:
        ic, oc = self.input_coords, self.output_coords
        img = torch.from_numpy(np.ascontiguousarray(x, dtype=np.float64))
        img = img.view(1, ic.channels, ic.rows, ic.cols)
        cols = F.unfold(img, kernel_size=self.kernel_dim, padding=self.padding, stride=self.stride)[0]
        # unfold rounds down without dropping a window that starts in the padding
        ur = (ic.rows + 2 * self.padding - self.kernel_dim) // self.stride + 1
        uc = (ic.cols + 2 * self.padding - self.kernel_dim) // self.stride + 1
        if (ur, uc) != (oc.rows, oc.cols):
            cols = cols.reshape(-1, ur, uc)[:, :oc.rows, :oc.cols].reshape(cols.shape[0], -1)
        return cols

    def _buffer(self, positions: int) -> torch.Tensor:
        buf = getattr(self._scratch, "out", None)
        if buf is None or buf.shape[1] != positions:
            buf = torch.empty((self.kernels.shape[0], positions), dtype=torch.float64)
            self._scratch.out = buf
        return buf

    def evaluate_concrete(self, x: np.ndarray) -> np.ndarray:
        self.check_input(x)
        cols = self._im2col(x)
        buf = self._buffer(cols.shape[1])
        torch.matmul(self._kernels_t, cols, out=buf)
        return (buf + self._bias_t[:, None]).reshape(-1).numpy()

    # --- shared direct form ---
    def _apply_kernel(self, num: Num, x, kernel: int, row: int, col: int):
        ic, kc = self.input_coords, self.kernel_coords
        w = self.kernels[kernel]
        acc = num.const(self.bias[kernel])
        for c in range(ic.channels):
            for i in range(self.kernel_dim):
                xr = row - self.padding + i
                if xr < 0 or xr >= ic.rows:
                    continue
                for j in range(self.kernel_dim):
                    yc = col - self.padding + j
                    if yc < 0 or yc >= ic.cols:
                        continue
                    wv = w[kc.get_index(c, i, j)]
                    if wv != 0.0:
                        acc = num.add_mul(acc, x[ic.get_index(c, xr, yc)], wv)
        return acc

    def forward(self, num: Num, x, state):
        oc = self.output_coords
        out = num.create_vector(self.output_dim)

        def run(kernel: int) -> None:
            for r in range(oc.rows):
                for c in range(oc.cols):
                    out[oc.get_index(kernel, r, c)] = self._apply_kernel(
                        num, x, kernel, r * self.stride, c * self.stride)

        if self.workers > 1:
            with ThreadPoolExecutor(max_workers=self.workers) as pool:
                list(pool.map(run, range(oc.channels)))
        else:
            for kernel in range(oc.channels):
                run(kernel)
        return out


class PoolingLayer(Layer):
    """Square-window pooling; windows are precomputed as flat input indices."""

    def __init__(self, index: int, input_coords: ImageCoordinates, kernel_dim: int,
                 stride: int, padding: int = 0, ceil_mode: bool = True):
        out_rows = compute_output_count(kernel_dim, input_coords.rows, stride, padding, ceil_mode)
        out_cols = compute_output_count(kernel_dim, input_coords.cols, stride, padding, ceil_mode)
        output_coords = ImageCoordinates(input_coords.channels, out_rows, out_cols)
        super().__init__(index, input_coords.size, output_coords.size, input_coords, output_coords)
        self.kernel_dim = kernel_dim
        self.stride = stride
        self.padding = padding
        self.ceil_mode = ceil_mode
        self.windows = self._build_windows()

    def _window(self, channel: int, out_row: int, out_col: int) -> List[int]:
        ic = self.input_coords
        row0 = out_row * self.stride - self.padding
        col0 = out_col * self.stride - self.padding
        idx = []
        for i in range(self.kernel_dim):
            for j in range(self.kernel_dim):
                if ic.in_bounds(row0 + i, col0 + j):
                    idx.append(ic.get_index(channel, row0 + i, col0 + j))
        return idx

    def _build_windows(self) -> List[List[int]]:
        oc = self.output_coords
        windows = [None] * oc.size
        for ch in range(oc.channels):
            for r in range(oc.rows):
                for c in range(oc.cols):
                    win = self._window(ch, r, c)
                    if not win:
                        raise ValueError(f"Pooling window ({ch}, {r}, {c}) lies entirely in the padding")
                    windows[oc.get_index(ch, r, c)] = win
        return windows


class MaxPoolLayer(PoolingLayer):
    kind = LayerKind.MAXPOOL2D

    def is_affine(self) -> bool:
        return False

    def argmax(self, x: np.ndarray) -> np.ndarray:
        """Winning input index per window; the first maximum in scan order wins."""
        sel = np.empty(self.output_dim, dtype=np.int64)
        for o, win in enumerate(self.windows):
            best = win[0]
            for idx in win[1:]:
                if x[idx] > x[best]:
                    best = idx
            sel[o] = best
        return sel

    def evaluate_concrete(self, x: np.ndarray) -> np.ndarray:
        self.check_input(x)
        x = np.asarray(x, dtype=np.float64)
        return x[self.argmax(x)]

    def instrument(self, instr: NetInstrumentation, x: np.ndarray, y: np.ndarray) -> None:
        rec = LayerInstrumentation.for_maxpool(self.output_dim)
        rec.selections[:] = self.argmax(np.asarray(x, dtype=np.float64))
        instr.record(self.index, rec)

    def evaluate_symbolic(self, state: SynthState, x: List[LinTerm]) -> List[LinTerm]:
        self.check_input(x)
        selections = state.instrumentation.get(self.index).selections
        if selections is None:
            raise ValueError(f"Layer {self.index} has no pooling selections recorded")
        out: List[LinTerm] = []
        for o, win in enumerate(self.windows):
            sel = int(selections[o])
            if sel not in win:
                raise ValueError(f"Recorded selection {sel} is outside window {o} of layer {self.index}")
            winner = x[sel]
            for idx in win:
                if idx != sel:
                    state.deferred.add(Con(winner - x[idx], Ineq.GE))
            out.append(winner)
        return out


class AvgPoolLayer(PoolingLayer):
    """Mean over each pooling window.

    The divisor follows torch: ``divisor_override`` when given, otherwise
    the window clipped to the padded input when ``count_include_pad`` is
    set, otherwise the number of in-bounds cells. With ``legacy_divisor``
    the in-bounds count starts at one, so the divisor is one larger than
    the number of cells summed.
    """

    kind = LayerKind.AVGPOOL2D

    def __init__(self, index: int, input_coords: ImageCoordinates, kernel_dim: int,
                 stride: int, padding: int = 0, ceil_mode: bool = True,
                 legacy_divisor: bool = True, count_include_pad: bool = False,
                 divisor_override: Optional[int] = None):
        super().__init__(index, input_coords, kernel_dim, stride, padding, ceil_mode)
        self.legacy_divisor = legacy_divisor
        self.count_include_pad = count_include_pad
        self.divisor_override = divisor_override
        self.divisors = self._build_divisors()

    def _padded_extent(self, out_pos: int, size: int) -> int:
        start = out_pos * self.stride - self.padding
        end = min(start + self.kernel_dim, size + self.padding)
        return end - start

    def _build_divisors(self) -> List[float]:
        if self.divisor_override is not None:
            if self.divisor_override <= 0:
                raise ValueError(f"divisor_override must be positive, got {self.divisor_override}")
            return [float(self.divisor_override)] * self.output_dim
        if not self.count_include_pad:
            extra = 1 if self.legacy_divisor else 0
            return [float(len(win) + extra) for win in self.windows]
        ic, oc = self.input_coords, self.output_coords
        divisors = [0.0] * self.output_dim
        for ch in range(oc.channels):
            for r in range(oc.rows):
                for c in range(oc.cols):
                    divisors[oc.get_index(ch, r, c)] = float(
                        self._padded_extent(r, ic.rows) * self._padded_extent(c, ic.cols))
        return divisors

    def forward(self, num: Num, x, state):
        out = num.create_vector(self.output_dim)
        for o, win in enumerate(self.windows):
            acc = num.const(0.0)
            for idx in win:
                acc = num.add(acc, x[idx])
            out[o] = num.mul(acc, 1.0 / self.divisors[o])
        return out
