#===- nnsynth/front_end/dataset.py - Dataset Providers ------------------====#
# NNSynth: Neural Network Counterexample Synthesizer
# Copyright (C) 2025– NNSynth Team
#
# Licensed under the GNU Affero General Public License v3.0 or later (AGPLv3+).
# Distributed without any warranty; see <http://www.gnu.org/licenses/>.
#===---------------------------------------------------------------------===#
#
# Purpose:
#   Indexable (feature vector, label) collections, eager or lazily loaded.
#
#===---------------------------------------------------------------------===#

from __future__ import annotations

from typing import Callable, Iterator, List, Optional, Sequence, Tuple

import numpy as np

from nnsynth.back_end.coords import ImageCoordinates
from nnsynth.back_end.core import DimensionMismatchError


class Dataset:
    """Labelled feature vectors.

    Items are either held in memory or produced by a loader called with the
    item index on every access; a loader must return the same vector each
    time it is called with the same index.
    """

    def __init__(self, labels: Sequence[int], label_count: Optional[int] = None,
                 data: Optional[Sequence[np.ndarray]] = None,
                 loader: Optional[Callable[[int], np.ndarray]] = None,
                 name: str = "dataset"):
        if (data is None) == (loader is None):
            raise ValueError("Dataset needs exactly one of data or loader")
        self.labels = np.asarray(labels, dtype=np.int64).reshape(-1)
        if data is not None and len(data) != len(self.labels):
            raise DimensionMismatchError(
                f"{len(data)} data items but {len(self.labels)} labels")
        self._data = data
        self._loader = loader
        self.label_count = int(label_count) if label_count is not None else (
            int(self.labels.max()) + 1 if len(self.labels) else 0)
        self.name = name

    @classmethod
    def from_arrays(cls, data, labels, label_count: Optional[int] = None,
                    name: str = "dataset") -> "Dataset":
        data = [np.asarray(d, dtype=np.float64).reshape(-1) for d in data]
        return cls(labels, label_count, data=data, name=name)

    @classmethod
    def lazy(cls, loader: Callable[[int], np.ndarray], labels, label_count: Optional[int] = None,
             name: str = "dataset") -> "Dataset":
        return cls(labels, label_count, loader=loader, name=name)

    def __len__(self) -> int:
        return len(self.labels)

    def get_datum(self, i: int) -> np.ndarray:
        if self._data is not None:
            return self._data[i]
        return np.asarray(self._loader(i), dtype=np.float64).reshape(-1)

    def get_label(self, i: int) -> int:
        return int(self.labels[i])

    def __getitem__(self, i: int) -> Tuple[np.ndarray, int]:
        return self.get_datum(i), self.get_label(i)

    def __iter__(self) -> Iterator[Tuple[np.ndarray, int]]:
        for i in range(len(self)):
            yield self[i]

    def subset(self, indices: List[int]) -> "Dataset":
        data = [self.get_datum(i) for i in indices]
        return self.__class__._like(self, data, self.labels[list(indices)])

    @staticmethod
    def _like(ds: "Dataset", data, labels) -> "Dataset":
        return Dataset(labels, ds.label_count, data=data, name=ds.name)


class ImageDataset(Dataset):
    """Dataset of images flattened in (channel, row, col) order."""

    def __init__(self, labels, coords: ImageCoordinates, label_count: Optional[int] = None,
                 data=None, loader=None, is_color: bool = False, name: str = "dataset"):
        super().__init__(labels, label_count, data=data, loader=loader, name=name)
        self.coords = coords
        self.is_color = is_color
        if data is not None:
            for i, d in enumerate(data):
                if len(d) != coords.size:
                    raise DimensionMismatchError(
                        f"Image {i} has {len(d)} values, expected {coords.size}")

    @staticmethod
    def _like(ds: "ImageDataset", data, labels) -> "ImageDataset":
        return ImageDataset(labels, ds.coords, ds.label_count, data=data,
                            is_color=ds.is_color, name=ds.name)
