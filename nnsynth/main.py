#===- nnsynth/main.py - NNSynth Command-Line Driver ---------------------====#
# NNSynth: Neural Network Counterexample Synthesizer
# Copyright (C) 2025– NNSynth Team
#
# Licensed under the GNU Affero General Public License v3.0 or later (AGPLv3+).
# Distributed without any warranty; see <http://www.gnu.org/licenses/>.
#===---------------------------------------------------------------------===#
#
# Purpose:
#   Command-line entry point: loads a torch classifier and an .npz dataset,
#   synthesizes counterexamples and writes the results registry.
#
#===---------------------------------------------------------------------===#

import logging
import sys
from dataclasses import fields
from pathlib import Path

import numpy as np
import torch

from nnsynth.back_end.coords import ImageCoordinates
from nnsynth.back_end.layers import ActivationPatternLog, ReLULayer
from nnsynth.back_end.net_factory import from_torch_sequential
from nnsynth.back_end.synthesizer import synthesize_counterexamples
from nnsynth.front_end.accuracy import get_accuracy
from nnsynth.front_end.dataset import Dataset, ImageDataset
from nnsynth.front_end.registry import SynthRegistry
from nnsynth.util.config import load_options
from nnsynth.util.options import SynthOptions, get_parser
from nnsynth.util.path_config import get_default_output_dir

logger = logging.getLogger("nnsynth")


def load_npz_dataset(path: str, input_shape=None) -> Dataset:
    with np.load(path) as archive:
        data = np.asarray(archive["data"], dtype=np.float64)
        labels = np.asarray(archive["labels"], dtype=np.int64)
        label_count = int(archive["label_count"]) if "label_count" in archive else None
    data = data.reshape(data.shape[0], -1)
    name = Path(path).stem
    if input_shape is not None:
        coords = ImageCoordinates(*input_shape)
        return ImageDataset(labels, coords, label_count, data=list(data),
                            is_color=coords.channels == 3, name=name)
    return Dataset(labels, label_count, data=list(data), name=name)


def main(argv=None) -> int:
    args = get_parser().parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level),
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    option_names = {f.name for f in fields(SynthOptions)}
    overrides = {k: v for k, v in vars(args).items() if k in option_names}
    options = load_options(args.config, overrides)

    model = torch.load(args.model_path, map_location="cpu", weights_only=False)
    model.eval()
    net = from_torch_sequential(model, args.input_shape, crop=args.crop, threads=options.threads,
                                avgpool_legacy_divisor=options.avgpool_legacy_divisor)
    logger.info("Loaded %r", net)
    if args.log_activation_patterns:
        pattern_log = ActivationPatternLog()
        for L in net.layers:
            if isinstance(L, ReLULayer):
                L.pattern_log = pattern_log

    dataset = load_npz_dataset(args.dataset, args.input_shape)
    logger.info("Loaded %d items from %s", len(dataset), args.dataset)
    get_accuracy(net, dataset)

    registry = SynthRegistry(options.registry, dataset_name=dataset.name,
                             output_dir=options.output_dir or get_default_output_dir())
    report = synthesize_counterexamples(net, dataset, options, registry)
    logger.info("Registry written to %s (%d records)", registry.csv_path, len(registry))
    return 0 if report.stats.errored == 0 else 1


if __name__ == "__main__":
    sys.exit(main())
