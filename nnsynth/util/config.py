#===- nnsynth/util/config.py - Synthesis Configuration Loading ---------====#
# NNSynth: Neural Network Counterexample Synthesizer
# Copyright (C) 2025– NNSynth Team
#
# Licensed under the GNU Affero General Public License v3.0 or later (AGPLv3+).
# Distributed without any warranty; see <http://www.gnu.org/licenses/>.
#===---------------------------------------------------------------------===#

"""
Configuration loading for NNSynth synthesis runs.

Options come from the SynthOptions defaults, then an optional YAML or JSON
file, then explicit overrides (typically parsed command-line flags).
"""

import json
import logging
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from nnsynth.back_end.formulas import ObjectiveKind
from nnsynth.util.options import SynthOptions
from nnsynth.util.path_config import get_configs_dir

logger = logging.getLogger(__name__)


@dataclass
class ValidationError(Exception):
    """Configuration validation error."""
    field: str
    message: str

    def __str__(self):
        return f"Configuration error in '{self.field}': {self.message}"


_BOOL_FIELDS = {f.name for f in fields(SynthOptions) if f.type in (bool, "bool")}


def default_config_path() -> Path:
    return Path(get_configs_dir()) / "default.yaml"


def load_config_file(path: Union[str, Path]) -> Dict[str, Any]:
    """
    Load a configuration mapping from a YAML or JSON file.

    Raises:
        FileNotFoundError: If the file does not exist
        ValidationError: If the file does not hold a mapping
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")
    with open(path, "r") as f:
        if path.suffix.lower() == ".json":
            config = json.load(f)
        else:
            config = yaml.safe_load(f)
    if config is None:
        return {}
    if not isinstance(config, dict):
        raise ValidationError(str(path), "top level must be a mapping")
    # options may be nested under a 'synthesis' section
    if "synthesis" in config and isinstance(config["synthesis"], dict):
        config = config["synthesis"]
    return config


def validate_options(opts: SynthOptions) -> None:
    if not 0.0 < opts.dataset_percentage <= 1.0:
        raise ValidationError("dataset_percentage", "must be in (0, 1]")
    if opts.epsilon <= 0.0:
        raise ValidationError("epsilon", "must be positive")
    if opts.min_value > opts.max_value:
        raise ValidationError("min_value", "must not exceed max_value")
    if opts.label_confidence_diff < 0.0:
        raise ValidationError("label_confidence_diff", "must be non-negative")
    if opts.objective not in (ObjectiveKind.MIN_LINF, ObjectiveKind.MAX_CONF):
        raise ValidationError("objective", f"unknown objective '{opts.objective}'")
    if opts.lp_time_limit <= 0.0:
        raise ValidationError("lp_time_limit", "must be positive")
    if not 0.0 <= opts.low_confidence_threshold <= 1.0:
        raise ValidationError("low_confidence_threshold", "must be in [0, 1]")
    if opts.cegar_give_up_iterations < 0:
        raise ValidationError("cegar_give_up_iterations", "must be non-negative")
    if not 0.0 <= opts.live_constraint_sampling_ratio <= 1.0:
        raise ValidationError("live_constraint_sampling_ratio", "must be in [0, 1]")
    if opts.quantization_step <= 0.0:
        raise ValidationError("quantization_step", "must be positive")
    if opts.max_promotions_per_round <= 0:
        raise ValidationError("max_promotions_per_round", "must be positive")
    if opts.workers < 1 or opts.threads < 1:
        raise ValidationError("workers" if opts.workers < 1 else "threads", "must be at least 1")
    if opts.solver not in ("auto", "gurobi", "scipy"):
        raise ValidationError("solver", f"unknown solver '{opts.solver}'")


def options_from_dict(values: Dict[str, Any], base: Optional[SynthOptions] = None) -> SynthOptions:
    known = {f.name for f in fields(SynthOptions)}
    for key in values:
        if key not in known:
            raise ValidationError(key, "unknown option")
    updates = {}
    for key, value in values.items():
        if key in _BOOL_FIELDS and not isinstance(value, bool):
            raise ValidationError(key, f"expected a boolean, got {value!r}")
        updates[key] = value
    opts = replace(base or SynthOptions(), **updates)
    validate_options(opts)
    return opts


def load_options(path: Optional[Union[str, Path]] = None,
                 overrides: Optional[Dict[str, Any]] = None) -> SynthOptions:
    """Defaults, then ``path`` (if given), then every non-None override."""
    opts = SynthOptions()
    if path is not None:
        opts = options_from_dict(load_config_file(path), opts)
        logger.info("Loaded synthesis options from %s", path)
    if overrides:
        opts = options_from_dict({k: v for k, v in overrides.items() if v is not None}, opts)
    validate_options(opts)
    return opts
