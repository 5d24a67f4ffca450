"""superres_core.config
=====================

Build solver options, image models and regularizers from YAML.

Layout::

    image_model:
      stages:
        - {stage_id: motion_shift, shifts: [[0, 0], [1, 0]]}
        - {stage_id: psf_blur, sigma: 1.0}
        - {stage_id: downsampling, scale: 2}
    regularizers:
      - {regularizer_id: total_variation, regularization_parameter: 0.01}
    irls_map_solver:
      max_num_irls_iterations: 20

Stage and regularizer entries take their parameters either inline or
under a ``params`` mapping (the form produced by ``serialize()``).
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml

from superres_core.errors import ConfigurationError
from superres_core.image_model.image_model import ImageModel
from superres_core.image_model.stages import get_stage
from superres_core.optimization.irls_map_solver import IRLSMapSolverOptions
from superres_core.regularization.base import Regularizer
from superres_core.regularization.regularizers import get_regularizer

logger = logging.getLogger(__name__)


def load_config(path: Union[str, Path]) -> Dict[str, Any]:
    """Read a YAML config file into a dict."""
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            cfg = yaml.safe_load(f)
    except OSError as exc:
        raise ConfigurationError(f"Cannot read config file {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Malformed YAML in {path}: {exc}") from exc

    if cfg is None:
        cfg = {}
    if not isinstance(cfg, dict):
        raise ConfigurationError(
            f"Top level of {path} must be a mapping, got {type(cfg).__name__}"
        )
    logger.debug(f"Loaded config {path} with sections {sorted(cfg.keys())}")
    return cfg


def _split_entry(entry: Any, id_key: str, extra_keys: Tuple[str, ...] = ()) -> Tuple[str, Dict[str, Any]]:
    if not isinstance(entry, dict) or id_key not in entry:
        raise ConfigurationError(f"Each entry must be a mapping with a '{id_key}' key, got {entry!r}")
    entry_id = entry[id_key]
    if "params" in entry:
        params = entry["params"] or {}
        if not isinstance(params, dict):
            raise ConfigurationError(f"'params' of '{entry_id}' must be a mapping")
        params = dict(params)
    else:
        params = {
            k: v for k, v in entry.items() if k != id_key and k not in extra_keys
        }
    return entry_id, params


def image_model_from_config(cfg: Dict[str, Any]) -> ImageModel:
    """Build an ImageModel from the ``image_model.stages`` section."""
    section = cfg.get("image_model") or {}
    stages_cfg = section.get("stages") or []
    if not isinstance(stages_cfg, list):
        raise ConfigurationError("'image_model.stages' must be a list")

    model = ImageModel()
    for entry in stages_cfg:
        stage_id, params = _split_entry(entry, "stage_id")
        model.add_degradation_stage(get_stage(stage_id, params))
    return model


def regularizers_from_config(
    cfg: Dict[str, Any],
) -> List[Tuple[Regularizer, Optional[float]]]:
    """Build ``(regularizer, regularization_parameter)`` pairs.

    The weight is None when the entry does not set one, so the solver's
    default applies.
    """
    entries = cfg.get("regularizers") or []
    if not isinstance(entries, list):
        raise ConfigurationError("'regularizers' must be a list")

    result: List[Tuple[Regularizer, Optional[float]]] = []
    for entry in entries:
        regularizer_id, params = _split_entry(
            entry, "regularizer_id", extra_keys=("regularization_parameter",)
        )
        weight = entry.get("regularization_parameter")
        result.append((
            get_regularizer(regularizer_id, params),
            None if weight is None else float(weight),
        ))
    return result


def solver_options_from_config(cfg: Dict[str, Any]) -> IRLSMapSolverOptions:
    """Build IRLSMapSolverOptions from the ``irls_map_solver`` section.

    Out-of-range values raise pydantic's ValidationError.
    """
    section = cfg.get("irls_map_solver") or {}
    if not isinstance(section, dict):
        raise ConfigurationError("'irls_map_solver' must be a mapping")
    return IRLSMapSolverOptions(**section)
