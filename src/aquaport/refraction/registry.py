"""Refractive model registry keyed by :class:`RefractiveModelId`."""

from __future__ import annotations

import enum
from collections.abc import Sequence

import torch

from aquaport.models.registry import get_camera_model
from aquaport.refraction.base import RefractiveModel
from aquaport.refraction.domeport import DomePortModel
from aquaport.refraction.flatport import FlatPortModel
from aquaport.types import Ray3D

INVALID_REFRAC_MODEL_ID = -1


class RefractiveModelId(enum.IntEnum):
    """Identifiers of the registered refractive interface models."""

    FLATPORT = 0
    DOMEPORT = 1


_MODELS: dict[int, RefractiveModel] = {
    model.model_id: model for model in (FlatPortModel(), DomePortModel())
}

_NAME_TO_ID: dict[str, int] = {model.model_name: mid for mid, model in _MODELS.items()}


def refractive_model_exists(model_id: int) -> bool:
    return model_id in _MODELS


def refractive_model_name_exists(model_name: str) -> bool:
    return model_name in _NAME_TO_ID


def refractive_model_name_to_id(model_name: str) -> int:
    """Resolve a refractive model name (e.g. "FLATPORT") to its id."""
    if model_name not in _NAME_TO_ID:
        raise ValueError(
            f"Unknown refractive model name {model_name!r}; "
            f"expected one of {sorted(_NAME_TO_ID)}"
        )
    return _NAME_TO_ID[model_name]


def refractive_model_id_to_name(model_id: int) -> str:
    return get_refractive_model(model_id).model_name


def get_refractive_model(model: int | str) -> RefractiveModel:
    """Return the registry entry for an id or a name.

    Raises:
        ValueError: If the id or name is not registered.
    """
    if isinstance(model, str):
        model = refractive_model_name_to_id(model)
    if model not in _MODELS:
        raise ValueError(f"Unknown refractive model id {model!r}")
    return _MODELS[model]


def refractive_model_num_params(model_id: int) -> int:
    return get_refractive_model(model_id).num_params


def refractive_model_params_info(model_id: int) -> str:
    return get_refractive_model(model_id).params_info


def refractive_model_verify_params(model_id: int, params: Sequence[float]) -> bool:
    """Validate refractive parameters; unknown models are reported as invalid."""
    if not refractive_model_exists(model_id):
        return False
    return _MODELS[model_id].verify_params(params)


def refractive_model_refraction_axis(
    model_id: int, params: torch.Tensor
) -> torch.Tensor:
    return get_refractive_model(model_id).refraction_axis(params)


def refractive_model_cam_from_img(
    base_model_id: int,
    model_id: int,
    base_params: torch.Tensor,
    params: torch.Tensor,
    xy: torch.Tensor,
) -> Ray3D:
    return get_refractive_model(model_id).cam_from_img(
        get_camera_model(base_model_id), base_params, params, xy
    )


def refractive_model_cam_from_img_point(
    base_model_id: int,
    model_id: int,
    base_params: torch.Tensor,
    params: torch.Tensor,
    xy: torch.Tensor,
    depth: float | torch.Tensor,
) -> torch.Tensor:
    return get_refractive_model(model_id).cam_from_img_point(
        get_camera_model(base_model_id), base_params, params, xy, depth
    )


def refractive_model_img_from_cam(
    base_model_id: int,
    model_id: int,
    base_params: torch.Tensor,
    params: torch.Tensor,
    points: torch.Tensor,
) -> torch.Tensor:
    return get_refractive_model(model_id).img_from_cam(
        get_camera_model(base_model_id), base_params, params, points
    )
