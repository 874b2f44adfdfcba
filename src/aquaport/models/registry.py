"""Camera model registry keyed by :class:`CameraModelId`.

Lookups of unknown ids or names raise ``ValueError``; callers must only
reference registered models. Parameter verification returns ``bool`` so
untrusted parameter vectors can be rejected without raising.
"""

from __future__ import annotations

import enum
from collections.abc import Sequence

import torch

from aquaport.models.base import CameraModel
from aquaport.models.distortion import (
    OpenCVCameraModel,
    OpenCVFisheyeCameraModel,
    RadialCameraModel,
    SimpleRadialCameraModel,
)
from aquaport.models.pinhole import PinholeCameraModel, SimplePinholeCameraModel

INVALID_MODEL_ID = -1


class CameraModelId(enum.IntEnum):
    """Identifiers of the registered camera models."""

    SIMPLE_PINHOLE = 0
    PINHOLE = 1
    SIMPLE_RADIAL = 2
    RADIAL = 3
    OPENCV = 4
    OPENCV_FISHEYE = 5


_MODELS: dict[int, CameraModel] = {
    model.model_id: model
    for model in (
        SimplePinholeCameraModel(),
        PinholeCameraModel(),
        SimpleRadialCameraModel(),
        RadialCameraModel(),
        OpenCVCameraModel(),
        OpenCVFisheyeCameraModel(),
    )
}

_NAME_TO_ID: dict[str, int] = {model.model_name: mid for mid, model in _MODELS.items()}


def camera_model_exists(model_id: int) -> bool:
    """Return True if *model_id* names a registered camera model."""
    return model_id in _MODELS


def camera_model_name_exists(model_name: str) -> bool:
    """Return True if *model_name* names a registered camera model."""
    return model_name in _NAME_TO_ID


def camera_model_name_to_id(model_name: str) -> int:
    """Resolve a model name (e.g. "PINHOLE") to its id."""
    if model_name not in _NAME_TO_ID:
        raise ValueError(
            f"Unknown camera model name {model_name!r}; "
            f"expected one of {sorted(_NAME_TO_ID)}"
        )
    return _NAME_TO_ID[model_name]


def camera_model_id_to_name(model_id: int) -> str:
    """Resolve a model id to its name."""
    return get_camera_model(model_id).model_name


def get_camera_model(model: int | str) -> CameraModel:
    """Return the registry entry for an id or a name.

    Raises:
        ValueError: If the id or name is not registered.
    """
    if isinstance(model, str):
        model = camera_model_name_to_id(model)
    if model not in _MODELS:
        raise ValueError(f"Unknown camera model id {model!r}")
    return _MODELS[model]


def camera_model_num_params(model_id: int) -> int:
    return get_camera_model(model_id).num_params


def camera_model_params_info(model_id: int) -> str:
    return get_camera_model(model_id).params_info


def camera_model_focal_length_idxs(model_id: int) -> tuple[int, ...]:
    return get_camera_model(model_id).focal_length_idxs


def camera_model_principal_point_idxs(model_id: int) -> tuple[int, ...]:
    return get_camera_model(model_id).principal_point_idxs


def camera_model_extra_params_idxs(model_id: int) -> tuple[int, ...]:
    return get_camera_model(model_id).extra_params_idxs


def camera_model_initialize_params(
    model_id: int, focal_length: float, width: int, height: int
) -> list[float]:
    return get_camera_model(model_id).initialize_params(focal_length, width, height)


def camera_model_verify_params(model_id: int, params: Sequence[float]) -> bool:
    """Validate a parameter vector; unknown models are reported as invalid."""
    if not camera_model_exists(model_id):
        return False
    return _MODELS[model_id].verify_params(params)


def camera_model_has_bogus_params(
    model_id: int,
    params: Sequence[float],
    width: int,
    height: int,
    min_focal_length_ratio: float,
    max_focal_length_ratio: float,
    max_extra_param: float,
) -> bool:
    return get_camera_model(model_id).has_bogus_params(
        params,
        width,
        height,
        min_focal_length_ratio,
        max_focal_length_ratio,
        max_extra_param,
    )


def camera_model_img_from_cam(
    model_id: int, params: torch.Tensor, uvw: torch.Tensor
) -> torch.Tensor:
    return get_camera_model(model_id).img_from_cam(params, uvw)


def camera_model_cam_from_img(
    model_id: int, params: torch.Tensor, xy: torch.Tensor
) -> torch.Tensor:
    return get_camera_model(model_id).cam_from_img(params, xy)


def camera_model_cam_from_img_threshold(
    model_id: int, params: torch.Tensor, threshold: float
) -> float:
    return get_camera_model(model_id).cam_from_img_threshold(params, threshold)
