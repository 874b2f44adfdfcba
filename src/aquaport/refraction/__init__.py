"""Refractive interface models (flat and dome ports) with Snell's law ray tracing."""

from .base import RefractiveModel, refract
from .domeport import DomePortModel
from .flatport import FlatPortModel
from .registry import (
    INVALID_REFRAC_MODEL_ID,
    RefractiveModelId,
    get_refractive_model,
    refractive_model_cam_from_img,
    refractive_model_cam_from_img_point,
    refractive_model_exists,
    refractive_model_id_to_name,
    refractive_model_img_from_cam,
    refractive_model_name_exists,
    refractive_model_name_to_id,
    refractive_model_num_params,
    refractive_model_params_info,
    refractive_model_refraction_axis,
    refractive_model_verify_params,
)

__all__ = [
    "INVALID_REFRAC_MODEL_ID",
    "DomePortModel",
    "FlatPortModel",
    "RefractiveModel",
    "RefractiveModelId",
    "get_refractive_model",
    "refract",
    "refractive_model_cam_from_img",
    "refractive_model_cam_from_img_point",
    "refractive_model_exists",
    "refractive_model_id_to_name",
    "refractive_model_img_from_cam",
    "refractive_model_name_exists",
    "refractive_model_name_to_id",
    "refractive_model_num_params",
    "refractive_model_params_info",
    "refractive_model_refraction_axis",
    "refractive_model_verify_params",
]
