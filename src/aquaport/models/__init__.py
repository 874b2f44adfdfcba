"""Camera model registry: parameter layouts, projection and unprojection."""

from .base import CameraModel
from .distortion import (
    OpenCVCameraModel,
    OpenCVFisheyeCameraModel,
    RadialCameraModel,
    SimpleRadialCameraModel,
)
from .pinhole import PinholeCameraModel, SimplePinholeCameraModel
from .registry import (
    INVALID_MODEL_ID,
    CameraModelId,
    camera_model_cam_from_img,
    camera_model_cam_from_img_threshold,
    camera_model_exists,
    camera_model_extra_params_idxs,
    camera_model_focal_length_idxs,
    camera_model_has_bogus_params,
    camera_model_id_to_name,
    camera_model_img_from_cam,
    camera_model_initialize_params,
    camera_model_name_exists,
    camera_model_name_to_id,
    camera_model_num_params,
    camera_model_params_info,
    camera_model_principal_point_idxs,
    camera_model_verify_params,
    get_camera_model,
)

__all__ = [
    "INVALID_MODEL_ID",
    "CameraModel",
    "CameraModelId",
    "OpenCVCameraModel",
    "OpenCVFisheyeCameraModel",
    "PinholeCameraModel",
    "RadialCameraModel",
    "SimplePinholeCameraModel",
    "SimpleRadialCameraModel",
    "camera_model_cam_from_img",
    "camera_model_cam_from_img_threshold",
    "camera_model_exists",
    "camera_model_extra_params_idxs",
    "camera_model_focal_length_idxs",
    "camera_model_has_bogus_params",
    "camera_model_id_to_name",
    "camera_model_img_from_cam",
    "camera_model_initialize_params",
    "camera_model_name_exists",
    "camera_model_name_to_id",
    "camera_model_num_params",
    "camera_model_params_info",
    "camera_model_principal_point_idxs",
    "camera_model_verify_params",
    "get_camera_model",
]
