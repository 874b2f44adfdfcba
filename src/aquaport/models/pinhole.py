"""Distortion-free pinhole camera models."""

from __future__ import annotations

from aquaport.models.base import CameraModel


class SimplePinholeCameraModel(CameraModel):
    """Pinhole camera with one shared focal length: ``f, cx, cy``."""

    model_id = 0
    model_name = "SIMPLE_PINHOLE"
    num_params = 3
    params_info = "f, cx, cy"
    focal_length_idxs = (0,)
    principal_point_idxs = (1, 2)


class PinholeCameraModel(CameraModel):
    """Pinhole camera with separate focal lengths: ``fx, fy, cx, cy``."""

    model_id = 1
    model_name = "PINHOLE"
    num_params = 4
    params_info = "fx, fy, cx, cy"
    focal_length_idxs = (0, 1)
    principal_point_idxs = (2, 3)
