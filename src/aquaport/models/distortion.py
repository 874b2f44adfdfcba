"""Camera models with lens distortion.

Distortion is expressed as additive offsets on normalized image coordinates
``(u, v) = (x / z, y / z)``; see :meth:`CameraModel.distortion`.
"""

from __future__ import annotations

import torch

from aquaport.models.base import CameraModel


class SimpleRadialCameraModel(CameraModel):
    """One-coefficient radial distortion: ``f, cx, cy, k``."""

    model_id = 2
    model_name = "SIMPLE_RADIAL"
    num_params = 4
    params_info = "f, cx, cy, k"
    focal_length_idxs = (0,)
    principal_point_idxs = (1, 2)
    extra_params_idxs = (3,)

    def distortion(
        self, extra: torch.Tensor, u: torch.Tensor, v: torch.Tensor
    ) -> tuple[torch.Tensor, torch.Tensor]:
        radial = extra[0] * (u * u + v * v)
        return u * radial, v * radial


class RadialCameraModel(CameraModel):
    """Two-coefficient radial distortion: ``f, cx, cy, k1, k2``."""

    model_id = 3
    model_name = "RADIAL"
    num_params = 5
    params_info = "f, cx, cy, k1, k2"
    focal_length_idxs = (0,)
    principal_point_idxs = (1, 2)
    extra_params_idxs = (3, 4)

    def distortion(
        self, extra: torch.Tensor, u: torch.Tensor, v: torch.Tensor
    ) -> tuple[torch.Tensor, torch.Tensor]:
        r2 = u * u + v * v
        radial = extra[0] * r2 + extra[1] * r2 * r2
        return u * radial, v * radial


class OpenCVCameraModel(CameraModel):
    """OpenCV radial-tangential model: ``fx, fy, cx, cy, k1, k2, p1, p2``."""

    model_id = 4
    model_name = "OPENCV"
    num_params = 8
    params_info = "fx, fy, cx, cy, k1, k2, p1, p2"
    focal_length_idxs = (0, 1)
    principal_point_idxs = (2, 3)
    extra_params_idxs = (4, 5, 6, 7)

    def distortion(
        self, extra: torch.Tensor, u: torch.Tensor, v: torch.Tensor
    ) -> tuple[torch.Tensor, torch.Tensor]:
        k1, k2, p1, p2 = extra[0], extra[1], extra[2], extra[3]
        u2 = u * u
        v2 = v * v
        uv = u * v
        r2 = u2 + v2
        radial = k1 * r2 + k2 * r2 * r2
        du = u * radial + 2.0 * p1 * uv + p2 * (r2 + 2.0 * u2)
        dv = v * radial + 2.0 * p2 * uv + p1 * (r2 + 2.0 * v2)
        return du, dv


class OpenCVFisheyeCameraModel(CameraModel):
    """OpenCV equidistant fisheye model: ``fx, fy, cx, cy, k1, k2, k3, k4``.

    The image radius follows ``theta_d = theta * (1 + k1 theta^2 + ... + k4 theta^8)``
    with ``theta = atan(r)``. Valid for points in front of the camera only.
    """

    model_id = 5
    model_name = "OPENCV_FISHEYE"
    num_params = 8
    params_info = "fx, fy, cx, cy, k1, k2, k3, k4"
    focal_length_idxs = (0, 1)
    principal_point_idxs = (2, 3)
    extra_params_idxs = (4, 5, 6, 7)

    def distortion(
        self, extra: torch.Tensor, u: torch.Tensor, v: torch.Tensor
    ) -> tuple[torch.Tensor, torch.Tensor]:
        k1, k2, k3, k4 = extra[0], extra[1], extra[2], extra[3]
        r = torch.sqrt(u * u + v * v)
        eps = torch.finfo(r.dtype).eps
        nonzero = r > eps
        safe_r = torch.where(nonzero, r, torch.ones_like(r))

        theta = torch.atan(safe_r)
        theta2 = theta * theta
        theta4 = theta2 * theta2
        theta6 = theta4 * theta2
        theta8 = theta4 * theta4
        theta_d = theta * (1.0 + k1 * theta2 + k2 * theta4 + k3 * theta6 + k4 * theta8)

        scale = torch.where(nonzero, theta_d / safe_r - 1.0, torch.zeros_like(r))
        return u * scale, v * scale
