"""Base class for refractive interface models with Snell's law ray tracing.

A refractive model describes a housing port (flat or dome) in front of a
base camera. Rays leave the camera center in air, cross the glass, and enter
water. The outgoing ray starts on the outer glass surface, so the projection
is non-central: refracted rays do not share a single center.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from typing import ClassVar

import torch

from aquaport.geometry import normalize
from aquaport.models.base import CameraModel
from aquaport.types import Ray3D


def refract(
    directions: torch.Tensor, normals: torch.Tensor, n_ratio: float | torch.Tensor
) -> torch.Tensor:
    """Refract unit directions at a surface using vector Snell's law.

    The normal is flipped per ray to point along the direction of travel, so
    either orientation of *normals* is accepted.

    Args:
        directions: Unit incident directions, shape (N, 3).
        normals: Unit surface normals, shape (N, 3) or (3,).
        n_ratio: Ratio of refractive indices n_incident / n_transmitted.

    Returns:
        Unit refracted directions, shape (N, 3). NaN on total internal
        reflection.
    """
    normals = normals.expand_as(directions)
    cos_i = (directions * normals).sum(dim=-1)  # (N,)

    # Oriented normal pointing into the destination medium
    n_oriented = torch.where((cos_i < 0).unsqueeze(-1), -normals, normals)
    cos_i = torch.abs(cos_i)

    sin_t_sq = n_ratio**2 * (1.0 - cos_i**2)
    cos_t = torch.sqrt(1.0 - sin_t_sq)  # NaN when sin_t_sq > 1

    refracted = (
        n_ratio * directions + (cos_t - n_ratio * cos_i).unsqueeze(-1) * n_oriented
    )
    return normalize(refracted)


class RefractiveModel:
    """Ray tracing contract shared by all refractive interface models.

    Subclasses implement :meth:`refraction_axis`, :meth:`trace_rays` and
    :meth:`air_directions_to_points`; the pixel-level pipelines compose these
    with a base :class:`CameraModel`.

    Attributes:
        model_id: Registry identifier.
        model_name: Registry name, e.g. "FLATPORT".
        num_params: Length of the refractive parameter vector.
        params_info: Comma-separated human-readable parameter names.
    """

    model_id: ClassVar[int]
    model_name: ClassVar[str]
    num_params: ClassVar[int]
    params_info: ClassVar[str]

    # Positions of the (distance or radius, thickness, na, ng, nw) parameters
    _distance_idx: ClassVar[int] = 3
    _thickness_idx: ClassVar[int] = 4
    _index_idxs: ClassVar[tuple[int, int, int]] = (5, 6, 7)

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(model_id={self.model_id}, "
            f"num_params={self.num_params})"
        )

    def verify_params(self, params: Sequence[float]) -> bool:
        """Check length and physical plausibility of a parameter vector."""
        if len(params) != self.num_params:
            return False
        if not all(math.isfinite(p) for p in params):
            return False
        if params[self._distance_idx] <= 0.0 or params[self._thickness_idx] < 0.0:
            return False
        if not all(params[idx] > 0.0 for idx in self._index_idxs):
            return False
        return self._verify_geometry(params)

    def _verify_geometry(self, params: Sequence[float]) -> bool:
        # The first three parameters define the refraction axis
        return any(p != 0.0 for p in params[:3])

    def _indices(self, params: torch.Tensor) -> tuple[float, float, float]:
        na, ng, nw = (float(params[idx]) for idx in self._index_idxs)
        return na, ng, nw

    def refraction_axis(self, params: torch.Tensor) -> torch.Tensor:
        """Unit symmetry axis of the interface, shape (3,)."""
        raise NotImplementedError

    def trace_rays(
        self, params: torch.Tensor, directions: torch.Tensor
    ) -> tuple[torch.Tensor, torch.Tensor]:
        """Trace air rays leaving the camera center through the interface.

        Args:
            params: Refractive parameters, shape (num_params,).
            directions: Unit air directions from the camera center, shape (N, 3).

        Returns:
            origins: Exit points on the outer interface surface, shape (N, 3).
            directions: Unit directions in water, shape (N, 3).
        """
        raise NotImplementedError

    def air_directions_to_points(
        self, params: torch.Tensor, points: torch.Tensor
    ) -> torch.Tensor:
        """Solve for the air directions whose refracted rays hit *points*.

        Args:
            params: Refractive parameters, shape (num_params,).
            points: Camera-frame points in water, shape (N, 3).

        Returns:
            Unit air directions, shape (N, 3). NaN where no solution exists.
        """
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Pixel-level pipelines
    # ------------------------------------------------------------------

    def cam_from_img(
        self,
        base_model: CameraModel,
        base_params: torch.Tensor,
        params: torch.Tensor,
        xy: torch.Tensor,
    ) -> Ray3D:
        """Back-project pixels to refracted rays in the camera frame.

        Args:
            base_model: Camera model interpreting *base_params*.
            base_params: Base intrinsic parameters.
            params: Refractive parameters.
            xy: Pixel coordinates, shape (N, 2).

        Returns:
            Batched Ray3D with (N, 3) origins and unit (N, 3) directions.
        """
        air_directions = normalize(base_model.cam_from_img(base_params, xy))
        origins, directions = self.trace_rays(params, air_directions)
        return Ray3D(origin=origins, direction=directions)

    def cam_from_img_point(
        self,
        base_model: CameraModel,
        base_params: torch.Tensor,
        params: torch.Tensor,
        xy: torch.Tensor,
        depth: float | torch.Tensor,
    ) -> torch.Tensor:
        """Back-project pixels to the 3D points on their rays at z = *depth*."""
        ray = self.cam_from_img(base_model, base_params, params, xy)
        depth = torch.as_tensor(depth, dtype=ray.direction.dtype)
        distance = (depth - ray.origin[:, 2]) / ray.direction[:, 2]
        return ray.at(distance)

    def img_from_cam(
        self,
        base_model: CameraModel,
        base_params: torch.Tensor,
        params: torch.Tensor,
        points: torch.Tensor,
    ) -> torch.Tensor:
        """Project camera-frame points through the interface to pixels.

        Returns:
            Pixel coordinates, shape (N, 2). NaN for points that cannot be
            imaged through the interface.
        """
        air_directions = self.air_directions_to_points(params, points)
        return base_model.img_from_cam(base_params, air_directions)
