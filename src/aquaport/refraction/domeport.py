"""Dome port: a spherical glass shell around the camera."""

from __future__ import annotations

from collections.abc import Sequence

import torch

from aquaport.geometry import normalize
from aquaport.refraction.base import RefractiveModel, refract
from aquaport.types import UNIT_Z

_NEWTON_ITERATIONS = 20
_FD_STEP = 1e-7


def _exit_sphere(
    origins: torch.Tensor,
    directions: torch.Tensor,
    center: torch.Tensor,
    radius: torch.Tensor,
) -> torch.Tensor:
    """Far intersection of rays starting inside a sphere with its surface."""
    offset = origins - center
    b = (directions * offset).sum(dim=-1)
    c = (offset * offset).sum(dim=-1) - radius * radius
    # NaN when the ray misses the sphere
    s = -b + torch.sqrt(b * b - c)
    return origins + s.unsqueeze(-1) * directions


class DomePortModel(RefractiveModel):
    """Spherical air-glass-water interface.

    Parameters ``Cx, Cy, Cz, int_radius, int_thick, na, ng, nw``: dome center
    relative to the camera center (decentering), inner sphere radius, glass
    thickness, and the refractive indices of air, glass and water. Rays
    through the dome center cross it undeviated, so the refraction axis is the
    line from the camera center through the dome center. Without decentering
    the port is central and the optical axis is used.
    """

    model_id = 1
    model_name = "DOMEPORT"
    num_params = 8
    params_info = "Cx, Cy, Cz, int_radius, int_thick, na, ng, nw"

    def _verify_geometry(self, params: Sequence[float]) -> bool:
        # The camera center must lie inside the inner sphere
        return sum(p * p for p in params[:3]) < params[3] ** 2

    def refraction_axis(self, params: torch.Tensor) -> torch.Tensor:
        decentering = params[:3]
        if float(torch.linalg.norm(decentering)) < 1e-12:
            return UNIT_Z.to(params.dtype)
        return normalize(decentering)

    def trace_rays(
        self, params: torch.Tensor, directions: torch.Tensor
    ) -> tuple[torch.Tensor, torch.Tensor]:
        center = params[:3]
        radius = params[3]
        int_thick = params[4]
        na, ng, nw = self._indices(params)

        camera_center = torch.zeros_like(directions)
        inner = _exit_sphere(camera_center, directions, center, radius)
        dir_glass = refract(directions, normalize(inner - center), na / ng)

        outer = _exit_sphere(inner, dir_glass, center, radius + int_thick)
        dir_water = refract(dir_glass, normalize(outer - center), ng / nw)

        return outer, dir_water

    def _in_plane_residual(
        self,
        params: torch.Tensor,
        angles: torch.Tensor,
        axis: torch.Tensor,
        perp: torch.Tensor,
        points: torch.Tensor,
    ) -> torch.Tensor:
        """Signed distance of each point from the ray traced at *angles*."""
        directions = torch.cos(angles).unsqueeze(-1) * axis + torch.sin(
            angles
        ).unsqueeze(-1) * perp
        origins, dir_water = self.trace_rays(params, directions)
        to_point = points - origins
        # 2D cross product inside the (axis, perp) plane
        along_axis = (to_point * axis).sum(-1)
        along_perp = (to_point * perp).sum(-1)
        dir_axis = (dir_water * axis).sum(-1)
        dir_perp = (dir_water * perp).sum(-1)
        return dir_axis * along_perp - dir_perp * along_axis

    def air_directions_to_points(
        self, params: torch.Tensor, points: torch.Tensor
    ) -> torch.Tensor:
        """Solve for air directions with a 1D Newton search per point.

        The refracted ray stays in the plane spanned by the refraction axis and
        the point, so the unknown is a single in-plane angle. The derivative is
        taken by central differences.
        """
        axis = self.refraction_axis(params)
        center = params[:3]
        outer_radius = params[3] + params[4]

        axial = points @ axis
        perp_vec = points - axial.unsqueeze(-1) * axis
        perp_norm = torch.linalg.norm(perp_vec, dim=-1)
        off_axis = perp_norm > 1e-12
        perp = perp_vec / torch.where(
            off_axis, perp_norm, torch.ones_like(perp_norm)
        ).unsqueeze(-1)

        # Straight line to the point is the initial guess
        angles = torch.atan2(perp_norm, axial)
        for _ in range(_NEWTON_ITERATIONS):
            residual = self._in_plane_residual(params, angles, axis, perp, points)
            forward = self._in_plane_residual(
                params, angles + _FD_STEP, axis, perp, points
            )
            backward = self._in_plane_residual(
                params, angles - _FD_STEP, axis, perp, points
            )
            derivative = (forward - backward) / (2.0 * _FD_STEP)
            usable = torch.abs(derivative) > 1e-15
            step = torch.where(
                usable,
                residual / torch.where(usable, derivative, torch.ones_like(derivative)),
                torch.zeros_like(residual),
            )
            angles = angles - step

        directions = torch.cos(angles).unsqueeze(-1) * axis + torch.sin(
            angles
        ).unsqueeze(-1) * perp

        outside = torch.linalg.norm(points - center, dim=-1) > outer_radius
        return torch.where(
            outside.unsqueeze(-1),
            directions,
            torch.tensor(float("nan"), dtype=directions.dtype),
        )
