"""Flat port: a planar glass window in front of the camera."""

from __future__ import annotations

import math

import torch

from aquaport.geometry import normalize
from aquaport.refraction.base import RefractiveModel, refract

# Fixed count keeps the solver autograd friendly
_NEWTON_ITERATIONS = 30


class FlatPortModel(RefractiveModel):
    """Planar air-glass-water interface.

    Parameters ``Nx, Ny, Nz, int_dist, int_thick, na, ng, nw``: interface
    normal in the camera frame, distance from the camera center to the inner
    glass surface along the normal, glass thickness, and the refractive
    indices of air, glass and water. The normal is the refraction axis and is
    normalized before use.
    """

    model_id = 0
    model_name = "FLATPORT"
    num_params = 8
    params_info = "Nx, Ny, Nz, int_dist, int_thick, na, ng, nw"

    def refraction_axis(self, params: torch.Tensor) -> torch.Tensor:
        return normalize(params[:3])

    def trace_rays(
        self, params: torch.Tensor, directions: torch.Tensor
    ) -> tuple[torch.Tensor, torch.Tensor]:
        normal = self.refraction_axis(params)
        int_dist = params[3]
        int_thick = params[4]
        na, ng, nw = self._indices(params)

        # Rays pointing away from the interface never reach it
        cos_air = directions @ normal  # (N,)
        cos_air = torch.where(
            cos_air > 0, cos_air, torch.full_like(cos_air, float("nan"))
        )

        # Camera center to inner glass surface
        inner = (int_dist / cos_air).unsqueeze(-1) * directions
        dir_glass = refract(directions, normal, na / ng)

        # Through the glass to the outer surface
        cos_glass = dir_glass @ normal
        outer = inner + (int_thick / cos_glass).unsqueeze(-1) * dir_glass
        dir_water = refract(dir_glass, normal, ng / nw)

        return outer, dir_water

    def air_directions_to_points(
        self, params: torch.Tensor, points: torch.Tensor
    ) -> torch.Tensor:
        """Solve for air directions by Newton iteration on the air-ray slope.

        In the plane spanned by the normal and the point, let ``tau`` be the
        tangent of the air angle. The radial offset reached at the point's
        axial depth is::

            r(tau) = d * tau + t * tan(theta_g) + w * tan(theta_w)

        with ``tan(theta_x) = a tau / sqrt(1 + (1 - a^2) tau^2)`` and
        ``a = na / n_x``. ``r`` is increasing and concave for ``a <= 1``, so
        Newton from ``tau = 0`` converges monotonically.
        """
        normal = self.refraction_axis(params)
        int_dist = params[3]
        int_thick = params[4]
        na, ng, nw = self._indices(params)
        a_glass = na / ng
        a_water = na / nw

        axial = points @ normal  # (N,)
        radial_vec = points - axial.unsqueeze(-1) * normal
        radial = torch.linalg.norm(radial_vec, dim=-1)  # (N,)
        water_depth = axial - int_dist - int_thick  # (N,)
        valid = water_depth > 0

        has_radial = radial > 1e-15
        radial_dir = radial_vec / torch.where(
            has_radial, radial, torch.ones_like(radial)
        ).unsqueeze(-1)

        # Beyond this slope the glass or water angle would exceed 90 degrees
        tau_max = math.inf
        for a in (a_glass, a_water):
            if a > 1.0:
                tau_max = min(tau_max, 1.0 / math.sqrt(a * a - 1.0))
        tau_max *= 1.0 - 1e-9

        w = torch.clamp(water_depth, min=0.0)
        tau = torch.zeros_like(radial)
        for _ in range(_NEWTON_ITERATIONS):
            c_glass = 1.0 + (1.0 - a_glass**2) * tau * tau
            c_water = 1.0 + (1.0 - a_water**2) * tau * tau
            f = (
                int_dist * tau
                + int_thick * a_glass * tau / torch.sqrt(c_glass)
                + w * a_water * tau / torch.sqrt(c_water)
                - radial
            )
            f_prime = (
                int_dist
                + int_thick * a_glass / c_glass**1.5
                + w * a_water / c_water**1.5
            )
            tau = torch.clamp(tau - f / f_prime, min=0.0, max=tau_max)

        directions = normalize(normal.unsqueeze(0) + tau.unsqueeze(-1) * radial_dir)
        return torch.where(
            valid.unsqueeze(-1),
            directions,
            torch.tensor(float("nan"), dtype=directions.dtype),
        )
