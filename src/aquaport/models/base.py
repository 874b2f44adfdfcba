"""Base class for parametric camera models (pinhole + optional distortion).

Every model stores its parameters in one flat vector whose layout is fixed by
three index sets: focal length(s), principal point, and extra (distortion)
parameters. Projection is vectorized over a leading batch dimension.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import ClassVar

import torch

from aquaport.types import DTYPE

_EPS = torch.finfo(DTYPE).eps

# Iterative undistortion settings
_UNDISTORT_MAX_ITERATIONS = 100
_UNDISTORT_MAX_STEP_SQ = 1e-20
_UNDISTORT_REL_STEP = 1e-6
# Points whose forward-model residual stays above this are unreachable
_UNDISTORT_MAX_RESIDUAL_SQ = 1e-16


class CameraModel:
    """Projection contract shared by all camera models.

    Subclasses set the class-level layout attributes and, when distorted,
    override :meth:`distortion`. Undistortion is solved generically with
    Newton iterations on a central-difference Jacobian of :meth:`distortion`.

    Attributes:
        model_id: Registry identifier.
        model_name: Registry name, e.g. "PINHOLE".
        num_params: Length of the parameter vector.
        params_info: Comma-separated human-readable parameter names.
        focal_length_idxs: Indices of the focal length(s); size 1 or 2.
        principal_point_idxs: Indices of (cx, cy).
        extra_params_idxs: Indices of the distortion parameters.
    """

    model_id: ClassVar[int]
    model_name: ClassVar[str]
    num_params: ClassVar[int]
    params_info: ClassVar[str]
    focal_length_idxs: ClassVar[tuple[int, ...]]
    principal_point_idxs: ClassVar[tuple[int, ...]]
    extra_params_idxs: ClassVar[tuple[int, ...]] = ()

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(model_id={self.model_id}, "
            f"num_params={self.num_params})"
        )

    # ------------------------------------------------------------------
    # Parameter bookkeeping
    # ------------------------------------------------------------------

    def initialize_params(
        self, focal_length: float, width: int, height: int
    ) -> list[float]:
        """Default parameters: given focal length, centered principal point.

        Args:
            focal_length: Focal length in pixels, written to every focal slot.
            width: Image width in pixels.
            height: Image height in pixels.

        Returns:
            New parameter list of length ``num_params``, distortion zeroed.
        """
        params = [0.0] * self.num_params
        for idx in self.focal_length_idxs:
            params[idx] = float(focal_length)
        params[self.principal_point_idxs[0]] = width / 2.0
        params[self.principal_point_idxs[1]] = height / 2.0
        return params

    def verify_params(self, params: Sequence[float]) -> bool:
        """Return True when *params* has exactly ``num_params`` entries."""
        return len(params) == self.num_params

    def has_bogus_params(
        self,
        params: Sequence[float],
        width: int,
        height: int,
        min_focal_length_ratio: float,
        max_focal_length_ratio: float,
        max_extra_param: float,
    ) -> bool:
        """Heuristic check for physically implausible parameters.

        Bogus when any focal length divided by ``max(width, height)`` falls
        outside ``[min_focal_length_ratio, max_focal_length_ratio]``, when the
        principal point lies outside ``[0, width] x [0, height]``, or when any
        extra parameter has magnitude above ``max_extra_param``.
        """
        max_size = max(width, height)
        if max_size <= 0:
            return True
        for idx in self.focal_length_idxs:
            ratio = params[idx] / max_size
            if ratio < min_focal_length_ratio or ratio > max_focal_length_ratio:
                return True

        cx = params[self.principal_point_idxs[0]]
        cy = params[self.principal_point_idxs[1]]
        if cx < 0 or cx > width or cy < 0 or cy > height:
            return True

        return any(abs(params[idx]) > max_extra_param for idx in self.extra_params_idxs)

    # ------------------------------------------------------------------
    # Projection
    # ------------------------------------------------------------------

    def _intrinsics(
        self, params: torch.Tensor
    ) -> tuple[torch.Tensor, torch.Tensor, torch.Tensor, torch.Tensor]:
        fx = params[self.focal_length_idxs[0]]
        fy = params[self.focal_length_idxs[-1]]
        cx = params[self.principal_point_idxs[0]]
        cy = params[self.principal_point_idxs[1]]
        return fx, fy, cx, cy

    def _extra(self, params: torch.Tensor) -> torch.Tensor:
        return params[list(self.extra_params_idxs)]

    def distortion(
        self, extra: torch.Tensor, u: torch.Tensor, v: torch.Tensor
    ) -> tuple[torch.Tensor, torch.Tensor]:
        """Additive distortion offsets (du, dv) at normalized coordinates.

        The base implementation is distortion free.
        """
        return torch.zeros_like(u), torch.zeros_like(v)

    def img_from_cam(self, params: torch.Tensor, uvw: torch.Tensor) -> torch.Tensor:
        """Project camera-frame points to pixel coordinates.

        Args:
            params: Parameter vector, shape (num_params,), float64.
            uvw: Camera-frame points, shape (N, 3), float64.

        Returns:
            Pixel coordinates, shape (N, 2). NaN for points with w <= 0.
        """
        fx, fy, cx, cy = self._intrinsics(params)
        w = uvw[:, 2]
        in_front = w > _EPS
        safe_w = torch.where(in_front, w, torch.ones_like(w))
        u = uvw[:, 0] / safe_w
        v = uvw[:, 1] / safe_w

        if self.extra_params_idxs:
            du, dv = self.distortion(self._extra(params), u, v)
            u = u + du
            v = v + dv

        pixels = torch.stack([fx * u + cx, fy * v + cy], dim=-1)
        return torch.where(
            in_front.unsqueeze(-1),
            pixels,
            torch.tensor(float("nan"), dtype=pixels.dtype),
        )

    def cam_from_img(self, params: torch.Tensor, xy: torch.Tensor) -> torch.Tensor:
        """Unproject pixels to homogeneous normalized camera coordinates.

        Args:
            params: Parameter vector, shape (num_params,), float64.
            xy: Pixel coordinates, shape (N, 2), float64.

        Returns:
            Points on the z=1 plane, shape (N, 3). NaN for pixels the
            distortion model cannot reach.
        """
        fx, fy, cx, cy = self._intrinsics(params)
        u = (xy[:, 0] - cx) / fx
        v = (xy[:, 1] - cy) / fy

        if self.extra_params_idxs:
            u, v = self._iterative_undistortion(self._extra(params), u, v)

        return torch.stack([u, v, torch.ones_like(u)], dim=-1)

    def cam_from_img_threshold(self, params: torch.Tensor, threshold: float) -> float:
        """Convert a pixel threshold to normalized camera units."""
        mean_focal_length = sum(float(params[idx]) for idx in self.focal_length_idxs)
        mean_focal_length /= len(self.focal_length_idxs)
        return threshold / mean_focal_length

    def _iterative_undistortion(
        self, extra: torch.Tensor, u: torch.Tensor, v: torch.Tensor
    ) -> tuple[torch.Tensor, torch.Tensor]:
        """Invert ``x + distortion(x) = x_distorted`` with Newton iterations.

        Points that do not converge to a solution of the forward model are
        returned as NaN.
        """
        u0, v0 = u, v
        for _ in range(_UNDISTORT_MAX_ITERATIONS):
            step_u = torch.clamp(_UNDISTORT_REL_STEP * torch.abs(u), min=_EPS)
            step_v = torch.clamp(_UNDISTORT_REL_STEP * torch.abs(v), min=_EPS)

            du, dv = self.distortion(extra, u, v)
            du_ub, dv_ub = self.distortion(extra, u + step_u, v)
            du_uf, dv_uf = self.distortion(extra, u - step_u, v)
            du_vb, dv_vb = self.distortion(extra, u, v + step_v)
            du_vf, dv_vf = self.distortion(extra, u, v - step_v)

            j00 = 1.0 + (du_ub - du_uf) / (2.0 * step_u)
            j01 = (du_vb - du_vf) / (2.0 * step_v)
            j10 = (dv_ub - dv_uf) / (2.0 * step_u)
            j11 = 1.0 + (dv_vb - dv_vf) / (2.0 * step_v)

            # Residual of the forward model
            ru = u + du - u0
            rv = v + dv - v0

            det = j00 * j11 - j01 * j10
            delta_u = (j11 * ru - j01 * rv) / det
            delta_v = (-j10 * ru + j00 * rv) / det
            u = u - delta_u
            v = v - delta_v

            step_sq = delta_u * delta_u + delta_v * delta_v
            if bool(torch.all(~(step_sq >= _UNDISTORT_MAX_STEP_SQ))):
                break

        du, dv = self.distortion(extra, u, v)
        residual_sq = (u + du - u0) ** 2 + (v + dv - v0) ** 2
        converged = residual_sq <= _UNDISTORT_MAX_RESIDUAL_SQ
        nan = torch.tensor(float("nan"), dtype=u.dtype)
        return torch.where(converged, u, nan), torch.where(converged, v, nan)
