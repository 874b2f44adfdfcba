"""Shared geometry types for all AquaPort modules.

Coordinate system: camera frame follows the OpenCV convention (+X right,
+Y down, +Z forward along the optical axis). All tensors are float64.
Rigid transforms map points from a source frame to a target frame and are
named ``target_from_source`` (e.g. ``virtual_from_real``).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TypeAlias

import torch

# ---------------------------------------------------------------------------
# Type aliases
# ---------------------------------------------------------------------------

Vec2: TypeAlias = torch.Tensor
"""Shape (2,) or (N, 2), float64. 2D vector or batch of 2D vectors."""

Vec3: TypeAlias = torch.Tensor
"""Shape (3,) or (N, 3), float64. 3D vector or batch of 3D vectors."""

Mat3: TypeAlias = torch.Tensor
"""Shape (3, 3), float64. 3x3 matrix."""

DTYPE = torch.float64

UNIT_Z: torch.Tensor = torch.tensor([0.0, 0.0, 1.0], dtype=DTYPE)
"""Canonical forward (optical) axis, shape (3,)."""

# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------


@dataclass
class Ray3D:
    """Half-line defined by an origin and a direction.

    The direction is not required to be unit length. Both fields may carry a
    leading batch dimension, in which case the i-th row describes the i-th ray.

    Attributes:
        origin: Ray origin, shape (3,) or (N, 3), float64.
        direction: Ray direction, shape (3,) or (N, 3), float64.
    """

    origin: Vec3
    direction: Vec3

    def at(self, distance: float | torch.Tensor) -> Vec3:
        """Evaluate the point at *distance* along the ray.

        Args:
            distance: Scalar, or tensor of shape (N,) for batched rays.

        Returns:
            ``origin + distance * direction``, same shape as ``origin``.
        """
        distance = torch.as_tensor(distance, dtype=self.direction.dtype)
        if distance.ndim == 1 and self.direction.ndim == 2:
            distance = distance.unsqueeze(-1)
        return self.origin + distance * self.direction

    def __len__(self) -> int:
        if self.origin.ndim == 1:
            return 1
        return self.origin.shape[0]

    def __getitem__(self, index: int) -> Ray3D:
        if self.origin.ndim == 1:
            raise IndexError("Single ray is not indexable")
        return Ray3D(origin=self.origin[index], direction=self.direction[index])


@dataclass
class Rigid3d:
    """Rigid body transform ``x_target = rotation @ x_source + translation``.

    Attributes:
        rotation: Rotation matrix, shape (3, 3), float64.
        translation: Translation vector, shape (3,), float64.
    """

    rotation: Mat3
    translation: torch.Tensor

    @classmethod
    def identity(cls) -> Rigid3d:
        """Return the identity transform."""
        return cls(
            rotation=torch.eye(3, dtype=DTYPE),
            translation=torch.zeros(3, dtype=DTYPE),
        )

    def apply(self, points: Vec3) -> Vec3:
        """Transform points from the source to the target frame.

        Args:
            points: Shape (3,) or (N, 3).

        Returns:
            Transformed points, same shape as input.
        """
        return points @ self.rotation.T + self.translation

    def inverse(self) -> Rigid3d:
        """Return the transform mapping target back to source."""
        rotation_inv = self.rotation.T
        return Rigid3d(
            rotation=rotation_inv, translation=-(rotation_inv @ self.translation)
        )

    def __matmul__(self, other: Rigid3d) -> Rigid3d:
        # (a @ b) applies b first, then a.
        return Rigid3d(
            rotation=self.rotation @ other.rotation,
            translation=self.rotation @ other.translation + self.translation,
        )

    def matrix(self) -> torch.Tensor:
        """Return the 3x4 ``[R | t]`` matrix."""
        return torch.cat([self.rotation, self.translation.unsqueeze(-1)], dim=-1)
