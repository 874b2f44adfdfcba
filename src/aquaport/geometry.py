"""Small geometric helpers: tensor coercion, rotations, and line intersection."""

from __future__ import annotations

import math
from dataclasses import dataclass

import torch

from aquaport.types import DTYPE, Mat3, Vec3


def as_tensor(values: object) -> torch.Tensor:
    """Convert array-like *values* to a float64 tensor (no copy if possible)."""
    if isinstance(values, torch.Tensor):
        return values.to(DTYPE)
    return torch.as_tensor(values, dtype=DTYPE)


def as_batch(values: object, dim: int) -> tuple[torch.Tensor, bool]:
    """Coerce a single vector or a batch of vectors to shape (N, dim).

    Args:
        values: Array-like of shape (dim,) or (N, dim). An empty sequence
            becomes an empty (0, dim) batch.
        dim: Expected size of the last axis.

    Returns:
        Tuple of the (N, dim) tensor and a flag that is True when the input was
        a single vector, so callers can squeeze their output back.

    Raises:
        ValueError: If the last axis does not have size *dim*.
    """
    tensor = as_tensor(values)
    if tensor.numel() == 0 and tensor.ndim == 1:
        return tensor.reshape(0, dim), False
    if tensor.ndim == 0 or tensor.shape[-1] != dim or tensor.ndim > 2:
        raise ValueError(
            f"Expected shape ({dim},) or (N, {dim}), got {tuple(tensor.shape)}"
        )
    if tensor.ndim == 1:
        return tensor.unsqueeze(0), True
    return tensor, False


def normalize(vectors: torch.Tensor) -> torch.Tensor:
    """Scale vectors along the last axis to unit length."""
    return vectors / torch.linalg.norm(vectors, dim=-1, keepdim=True)


def rotation_from_two_vectors(source: Vec3, target: Vec3) -> Mat3:
    """Minimal rotation that maps the direction of *source* onto *target*.

    Uses Rodrigues' formula about ``source x target``. The anti-parallel case
    has no unique minimal axis; any axis perpendicular to *source* is used.

    Args:
        source: Shape (3,), any non-zero length.
        target: Shape (3,), any non-zero length.

    Returns:
        Rotation matrix R, shape (3, 3), with ``R @ unit(source) == unit(target)``.
    """
    a = normalize(as_tensor(source))
    b = normalize(as_tensor(target))
    v = torch.linalg.cross(a, b)
    c = torch.dot(a, b)
    eye = torch.eye(3, dtype=DTYPE)

    if c < -1.0 + 1e-12:
        # Pick the basis vector least aligned with a to build a perpendicular axis
        basis = eye[int(torch.argmin(torch.abs(a)))]
        axis = normalize(torch.linalg.cross(a, basis))
        return 2.0 * torch.outer(axis, axis) - eye

    zero = torch.zeros((), dtype=DTYPE)
    vx = torch.stack(
        [
            torch.stack([zero, -v[2], v[1]]),
            torch.stack([v[2], zero, -v[0]]),
            torch.stack([-v[1], v[0], zero]),
        ]
    )
    return eye + vx + (vx @ vx) / (1.0 + c)


def rotation_angle_deg(rotation: Mat3) -> float:
    """Rotation angle of a rotation matrix, in degrees."""
    cos_angle = (torch.trace(rotation) - 1.0) / 2.0
    return math.degrees(math.acos(float(torch.clamp(cos_angle, -1.0, 1.0))))


def euler_angles_to_rotation_matrix(rx: float, ry: float, rz: float) -> Mat3:
    """Compose ``Rz @ Ry @ Rx`` from angles in radians."""
    cx, sx = math.cos(rx), math.sin(rx)
    cy, sy = math.cos(ry), math.sin(ry)
    cz, sz = math.cos(rz), math.sin(rz)
    Rx = torch.tensor([[1.0, 0.0, 0.0], [0.0, cx, -sx], [0.0, sx, cx]], dtype=DTYPE)
    Ry = torch.tensor([[cy, 0.0, sy], [0.0, 1.0, 0.0], [-sy, 0.0, cy]], dtype=DTYPE)
    Rz = torch.tensor([[cz, -sz, 0.0], [sz, cz, 0.0], [0.0, 0.0, 1.0]], dtype=DTYPE)
    return Rz @ Ry @ Rx


@dataclass(frozen=True)
class LineIntersection:
    """Closest approach of two 3D lines.

    Attributes:
        point: Midpoint of the shortest segment connecting the lines, shape (3,).
        residual: Length of that segment. Zero when the lines truly intersect.
    """

    point: torch.Tensor
    residual: float


def intersect_lines_with_tolerance(
    point1: Vec3,
    direction1: Vec3,
    point2: Vec3,
    direction2: Vec3,
    tolerance: float = 1e-12,
) -> LineIntersection | None:
    """Intersect two lines, tolerating skew lines.

    Skew lines yield the midpoint of their common perpendicular. Lines whose
    directions satisfy ``|d1 x d2|^2 <= tolerance * |d1|^2 * |d2|^2`` are
    treated as parallel and have no unique closest point.

    Args:
        point1: Point on the first line, shape (3,).
        direction1: Direction of the first line, shape (3,).
        point2: Point on the second line, shape (3,).
        direction2: Direction of the second line, shape (3,).
        tolerance: Relative parallelism threshold.

    Returns:
        LineIntersection, or None for parallel or degenerate input.
    """
    p1, d1 = as_tensor(point1), as_tensor(direction1)
    p2, d2 = as_tensor(point2), as_tensor(direction2)
    if not all(bool(torch.all(torch.isfinite(x))) for x in (p1, d1, p2, d2)):
        return None

    w0 = p1 - p2
    a = torch.dot(d1, d1)
    b = torch.dot(d1, d2)
    c = torch.dot(d2, d2)
    d = torch.dot(d1, w0)
    e = torch.dot(d2, w0)

    denom = a * c - b * b
    if a <= 0.0 or c <= 0.0 or denom <= tolerance * a * c:
        return None

    s = (b * e - c * d) / denom
    t = (a * e - b * d) / denom
    closest1 = p1 + s * d1
    closest2 = p2 + t * d2
    return LineIntersection(
        point=0.5 * (closest1 + closest2),
        residual=float(torch.linalg.norm(closest1 - closest2)),
    )
