"""Per-point virtual pinhole cameras approximating a refractive camera.

A refractive camera is non-central: its refracted rays do not meet in one
point. For each observed pixel this module builds a distortion-free
SIMPLE_PINHOLE camera whose center lies on the refraction axis at the point
closest to the refracted ray, together with the virtual-from-real pose.
Classical single-viewpoint estimators can then consume each (camera, pose)
pair as if it were an ordinary calibrated camera.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

import torch

from aquaport.camera import Camera
from aquaport.geometry import (
    LineIntersection,
    as_batch,
    intersect_lines_with_tolerance,
    rotation_from_two_vectors,
)
from aquaport.types import DTYPE, UNIT_Z, Mat3, Ray3D, Rigid3d, Vec2

logger = logging.getLogger(__name__)

DEFAULT_PARALLEL_TOLERANCE = 1e-12


@dataclass
class VirtualCamera:
    """Virtual pinhole camera synthesized for one image point.

    Attributes:
        camera: SIMPLE_PINHOLE camera with the real camera's image size.
        virtual_from_real: Pose of the virtual camera relative to the real one.
        residual: Distance between the refraction axis and the refracted ray
            at closest approach. Zero means the ray passes exactly through the
            virtual center.
    """

    camera: Camera
    virtual_from_real: Rigid3d
    residual: float


def virtual_from_real_rotation(camera: Camera) -> Mat3:
    """Minimal rotation taking the refraction axis onto the +Z axis.

    Depends only on the interface geometry, so it is shared by every point
    of a camera.
    """
    return rotation_from_two_vectors(camera.refraction_axis(), UNIT_Z)


def virtual_camera_center(
    camera: Camera,
    ray: Ray3D,
    tolerance: float = DEFAULT_PARALLEL_TOLERANCE,
) -> LineIntersection | None:
    """Point on the refraction axis that best explains a refracted ray.

    Intersects the refraction axis through the real camera center with the
    line through ``ray.origin`` along ``-ray.direction``.

    Returns:
        LineIntersection whose ``residual`` bounds the approximation error, or
        None when the ray is parallel to the axis.
    """
    return intersect_lines_with_tolerance(
        torch.zeros(3, dtype=DTYPE),
        camera.refraction_axis(),
        ray.origin,
        -ray.direction,
        tolerance,
    )


def virtual_camera(
    camera: Camera, image_point: Vec2, cam_point: torch.Tensor
) -> Camera:
    """Build the SIMPLE_PINHOLE camera that images *cam_point* at *image_point*.

    The focal length is the real camera's focal length (averaged for fx/fy
    models) and the principal point is solved so that the projection of the
    normalized *cam_point* lands exactly on *image_point*.

    Args:
        camera: The real camera.
        image_point: Observed pixel, shape (2,).
        cam_point: Normalized point in the virtual frame, shape (2,).

    Returns:
        New SIMPLE_PINHOLE camera with the real camera's image size.
    """
    idxs = camera.focal_length_idxs
    if len(idxs) == 1:
        f = camera.focal_length
    elif len(idxs) == 2:
        f = (camera.focal_length_x + camera.focal_length_y) / 2.0
    else:
        raise ValueError("Camera model must have either 1 or 2 focal lengths")

    u, v = (float(x) for x in image_point)
    x, y = (float(c) for c in cam_point)

    virtual = Camera(model="SIMPLE_PINHOLE", width=camera.width, height=camera.height)
    virtual.params = [f, u - f * x, v - f * y]
    return virtual


def _synthesize(
    camera: Camera,
    image_point: torch.Tensor,
    ray: Ray3D,
    rotation: Mat3,
    tolerance: float,
) -> VirtualCamera | None:
    if not (
        bool(torch.all(torch.isfinite(ray.origin)))
        and bool(torch.all(torch.isfinite(ray.direction)))
    ):
        logger.debug("Refracted ray for %s is not finite", image_point.tolist())
        return None

    center = virtual_camera_center(camera, ray, tolerance)
    if center is None:
        logger.debug(
            "Refracted ray for %s is parallel to the refraction axis",
            image_point.tolist(),
        )
        return None

    virtual_from_real = Rigid3d(rotation=rotation, translation=rotation @ -center.point)

    direction = rotation @ ray.direction
    if float(direction[2]) <= 0.0:
        logger.debug(
            "Refracted ray for %s points behind the virtual camera",
            image_point.tolist(),
        )
        return None
    cam_point = direction[:2] / direction[2]

    return VirtualCamera(
        camera=virtual_camera(camera, image_point, cam_point),
        virtual_from_real=virtual_from_real,
        residual=center.residual,
    )


def compute_virtual(
    camera: Camera,
    image_point: Vec2,
    rotation: Mat3 | None = None,
    tolerance: float = DEFAULT_PARALLEL_TOLERANCE,
) -> VirtualCamera | None:
    """Synthesize the virtual camera for a single image point.

    Args:
        camera: Refractive camera.
        image_point: Observed pixel, shape (2,).
        rotation: Precomputed :func:`virtual_from_real_rotation`, if available.
        tolerance: Parallelism tolerance for the virtual center.

    Returns:
        VirtualCamera, or None when the point is geometrically degenerate.

    Raises:
        RuntimeError: If *camera* is not refractive.
    """
    if rotation is None:
        rotation = virtual_from_real_rotation(camera)
    point = torch.as_tensor(image_point, dtype=DTYPE)
    return _synthesize(
        camera, point, camera.cam_from_img_refrac(point), rotation, tolerance
    )


def compute_virtuals(
    camera: Camera,
    image_points: Vec2,
    max_workers: int | None = None,
    tolerance: float = DEFAULT_PARALLEL_TOLERANCE,
) -> list[VirtualCamera | None]:
    """Synthesize virtual cameras for a sequence of image points.

    Rays are traced in one batch; each point is then synthesized
    independently into its own output slot, optionally on worker threads.

    Args:
        camera: Refractive camera.
        image_points: Pixels, shape (N, 2) or (2,).
        max_workers: Thread count; None or 1 runs sequentially.
        tolerance: Parallelism tolerance for the virtual centers.

    Returns:
        List of length N, in input order. Degenerate points yield None.
    """
    points, _ = as_batch(image_points, 2)
    rotation = virtual_from_real_rotation(camera)
    rays = camera.cam_from_img_refrac(points)
    n_points = points.shape[0]

    results: list[VirtualCamera | None] = [None] * n_points

    def _fill(i: int) -> None:
        results[i] = _synthesize(camera, points[i], rays[i], rotation, tolerance)

    if max_workers is not None and max_workers > 1 and n_points > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            # Consume the iterator so worker exceptions propagate
            list(executor.map(_fill, range(n_points)))
    else:
        for i in range(n_points):
            _fill(i)

    n_failed = sum(result is None for result in results)
    if n_failed:
        logger.info(
            "Skipped %d of %d points without a valid virtual camera",
            n_failed,
            n_points,
        )
    return results
