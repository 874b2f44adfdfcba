"""Synthetic two-view correspondences for a refractive camera.

Generates known-pose image pairs by sampling pixels in the first view,
tracing them through the refractive interface to a random distance, moving
the points into the second view, and projecting them back through the
interface. Each correspondence is also projected with the plain (in-air)
model so refractive and non-refractive estimators can be compared on the
same data.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field

import numpy as np
import torch

from aquaport.camera import Camera
from aquaport.config import CorrespondenceConfig, VirtualConfig
from aquaport.geometry import euler_angles_to_rotation_matrix, rotation_angle_deg
from aquaport.types import DTYPE, Rigid3d
from aquaport.virtual import VirtualCamera, compute_virtuals

logger = logging.getLogger(__name__)

# Candidates drawn per round, as a multiple of the points still missing
_OVERSAMPLE = 4


@dataclass
class CorrespondenceSet:
    """Two-view correspondences with ground-truth relative pose.

    Attributes:
        cam2_from_cam1: Ground-truth relative pose.
        points1: In-air projections in view 1, shape (N, 2).
        points2: In-air projections in view 2, shape (N, 2).
        points1_refrac: Refractive observations in view 1, shape (N, 2).
        points2_refrac: Refractive observations in view 2, shape (N, 2).
        is_inlier: Boolean mask, shape (N,). Outliers carry large pixel noise.
        virtuals1: Virtual cameras for ``points1_refrac`` (None if degenerate).
        virtuals2: Virtual cameras for ``points2_refrac`` (None if degenerate).
    """

    cam2_from_cam1: Rigid3d
    points1: torch.Tensor
    points2: torch.Tensor
    points1_refrac: torch.Tensor
    points2_refrac: torch.Tensor
    is_inlier: torch.Tensor
    virtuals1: list[VirtualCamera | None] = field(default_factory=list)
    virtuals2: list[VirtualCamera | None] = field(default_factory=list)

    def __len__(self) -> int:
        return self.points1.shape[0]


@dataclass(frozen=True)
class PoseError:
    """Relative pose error metrics.

    Attributes:
        rotation_deg: Angle of ``R_gt @ R_est^T`` in degrees.
        translation_angle_deg: Angle between the translation directions in
            degrees, ignoring sign.
        baseline: Absolute difference of the baseline lengths. Only
            observable with refraction; 0.0 otherwise.
    """

    rotation_deg: float
    translation_angle_deg: float
    baseline: float


def random_relative_pose(
    rng: np.random.Generator,
    max_angle_deg: float = 15.0,
    max_translation: tuple[float, float, float] = (1.0, 0.2, 0.2),
) -> Rigid3d:
    """Draw a random relative pose with a mostly sideways baseline.

    Each Euler angle is uniform in ``[-max_angle_deg, max_angle_deg]`` and
    each translation component ``i`` is uniform in
    ``[-max_translation[i], max_translation[i]]``.

    Args:
        rng: Numpy random generator.
        max_angle_deg: Bound on each Euler angle, in degrees.
        max_translation: Per-axis translation bounds.

    Returns:
        Rigid3d ``cam2_from_cam1``.
    """
    bound = math.radians(max_angle_deg)
    ry = float(rng.uniform(-bound, bound))
    rx = float(rng.uniform(-bound, bound))
    rz = float(rng.uniform(-bound, bound))
    translation = torch.tensor(
        [float(rng.uniform(-limit, limit)) for limit in max_translation],
        dtype=DTYPE,
    )
    return Rigid3d(
        rotation=euler_angles_to_rotation_matrix(rx, ry, rz), translation=translation
    )


def _in_image(pixels: torch.Tensor, width: int, height: int) -> torch.Tensor:
    # NaN compares False, so unprojectable points are rejected here too
    return (
        (pixels[:, 0] >= 0)
        & (pixels[:, 0] <= width)
        & (pixels[:, 1] >= 0)
        & (pixels[:, 1] <= height)
    )


def _sample_candidates(
    camera: Camera,
    cam2_from_cam1: Rigid3d,
    n_candidates: int,
    config: CorrespondenceConfig,
    rng: np.random.Generator,
) -> tuple[torch.Tensor, torch.Tensor, torch.Tensor, torch.Tensor]:
    """Trace one batch of candidates and keep those visible in both views."""
    pixels1 = torch.from_numpy(
        np.stack(
            [
                rng.uniform(0.5, camera.width - 0.5, n_candidates),
                rng.uniform(0.5, camera.height - 0.5, n_candidates),
            ],
            axis=-1,
        )
    ).to(DTYPE)
    distances = torch.from_numpy(
        rng.uniform(config.min_depth, config.max_depth, n_candidates)
    ).to(DTYPE)

    rays = camera.cam_from_img_refrac(pixels1)
    points3d1 = rays.at(distances)
    points3d2 = cam2_from_cam1.apply(points3d1)
    pixels2 = camera.img_from_cam_refrac(points3d2)

    valid = _in_image(pixels2, camera.width, camera.height)
    return pixels1[valid], pixels2[valid], points3d1[valid], points3d2[valid]


def generate_correspondences(
    camera: Camera,
    cam2_from_cam1: Rigid3d,
    config: CorrespondenceConfig,
    rng: np.random.Generator | None = None,
    virtual_config: VirtualConfig | None = None,
) -> CorrespondenceSet:
    """Generate noisy two-view correspondences seen by one refractive camera.

    The first ``int(num_points * inlier_ratio)`` correspondences are inliers
    with Gaussian pixel noise of ``noise_level``; the remainder are outliers
    with noise of ``outlier_noise``. Candidates whose second-view projection
    is undefined or outside the image are discarded and redrawn.

    Args:
        camera: Refractive camera used for both views.
        cam2_from_cam1: Ground-truth relative pose.
        config: Generation settings.
        rng: Numpy random generator; seeded from ``config.seed`` when None.
        virtual_config: Worker count and parallelism tolerance for the
            virtual cameras; defaults when None.

    Returns:
        CorrespondenceSet with exactly ``config.num_points`` correspondences
        and virtual cameras for both refractive views.

    Raises:
        RuntimeError: If too few candidates are visible in both views within
            ``num_points * max_attempts_factor`` draws.
    """
    if rng is None:
        rng = np.random.default_rng(config.seed)
    if virtual_config is None:
        virtual_config = VirtualConfig()

    num_points = config.num_points
    max_candidates = max(num_points * config.max_attempts_factor, 1)

    kept: list[tuple[torch.Tensor, ...]] = []
    n_kept = 0
    n_drawn = 0
    while n_kept < num_points:
        if n_drawn >= max_candidates:
            raise RuntimeError(
                f"Only {n_kept} of {num_points} correspondences visible in both "
                f"views after {n_drawn} candidates"
            )
        n_candidates = min(
            _OVERSAMPLE * (num_points - n_kept), max_candidates - n_drawn
        )
        batch = _sample_candidates(camera, cam2_from_cam1, n_candidates, config, rng)
        n_drawn += n_candidates
        kept.append(batch)
        n_kept += batch[0].shape[0]

    pixels1_refrac, pixels2_refrac, points3d1, points3d2 = (
        torch.cat(parts)[:num_points] for parts in zip(*kept)
    )
    logger.debug("Kept %d of %d candidate correspondences", num_points, n_drawn)

    pixels1 = camera.img_from_cam(points3d1)
    pixels2 = camera.img_from_cam(points3d2)

    num_inliers = int(num_points * config.inlier_ratio)
    is_inlier = torch.arange(num_points) < num_inliers
    sigma = torch.where(
        is_inlier,
        torch.tensor(config.noise_level, dtype=DTYPE),
        torch.tensor(config.outlier_noise, dtype=DTYPE),
    ).unsqueeze(-1)

    def _noisy(pixels: torch.Tensor) -> torch.Tensor:
        noise = torch.from_numpy(rng.normal(0.0, 1.0, (num_points, 2))).to(DTYPE)
        return pixels + sigma * noise

    points1 = _noisy(pixels1)
    points1_refrac = _noisy(pixels1_refrac)
    points2 = _noisy(pixels2)
    points2_refrac = _noisy(pixels2_refrac)

    return CorrespondenceSet(
        cam2_from_cam1=cam2_from_cam1,
        points1=points1,
        points2=points2,
        points1_refrac=points1_refrac,
        points2_refrac=points2_refrac,
        is_inlier=is_inlier,
        virtuals1=compute_virtuals(
            camera,
            points1_refrac,
            max_workers=virtual_config.max_workers,
            tolerance=virtual_config.parallel_tolerance,
        ),
        virtuals2=compute_virtuals(
            camera,
            points2_refrac,
            max_workers=virtual_config.max_workers,
            tolerance=virtual_config.parallel_tolerance,
        ),
    )


def relative_pose_error(
    cam2_from_cam1_gt: Rigid3d,
    cam2_from_cam1_est: Rigid3d,
    is_refractive: bool,
) -> PoseError:
    """Compare an estimated relative pose against ground truth.

    Translations are compared by direction only, since in-air two-view
    geometry recovers them up to scale. With refraction the metric scale is
    observable, so the difference of the baseline lengths
    ``|R^T (-t)|`` is reported as well.

    Args:
        cam2_from_cam1_gt: Ground-truth relative pose.
        cam2_from_cam1_est: Estimated relative pose.
        is_refractive: Whether to report the baseline error.

    Returns:
        PoseError in degrees and baseline units.
    """
    rotation_diff = cam2_from_cam1_gt.rotation @ cam2_from_cam1_est.rotation.T
    rotation_deg = rotation_angle_deg(rotation_diff)

    t_gt = cam2_from_cam1_gt.translation
    t_est = cam2_from_cam1_est.translation
    cos_theta = abs(float(torch.dot(t_gt, t_est) / (t_gt.norm() * t_est.norm())))
    translation_angle_deg = math.degrees(math.acos(min(cos_theta, 1.0)))

    baseline = 0.0
    if is_refractive:
        baseline_gt = float(cam2_from_cam1_gt.inverse().translation.norm())
        baseline_est = float(cam2_from_cam1_est.inverse().translation.norm())
        baseline = abs(baseline_gt - baseline_est)

    return PoseError(
        rotation_deg=rotation_deg,
        translation_angle_deg=translation_angle_deg,
        baseline=baseline,
    )
