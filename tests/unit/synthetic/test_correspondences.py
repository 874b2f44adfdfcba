"""Tests for synthetic two-view correspondences and relative pose error."""

import math

import numpy as np
import pytest
import torch

from aquaport.camera import Camera
from aquaport.config import CorrespondenceConfig, VirtualConfig
from aquaport.geometry import euler_angles_to_rotation_matrix, rotation_angle_deg
from aquaport.synthetic import (
    build_flatport_camera,
    generate_correspondences,
    random_relative_pose,
    relative_pose_error,
)
from aquaport.types import DTYPE, Rigid3d


def _skew(v: torch.Tensor) -> torch.Tensor:
    zero = torch.zeros((), dtype=DTYPE)
    return torch.stack(
        [
            torch.stack([zero, -v[2], v[1]]),
            torch.stack([v[2], zero, -v[0]]),
            torch.stack([-v[1], v[0], zero]),
        ]
    )


@pytest.fixture
def camera() -> Camera:
    return build_flatport_camera(normal=(0.05, -0.03, 1.0))


@pytest.fixture
def pose() -> Rigid3d:
    return random_relative_pose(np.random.default_rng(0))


# ---------------------------------------------------------------------------
# Relative poses
# ---------------------------------------------------------------------------


class TestRandomRelativePose:
    """Tests for random_relative_pose."""

    def test_bounds(self):
        rng = np.random.default_rng(1)
        for _ in range(20):
            pose = random_relative_pose(rng)
            R = pose.rotation
            assert torch.allclose(R @ R.T, torch.eye(3, dtype=DTYPE), atol=1e-12)
            assert rotation_angle_deg(R) <= 45.0
            assert abs(pose.translation[0].item()) <= 1.0
            assert abs(pose.translation[1].item()) <= 0.2
            assert abs(pose.translation[2].item()) <= 0.2

    def test_deterministic_for_seed(self):
        a = random_relative_pose(np.random.default_rng(5))
        b = random_relative_pose(np.random.default_rng(5))
        assert torch.equal(a.rotation, b.rotation)
        assert torch.equal(a.translation, b.translation)


# ---------------------------------------------------------------------------
# Correspondence generation
# ---------------------------------------------------------------------------


class TestGenerateCorrespondences:
    """Tests for generate_correspondences."""

    def test_sizes(self, camera: Camera, pose: Rigid3d):
        config = CorrespondenceConfig(num_points=25)
        data = generate_correspondences(camera, pose, config)

        assert len(data) == 25
        for points in (data.points1, data.points2):
            assert points.shape == (25, 2)
        for points in (data.points1_refrac, data.points2_refrac):
            assert points.shape == (25, 2)
        assert len(data.virtuals1) == len(data.virtuals2) == 25
        assert bool(data.is_inlier.all())

    def test_refractive_points_lie_in_image(self, camera: Camera, pose: Rigid3d):
        config = CorrespondenceConfig(num_points=30)
        data = generate_correspondences(camera, pose, config)
        for points in (data.points1_refrac, data.points2_refrac):
            u, v = points[:, 0], points[:, 1]
            assert bool(((u >= 0) & (u <= camera.width)).all())
            assert bool(((v >= 0) & (v <= camera.height)).all())

    def test_identity_pose_gives_identical_views(self, camera: Camera):
        data = generate_correspondences(
            camera, Rigid3d.identity(), CorrespondenceConfig(num_points=10)
        )
        assert torch.allclose(data.points1_refrac, data.points2_refrac, atol=1e-6)
        assert torch.allclose(data.points1, data.points2, atol=1e-9)

    def test_virtual_cameras_satisfy_epipolar_constraint(
        self, camera: Camera, pose: Rigid3d
    ):
        """Noise-free matches obey x2^T [t]x R x1 = 0 between virtual cameras."""
        config = CorrespondenceConfig(num_points=20)
        data = generate_correspondences(camera, pose, config)

        for i in range(len(data)):
            v1, v2 = data.virtuals1[i], data.virtuals2[i]
            assert v1 is not None and v2 is not None
            v2_from_v1 = v2.virtual_from_real @ pose @ v1.virtual_from_real.inverse()
            essential = _skew(v2_from_v1.translation) @ v2_from_v1.rotation

            x1 = v1.camera.cam_from_img(data.points1_refrac[i])
            x2 = v2.camera.cam_from_img(data.points2_refrac[i])
            x1 = torch.cat([x1, torch.ones(1, dtype=DTYPE)])
            x2 = torch.cat([x2, torch.ones(1, dtype=DTYPE)])
            assert abs(float(x2 @ essential @ x1)) < 1e-6

    def test_threaded_virtuals_match_sequential(self, camera: Camera, pose: Rigid3d):
        config = CorrespondenceConfig(num_points=8)
        sequential = generate_correspondences(camera, pose, config)
        threaded = generate_correspondences(
            camera, pose, config, virtual_config=VirtualConfig(max_workers=3)
        )
        for a, b in zip(sequential.virtuals1, threaded.virtuals1):
            assert a is not None and b is not None
            assert a.camera == b.camera

    def test_outliers_carry_large_noise(self, camera: Camera):
        config = CorrespondenceConfig(num_points=10, inlier_ratio=0.5)
        data = generate_correspondences(camera, Rigid3d.identity(), config)

        assert data.is_inlier.tolist() == [True] * 5 + [False] * 5
        offsets = torch.linalg.norm(data.points1_refrac - data.points2_refrac, dim=-1)
        assert bool((offsets[:5] < 1e-6).all())
        assert bool((offsets[5:] > 1.0).all())

    def test_inlier_noise_level(self, camera: Camera):
        config = CorrespondenceConfig(num_points=200, noise_level=2.0)
        data = generate_correspondences(camera, Rigid3d.identity(), config)

        # Difference of two independent N(0, 2) draws has std 2 * sqrt(2)
        std = (data.points1_refrac - data.points2_refrac).std().item()
        assert std == pytest.approx(2.0 * math.sqrt(2.0), rel=0.15)

    def test_seeded_generation_is_deterministic(self, camera: Camera, pose: Rigid3d):
        config = CorrespondenceConfig(num_points=5, noise_level=1.0, seed=11)
        a = generate_correspondences(camera, pose, config)
        b = generate_correspondences(camera, pose, config)
        assert torch.equal(a.points1_refrac, b.points1_refrac)
        assert torch.equal(a.points2, b.points2)

    def test_invisible_scene_raises(self, camera: Camera):
        far_away = Rigid3d(
            rotation=torch.eye(3, dtype=DTYPE),
            translation=torch.tensor([100.0, 0.0, 0.0], dtype=DTYPE),
        )
        config = CorrespondenceConfig(num_points=5, max_attempts_factor=4)
        with pytest.raises(RuntimeError, match="visible in both views"):
            generate_correspondences(camera, far_away, config)


# ---------------------------------------------------------------------------
# Pose error
# ---------------------------------------------------------------------------


class TestRelativePoseError:
    """Tests for relative_pose_error."""

    def test_identical_poses(self, pose: Rigid3d):
        error = relative_pose_error(pose, pose, is_refractive=True)
        assert error.rotation_deg == pytest.approx(0.0, abs=1e-5)
        assert error.translation_angle_deg == pytest.approx(0.0, abs=1e-5)
        assert error.baseline == pytest.approx(0.0, abs=1e-12)

    def test_rotation_error(self, pose: Rigid3d):
        tilt = euler_angles_to_rotation_matrix(0.0, 0.0, math.radians(5.0))
        estimate = Rigid3d(rotation=tilt @ pose.rotation, translation=pose.translation)
        error = relative_pose_error(pose, estimate, is_refractive=False)
        assert error.rotation_deg == pytest.approx(5.0, abs=1e-9)

    def test_translation_is_compared_up_to_scale_and_sign(self, pose: Rigid3d):
        estimate = Rigid3d(rotation=pose.rotation, translation=-3.0 * pose.translation)

        in_air = relative_pose_error(pose, estimate, is_refractive=False)
        assert in_air.translation_angle_deg == pytest.approx(0.0, abs=1e-5)
        assert in_air.baseline == 0.0

        refractive = relative_pose_error(pose, estimate, is_refractive=True)
        baseline = torch.linalg.norm(pose.translation).item()
        assert refractive.baseline == pytest.approx(2.0 * baseline)

    def test_translation_angle(self):
        gt = Rigid3d(
            rotation=torch.eye(3, dtype=DTYPE),
            translation=torch.tensor([1.0, 0.0, 0.0], dtype=DTYPE),
        )
        estimate = Rigid3d(
            rotation=torch.eye(3, dtype=DTYPE),
            translation=torch.tensor([1.0, 1.0, 0.0], dtype=DTYPE),
        )
        error = relative_pose_error(gt, estimate, is_refractive=False)
        assert error.translation_angle_deg == pytest.approx(45.0)
