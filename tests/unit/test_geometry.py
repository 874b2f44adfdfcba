"""Tests for geometry helpers and the Ray3D / Rigid3d types."""

import math

import pytest
import torch

from aquaport.geometry import (
    as_batch,
    euler_angles_to_rotation_matrix,
    intersect_lines_with_tolerance,
    rotation_angle_deg,
    rotation_from_two_vectors,
)
from aquaport.types import DTYPE, UNIT_Z, Ray3D, Rigid3d


def _t(values) -> torch.Tensor:
    return torch.tensor(values, dtype=DTYPE)


class TestAsBatch:
    """Tests for as_batch shape coercion."""

    def test_single_vector_is_flagged(self):
        """A (2,) input becomes (1, 2) with the single flag set."""
        batch, single = as_batch([1.0, 2.0], 2)
        assert batch.shape == (1, 2)
        assert single

    def test_batch_passes_through(self):
        batch, single = as_batch(torch.zeros(5, 3), 3)
        assert batch.shape == (5, 3)
        assert batch.dtype == DTYPE
        assert not single

    def test_empty_sequence_is_empty_batch(self):
        batch, single = as_batch([], 2)
        assert batch.shape == (0, 2)
        assert not single

    def test_wrong_last_axis_raises(self):
        with pytest.raises(ValueError, match="Expected shape"):
            as_batch(torch.zeros(4, 3), 2)


class TestRotationFromTwoVectors:
    """Tests for rotation_from_two_vectors."""

    @pytest.mark.parametrize(
        "source",
        [
            [0.0, 0.0, 1.0],
            [0.1, -0.2, 0.97],
            [1.0, 0.0, 0.0],
            [0.3, 0.4, -0.5],
            [0.0, 0.0, -1.0],
        ],
    )
    def test_maps_source_onto_target(self, source):
        """R @ unit(source) equals +Z and R is a proper rotation."""
        src = _t(source)
        R = rotation_from_two_vectors(src, UNIT_Z)
        mapped = R @ (src / torch.linalg.norm(src))
        assert torch.allclose(mapped, UNIT_Z, atol=1e-12)
        assert torch.allclose(R @ R.T, torch.eye(3, dtype=DTYPE), atol=1e-12)
        assert torch.det(R).item() == pytest.approx(1.0, abs=1e-12)

    def test_identical_vectors_give_identity(self):
        R = rotation_from_two_vectors(UNIT_Z, UNIT_Z * 3.0)
        assert torch.allclose(R, torch.eye(3, dtype=DTYPE), atol=1e-15)

    def test_rotation_is_minimal(self):
        """The rotation angle equals the angle between the two vectors."""
        src = _t([0.0, math.sin(0.3), math.cos(0.3)])
        R = rotation_from_two_vectors(src, UNIT_Z)
        assert rotation_angle_deg(R) == pytest.approx(math.degrees(0.3), abs=1e-9)


class TestEulerAngles:
    """Tests for euler_angles_to_rotation_matrix."""

    def test_zero_angles_give_identity(self):
        R = euler_angles_to_rotation_matrix(0.0, 0.0, 0.0)
        assert torch.allclose(R, torch.eye(3, dtype=DTYPE))

    def test_composition_order_is_z_y_x(self):
        rx, ry, rz = 0.1, -0.2, 0.3
        R = euler_angles_to_rotation_matrix(rx, ry, rz)
        Rx = euler_angles_to_rotation_matrix(rx, 0.0, 0.0)
        Ry = euler_angles_to_rotation_matrix(0.0, ry, 0.0)
        Rz = euler_angles_to_rotation_matrix(0.0, 0.0, rz)
        assert torch.allclose(R, Rz @ Ry @ Rx, atol=1e-15)

    def test_single_axis_angle(self):
        R = euler_angles_to_rotation_matrix(0.0, 0.0, math.radians(12.0))
        assert rotation_angle_deg(R) == pytest.approx(12.0, abs=1e-9)


class TestIntersectLines:
    """Tests for intersect_lines_with_tolerance."""

    def test_intersecting_lines(self):
        """Two lines crossing at (1, 1, 0) meet with zero residual."""
        result = intersect_lines_with_tolerance(
            _t([0.0, 0.0, 0.0]),
            _t([1.0, 1.0, 0.0]),
            _t([2.0, 0.0, 0.0]),
            _t([-1.0, 1.0, 0.0]),
        )
        assert result is not None
        assert torch.allclose(result.point, _t([1.0, 1.0, 0.0]), atol=1e-12)
        assert result.residual == pytest.approx(0.0, abs=1e-12)

    def test_skew_lines_give_midpoint_and_gap(self):
        """x-axis and a y-parallel line at z=2 meet halfway with gap 2."""
        result = intersect_lines_with_tolerance(
            _t([0.0, 0.0, 0.0]),
            _t([1.0, 0.0, 0.0]),
            _t([3.0, 5.0, 2.0]),
            _t([0.0, 1.0, 0.0]),
        )
        assert result is not None
        assert torch.allclose(result.point, _t([3.0, 0.0, 1.0]), atol=1e-12)
        assert result.residual == pytest.approx(2.0)

    def test_parallel_lines_return_none(self):
        result = intersect_lines_with_tolerance(
            _t([0.0, 0.0, 0.0]),
            _t([0.0, 0.0, 1.0]),
            _t([1.0, 0.0, 0.0]),
            _t([0.0, 0.0, -2.0]),
        )
        assert result is None

    def test_non_finite_input_returns_none(self):
        result = intersect_lines_with_tolerance(
            _t([0.0, 0.0, 0.0]),
            _t([float("nan"), 0.0, 1.0]),
            _t([1.0, 0.0, 0.0]),
            _t([0.0, 1.0, 0.0]),
        )
        assert result is None


class TestRay3D:
    """Tests for Ray3D evaluation and indexing."""

    def test_at_single(self):
        ray = Ray3D(origin=_t([1.0, 0.0, 0.0]), direction=_t([0.0, 0.0, 1.0]))
        assert torch.allclose(ray.at(2.5), _t([1.0, 0.0, 2.5]))

    def test_at_batched_distances(self):
        ray = Ray3D(
            origin=torch.zeros(2, 3, dtype=DTYPE),
            direction=_t([[1.0, 0.0, 0.0], [0.0, 1.0, 0.0]]),
        )
        points = ray.at(_t([2.0, 3.0]))
        assert torch.allclose(points, _t([[2.0, 0.0, 0.0], [0.0, 3.0, 0.0]]))

    def test_indexing(self):
        ray = Ray3D(
            origin=torch.zeros(3, 3, dtype=DTYPE), direction=torch.eye(3, dtype=DTYPE)
        )
        assert len(ray) == 3
        assert torch.allclose(ray[1].direction, _t([0.0, 1.0, 0.0]))
        with pytest.raises(IndexError):
            ray[1][0]


class TestRigid3d:
    """Tests for Rigid3d composition and inversion."""

    @pytest.fixture
    def pose(self) -> Rigid3d:
        return Rigid3d(
            rotation=euler_angles_to_rotation_matrix(0.1, 0.2, -0.3),
            translation=_t([0.5, -0.1, 0.2]),
        )

    def test_inverse_roundtrip(self, pose: Rigid3d):
        points = _t([[1.0, 2.0, 3.0], [-1.0, 0.5, 4.0]])
        restored = pose.inverse().apply(pose.apply(points))
        assert torch.allclose(restored, points, atol=1e-12)

    def test_compose_applies_right_first(self, pose: Rigid3d):
        other = Rigid3d(
            rotation=torch.eye(3, dtype=DTYPE), translation=_t([1.0, 0.0, 0.0])
        )
        point = _t([0.0, 1.0, 2.0])
        composed = (pose @ other).apply(point)
        assert torch.allclose(composed, pose.apply(other.apply(point)))

    def test_matrix_shape(self, pose: Rigid3d):
        assert pose.matrix().shape == (3, 4)
        identity = Rigid3d.identity().matrix()
        assert torch.allclose(identity[:, :3], torch.eye(3, dtype=DTYPE))
