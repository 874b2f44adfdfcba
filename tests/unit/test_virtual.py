"""Tests for per-point virtual camera synthesis."""

import pytest
import torch

from aquaport.camera import Camera
from aquaport.synthetic import build_domeport_camera, build_flatport_camera
from aquaport.types import DTYPE, UNIT_Z
from aquaport.virtual import (
    compute_virtual,
    compute_virtuals,
    virtual_camera,
    virtual_camera_center,
    virtual_from_real_rotation,
)

PRINCIPAL_POINT = torch.tensor([556.5, 417.5], dtype=DTYPE)


@pytest.fixture
def flatport() -> Camera:
    return build_flatport_camera(normal=(0.05, -0.03, 1.0))


@pytest.fixture
def pixels() -> torch.Tensor:
    return torch.tensor(
        [
            [556.5, 417.5],
            [10.0, 20.0],
            [1100.0, 820.0],
            [300.0, 700.0],
            [900.0, 100.0],
        ],
        dtype=DTYPE,
    )


class TestRotation:
    """Tests for virtual_from_real_rotation."""

    def test_maps_refraction_axis_to_z(self, flatport: Camera):
        R = virtual_from_real_rotation(flatport)
        assert torch.allclose(R @ flatport.refraction_axis(), UNIT_Z, atol=1e-12)

    def test_frontal_port_gives_identity(self):
        camera = build_flatport_camera(normal=(0.0, 0.0, 1.0))
        R = virtual_from_real_rotation(camera)
        assert torch.allclose(R, torch.eye(3, dtype=DTYPE))

    def test_requires_refractive_camera(self):
        camera = Camera(model="PINHOLE", params=[100.0, 100.0, 50.0, 50.0])
        with pytest.raises(RuntimeError):
            virtual_from_real_rotation(camera)


class TestVirtualCamera:
    """Tests for virtual_camera and virtual_camera_center."""

    def test_principal_point_solves_for_image_point(self):
        real = Camera(
            model="PINHOLE", width=640, height=480, params=[400, 420, 320, 240]
        )
        image_point = torch.tensor([100.0, 50.0], dtype=DTYPE)
        cam_point = torch.tensor([0.2, -0.1], dtype=DTYPE)

        virtual = virtual_camera(real, image_point, cam_point)

        assert virtual.model_name == "SIMPLE_PINHOLE"
        assert (virtual.width, virtual.height) == (640, 480)
        assert virtual.params == pytest.approx([410.0, 100.0 - 82.0, 50.0 + 41.0])
        assert torch.allclose(virtual.img_from_cam(cam_point), image_point)

    def test_center_lies_on_refraction_axis(self, flatport: Camera):
        ray = flatport.cam_from_img_refrac(torch.tensor([200.0, 300.0], dtype=DTYPE))
        center = virtual_camera_center(flatport, ray)
        assert center is not None
        cross = torch.linalg.cross(center.point, flatport.refraction_axis())
        assert torch.allclose(cross, torch.zeros(3, dtype=DTYPE), atol=1e-12)
        # A flat port keeps each ray coplanar with the axis
        assert center.residual == pytest.approx(0.0, abs=1e-9)


class TestComputeVirtual:
    """Tests for compute_virtual on single image points."""

    @pytest.mark.parametrize(
        "pixel", [[10.0, 20.0], [1100.0, 820.0], [300.0, 700.0], [556.0, 417.0]]
    )
    def test_reproduces_image_point(self, flatport: Camera, pixel):
        """The virtual camera images the rotated ray direction at the pixel."""
        point = torch.tensor(pixel, dtype=DTYPE)
        result = compute_virtual(flatport, point)
        assert result is not None

        ray = flatport.cam_from_img_refrac(point)
        direction = result.virtual_from_real.rotation @ ray.direction
        projected = result.camera.img_from_cam(direction)
        assert torch.allclose(projected, point, atol=1e-9)

    def test_points_on_ray_project_to_pixel(self, flatport: Camera):
        """Any 3D point on the refracted ray is imaged at the original pixel."""
        point = torch.tensor([250.0, 650.0], dtype=DTYPE)
        result = compute_virtual(flatport, point)
        assert result is not None

        ray = flatport.cam_from_img_refrac(point)
        world = ray.at(torch.tensor([0.5, 3.0, 12.0], dtype=DTYPE).unsqueeze(-1))
        in_virtual = result.virtual_from_real.apply(world)
        projected = result.camera.img_from_cam(in_virtual)
        assert torch.allclose(projected, point.expand(3, 2), atol=1e-6)

    def test_virtual_focal_is_mean_focal(self, flatport: Camera):
        flatport.focal_length_y = 360.0
        result = compute_virtual(flatport, torch.tensor([100.0, 100.0], dtype=DTYPE))
        assert result is not None
        assert result.camera.focal_length == pytest.approx((340.514 + 360.0) / 2.0)

    def test_dome_port(self):
        camera = build_domeport_camera()
        point = torch.tensor([800.0, 200.0], dtype=DTYPE)
        result = compute_virtual(camera, point)
        assert result is not None

        ray = camera.cam_from_img_refrac(point)
        in_virtual = result.virtual_from_real.apply(ray.at(4.0))
        assert torch.allclose(result.camera.img_from_cam(in_virtual), point, atol=1e-6)

    def test_ray_along_axis_is_degenerate(self):
        """A ray parallel to the refraction axis has no unique virtual center."""
        camera = build_flatport_camera(normal=(0.0, 0.0, 1.0))
        assert compute_virtual(camera, PRINCIPAL_POINT) is None


class TestComputeVirtuals:
    """Tests for batch synthesis."""

    def test_one_slot_per_point_in_order(self, flatport: Camera, pixels):
        results = compute_virtuals(flatport, pixels)
        assert len(results) == pixels.shape[0]
        for pixel, result in zip(pixels, results):
            single = compute_virtual(flatport, pixel)
            assert result is not None and single is not None
            assert result.camera.params == pytest.approx(single.camera.params)

    def test_degenerate_points_yield_none(self, pixels):
        camera = build_flatport_camera(normal=(0.0, 0.0, 1.0))
        results = compute_virtuals(camera, pixels)
        assert results[0] is None
        assert all(result is not None for result in results[1:])

    def test_threaded_matches_sequential(self, flatport: Camera, pixels):
        sequential = compute_virtuals(flatport, pixels)
        threaded = compute_virtuals(flatport, pixels, max_workers=4)
        for a, b in zip(sequential, threaded):
            assert a is not None and b is not None
            assert a.camera == b.camera
            assert torch.equal(
                a.virtual_from_real.translation, b.virtual_from_real.translation
            )

    def test_shared_rotation(self, flatport: Camera, pixels):
        results = compute_virtuals(flatport, pixels)
        rotations = [r.virtual_from_real.rotation for r in results if r is not None]
        for rotation in rotations[1:]:
            assert torch.equal(rotation, rotations[0])

    @pytest.mark.parametrize("max_workers", [None, 4])
    def test_empty_input_yields_empty_list(self, flatport: Camera, max_workers):
        assert compute_virtuals(flatport, [], max_workers=max_workers) == []
        empty = torch.zeros((0, 2), dtype=DTYPE)
        assert compute_virtuals(flatport, empty, max_workers=max_workers) == []
