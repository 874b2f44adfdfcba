"""Fabricated refractive camera builders for synthetic data generation.

Creates underwater cameras with known flat or dome ports suitable for
controlled testing of virtual camera synthesis and two-view estimation
without real calibration data.
"""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np
import torch

from aquaport.camera import Camera
from aquaport.geometry import normalize
from aquaport.types import DTYPE

# 1113x835 PINHOLE camera used throughout the refractive test scenes
DEFAULT_WIDTH = 1113
DEFAULT_HEIGHT = 835
DEFAULT_PINHOLE_PARAMS = (340.514, 340.514, 556.5, 417.5)


def random_interface_normal(rng: np.random.Generator) -> torch.Tensor:
    """Draw a flat-port normal tilted up to about 31 degrees off the optical axis.

    The x and y components are uniform in [-0.3, 0.3] and z is uniform in
    [0.7, 1.3] before normalization.

    Args:
        rng: Numpy random generator.

    Returns:
        Unit normal, shape (3,), float64.
    """
    normal = torch.tensor(
        [
            float(rng.uniform(-0.3, 0.3)),
            float(rng.uniform(-0.3, 0.3)),
            float(rng.uniform(0.7, 1.3)),
        ],
        dtype=DTYPE,
    )
    return normalize(normal)


def _base_camera(
    model: str,
    width: int,
    height: int,
    params: Sequence[float] | None,
    camera_id: int,
) -> Camera:
    camera = Camera(camera_id=camera_id, model=model, width=width, height=height)
    if params is None:
        if model != "PINHOLE":
            raise ValueError(
                f"Default params are only defined for PINHOLE, not {model}"
            )
        params = DEFAULT_PINHOLE_PARAMS
    camera.params = params
    return camera


def build_flatport_camera(
    normal: Sequence[float] | torch.Tensor = (0.0, 0.0, 1.0),
    interface_distance: float = 0.01,
    interface_thickness: float = 0.014,
    n_air: float = 1.0,
    n_glass: float = 1.52,
    n_water: float = 1.334,
    model: str = "PINHOLE",
    width: int = DEFAULT_WIDTH,
    height: int = DEFAULT_HEIGHT,
    params: Sequence[float] | None = None,
    camera_id: int = 0,
) -> Camera:
    """Build a camera behind a flat port.

    Args:
        normal: Interface normal in the camera frame; normalized here.
        interface_distance: Distance from the camera center to the inner
            glass surface, in metres.
        interface_thickness: Glass thickness in metres.
        n_air: Refractive index inside the housing.
        n_glass: Refractive index of the port.
        n_water: Refractive index of the water.
        model: Base camera model name.
        width: Image width in pixels.
        height: Image height in pixels.
        params: Base parameters; the default PINHOLE intrinsics when None.
        camera_id: Identifier to assign.

    Returns:
        Refractive Camera with FLATPORT parameters set.
    """
    camera = _base_camera(model, width, height, params, camera_id)
    unit_normal = normalize(torch.as_tensor(normal, dtype=DTYPE))
    camera.set_refrac_model_id_from_name("FLATPORT")
    camera.refrac_params = [
        *unit_normal.tolist(),
        interface_distance,
        interface_thickness,
        n_air,
        n_glass,
        n_water,
    ]
    return camera


def build_domeport_camera(
    decentering: Sequence[float] | torch.Tensor = (0.001, 0.0005, 0.003),
    inner_radius: float = 0.05,
    interface_thickness: float = 0.007,
    n_air: float = 1.0,
    n_glass: float = 1.47,
    n_water: float = 1.334,
    model: str = "PINHOLE",
    width: int = DEFAULT_WIDTH,
    height: int = DEFAULT_HEIGHT,
    params: Sequence[float] | None = None,
    camera_id: int = 0,
) -> Camera:
    """Build a camera behind a dome port.

    Args:
        decentering: Dome center in the camera frame, in metres. Must lie
            strictly inside the inner sphere.
        inner_radius: Inner dome radius in metres.
        interface_thickness: Glass thickness in metres.
        n_air: Refractive index inside the housing.
        n_glass: Refractive index of the port.
        n_water: Refractive index of the water.
        model: Base camera model name.
        width: Image width in pixels.
        height: Image height in pixels.
        params: Base parameters; the default PINHOLE intrinsics when None.
        camera_id: Identifier to assign.

    Returns:
        Refractive Camera with DOMEPORT parameters set.

    Raises:
        ValueError: If the parameters fail dome port verification.
    """
    camera = _base_camera(model, width, height, params, camera_id)
    camera.set_refrac_model_id_from_name("DOMEPORT")
    camera.refrac_params = [
        *(float(c) for c in decentering),
        inner_radius,
        interface_thickness,
        n_air,
        n_glass,
        n_water,
    ]
    if not camera.verify_refrac_params():
        raise ValueError(
            f"Invalid dome port: decentering {list(decentering)} must lie inside "
            f"radius {inner_radius}"
        )
    return camera
