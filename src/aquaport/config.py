"""Frozen dataclass config hierarchy for AquaPort.

Loading precedence: defaults -> YAML file -> overrides -> freeze.

Camera and refractive model names are resolved to registry ids here, at
configuration time, so the rest of the code only handles validated cameras.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from aquaport.camera import Camera

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Section dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CameraConfig:
    """Camera record in configuration form.

    Attributes:
        model: Base camera model name (e.g. "PINHOLE").
        width: Image width in pixels.
        height: Image height in pixels.
        params: Comma-separated base parameters in model order.
        refrac_model: Refractive model name ("FLATPORT", "DOMEPORT"), or None
            for an in-air camera.
        refrac_params: Comma-separated refractive parameters.
        prior_focal_length: Whether the focal length comes from a prior.
    """

    model: str = "PINHOLE"
    width: int = 0
    height: int = 0
    params: str = ""
    refrac_model: str | None = None
    refrac_params: str = ""
    prior_focal_length: bool = False


@dataclass(frozen=True)
class BogusParamsConfig:
    """Thresholds for :meth:`Camera.has_bogus_params`.

    Attributes:
        min_focal_length_ratio: Lower bound of focal length / max image side.
        max_focal_length_ratio: Upper bound of focal length / max image side.
        max_extra_param: Largest accepted magnitude of a distortion parameter.
    """

    min_focal_length_ratio: float = 0.1
    max_focal_length_ratio: float = 10.0
    max_extra_param: float = 1.0


@dataclass(frozen=True)
class VirtualConfig:
    """Settings for batch virtual camera synthesis.

    Attributes:
        max_workers: Worker threads for batch synthesis (1 = sequential).
        parallel_tolerance: Relative tolerance below which the refracted ray
            and the refraction axis count as parallel.
    """

    max_workers: int = 1
    parallel_tolerance: float = 1e-12


@dataclass(frozen=True)
class CorrespondenceConfig:
    """Synthetic two-view correspondence generation.

    Attributes:
        num_points: Number of correspondences per dataset.
        noise_level: Standard deviation of pixel noise on inliers.
        inlier_ratio: Fraction of correspondences that are inliers.
        outlier_noise: Standard deviation of pixel noise on outliers.
        min_depth: Minimum distance along the refracted ray in view 1.
        max_depth: Maximum distance along the refracted ray in view 1.
        max_attempts_factor: Candidate budget as a multiple of num_points.
        seed: Random seed.
    """

    num_points: int = 100
    noise_level: float = 0.0
    inlier_ratio: float = 1.0
    outlier_noise: float = 200.0
    min_depth: float = 0.5
    max_depth: float = 10.0
    max_attempts_factor: int = 100
    seed: int = 0

    def __post_init__(self) -> None:
        if self.num_points < 1:
            raise ValueError(f"num_points must be positive, got {self.num_points}")
        if not 0.0 <= self.inlier_ratio <= 1.0:
            raise ValueError(
                f"inlier_ratio must be in [0, 1], got {self.inlier_ratio}"
            )
        if self.min_depth <= 0.0 or self.max_depth < self.min_depth:
            raise ValueError(
                f"Invalid depth range [{self.min_depth}, {self.max_depth}]"
            )


# ---------------------------------------------------------------------------
# Top-level config
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AquaPortConfig:
    """Top-level frozen config.

    Attributes:
        camera: Camera record to build.
        bogus: Bogus-parameter thresholds.
        virtual: Virtual camera synthesis settings.
        synthetic: Synthetic correspondence settings.
    """

    camera: CameraConfig = dataclasses.field(default_factory=CameraConfig)
    bogus: BogusParamsConfig = dataclasses.field(default_factory=BogusParamsConfig)
    virtual: VirtualConfig = dataclasses.field(default_factory=VirtualConfig)
    synthetic: CorrespondenceConfig = dataclasses.field(
        default_factory=CorrespondenceConfig
    )


_SECTIONS: dict[str, type] = {
    "camera": CameraConfig,
    "bogus": BogusParamsConfig,
    "virtual": VirtualConfig,
    "synthetic": CorrespondenceConfig,
}

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _apply_nested_overrides(
    flat: dict[str, Any], nested: dict[str, Any]
) -> dict[str, Any]:
    """Apply nested dict overrides onto a flat key->value mapping.

    Overrides may arrive as dot-notation keys ("camera.model") or as nested
    dicts ({"camera": {"model": "PINHOLE"}}). Nested dicts are flattened to
    dot-notation before merging.
    """
    result = dict(flat)
    for key, value in nested.items():
        if isinstance(value, dict):
            for subkey, subvalue in value.items():
                result[f"{key}.{subkey}"] = subvalue
        else:
            result[key] = value
    return result


def _build_section_dict_from_dotted(
    flat: dict[str, Any],
) -> dict[str, dict[str, Any]]:
    """Convert dot-notation keys to a nested section->field mapping.

    Raises:
        ValueError: On keys without a section or with an unknown section.
    """
    nested: dict[str, dict[str, Any]] = {}
    for key, value in flat.items():
        section, _, field_name = key.partition(".")
        if not field_name or section not in _SECTIONS:
            raise ValueError(
                f"Unknown config key {key!r}; expected <section>.<field> with "
                f"section in {sorted(_SECTIONS)}"
            )
        nested.setdefault(section, {})[field_name] = value
    return nested


# ---------------------------------------------------------------------------
# Public factory
# ---------------------------------------------------------------------------


def load_config(
    yaml_path: str | Path | None = None,
    *,
    overrides: dict[str, Any] | None = None,
) -> AquaPortConfig:
    """Construct a frozen :class:`AquaPortConfig` using layered overrides.

    Loading precedence (lowest → highest priority):

    1. Dataclass field defaults
    2. YAML file (*yaml_path*)
    3. *overrides* (dot-notation keys or nested dicts)
    4. Freeze

    Args:
        yaml_path: Optional path to a YAML config file.
        overrides: Optional dict of overrides (highest precedence).

    Returns:
        Frozen :class:`AquaPortConfig` with all overrides applied.
    """
    flat: dict[str, Any] = {}

    if yaml_path is not None:
        yaml_path = Path(yaml_path)
        with yaml_path.open() as fh:
            raw: dict[str, Any] = yaml.safe_load(fh) or {}
        flat = _apply_nested_overrides(flat, raw)

    if overrides is not None:
        flat = _apply_nested_overrides(flat, overrides)

    sections = _build_section_dict_from_dotted(flat)
    return AquaPortConfig(
        **{
            name: section_cls(**sections.get(name, {}))
            for name, section_cls in _SECTIONS.items()
        }
    )


def serialize_config(config: AquaPortConfig) -> str:
    """Serialize *config* to a YAML string loadable by :func:`load_config`."""
    return yaml.dump(
        dataclasses.asdict(config), default_flow_style=False, sort_keys=True
    )


def build_camera(
    config: CameraConfig,
    camera_id: int = 0,
    bogus: BogusParamsConfig | None = None,
) -> Camera:
    """Build a validated :class:`Camera` from its configuration record.

    Args:
        config: Camera record.
        camera_id: Identifier to assign.
        bogus: If given, log a warning when the parameters look implausible.

    Returns:
        Camera with base (and, if configured, refractive) parameters set.

    Raises:
        ValueError: If a model name is unknown or parameters fail verification.
    """
    camera = Camera(camera_id=camera_id, width=config.width, height=config.height)
    camera.set_model_id_from_name(config.model)
    camera.has_prior_focal_length = config.prior_focal_length
    if not camera.set_params_from_string(config.params):
        raise ValueError(
            f"Invalid params {config.params!r} for camera model {config.model}"
            f" ({camera.params_info})"
        )

    if config.refrac_model is not None:
        camera.set_refrac_model_id_from_name(config.refrac_model)
        if not camera.set_refrac_params_from_string(config.refrac_params):
            raise ValueError(
                f"Invalid refractive params {config.refrac_params!r} for "
                f"{config.refrac_model} ({camera.refrac_params_info})"
            )

    if bogus is not None and camera.has_bogus_params(
        bogus.min_focal_length_ratio,
        bogus.max_focal_length_ratio,
        bogus.max_extra_param,
    ):
        logger.warning("Camera %d has implausible params: %s", camera_id, camera)

    return camera
