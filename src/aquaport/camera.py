"""Camera entity holding intrinsics and an optional refractive interface.

A Camera owns its parameter vectors as plain float lists; tensors are built
on demand for projection. The model registries interpret the parameters, so
the Camera itself is agnostic of the concrete distortion or port formulas.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence

import torch

from aquaport.geometry import as_batch
from aquaport.models.base import CameraModel
from aquaport.models.registry import (
    INVALID_MODEL_ID,
    camera_model_verify_params,
    get_camera_model,
)
from aquaport.refraction.base import RefractiveModel
from aquaport.refraction.registry import (
    INVALID_REFRAC_MODEL_ID,
    get_refractive_model,
    refractive_model_verify_params,
)
from aquaport.types import DTYPE, Mat3, Ray3D, Vec2, Vec3

logger = logging.getLogger(__name__)

INVALID_CAMERA_ID = -1

# Extra parameters at or below this magnitude count as zero distortion
UNDISTORTED_EPS = 1e-8


def params_to_csv(params: Sequence[float]) -> str:
    """Format a parameter vector as a comma-separated string."""
    return ", ".join(repr(float(p)) for p in params)


def csv_to_params(text: str) -> list[float]:
    """Parse a comma-separated parameter string.

    Empty fields are skipped, so both "" and "1, 2," are accepted.

    Raises:
        ValueError: If a field is not a number.
    """
    return [float(field) for field in text.split(",") if field.strip()]


def _round_half_away(value: float) -> int:
    # Matches std::round for the positive image dimensions handled here
    return int(math.floor(value + 0.5))


class Camera:
    """Intrinsic camera with an optional refractive housing port.

    A new camera has no model: ``model_id`` is ``INVALID_MODEL_ID`` and the
    parameter vector is empty. Selecting a model resizes the parameter vector
    to the model's length, keeping the existing prefix and zero-filling the
    rest. The refractive model follows the same rules with
    ``INVALID_REFRAC_MODEL_ID`` meaning "not refractive".

    Args:
        camera_id: Identifier used by the owning reconstruction.
        model: Optional model id or name to select immediately.
        width: Image width in pixels.
        height: Image height in pixels.
        params: Optional initial parameter vector for *model*.
    """

    def __init__(
        self,
        camera_id: int = INVALID_CAMERA_ID,
        model: int | str | None = None,
        width: int = 0,
        height: int = 0,
        params: Sequence[float] | None = None,
    ) -> None:
        self.camera_id = camera_id
        self.width = width
        self.height = height
        self.has_prior_focal_length = False
        self._model_id: int = INVALID_MODEL_ID
        self._params: list[float] = []
        self._refrac_model_id: int = INVALID_REFRAC_MODEL_ID
        self._refrac_params: list[float] = []

        if model is not None:
            if isinstance(model, str):
                self.set_model_id_from_name(model)
            else:
                self.set_model_id(model)
        if params is not None:
            self.params = params

    def __repr__(self) -> str:
        refrac = ""
        if self.is_refractive:
            refrac = f", refrac_model={self.refrac_model_name}"
        model = self.model_name if self._model_id != INVALID_MODEL_ID else None
        return (
            f"Camera(camera_id={self.camera_id}, model={model}, "
            f"width={self.width}, height={self.height}{refrac})"
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Camera):
            return NotImplemented
        return (
            self.camera_id == other.camera_id
            and self._model_id == other._model_id
            and self.width == other.width
            and self.height == other.height
            and self._params == other._params
            and self.has_prior_focal_length == other.has_prior_focal_length
            and self._refrac_model_id == other._refrac_model_id
            and self._refrac_params == other._refrac_params
        )

    def copy(self) -> Camera:
        """Return an independent copy; parameter storage is never shared."""
        camera = Camera(camera_id=self.camera_id, width=self.width, height=self.height)
        camera.has_prior_focal_length = self.has_prior_focal_length
        camera._model_id = self._model_id
        camera._params = list(self._params)
        camera._refrac_model_id = self._refrac_model_id
        camera._refrac_params = list(self._refrac_params)
        return camera

    # ------------------------------------------------------------------
    # Model selection
    # ------------------------------------------------------------------

    @property
    def model_id(self) -> int:
        return self._model_id

    @property
    def model_name(self) -> str:
        return self._model().model_name

    def set_model_id(self, model_id: int) -> None:
        """Select the base camera model by id.

        Raises:
            ValueError: If *model_id* is not registered. Nothing is changed.
        """
        model = get_camera_model(int(model_id))
        self._model_id = model.model_id
        self._params = _resized(self._params, model.num_params)

    def set_model_id_from_name(self, model_name: str) -> None:
        """Select the base camera model by name (e.g. "PINHOLE")."""
        model = get_camera_model(model_name)
        self._model_id = model.model_id
        self._params = _resized(self._params, model.num_params)

    @property
    def refrac_model_id(self) -> int:
        return self._refrac_model_id

    @property
    def refrac_model_name(self) -> str:
        return self._refrac_model().model_name

    def set_refrac_model_id(self, refrac_model_id: int) -> None:
        """Select the refractive interface model by id.

        Raises:
            ValueError: If *refrac_model_id* is not registered.
        """
        model = get_refractive_model(int(refrac_model_id))
        self._refrac_model_id = model.model_id
        self._refrac_params = _resized(self._refrac_params, model.num_params)

    def set_refrac_model_id_from_name(self, refrac_model_name: str) -> None:
        """Select the refractive interface model by name (e.g. "FLATPORT")."""
        model = get_refractive_model(refrac_model_name)
        self._refrac_model_id = model.model_id
        self._refrac_params = _resized(self._refrac_params, model.num_params)

    @property
    def is_refractive(self) -> bool:
        return self._refrac_model_id != INVALID_REFRAC_MODEL_ID

    def _model(self) -> CameraModel:
        if self._model_id == INVALID_MODEL_ID:
            raise RuntimeError("Camera has no model; call set_model_id() first")
        return get_camera_model(self._model_id)

    def _refrac_model(self) -> RefractiveModel:
        if not self.is_refractive:
            raise RuntimeError(
                "Camera is not refractive; call set_refrac_model_id() first"
            )
        return get_refractive_model(self._refrac_model_id)

    # ------------------------------------------------------------------
    # Parameters
    # ------------------------------------------------------------------

    @property
    def params(self) -> list[float]:
        """Copy of the base parameter vector."""
        return list(self._params)

    @params.setter
    def params(self, params: Sequence[float]) -> None:
        expected = self._model().num_params
        if len(params) != expected:
            raise ValueError(
                f"{self.model_name} expects {expected} parameters, got {len(params)}"
            )
        self._params = [float(p) for p in params]

    @property
    def refrac_params(self) -> list[float]:
        """Copy of the refractive parameter vector (empty when not refractive)."""
        return list(self._refrac_params)

    @refrac_params.setter
    def refrac_params(self, params: Sequence[float]) -> None:
        expected = self._refrac_model().num_params
        if len(params) != expected:
            raise ValueError(
                f"{self.refrac_model_name} expects {expected} parameters, "
                f"got {len(params)}"
            )
        self._refrac_params = [float(p) for p in params]

    @property
    def params_info(self) -> str:
        return self._model().params_info

    @property
    def refrac_params_info(self) -> str:
        return self._refrac_model().params_info

    @property
    def focal_length_idxs(self) -> tuple[int, ...]:
        return self._model().focal_length_idxs

    @property
    def principal_point_idxs(self) -> tuple[int, ...]:
        return self._model().principal_point_idxs

    @property
    def extra_params_idxs(self) -> tuple[int, ...]:
        return self._model().extra_params_idxs

    def _focal_idxs(self, expected: int) -> tuple[int, ...]:
        idxs = self.focal_length_idxs
        if len(idxs) != expected:
            raise ValueError(
                f"{self.model_name} has {len(idxs)} focal length parameter(s); "
                f"this accessor requires {expected}"
            )
        return idxs

    @property
    def mean_focal_length(self) -> float:
        idxs = self.focal_length_idxs
        return sum(self._params[idx] for idx in idxs) / len(idxs)

    @property
    def focal_length(self) -> float:
        """Shared focal length; only for models with a single focal parameter."""
        return self._params[self._focal_idxs(1)[0]]

    @focal_length.setter
    def focal_length(self, value: float) -> None:
        # Writes every focal slot, so this also works for fx/fy models
        for idx in self.focal_length_idxs:
            self._params[idx] = float(value)

    @property
    def focal_length_x(self) -> float:
        return self._params[self._focal_idxs(2)[0]]

    @focal_length_x.setter
    def focal_length_x(self, value: float) -> None:
        self._params[self._focal_idxs(2)[0]] = float(value)

    @property
    def focal_length_y(self) -> float:
        return self._params[self._focal_idxs(2)[1]]

    @focal_length_y.setter
    def focal_length_y(self, value: float) -> None:
        self._params[self._focal_idxs(2)[1]] = float(value)

    @property
    def principal_point_x(self) -> float:
        return self._params[self.principal_point_idxs[0]]

    @principal_point_x.setter
    def principal_point_x(self, value: float) -> None:
        self._params[self.principal_point_idxs[0]] = float(value)

    @property
    def principal_point_y(self) -> float:
        return self._params[self.principal_point_idxs[1]]

    @principal_point_y.setter
    def principal_point_y(self, value: float) -> None:
        self._params[self.principal_point_idxs[1]] = float(value)

    def calibration_matrix(self) -> Mat3:
        """Upper-triangular intrinsic matrix K, shape (3, 3), float64.

        Raises:
            ValueError: If the model does not have 1 or 2 focal parameters.
        """
        idxs = self.focal_length_idxs
        if len(idxs) == 1:
            fx = fy = self._params[idxs[0]]
        elif len(idxs) == 2:
            fx, fy = self._params[idxs[0]], self._params[idxs[1]]
        else:
            raise ValueError("Camera model must have either 1 or 2 focal lengths")

        K = torch.eye(3, dtype=DTYPE)
        K[0, 0] = fx
        K[1, 1] = fy
        K[0, 2] = self.principal_point_x
        K[1, 2] = self.principal_point_y
        return K

    def params_to_string(self) -> str:
        return params_to_csv(self._params)

    def refrac_params_to_string(self) -> str:
        return params_to_csv(self._refrac_params)

    def set_params_from_string(self, text: str) -> bool:
        """Replace the base parameters from a CSV string.

        Returns:
            False (and leaves the camera untouched) when the string does not
            parse or the values fail model verification.
        """
        try:
            params = csv_to_params(text)
        except ValueError:
            logger.warning("Rejected unparsable camera params %r", text)
            return False
        if not camera_model_verify_params(self._model_id, params):
            logger.warning(
                "Rejected %d camera params for model id %d", len(params), self._model_id
            )
            return False
        self._params = params
        return True

    def set_refrac_params_from_string(self, text: str) -> bool:
        """Replace the refractive parameters from a CSV string.

        Returns:
            False (and leaves the camera untouched) when the string does not
            parse or the values fail refractive model verification.
        """
        try:
            params = csv_to_params(text)
        except ValueError:
            logger.warning("Rejected unparsable refractive params %r", text)
            return False
        if not refractive_model_verify_params(self._refrac_model_id, params):
            logger.warning(
                "Rejected %d refractive params for model id %d",
                len(params),
                self._refrac_model_id,
            )
            return False
        self._refrac_params = params
        return True

    def verify_params(self) -> bool:
        return camera_model_verify_params(self._model_id, self._params)

    def verify_refrac_params(self) -> bool:
        return refractive_model_verify_params(
            self._refrac_model_id, self._refrac_params
        )

    def has_bogus_params(
        self,
        min_focal_length_ratio: float = 0.1,
        max_focal_length_ratio: float = 10.0,
        max_extra_param: float = 1.0,
    ) -> bool:
        """Heuristic plausibility check; see :meth:`CameraModel.has_bogus_params`."""
        return self._model().has_bogus_params(
            self._params,
            self.width,
            self.height,
            min_focal_length_ratio,
            max_focal_length_ratio,
            max_extra_param,
        )

    def is_undistorted(self) -> bool:
        """True iff every extra parameter has magnitude at most 1e-8."""
        return all(
            abs(self._params[idx]) <= UNDISTORTED_EPS for idx in self.extra_params_idxs
        )

    def initialize_with_id(
        self, model_id: int, focal_length: float, width: int, height: int
    ) -> None:
        """Select a model and reset all parameters to their defaults."""
        model = get_camera_model(model_id)
        self._model_id = model.model_id
        self.width = width
        self.height = height
        self._params = model.initialize_params(focal_length, width, height)

    def initialize_with_name(
        self, model_name: str, focal_length: float, width: int, height: int
    ) -> None:
        self.initialize_with_id(
            get_camera_model(model_name).model_id, focal_length, width, height
        )

    # ------------------------------------------------------------------
    # Rescaling
    # ------------------------------------------------------------------

    def rescale(self, scale: float) -> None:
        """Scale the image size by *scale*, adjusting intrinsics accordingly.

        The new size is rounded to integers, and the intrinsics are scaled by
        the effective per-axis factors ``round(scale * dim) / dim`` rather than
        *scale* itself.

        Raises:
            ValueError: If *scale* is not positive.
        """
        if scale <= 0.0:
            raise ValueError(f"scale must be positive, got {scale}")
        self.rescale_to_size(
            _round_half_away(scale * self.width), _round_half_away(scale * self.height)
        )

    def rescale_to_size(self, width: int, height: int) -> None:
        """Resize the image to (*width*, *height*), adjusting intrinsics.

        Rescaling is lossy: a round trip only restores the intrinsics when the
        scale factors are exact.
        """
        if self.width <= 0 or self.height <= 0:
            raise RuntimeError("Camera has no image size to rescale from")
        scale_x = width / self.width
        scale_y = height / self.height
        idxs = self.focal_length_idxs
        if len(idxs) not in (1, 2):
            raise ValueError("Camera model must have either 1 or 2 focal lengths")

        self.width = width
        self.height = height
        self.principal_point_x = scale_x * self.principal_point_x
        self.principal_point_y = scale_y * self.principal_point_y
        if len(idxs) == 1:
            self.focal_length = (scale_x + scale_y) / 2.0 * self.focal_length
        else:
            self.focal_length_x = scale_x * self.focal_length_x
            self.focal_length_y = scale_y * self.focal_length_y

    # ------------------------------------------------------------------
    # Projection
    # ------------------------------------------------------------------

    def _params_tensor(self) -> torch.Tensor:
        return torch.tensor(self._params, dtype=DTYPE)

    def _refrac_params_tensor(self) -> torch.Tensor:
        return torch.tensor(self._refrac_params, dtype=DTYPE)

    def cam_from_img(self, image_points: Vec2) -> Vec2:
        """Unproject pixels to normalized camera coordinates (z = 1 plane).

        Args:
            image_points: Shape (2,) or (N, 2).

        Returns:
            Normalized coordinates, same shape as input.
        """
        xy, single = as_batch(image_points, 2)
        uvw = self._model().cam_from_img(self._params_tensor(), xy)
        cam_points = uvw[:, :2] / uvw[:, 2:3]
        return cam_points[0] if single else cam_points

    def cam_from_img_threshold(self, threshold: float) -> float:
        """Convert a pixel error bound to a normalized camera-space bound."""
        return self._model().cam_from_img_threshold(self._params_tensor(), threshold)

    def img_from_cam(self, cam_points: torch.Tensor) -> Vec2:
        """Project camera points to pixels without refraction.

        Args:
            cam_points: Normalized points of shape (2,)/(N, 2), or camera-frame
                points of shape (3,)/(N, 3).

        Returns:
            Pixel coordinates, shape (2,) or (N, 2).
        """
        points = torch.as_tensor(cam_points, dtype=DTYPE)
        if points.shape[-1] == 2:
            points = torch.cat([points, torch.ones_like(points[..., :1])], dim=-1)
        uvw, single = as_batch(points, 3)
        pixels = self._model().img_from_cam(self._params_tensor(), uvw)
        return pixels[0] if single else pixels

    def refraction_axis(self) -> Vec3:
        """Unit symmetry axis of the refractive interface, shape (3,)."""
        return self._refrac_model().refraction_axis(self._refrac_params_tensor())

    def cam_from_img_refrac(self, image_points: Vec2) -> Ray3D:
        """Trace pixels through the refractive interface.

        Args:
            image_points: Shape (2,) or (N, 2).

        Returns:
            Ray3D in the camera frame with unit directions; single or batched
            to match the input.

        Raises:
            RuntimeError: If no refractive model is set.
        """
        refrac_model = self._refrac_model()
        xy, single = as_batch(image_points, 2)
        ray = refrac_model.cam_from_img(
            self._model(), self._params_tensor(), self._refrac_params_tensor(), xy
        )
        return ray[0] if single else ray

    def cam_from_img_refrac_point(
        self, image_points: Vec2, depth: float | torch.Tensor
    ) -> Vec3:
        """3D point on each refracted ray whose camera z coordinate is *depth*."""
        refrac_model = self._refrac_model()
        xy, single = as_batch(image_points, 2)
        points = refrac_model.cam_from_img_point(
            self._model(),
            self._params_tensor(),
            self._refrac_params_tensor(),
            xy,
            depth,
        )
        return points[0] if single else points

    def img_from_cam_refrac(self, points: Vec3) -> Vec2:
        """Project camera-frame 3D points through the refractive interface.

        Returns:
            Pixel coordinates, shape (2,) or (N, 2). NaN where the point cannot
            be imaged through the interface.
        """
        refrac_model = self._refrac_model()
        uvw, single = as_batch(points, 3)
        pixels = refrac_model.img_from_cam(
            self._model(), self._params_tensor(), self._refrac_params_tensor(), uvw
        )
        return pixels[0] if single else pixels


def _resized(params: list[float], size: int) -> list[float]:
    return (params + [0.0] * size)[:size]
