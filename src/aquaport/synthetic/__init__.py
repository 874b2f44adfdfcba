"""Synthetic refractive cameras and two-view data for controlled testing.

Provides flat and dome port camera builders with known interface geometry,
random relative poses, noisy two-view correspondences with virtual cameras,
and relative pose error metrics.
"""

from aquaport.synthetic.correspondences import (
    CorrespondenceSet,
    PoseError,
    generate_correspondences,
    random_relative_pose,
    relative_pose_error,
)
from aquaport.synthetic.rig import (
    build_domeport_camera,
    build_flatport_camera,
    random_interface_normal,
)

__all__ = [
    "CorrespondenceSet",
    "PoseError",
    "build_domeport_camera",
    "build_flatport_camera",
    "generate_correspondences",
    "random_interface_normal",
    "random_relative_pose",
    "relative_pose_error",
]
