"""Request flags and result containers for forward kinematics.

The caller states up front which outputs it needs; only those are computed,
and every output that was not requested is None in the result rather than
a zero-filled placeholder.
"""

from dataclasses import dataclass
from typing import Optional

from flax import struct
from jax import Array

from ..exceptions import ErrorKind


@dataclass(frozen=True)
class FKRequest:
    """Which optional outputs a forward-kinematics call should produce.

    Poses are always produced.

    Attributes:
        velocities: World-frame linear velocity of each link origin, (3,).
        pose_jacobians: (6, dof) pose Jacobian per link.
        velocity_jacobians_wrt_pose: (3, dof) velocity Jacobian w.r.t.
            configuration per link.
        velocity_jacobians_wrt_velocity: (3, dof) velocity Jacobian w.r.t.
            configuration velocity per link.
    """
    velocities: bool = False
    pose_jacobians: bool = False
    velocity_jacobians_wrt_pose: bool = False
    velocity_jacobians_wrt_velocity: bool = False

    @property
    def wants_velocity(self) -> bool:
        """True when any output needs a configuration-space velocity."""
        return (self.velocities
                or self.velocity_jacobians_wrt_pose
                or self.velocity_jacobians_wrt_velocity)

    @property
    def wants_jacobians(self) -> bool:
        return (self.pose_jacobians
                or self.velocity_jacobians_wrt_pose
                or self.velocity_jacobians_wrt_velocity)


@struct.dataclass
class FKResult:
    """Per-link forward-kinematics outputs, stacked along the first axis.

    Attributes:
        poses: (num_links, 4, 4) world poses.
        velocities: (num_links, 3) or None.
        pose_jacobians: (num_links, 6, dof) or None.
        velocity_jacobians_wrt_pose: (num_links, 3, dof) or None.
        velocity_jacobians_wrt_velocity: (num_links, 3, dof) or None.
        error: Set, with every other field None, when the request was
            refused by a non-raising entry point.
    """
    poses: Optional[Array] = None
    velocities: Optional[Array] = None
    pose_jacobians: Optional[Array] = None
    velocity_jacobians_wrt_pose: Optional[Array] = None
    velocity_jacobians_wrt_velocity: Optional[Array] = None
    error: Optional[ErrorKind] = struct.field(pytree_node=False, default=None)

    @property
    def ok(self) -> bool:
        return self.error is None
