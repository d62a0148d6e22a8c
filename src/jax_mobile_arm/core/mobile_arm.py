"""Pose2MobileArm PyTree: a planar mobile base carrying a serial arm.

The configuration of the composite robot is the planar base pose (x, y, theta)
followed by the arm's joint values, so its dimension is 3 + arm.dof.
"""

from logging import getLogger
from typing import Optional

import jax.numpy as jnp
from flax import struct
from jax import Array

from ..transforms import se3
from .arm import Arm

logger = getLogger(__name__)

BASE_DOF = 3


@struct.dataclass
class MobileConfiguration:
    """Configuration of a planar mobile arm.

    Attributes:
        base: (3,) planar base pose [x, y, theta].
        joints: (dof,) arm joint values, in chain order.
    """
    base: Array
    joints: Array

    @classmethod
    def create(cls, base, joints) -> "MobileConfiguration":
        return cls(base=jnp.asarray(base, dtype=float).reshape(BASE_DOF),
                   joints=jnp.atleast_1d(jnp.asarray(joints, dtype=float)).reshape(-1))

    @classmethod
    def from_vector(cls, vector: Array) -> "MobileConfiguration":
        """Split a flat (3 + dof,) configuration vector."""
        vector = jnp.asarray(vector, dtype=float)
        if vector.ndim != 1 or vector.shape[0] < BASE_DOF:
            raise ValueError(f"Configuration vector needs at least {BASE_DOF} entries, got shape {vector.shape}")
        return cls(base=vector[:BASE_DOF], joints=vector[BASE_DOF:])

    def to_vector(self) -> Array:
        return jnp.concatenate([self.base, self.joints])


@struct.dataclass
class Pose2MobileArm:
    """Immutable PyTree for an arm mounted on a planar mobile base.

    Attributes:
        arm: The serial arm. Its own base pose is ignored: every evaluation
             places the arm at the lifted base pose composed with base_T_arm.
        base_T_arm: (4, 4) fixed pose of the arm base in the vehicle frame.
    """
    arm: Arm
    base_T_arm: Array

    @classmethod
    def create(cls, arm: Arm, base_T_arm: Optional[Array] = None) -> "Pose2MobileArm":
        if base_T_arm is None:
            base_T_arm = se3.identity()
        if not se3.is_identity(arm.base_pose):
            logger.warning(
                "Arm has a non-identity base pose, it will be overridden by the mobile base. "
                "Use base_T_arm to mount the arm instead.")
        return cls(arm=arm, base_T_arm=jnp.asarray(base_T_arm, dtype=float))

    @property
    def dof(self) -> int:
        """Total configuration dimension, 3 base parameters plus the arm joints."""
        return BASE_DOF + self.arm.dof

    @property
    def nr_links(self) -> int:
        """Number of links, the vehicle link followed by the arm links."""
        return self.arm.dof + 1
