"""Arm PyTree data structure for a serial manipulator chain.

This module defines the immutable description of a serial arm consumed by
``jax_mobile_arm.chain``. It is a stateless replacement for an arm object
with a settable base pose: the base pose is a field, and moving the arm
means building a new ``Arm`` with ``with_base_pose``.
"""

from typing import Optional, Sequence, Tuple

import jax.numpy as jnp
from flax import struct
from jax import Array

from ..transforms import se3, so3


@struct.dataclass
class Arm:
    """Immutable PyTree representation of a serial manipulator.

    Link i's world pose is built from its parent's pose as

        T_i = T_{i-1} @ pre_transforms[i] @ exp(joint_axes[i] * q[i]) @ post_transforms[i]

    with T_{-1} = base_pose. A revolute joint has axis [w, 0] and a
    prismatic joint [0, v], with unit w or v, in rotation-first twist order.

    Attributes:
        joint_names: Tuple of joint names, one per degree of freedom.
                     Marked as a static field for JIT compilation.
        link_names: Tuple of link (frame) names, one per joint.
                    Marked as a static field for JIT compilation.
        pre_transforms: (dof, 4, 4) fixed transforms from the parent link to
                        the joint frame.
        joint_axes: (dof, 6) joint twists in the joint frame.
        post_transforms: (dof, 4, 4) fixed transforms from the moved joint
                         frame to the link frame.
        base_pose: (4, 4) world pose of the arm's base frame.
    """
    joint_names: Tuple[str, ...] = struct.field(pytree_node=False)
    link_names: Tuple[str, ...] = struct.field(pytree_node=False)
    pre_transforms: Array
    joint_axes: Array
    post_transforms: Array
    base_pose: Array

    @property
    def dof(self) -> int:
        return len(self.joint_names)

    def with_base_pose(self, base_pose: Array) -> "Arm":
        """Return a copy of this arm mounted at ``base_pose``."""
        return self.replace(base_pose=jnp.asarray(base_pose, dtype=self.base_pose.dtype))

    @classmethod
    def create(
        cls,
        pre_transforms,
        joint_axes,
        post_transforms=None,
        base_pose: Optional[Array] = None,
        joint_names: Optional[Sequence[str]] = None,
        link_names: Optional[Sequence[str]] = None,
    ) -> "Arm":
        """Build an Arm, filling in identity transforms and default names."""
        joint_axes = jnp.asarray(joint_axes, dtype=float).reshape(-1, 6)
        dof = joint_axes.shape[0]

        pre_transforms = jnp.asarray(pre_transforms, dtype=float).reshape(dof, 4, 4)
        if post_transforms is None:
            post_transforms = jnp.broadcast_to(jnp.eye(4), (dof, 4, 4))
        post_transforms = jnp.asarray(post_transforms, dtype=float).reshape(dof, 4, 4)
        if base_pose is None:
            base_pose = se3.identity()

        if joint_names is None:
            joint_names = [f"joint{i + 1}" for i in range(dof)]
        if link_names is None:
            link_names = [f"link{i + 1}" for i in range(dof)]
        if len(joint_names) != dof or len(link_names) != dof:
            raise ValueError(
                f"Expected {dof} joint and link names, got {len(joint_names)} and {len(link_names)}")

        return cls(
            joint_names=tuple(joint_names),
            link_names=tuple(link_names),
            pre_transforms=pre_transforms,
            joint_axes=joint_axes,
            post_transforms=post_transforms,
            base_pose=jnp.asarray(base_pose, dtype=float),
        )

    @classmethod
    def from_dh(cls, a, alpha, d, theta, base_pose: Optional[Array] = None) -> "Arm":
        """Build a revolute arm from standard Denavit-Hartenberg parameters.

        Each link transform is Rz(theta_i + q_i) Tz(d_i) Tx(a_i) Rx(alpha_i).

        Args:
            a: (dof,) link lengths
            alpha: (dof,) link twists
            d: (dof,) link offsets
            theta: (dof,) joint angle offsets
            base_pose: (4, 4) pose of the arm base, identity by default

        Returns:
            Arm with one revolute joint about the local z axis per row.
        """
        a, alpha, d, theta = (jnp.atleast_1d(jnp.asarray(x, dtype=float)) for x in (a, alpha, d, theta))
        if not a.shape == alpha.shape == d.shape == theta.shape:
            raise ValueError("DH parameter arrays must have the same length")
        dof = a.shape[0]
        zeros = jnp.zeros(dof)

        Rz = se3.from_position_and_rotation(jnp.zeros((dof, 3)), so3.from_rpy(jnp.stack([zeros, zeros, theta], -1)))
        Tz = se3.from_position_and_rotation(jnp.stack([zeros, zeros, d], -1), jnp.eye(3))
        Tx = se3.from_position_and_rotation(jnp.stack([a, zeros, zeros], -1), jnp.eye(3))
        Rx = se3.from_position_and_rotation(jnp.zeros((dof, 3)), so3.from_rpy(jnp.stack([alpha, zeros, zeros], -1)))

        z_axis = jnp.array([0.0, 0.0, 1.0, 0.0, 0.0, 0.0])
        return cls.create(
            pre_transforms=jnp.broadcast_to(jnp.eye(4), (dof, 4, 4)),
            joint_axes=jnp.broadcast_to(z_axis, (dof, 6)),
            post_transforms=Rz @ Tz @ Tx @ Rx,
            base_pose=base_pose,
        )
