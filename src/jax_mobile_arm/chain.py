"""Serial-arm kinematics: forward kinematics, Jacobians and link velocities.

Pose Jacobians are computed analytically in the right-multiplicative local
convention of ``transforms.se3``. Link velocities and their Jacobians are
obtained with JAX automatic differentiation of the link positions.
"""

from typing import Optional, Tuple

import jax
import jax.numpy as jnp
from jax import Array

from .core import Arm, FKRequest, FKResult
from .exceptions import InvalidRequestError
from .transforms import se3, so3


def joint_motion(joint_axes: Array, q: Array) -> Array:
    """Transform produced by moving joints with the given axes by ``q``.

    Closed form of exp(axis * q) for unit revolute [w, 0] and unit prismatic
    [0, v] axes. Unlike ``se3.exp`` it stays smooth at q = 0, so it can be
    differentiated through.

    Args:
        joint_axes: (..., 6) joint twists
        q: (...) joint values

    Returns:
        (..., 4, 4) joint transforms
    """
    w, v = joint_axes[..., :3], joint_axes[..., 3:]
    K = so3.skew_symmetric(w)
    s = jnp.sin(q)[..., None, None]
    c = jnp.cos(q)[..., None, None]

    I = jnp.broadcast_to(jnp.eye(3, dtype=K.dtype), K.shape)
    R = I + s * K + (1.0 - c) * jnp.matmul(K, K)
    t = v * q[..., None]

    return se3.from_position_and_rotation(t, R)


def link_frames(arm: Arm, q: Array, base_pose: Optional[Array] = None) -> Tuple[Array, Array]:
    """Compute the moved joint frames and the link poses of the arm.

    Args:
        arm: Arm description
        q: (dof,) joint values
        base_pose: (4, 4) world pose of the arm base, ``arm.base_pose`` if None

    Returns:
        Tuple of (joint_frames, link_poses), each of shape (dof, 4, 4). The
        joint frame of joint j is its world pose right after its own motion.
    """
    if base_pose is None:
        base_pose = arm.base_pose

    motions = joint_motion(arm.joint_axes, q)

    def scan_body(T_parent, xs):
        pre, motion, post = xs
        M = T_parent @ pre @ motion
        T = M @ post
        return T, (M, T)

    _, (joint_frames, link_poses) = jax.lax.scan(
        scan_body, base_pose, (arm.pre_transforms, motions, arm.post_transforms))

    return joint_frames, link_poses


def pose_jacobians(arm: Arm, joint_frames: Array, link_poses: Array) -> Array:
    """Analytic pose Jacobians of every link w.r.t. the joint values.

    Moving joint j by dq perturbs link i (j <= i) by
    exp(Ad(T_i^-1 M_j) axis_j dq) on the right, so that column is the joint
    axis transported from the joint frame into the link frame. Joints after
    link i do not move it.

    Returns:
        (dof, 6, dof) array, entry [i, :, j] is d(link i)/d(q_j).
    """
    relative = jnp.matmul(se3.inverse(link_poses)[:, None], joint_frames[None, :])
    columns = jnp.einsum("ijab,jb->ija", se3.adjoint(relative), arm.joint_axes)

    dof = arm.dof
    upstream = jnp.tril(jnp.ones((dof, dof), dtype=bool))
    columns = jnp.where(upstream[..., None], columns, 0.0)

    return jnp.swapaxes(columns, 1, 2)


def forward_kinematics(
    arm: Arm,
    q: Array,
    qdot: Optional[Array] = None,
    base_pose: Optional[Array] = None,
    request: Optional[FKRequest] = None,
) -> FKResult:
    """Compute poses, and the requested Jacobians and velocities, of every arm link.

    Args:
        arm: Arm description
        q: (dof,) joint values
        qdot: (dof,) joint velocities, needed only for velocity outputs
        base_pose: (4, 4) world pose of the arm base. Passed explicitly so the
            call never depends on state left behind by a previous evaluation;
            defaults to ``arm.base_pose``.
        request: Which optional outputs to compute. Poses only by default.

    Returns:
        FKResult with one entry per joint link.

    Raises:
        InvalidRequestError: Velocity outputs requested without ``qdot``.
        ValueError: ``q`` or ``qdot`` has the wrong length.
    """
    if request is None:
        request = FKRequest()
    if request.wants_velocity and qdot is None:
        raise InvalidRequestError(
            "Workspace velocities require joint velocities in configuration space")

    q = jnp.asarray(q, dtype=arm.joint_axes.dtype)
    if q.shape != (arm.dof,):
        raise ValueError(f"Expected {arm.dof} joint values, got shape {q.shape}")
    if qdot is not None:
        qdot = jnp.asarray(qdot, dtype=q.dtype)
        if qdot.shape != (arm.dof,):
            raise ValueError(f"Expected {arm.dof} joint velocities, got shape {qdot.shape}")
    if base_pose is None:
        base_pose = arm.base_pose

    dof = arm.dof
    if dof == 0:
        def empty(rows):
            return jnp.zeros((0, rows, 0))

        return FKResult(
            poses=jnp.zeros((0, 4, 4)),
            velocities=jnp.zeros((0, 3)) if request.velocities else None,
            pose_jacobians=empty(6) if request.pose_jacobians else None,
            velocity_jacobians_wrt_pose=empty(3) if request.velocity_jacobians_wrt_pose else None,
            velocity_jacobians_wrt_velocity=empty(3) if request.velocity_jacobians_wrt_velocity else None,
        )

    joint_frames, link_poses = link_frames(arm, q, base_pose)

    J_pose = None
    if request.pose_jacobians:
        J_pose = pose_jacobians(arm, joint_frames, link_poses)

    velocities = J_vx_p = J_vx_v = None
    if request.wants_velocity:
        def positions(joint_values):
            return se3.get_position(link_frames(arm, joint_values, base_pose)[1])

        def linear_velocities(joint_values):
            return jnp.einsum("ikj,j->ik", jax.jacfwd(positions)(joint_values), qdot)

        position_jacobians = jax.jacfwd(positions)(q)  # (dof, 3, dof)
        if request.velocities:
            velocities = jnp.einsum("ikj,j->ik", position_jacobians, qdot)
        if request.velocity_jacobians_wrt_pose:
            J_vx_p = jax.jacfwd(linear_velocities)(q)
        if request.velocity_jacobians_wrt_velocity:
            J_vx_v = position_jacobians

    return FKResult(
        poses=link_poses,
        velocities=velocities,
        pose_jacobians=J_pose,
        velocity_jacobians_wrt_pose=J_vx_p,
        velocity_jacobians_wrt_velocity=J_vx_v,
    )
