"""Forward kinematics and Jacobians of a planar mobile base carrying a serial arm.

Link 0 is the vehicle, lifted from its planar pose into 3D; links 1..dof are
the arm links. Every pose Jacobian is (6, 3 + dof): columns 0..2 respond to
body-frame perturbations [dx, dy, dtheta] of the planar base pose (see
``transforms.se2.retract``), the remaining columns to the joint values.
"""

from logging import getLogger
from typing import Optional, Tuple, Union

import jax.numpy as jnp
from jax import Array

from . import chain
from .core import FKRequest, FKResult, MobileConfiguration, Pose2MobileArm
from .core.mobile_arm import BASE_DOF
from .exceptions import ErrorKind, error_for
from .transforms import se3, so3

logger = getLogger(__name__)

_Z_AXIS = jnp.array([0.0, 0.0, 1.0])


def compute_base_pose3(pose2: Array) -> Array:
    """Lift a planar pose [x, y, theta] to the 3D pose Rz(theta), (x, y, 0)."""
    pose2 = jnp.asarray(pose2, dtype=float)
    c, s = jnp.cos(pose2[2]), jnp.sin(pose2[2])
    zero, one = jnp.zeros_like(c), jnp.ones_like(c)
    # Rz(theta), smooth at theta = 0
    R = jnp.stack([
        jnp.stack([c, -s, zero]),
        jnp.stack([s, c, zero]),
        jnp.stack([zero, zero, one]),
    ])
    p = jnp.concatenate([pose2[:2], jnp.zeros(1, dtype=pose2.dtype)])
    return se3.from_position_and_rotation(p, R)


def compute_base_pose3_and_jacobian(pose2: Array) -> Tuple[Array, Array]:
    """Lift a planar pose to 3D and return the (6, 3) Jacobian of the lift.

    Only theta rotates the lifted pose, through the third column of the
    exponential-map derivative at (0, 0, theta). The planar translation maps
    onto the first two translation rows; z never changes.

    Args:
        pose2: (3,) planar pose [x, y, theta]

    Returns:
        Tuple of the (4, 4) lifted pose and its (6, 3) Jacobian.
    """
    pose2 = jnp.asarray(pose2, dtype=float)
    H_rot = so3.expmap_derivative(_Z_AXIS * pose2[2])

    J = jnp.zeros((6, BASE_DOF), dtype=pose2.dtype)
    J = J.at[:3, 2].set(H_rot[:, 2])
    J = J.at[3:5, 0:2].set(jnp.eye(2, dtype=pose2.dtype))

    return compute_base_pose3(pose2), J


def compute_arm_base_pose(robot: Pose2MobileArm, pose2: Array) -> Array:
    """World pose of the arm base: lifted vehicle pose composed with the mount."""
    return se3.multiply(compute_base_pose3(pose2), robot.base_T_arm)


def compute_arm_base_pose_and_jacobian(robot: Pose2MobileArm, pose2: Array) -> Tuple[Array, Array]:
    """World pose of the arm base and its (6, 3) Jacobian w.r.t. the planar pose.

    The mount is constant, so only the left operand of the composition
    contributes: J = d(compose)/d(lifted pose) @ J_lift.
    """
    veh_base, H_veh = compute_base_pose3_and_jacobian(pose2)
    arm_base, H_compose, _ = se3.compose_with_jacobians(veh_base, robot.base_T_arm)
    return arm_base, H_compose @ H_veh


def check_request(
    robot: Pose2MobileArm,
    request: FKRequest,
    velocity: Optional[Array] = None,
) -> Optional[Tuple[ErrorKind, str]]:
    """Return why a request cannot be served, or None if it can.

    Workspace velocity outputs are ill-defined without a configuration
    velocity. Arm-link velocities are not propagated, so a configuration
    velocity is only accepted for a vehicle without arm joints, where the
    vehicle link is the whole answer.
    """
    if velocity is None and request.wants_velocity:
        return (ErrorKind.INVALID_REQUEST,
                "Workspace velocity was requested without a configuration space velocity")
    if velocity is not None and robot.arm.dof > 0:
        return (ErrorKind.UNIMPLEMENTED_PATH,
                "Velocity propagation through arm links is not implemented")
    return None


def _as_configuration(config: Union[MobileConfiguration, Array]) -> MobileConfiguration:
    if isinstance(config, MobileConfiguration):
        return config
    return MobileConfiguration.from_vector(config)


def forward_kinematics(
    robot: Pose2MobileArm,
    config: Union[MobileConfiguration, Array],
    velocity: Optional[Array] = None,
    request: Optional[FKRequest] = None,
) -> FKResult:
    """Compute the pose of every link and the requested Jacobians and velocities.

    Args:
        robot: The mobile arm.
        config: MobileConfiguration, or a flat (3 + dof,) configuration vector.
        velocity: (3 + dof,) configuration-space velocity, base part first.
        request: Which optional outputs to compute. Poses only by default.

    Returns:
        FKResult with robot.nr_links entries: the vehicle link, then the arm
        links in chain order.

    Raises:
        InvalidRequestError: Velocity outputs requested without ``velocity``.
        UnimplementedPathError: ``velocity`` given for a robot with arm joints.
            A robot without arm joints deliberately accepts ``velocity`` and
            returns the vehicle link velocity instead of refusing it.
        ValueError: Configuration or velocity has the wrong size.
    """
    if request is None:
        request = FKRequest()
    problem = check_request(robot, request, velocity)
    if problem is not None:
        raise error_for(*problem)

    config = _as_configuration(config)
    arm_dof = robot.arm.dof
    if config.base.shape != (BASE_DOF,):
        raise ValueError(f"Expected a planar base pose of size {BASE_DOF}, got shape {config.base.shape}")
    if config.joints.shape != (arm_dof,):
        raise ValueError(f"Expected {arm_dof} joint values, got shape {config.joints.shape}")
    if velocity is not None:
        velocity = jnp.asarray(velocity, dtype=float)
        if velocity.shape != (robot.dof,):
            raise ValueError(f"Expected velocity of size {robot.dof}, got shape {velocity.shape}")

    nr_links, dof = robot.nr_links, robot.dof

    # Jacobians are only paid for when some Jacobian output is requested
    if request.wants_jacobians:
        veh_base, H_veh = compute_base_pose3_and_jacobian(config.base)
        arm_base, H_arm = compute_arm_base_pose_and_jacobian(robot, config.base)
    else:
        veh_base = compute_base_pose3(config.base)
        arm_base = compute_arm_base_pose(robot, config.base)

    # The arm base is handed over explicitly, never left on the arm
    arm_fk = chain.forward_kinematics(
        robot.arm, config.joints, base_pose=arm_base,
        request=FKRequest(pose_jacobians=request.pose_jacobians))

    poses = jnp.concatenate([veh_base[None], arm_fk.poses], axis=0)

    J_pose = None
    if request.pose_jacobians:
        J_pose = jnp.zeros((nr_links, 6, dof), dtype=poses.dtype)
        J_pose = J_pose.at[0, :, :BASE_DOF].set(H_veh)
        if arm_dof > 0:
            # base perturbation seen from each arm link: Ad(T_i^-1 T_armbase) @ H_arm
            to_link = se3.between(arm_fk.poses, arm_base)
            J_pose = J_pose.at[1:, :, :BASE_DOF].set(se3.adjoint(to_link) @ H_arm)
            J_pose = J_pose.at[1:, :, BASE_DOF:].set(arm_fk.pose_jacobians)

    velocities = J_vx_p = J_vx_v = None
    if request.velocities:
        velocities = jnp.zeros((nr_links, 3), dtype=poses.dtype)
        velocities = velocities.at[0, :2].set(velocity[:2])
    if request.velocity_jacobians_wrt_pose:
        # vehicle velocity does not depend on the configuration
        J_vx_p = jnp.zeros((nr_links, 3, dof), dtype=poses.dtype)
    if request.velocity_jacobians_wrt_velocity:
        J_vx_v = jnp.zeros((nr_links, 3, dof), dtype=poses.dtype)
        J_vx_v = J_vx_v.at[0, :2, :2].set(jnp.eye(2, dtype=poses.dtype))

    return FKResult(
        poses=poses,
        velocities=velocities,
        pose_jacobians=J_pose,
        velocity_jacobians_wrt_pose=J_vx_p,
        velocity_jacobians_wrt_velocity=J_vx_v,
    )


def try_forward_kinematics(
    robot: Pose2MobileArm,
    config: Union[MobileConfiguration, Array],
    velocity: Optional[Array] = None,
    request: Optional[FKRequest] = None,
) -> FKResult:
    """Like ``forward_kinematics``, but report refused requests in ``FKResult.error``.

    A refused request yields a result with every output None and ``error``
    set to the ErrorKind; nothing is computed.
    """
    if request is None:
        request = FKRequest()
    problem = check_request(robot, request, velocity)
    if problem is not None:
        kind, message = problem
        logger.debug("Refused forward kinematics request (%s): %s", kind.value, message)
        return FKResult(error=kind)
    return forward_kinematics(robot, config, velocity, request)
