"""Tests for planar mobile-arm forward kinematics and Jacobians."""

import logging
from pathlib import Path

import jax
import jax.numpy as jnp
import numpy as np
import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from jax_mobile_arm import chain, mobile
from jax_mobile_arm.core import Arm, FKRequest, MobileConfiguration, Pose2MobileArm
from jax_mobile_arm.exceptions import ErrorKind, InvalidRequestError, UnimplementedPathError
from jax_mobile_arm.io import load_arm
from jax_mobile_arm.transforms import se2, se3, so3

FIXTURE = Path(__file__).parent / "fixtures" / "three_link_arm.urdf"

JACOBIANS = FKRequest(pose_jacobians=True)


def _one_link_robot(length, base_T_arm=None):
    return Pose2MobileArm.create(Arm.from_dh(a=[length], alpha=[0.0], d=[0.0], theta=[0.0]), base_T_arm)


def _fixture_robot():
    mount = se3.from_xyz_rpy([0.2, -0.1, 0.4], [0.0, 0.1, 0.3])
    return Pose2MobileArm.create(load_arm(str(FIXTURE)), mount)


def _perturb(vector, k, h):
    """Perturb one configuration entry, the base part in its body frame."""
    delta = jnp.zeros_like(vector).at[k].set(h)
    base = se2.retract(vector[:3], delta[:3])
    return jnp.concatenate([base, vector[3:] + delta[3:]])


def _numerical_jacobians(robot, vector, h=1e-6):
    poses_inv = se3.inverse(mobile.forward_kinematics(robot, vector).poses)
    columns = []
    for k in range(vector.shape[0]):
        plus = mobile.forward_kinematics(robot, _perturb(vector, k, h)).poses
        minus = mobile.forward_kinematics(robot, _perturb(vector, k, -h)).poses
        columns.append((se3.log(poses_inv @ plus) - se3.log(poses_inv @ minus)) / (2 * h))
    return jnp.stack(columns, axis=-1)


# Planar-to-3D lift
@given(st.floats(min_value=-10.0, max_value=10.0), st.floats(min_value=-10.0, max_value=10.0))
@settings(deadline=None, max_examples=25)
def test_lift_zero_heading(x, y):
    """With theta = 0 the lift is a pure translation (x, y, 0)."""
    pose = mobile.compute_base_pose3(jnp.array([x, y, 0.0]))

    np.testing.assert_allclose(se3.get_rotation(pose), jnp.eye(3), atol=1e-15)
    np.testing.assert_allclose(se3.get_position(pose), jnp.array([x, y, 0.0]), atol=1e-15)


def test_lift_matches_planar_pose():
    pose2 = jnp.array([1.5, -0.5, 2.2])
    pose = mobile.compute_base_pose3(pose2)
    planar = se2.to_matrix(pose2)

    np.testing.assert_allclose(pose[:2, :2], planar[:2, :2], atol=1e-12)
    np.testing.assert_allclose(pose[:2, 3], planar[:2, 2], atol=1e-12)
    np.testing.assert_allclose(pose[2, :], jnp.array([0.0, 0.0, 1.0, 0.0]), atol=1e-12)


@pytest.mark.parametrize("pose2", [
    [0.0, 0.0, 0.0],
    [1.0, 2.0, 0.0],
    [-3.0, 0.5, jnp.pi / 2],
    [0.7, -1.2, -2.5],
])
def test_lift_jacobian_heading_numerical(pose2):
    """The theta column matches the numerically differentiated rotation."""
    pose2 = jnp.array(pose2)
    _, J = mobile.compute_base_pose3_and_jacobian(pose2)

    h = 1e-6
    R0_inv = so3.inverse(se3.get_rotation(mobile.compute_base_pose3(pose2)))
    plus = so3.log(R0_inv @ se3.get_rotation(mobile.compute_base_pose3(pose2.at[2].add(h))))
    minus = so3.log(R0_inv @ se3.get_rotation(mobile.compute_base_pose3(pose2.at[2].add(-h))))

    np.testing.assert_allclose(J[:3, 2], (plus - minus) / (2 * h), atol=1e-8)


@pytest.mark.parametrize("theta", [0.0, 1e-9, 0.6])
def test_lift_autodiff_is_finite(theta):
    """Differentiating the lift with JAX agrees with the analytic lift Jacobian."""
    pose2 = jnp.array([0.5, -1.0, theta])
    dT = jax.jacfwd(mobile.compute_base_pose3)(pose2)  # (4, 4, 3)

    assert jnp.all(jnp.isfinite(dT))

    # body-frame twist of an additive change in (x, y, theta)
    T_inv = se3.inverse(mobile.compute_base_pose3(pose2))
    body = jnp.einsum("ab,bck->ack", T_inv, dT)
    twists = jnp.stack([body[2, 1], body[0, 2], body[1, 0], body[0, 3], body[1, 3], body[2, 3]])

    _, J = mobile.compute_base_pose3_and_jacobian(pose2)
    c, s = jnp.cos(theta), jnp.sin(theta)
    # additive (x, y) steps are the body-frame steps rotated by -theta
    to_body = jnp.array([[c, s, 0.0], [-s, c, 0.0], [0.0, 0.0, 1.0]])
    np.testing.assert_allclose(twists, J @ to_body, atol=1e-12)


def test_lift_heading_below_series_threshold():
    pose = mobile.compute_base_pose3(jnp.array([0.0, 0.0, 1e-9]))
    np.testing.assert_allclose(pose[1, 0], 1e-9, rtol=1e-12)


def test_lift_jacobian_layout():
    pose, J = mobile.compute_base_pose3_and_jacobian(jnp.array([1.0, 2.0, 0.8]))

    assert J.shape == (6, 3)
    np.testing.assert_allclose(J[:3, :2], jnp.zeros((3, 2)))
    np.testing.assert_allclose(J[3:5, :2], jnp.eye(2))
    # z never moves
    np.testing.assert_allclose(J[5], jnp.zeros(3))
    np.testing.assert_allclose(pose, mobile.compute_base_pose3(jnp.array([1.0, 2.0, 0.8])))


@given(st.integers(min_value=0, max_value=100))
@settings(deadline=None, max_examples=10)
def test_lift_jacobian_numerical(seed):
    """All three columns match body-frame finite differences of the planar pose."""
    pose2 = jax.random.uniform(jax.random.PRNGKey(seed), (3,), minval=-3.0, maxval=3.0)
    _, J = mobile.compute_base_pose3_and_jacobian(pose2)

    h = 1e-6
    T0_inv = se3.inverse(mobile.compute_base_pose3(pose2))
    columns = []
    for k in range(3):
        delta = jnp.zeros(3).at[k].set(h)
        plus = se3.log(T0_inv @ mobile.compute_base_pose3(se2.retract(pose2, delta)))
        minus = se3.log(T0_inv @ mobile.compute_base_pose3(se2.retract(pose2, -delta)))
        columns.append((plus - minus) / (2 * h))

    np.testing.assert_allclose(J, jnp.stack(columns, axis=-1), atol=1e-7)


# Mount-offset composer
@given(st.integers(min_value=0, max_value=100))
@settings(deadline=None, max_examples=10)
def test_arm_base_pose_is_lift_composed_with_mount(seed):
    key_pose, key_mount = jax.random.split(jax.random.PRNGKey(seed))
    pose2 = jax.random.uniform(key_pose, (3,), minval=-3.0, maxval=3.0)
    mount = se3.exp(jax.random.uniform(key_mount, (6,), minval=-1.0, maxval=1.0))
    robot = _one_link_robot(0.5, mount)

    expected = mobile.compute_base_pose3(pose2) @ mount
    pose_only = mobile.compute_arm_base_pose(robot, pose2)
    pose_with_jacobian, _ = mobile.compute_arm_base_pose_and_jacobian(robot, pose2)

    np.testing.assert_allclose(pose_only, expected, atol=1e-12)
    np.testing.assert_allclose(pose_with_jacobian, expected, atol=1e-12)


def test_arm_base_jacobian_numerical():
    robot = _fixture_robot()
    pose2 = jnp.array([0.3, -1.0, 1.1])
    _, J = mobile.compute_arm_base_pose_and_jacobian(robot, pose2)

    h = 1e-6
    T0_inv = se3.inverse(mobile.compute_arm_base_pose(robot, pose2))
    columns = []
    for k in range(3):
        delta = jnp.zeros(3).at[k].set(h)
        plus = se3.log(T0_inv @ mobile.compute_arm_base_pose(robot, se2.retract(pose2, delta)))
        minus = se3.log(T0_inv @ mobile.compute_arm_base_pose(robot, se2.retract(pose2, -delta)))
        columns.append((plus - minus) / (2 * h))

    np.testing.assert_allclose(J, jnp.stack(columns, axis=-1), atol=1e-7)


def test_identity_mount_keeps_lift_jacobian():
    robot = _one_link_robot(0.5)
    pose2 = jnp.array([1.0, 2.0, 0.4])

    lifted, J_lift = mobile.compute_base_pose3_and_jacobian(pose2)
    arm_base, J_arm = mobile.compute_arm_base_pose_and_jacobian(robot, pose2)

    np.testing.assert_allclose(arm_base, lifted, atol=1e-12)
    np.testing.assert_allclose(J_arm, J_lift, atol=1e-12)


# Chain orchestrator
def test_robot_dimensions():
    robot = _fixture_robot()

    assert robot.dof == 6
    assert robot.nr_links == 4


def test_zero_dof_arm_is_vehicle_only():
    """Without arm joints the only link is the lifted base."""
    robot = Pose2MobileArm.create(Arm.from_dh(a=[], alpha=[], d=[], theta=[]))
    config = MobileConfiguration.create([0.5, -1.5, 0.9], [])

    result = mobile.forward_kinematics(robot, config, request=JACOBIANS)
    lifted, J_lift = mobile.compute_base_pose3_and_jacobian(config.base)

    assert result.poses.shape == (1, 4, 4)
    np.testing.assert_allclose(result.poses[0], lifted, atol=1e-12)
    np.testing.assert_allclose(result.pose_jacobians[0], J_lift, atol=1e-12)


def test_one_link_end_to_end():
    """Base at (1, 2, 0), identity mount, one link of length d at angle 0."""
    d = 0.8
    robot = _one_link_robot(d)
    config = MobileConfiguration.create([1.0, 2.0, 0.0], [0.0])

    result = mobile.forward_kinematics(robot, config, request=JACOBIANS)
    _, J_lift = mobile.compute_base_pose3_and_jacobian(config.base)

    np.testing.assert_allclose(result.poses[0], se3.from_xyz_rpy([1.0, 2.0, 0.0]), atol=1e-12)
    np.testing.assert_allclose(result.poses[1], se3.from_xyz_rpy([1.0 + d, 2.0, 0.0]), atol=1e-12)

    J = result.pose_jacobians
    assert J.shape == (2, 6, 4)
    np.testing.assert_allclose(J[0, :, :3], J_lift, atol=1e-12)
    np.testing.assert_allclose(J[0, :, 3], jnp.zeros(6), atol=1e-15)

    # x and y carry over unchanged; turning the base also swings the link sideways by d
    np.testing.assert_allclose(J[1, :, :2], J_lift[:, :2], atol=1e-12)
    np.testing.assert_allclose(J[1, :, 2], jnp.array([0.0, 0.0, 1.0, 0.0, d, 0.0]), atol=1e-12)
    np.testing.assert_allclose(J[1, :, 3], jnp.array([0.0, 0.0, 1.0, 0.0, d, 0.0]), atol=1e-12)


def test_zero_length_link_base_columns_equal_lift():
    """With no offset between link and arm base the transport is the identity."""
    robot = _one_link_robot(0.0)
    config = MobileConfiguration.create([1.0, 2.0, 0.0], [0.0])

    J = mobile.forward_kinematics(robot, config, request=JACOBIANS).pose_jacobians
    _, J_lift = mobile.compute_base_pose3_and_jacobian(config.base)

    np.testing.assert_allclose(J[1, :, :3], J_lift, atol=1e-12)


@given(st.integers(min_value=0, max_value=100))
@settings(deadline=None, max_examples=10)
def test_full_jacobians_numerical(seed):
    """Every column of every link Jacobian matches finite differences."""
    robot = _fixture_robot()
    key_base, key_q = jax.random.split(jax.random.PRNGKey(seed))
    vector = jnp.concatenate([
        jax.random.uniform(key_base, (3,), minval=-3.0, maxval=3.0),
        jax.random.uniform(key_q, (3,), minval=-jnp.pi, maxval=jnp.pi),
    ])

    J = mobile.forward_kinematics(robot, vector, request=JACOBIANS).pose_jacobians

    assert J.shape == (4, 6, 6)
    np.testing.assert_allclose(J, _numerical_jacobians(robot, vector), atol=1e-6)


def test_vehicle_link_ignores_joints():
    robot = _fixture_robot()
    J = mobile.forward_kinematics(robot, jnp.array([0.1, 0.2, 0.3, 0.4, 0.5, 0.06]), request=JACOBIANS).pose_jacobians
    np.testing.assert_allclose(J[0, :, 3:], jnp.zeros((6, 3)), atol=1e-15)


def test_arm_poses_follow_the_base():
    """Arm links equal the stand-alone arm mounted at the arm base pose."""
    robot = _fixture_robot()
    config = MobileConfiguration.create([2.0, -1.0, 0.7], [0.3, -0.4, 0.1])

    poses = mobile.forward_kinematics(robot, config).poses
    arm_base = mobile.compute_arm_base_pose(robot, config.base)

    expected = chain.forward_kinematics(robot.arm.with_base_pose(arm_base), config.joints).poses
    np.testing.assert_allclose(poses[1:], expected, atol=1e-12)


def test_poses_only_by_default():
    robot = _fixture_robot()
    result = mobile.forward_kinematics(robot, jnp.zeros(6))

    assert result.poses.shape == (4, 4, 4)
    assert result.pose_jacobians is None
    assert result.velocities is None
    assert result.velocity_jacobians_wrt_pose is None
    assert result.velocity_jacobians_wrt_velocity is None


def test_configuration_vector_roundtrip():
    config = MobileConfiguration.from_vector(jnp.array([1.0, 2.0, 0.5, 0.1, 0.2]))

    np.testing.assert_allclose(config.base, jnp.array([1.0, 2.0, 0.5]))
    np.testing.assert_allclose(config.joints, jnp.array([0.1, 0.2]))
    np.testing.assert_allclose(config.to_vector(), jnp.array([1.0, 2.0, 0.5, 0.1, 0.2]))
    with pytest.raises(ValueError):
        MobileConfiguration.from_vector(jnp.array([1.0, 2.0]))


def test_wrong_base_size():
    """A hand-built configuration with a short base pose is rejected, not clamped."""
    robot = _one_link_robot(0.5)
    config = MobileConfiguration(base=jnp.array([1.0, 2.0]), joints=jnp.array([0.0]))

    with pytest.raises(ValueError, match="Expected a planar base pose of size 3"):
        mobile.forward_kinematics(robot, config)


def test_wrong_joint_count():
    robot = _fixture_robot()
    with pytest.raises(ValueError, match="Expected 3 joint values"):
        mobile.forward_kinematics(robot, MobileConfiguration.create([0.0, 0.0, 0.0], [0.0, 0.0]))


def test_non_identity_arm_base_warns(caplog):
    arm = Arm.from_dh(a=[0.5], alpha=[0.0], d=[0.0], theta=[0.0], base_pose=se3.from_xyz_rpy([0.0, 0.0, 1.0]))

    with caplog.at_level(logging.WARNING, logger="jax_mobile_arm.core.mobile_arm"):
        robot = Pose2MobileArm.create(arm)
    assert "non-identity base pose" in caplog.text

    # the arm's own base pose is ignored
    config = MobileConfiguration.create([1.0, 2.0, 0.0], [0.0])
    poses = mobile.forward_kinematics(robot, config).poses
    np.testing.assert_allclose(se3.get_position(poses[1]), jnp.array([1.5, 2.0, 0.0]), atol=1e-12)


def test_identity_arm_base_does_not_warn(caplog):
    with caplog.at_level(logging.WARNING, logger="jax_mobile_arm.core.mobile_arm"):
        _one_link_robot(0.5)
    assert not [r for r in caplog.records if r.name == "jax_mobile_arm.core.mobile_arm"]


def test_fk_jit_compatibility():
    robot = _fixture_robot()

    @jax.jit
    def jit_jacobians(vector):
        return mobile.forward_kinematics(robot, vector, request=JACOBIANS).pose_jacobians

    vector = jnp.array([0.5, -0.2, 1.0, 0.1, -0.3, 0.05])
    np.testing.assert_allclose(
        jit_jacobians(vector),
        mobile.forward_kinematics(robot, vector, request=JACOBIANS).pose_jacobians,
        atol=1e-12)


# Input validation
VELOCITY_REQUESTS = [
    FKRequest(velocities=True),
    FKRequest(velocity_jacobians_wrt_pose=True),
    FKRequest(velocity_jacobians_wrt_velocity=True),
    FKRequest(pose_jacobians=True, velocities=True),
]


@pytest.mark.parametrize("request_flags", VELOCITY_REQUESTS)
@pytest.mark.parametrize("lengths", [[], [0.5], [0.5, 0.3, 0.2]])
def test_velocity_output_without_velocity_is_invalid(request_flags, lengths):
    dof = len(lengths)
    robot = Pose2MobileArm.create(Arm.from_dh(a=lengths, alpha=[0.0] * dof, d=[0.0] * dof, theta=[0.0] * dof))
    config = MobileConfiguration.create([0.0, 0.0, 0.0], jnp.zeros(dof))

    with pytest.raises(InvalidRequestError) as excinfo:
        mobile.forward_kinematics(robot, config, request=request_flags)
    assert excinfo.value.kind is ErrorKind.INVALID_REQUEST


def test_configuration_velocity_is_unimplemented_for_arm_links():
    robot = _one_link_robot(0.5)
    config = MobileConfiguration.create([0.0, 0.0, 0.0], [0.0])

    with pytest.raises(UnimplementedPathError) as excinfo:
        mobile.forward_kinematics(robot, config, velocity=jnp.array([1.0, 0.0, 0.0, 0.0]))
    assert excinfo.value.kind is ErrorKind.UNIMPLEMENTED_PATH

    with pytest.raises(UnimplementedPathError):
        mobile.forward_kinematics(
            robot, config, velocity=jnp.array([1.0, 0.0, 0.0, 0.0]), request=FKRequest(velocities=True))


def test_vehicle_velocity_without_arm_joints():
    """A bare vehicle has a fully defined velocity: its planar (vx, vy)."""
    robot = Pose2MobileArm.create(Arm.from_dh(a=[], alpha=[], d=[], theta=[]))
    config = MobileConfiguration.create([1.0, 2.0, 0.3], [])
    request = FKRequest(
        velocities=True,
        pose_jacobians=True,
        velocity_jacobians_wrt_pose=True,
        velocity_jacobians_wrt_velocity=True,
    )

    result = mobile.forward_kinematics(robot, config, velocity=jnp.array([0.4, -0.2, 0.1]), request=request)

    np.testing.assert_allclose(result.velocities, jnp.array([[0.4, -0.2, 0.0]]))
    np.testing.assert_allclose(result.velocity_jacobians_wrt_pose, jnp.zeros((1, 3, 3)))
    expected_J_vx_v = jnp.zeros((1, 3, 3)).at[0, :2, :2].set(jnp.eye(2))
    np.testing.assert_allclose(result.velocity_jacobians_wrt_velocity, expected_J_vx_v)


def test_wrong_velocity_size():
    robot = Pose2MobileArm.create(Arm.from_dh(a=[], alpha=[], d=[], theta=[]))
    config = MobileConfiguration.create([0.0, 0.0, 0.0], [])
    with pytest.raises(ValueError, match="Expected velocity of size 3"):
        mobile.forward_kinematics(robot, config, velocity=jnp.zeros(4))


def test_try_forward_kinematics_reports_error_kinds():
    robot = _one_link_robot(0.5)
    config = MobileConfiguration.create([0.0, 0.0, 0.0], [0.0])

    invalid = mobile.try_forward_kinematics(robot, config, request=FKRequest(velocities=True))
    assert invalid.error is ErrorKind.INVALID_REQUEST
    assert not invalid.ok
    assert invalid.poses is None

    unimplemented = mobile.try_forward_kinematics(robot, config, velocity=jnp.array([1.0, 0.0, 0.0, 0.0]))
    assert unimplemented.error is ErrorKind.UNIMPLEMENTED_PATH

    ok = mobile.try_forward_kinematics(robot, config, request=JACOBIANS)
    assert ok.ok
    assert ok.pose_jacobians.shape == (2, 6, 4)
