"""SO(3) and so(3) Lie group operations in JAX.

Rotations are stored as (..., 3, 3) matrices and tangent vectors as (..., 3)
rotation vectors. All functions are pure, JIT-able, and operate on JAX arrays.
"""

import jax
import jax.numpy as jnp

Array = jax.Array

_SMALL_ANGLE = 1e-8


def exp(log_r: Array) -> Array:
    """
    SO(3) exponential map: convert rotation vector to rotation matrix.

    Implements Rodrigues' formula. Used to lift the planar heading of the
    mobile base into 3D as a rotation about the vertical axis.

    Args:
        log_r: (..., 3) array of rotation vectors

    Returns:
        (..., 3, 3) array of rotation matrices
    """
    angle_sq = jnp.sum(log_r * log_r, axis=-1, keepdims=True)
    small_angle = angle_sq < _SMALL_ANGLE**2
    # squared norm keeps the derivative finite at zero
    angle = jnp.sqrt(jnp.where(small_angle, 1.0, angle_sq))

    # sin(θ)/θ ≈ 1 - θ²/6, (1 - cos(θ))/θ² ≈ 1/2 - θ²/24
    A = jnp.where(small_angle, 1.0 - angle_sq / 6.0, jnp.sin(angle) / angle)
    B = jnp.where(small_angle, 0.5 - angle_sq / 24.0, (1.0 - jnp.cos(angle)) / (angle * angle))

    K = skew_symmetric(log_r)

    I = jnp.eye(3, dtype=log_r.dtype)
    I = jnp.broadcast_to(I, log_r.shape[:-1] + (3, 3))

    # R = I + sin(θ)/θ [ω]× + (1 - cos(θ))/θ² [ω]×²
    return (I +
            A[..., None] * K +
            B[..., None] * jnp.matmul(K, K))


def log(R: Array) -> Array:
    """
    SO(3) logarithm map: convert rotation matrix to rotation vector.

    Args:
        R: (..., 3, 3) array of rotation matrices

    Returns:
        (..., 3) array of rotation vectors
    """
    trace = jnp.trace(R, axis1=-2, axis2=-1)

    # vee of the skew-symmetric part: 2 sin(θ) * axis
    skew_part = jnp.stack([
        R[..., 2, 1] - R[..., 1, 2],
        R[..., 0, 2] - R[..., 2, 0],
        R[..., 1, 0] - R[..., 0, 1]
    ], axis=-1)

    # atan2 keeps the angle accurate near identity, where arccos is not
    sin_angle = 0.5 * jnp.linalg.norm(skew_part, axis=-1)
    cos_angle = 0.5 * (trace - 1.0)
    angle = jnp.arctan2(sin_angle, cos_angle)

    small_angle = angle < 1e-6
    near_pi = angle > jnp.pi - 1e-6

    # θ / (2 sin θ) ≈ 1/2 + θ²/12 for small θ
    scale = jnp.where(
        small_angle,
        0.5 + angle**2 / 12.0,
        angle / (2.0 * jnp.where(small_angle, 1.0, sin_angle))
    )
    log_general = scale[..., None] * skew_part

    # Near π the skew part vanishes; take the dominant column of (R + I) / 2
    B = (R + jnp.eye(3, dtype=R.dtype)) / 2.0
    diag_vals = jnp.diagonal(B, axis1=-2, axis2=-1)
    max_idx = jnp.argmax(diag_vals, axis=-1)
    axis_pi = jnp.take_along_axis(B, max_idx[..., None, None], axis=-1)[..., 0]
    axis_pi = axis_pi / jnp.linalg.norm(axis_pi, axis=-1, keepdims=True)

    return jnp.where(near_pi[..., None], angle[..., None] * axis_pi, log_general)


def multiply(R1: Array, R2: Array) -> Array:
    """Multiply two rotation matrices, R1 @ R2."""
    return jnp.matmul(R1, R2)


def inverse(R: Array) -> Array:
    """
    Compute inverse of rotation matrix.

    For rotation matrices, the inverse is simply the transpose.

    Args:
        R: (..., 3, 3) rotation matrix

    Returns:
        (..., 3, 3) inverse rotation matrix
    """
    return jnp.swapaxes(R, -1, -2)


def apply(R: Array, v: Array) -> Array:
    """
    Apply rotation to vector(s).

    Args:
        R: (..., 3, 3) rotation matrix
        v: (..., 3) or (..., N, 3) vector(s) to rotate

    Returns:
        (..., 3) or (..., N, 3) rotated vector(s)
    """
    if v.ndim == R.ndim - 1:
        return jnp.einsum('...ij,...j->...i', R, v)
    return jnp.einsum('...ij,...nj->...ni', R, v)


def skew_symmetric(v: Array) -> Array:
    """
    Convert 3D vector to skew-symmetric matrix.

    Args:
        v: (..., 3) vector

    Returns:
        (..., 3, 3) skew-symmetric matrix
    """
    zeros = jnp.zeros(v.shape[:-1], dtype=v.dtype)

    return jnp.stack([
        jnp.stack([zeros, -v[..., 2], v[..., 1]], axis=-1),
        jnp.stack([v[..., 2], zeros, -v[..., 0]], axis=-1),
        jnp.stack([-v[..., 1], v[..., 0], zeros], axis=-1)
    ], axis=-2)


def expmap_derivative(log_r: Array) -> Array:
    """
    Right Jacobian of the SO(3) exponential map.

    Maps a perturbation of the rotation vector to the resulting local
    (right-multiplicative) perturbation of the rotation:
    exp(ω + dω) ≈ exp(ω) exp(Jr(ω) dω).

    Jr(ω) = I - (1 - cos θ)/θ² [ω]× + (θ - sin θ)/θ³ [ω]×²

    Args:
        log_r: (..., 3) array of rotation vectors

    Returns:
        (..., 3, 3) right Jacobians
    """
    angle = jnp.linalg.norm(log_r, axis=-1, keepdims=True)
    angle_sq = angle * angle
    eps = jnp.finfo(log_r.dtype).eps

    is_small_angle = angle < 1e-6

    # Series: A ≈ 1/2 - θ²/24, B ≈ 1/6 - θ²/120
    A = jnp.where(is_small_angle, 0.5 - angle_sq / 24.0,
                  (1.0 - jnp.cos(angle)) / (angle_sq + eps))
    B = jnp.where(is_small_angle, 1.0 / 6.0 - angle_sq / 120.0,
                  (angle - jnp.sin(angle)) / (angle_sq * angle + eps))

    K = skew_symmetric(log_r)
    I = jnp.broadcast_to(jnp.eye(3, dtype=log_r.dtype), K.shape)

    return I - A[..., None] * K + B[..., None] * jnp.matmul(K, K)


def from_rpy(rpy: Array) -> Array:
    """
    Convert roll-pitch-yaw angles to rotation matrix, R = Rz(yaw) Ry(pitch) Rx(roll).

    Args:
        rpy: (..., 3) array of [roll, pitch, yaw] in radians

    Returns:
        (..., 3, 3) rotation matrices
    """
    rpy = jnp.asarray(rpy)
    roll, pitch, yaw = rpy[..., 0], rpy[..., 1], rpy[..., 2]
    zeros = jnp.zeros_like(roll)
    ones = jnp.ones_like(roll)

    R_x = jnp.stack([
        jnp.stack([ones, zeros, zeros], axis=-1),
        jnp.stack([zeros, jnp.cos(roll), -jnp.sin(roll)], axis=-1),
        jnp.stack([zeros, jnp.sin(roll), jnp.cos(roll)], axis=-1)
    ], axis=-2)

    R_y = jnp.stack([
        jnp.stack([jnp.cos(pitch), zeros, jnp.sin(pitch)], axis=-1),
        jnp.stack([zeros, ones, zeros], axis=-1),
        jnp.stack([-jnp.sin(pitch), zeros, jnp.cos(pitch)], axis=-1)
    ], axis=-2)

    R_z = jnp.stack([
        jnp.stack([jnp.cos(yaw), -jnp.sin(yaw), zeros], axis=-1),
        jnp.stack([jnp.sin(yaw), jnp.cos(yaw), zeros], axis=-1),
        jnp.stack([zeros, zeros, ones], axis=-1)
    ], axis=-2)

    return R_z @ R_y @ R_x
