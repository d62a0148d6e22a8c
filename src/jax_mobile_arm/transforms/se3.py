"""SE(3) and se(3) Lie group operations in JAX.

Rigid transforms are (..., 4, 4) homogeneous matrices. Tangent vectors are
6D twists ordered rotation first, [wx, wy, wz, vx, vy, vz], and Jacobians
follow the right-multiplicative convention T(x + dx) ≈ T(x) exp(J dx).
All functions are pure, JIT-able, and operate on JAX arrays.
"""

from typing import Tuple

import jax
import jax.numpy as jnp

from . import so3

Array = jax.Array


def from_position_and_rotation(p: Array, R: Array) -> Array:
    """
    Construct SE(3) transform from position and rotation.

    Args:
        p: (..., 3) position vector
        R: (..., 3, 3) rotation matrix

    Returns:
        (..., 4, 4) homogeneous transformation matrix
    """
    p = jnp.asarray(p)
    R = jnp.asarray(R)
    batch_shape = jnp.broadcast_shapes(p.shape[:-1], R.shape[:-2])
    dtype = jnp.result_type(p.dtype, R.dtype)
    p = jnp.broadcast_to(p, batch_shape + (3,))
    R = jnp.broadcast_to(R, batch_shape + (3, 3))

    T = jnp.zeros(batch_shape + (4, 4), dtype=dtype)
    T = T.at[..., :3, :3].set(R)
    T = T.at[..., :3, 3].set(p)
    T = T.at[..., 3, 3].set(1.0)

    return T


def from_xyz_rpy(xyz, rpy=(0.0, 0.0, 0.0)) -> Array:
    """Construct SE(3) transform from a translation and roll-pitch-yaw angles."""
    xyz = jnp.asarray(xyz, dtype=float)
    rpy = jnp.asarray(rpy, dtype=float)
    return from_position_and_rotation(xyz, so3.from_rpy(rpy))


def identity(dtype=float) -> Array:
    """The identity transform."""
    return jnp.eye(4, dtype=dtype)


def exp(twist: Array) -> Array:
    """
    SE(3) exponential map: convert twist to transformation matrix.

    Uses Taylor series for small angles to avoid division by zero.

    Args:
        twist: (..., 6) array of twists [wx, wy, wz, vx, vy, vz].

    Returns:
        (..., 4, 4) array of transformation matrices.
    """
    w, v = twist[..., :3], twist[..., 3:]
    angle = jnp.linalg.norm(w, axis=-1, keepdims=True)
    eps = jnp.finfo(twist.dtype).eps

    R = so3.exp(w)

    angle_sq = angle * angle
    is_small_angle = angle < 1e-6

    # A = (1 - cos θ) / θ²  ≈ 1/2 - θ²/24
    A = jnp.where(is_small_angle, 0.5 - angle_sq / 24.0, (1.0 - jnp.cos(angle)) / (angle_sq + eps))
    # B = (θ - sin θ) / θ³  ≈ 1/6 - θ²/120
    B = jnp.where(is_small_angle, 1.0 / 6.0 - angle_sq / 120.0, (angle - jnp.sin(angle)) / (angle_sq * angle + eps))

    K = so3.skew_symmetric(w)
    I = jnp.broadcast_to(jnp.eye(3, dtype=twist.dtype), K.shape)

    # V = I + A*K + B*K^2
    V = I + A[..., None] * K + B[..., None] * jnp.matmul(K, K)
    t = jnp.einsum("...ij,...j->...i", V, v)

    return from_position_and_rotation(t, R)


def log(T: Array) -> Array:
    """
    SE(3) logarithm map: convert transformation matrix to twist.

    Args:
        T: (..., 4, 4) array of transformation matrices.

    Returns:
        (..., 6) array of twists [wx, wy, wz, vx, vy, vz].
    """
    R, t = T[..., :3, :3], T[..., :3, 3]

    w = so3.log(R)
    angle = jnp.linalg.norm(w, axis=-1, keepdims=True)
    eps = jnp.finfo(T.dtype).eps

    K = so3.skew_symmetric(w)
    is_small_angle = angle < 1e-6
    half_angle = angle / 2.0

    # C = (1 - (θ/2) cot(θ/2)) / θ², tends to 1/12 as θ -> 0
    cot_half_angle = jnp.cos(half_angle) / (jnp.sin(half_angle) + eps)
    C = jnp.where(is_small_angle, 1.0 / 12.0, (1.0 - half_angle * cot_half_angle) / (angle * angle + eps))

    I = jnp.broadcast_to(jnp.eye(3, dtype=T.dtype), K.shape)

    # V_inv = I - 0.5*K + C*K^2
    V_inv = I - 0.5 * K + C[..., None] * jnp.matmul(K, K)
    v = jnp.einsum("...ij,...j->...i", V_inv, t)

    return jnp.concatenate([w, v], axis=-1)


def multiply(T1: Array, T2: Array) -> Array:
    """
    Multiply two SE(3) transformation matrices.

    Args:
        T1: (..., 4, 4) first transformation matrix
        T2: (..., 4, 4) second transformation matrix

    Returns:
        (..., 4, 4) result of T1 @ T2
    """
    return jnp.matmul(T1, T2)


def inverse(T: Array) -> Array:
    """
    Compute inverse of SE(3) transformation matrix.

    Uses the block structure: T^-1 = [[R^T, -R^T @ t], [0, 1]]

    Args:
        T: (..., 4, 4) transformation matrix

    Returns:
        (..., 4, 4) inverse transformation matrix
    """
    R = T[..., :3, :3]
    t = T[..., :3, 3]

    R_inv = jnp.swapaxes(R, -1, -2)
    t_inv = -jnp.einsum("...ij,...j->...i", R_inv, t)

    return from_position_and_rotation(t_inv, R_inv)


def between(T1: Array, T2: Array) -> Array:
    """Relative transform T1^-1 @ T2, i.e. T2 expressed in the frame of T1."""
    return jnp.matmul(inverse(T1), T2)


def apply(T: Array, points: Array) -> Array:
    """
    Apply SE(3) transformation to points.

    Args:
        T: (..., 4, 4) transformation matrix
        points: (..., 3) or (..., N, 3) points to transform

    Returns:
        (..., 3) or (..., N, 3) transformed points
    """
    ones = jnp.ones_like(points[..., 0:1])
    points_h = jnp.concatenate([points, ones], axis=-1)

    if points.ndim == T.ndim - 1:
        transformed_h = jnp.einsum("...ij,...j->...i", T, points_h)
    else:
        transformed_h = jnp.einsum("...ij,...nj->...ni", T, points_h)

    return transformed_h[..., :3]


def get_position(T: Array) -> Array:
    """Extract the (..., 3) position from an SE(3) transformation matrix."""
    return T[..., :3, 3]


def get_rotation(T: Array) -> Array:
    """Extract the (..., 3, 3) rotation from an SE(3) transformation matrix."""
    return T[..., :3, :3]


def adjoint(T: Array) -> Array:
    """
    Compute the adjoint matrix of SE(3) transformation.

    Transports a twist expressed in the frame of T into the frame T is
    expressed in: T exp(ξ) T^-1 = exp(Ad_T ξ). With rotation-first twists,

        Ad_T = [[R,       0],
                [[t]_x R, R]]

    Args:
        T: (..., 4, 4) transformation matrix

    Returns:
        (..., 6, 6) adjoint matrix
    """
    R = T[..., :3, :3]
    t = T[..., :3, 3]

    t_skew = so3.skew_symmetric(t)
    zeros = jnp.zeros_like(R)

    top = jnp.concatenate([R, zeros], axis=-1)
    bottom = jnp.concatenate([jnp.matmul(t_skew, R), R], axis=-1)

    return jnp.concatenate([top, bottom], axis=-2)


def compose_with_jacobians(T1: Array, T2: Array) -> Tuple[Array, Array, Array]:
    """
    Compose two transforms and return the Jacobians of the product.

    For T = T1 @ T2 with local perturbations on each operand,
    dT/dT1 = Ad(T2^-1) and dT/dT2 = I.

    Args:
        T1: (4, 4) left operand
        T2: (4, 4) right operand

    Returns:
        Tuple of (T1 @ T2, H1, H2) with H1, H2 of shape (6, 6)
    """
    H1 = adjoint(inverse(T2))
    H2 = jnp.eye(6, dtype=H1.dtype)
    return jnp.matmul(T1, T2), H1, H2


def is_identity(T: Array, atol: float = 1e-6) -> bool:
    """Check (on host) whether a single transform is the identity."""
    return bool(jnp.allclose(T, jnp.eye(4, dtype=T.dtype), atol=atol))
