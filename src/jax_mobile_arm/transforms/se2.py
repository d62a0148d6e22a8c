"""SE(2) planar pose helpers in JAX.

Planar poses are (..., 3) arrays [x, y, theta]. Their tangent vectors are
body-frame perturbations [dx, dy, dtheta], matching the right-multiplicative
convention of ``se3``.
"""

import jax
import jax.numpy as jnp

Array = jax.Array


def retract(pose2: Array, delta: Array) -> Array:
    """
    Move a planar pose by a body-frame perturbation.

    First-order equivalent of pose2 * exp(delta): the translation step is
    rotated into the world by the current heading.

    Args:
        pose2: (..., 3) planar pose [x, y, theta]
        delta: (..., 3) perturbation [dx, dy, dtheta]

    Returns:
        (..., 3) perturbed planar pose
    """
    pose2 = jnp.asarray(pose2)
    delta = jnp.asarray(delta)
    theta = pose2[..., 2]
    c, s = jnp.cos(theta), jnp.sin(theta)
    dx, dy = delta[..., 0], delta[..., 1]

    return jnp.stack([
        pose2[..., 0] + c * dx - s * dy,
        pose2[..., 1] + s * dx + c * dy,
        theta + delta[..., 2],
    ], axis=-1)


def to_matrix(pose2: Array) -> Array:
    """Convert planar poses to (..., 3, 3) homogeneous matrices."""
    pose2 = jnp.asarray(pose2)
    x, y, theta = pose2[..., 0], pose2[..., 1], pose2[..., 2]
    c, s = jnp.cos(theta), jnp.sin(theta)
    zeros = jnp.zeros_like(theta)
    ones = jnp.ones_like(theta)

    return jnp.stack([
        jnp.stack([c, -s, x], axis=-1),
        jnp.stack([s, c, y], axis=-1),
        jnp.stack([zeros, zeros, ones], axis=-1),
    ], axis=-2)
