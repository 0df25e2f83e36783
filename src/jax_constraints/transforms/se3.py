"""SE(3) homogeneous transforms in JAX.

Placements are (..., 4, 4) matrices and twists are 6-vectors ordered
[vx, vy, vz, wx, wy, wz]. Only what forward kinematics needs lives here.
"""

import jax
import jax.numpy as jnp

from . import so3

Array = jax.Array


def from_position_and_rotation(p: Array, R: Array) -> Array:
    """
    Assemble a homogeneous matrix.

    Args:
        p: (..., 3) translation
        R: (..., 3, 3) rotation

    Returns:
        (..., 4, 4) placement
    """
    batch_shape = jnp.broadcast_shapes(p.shape[:-1], R.shape[:-2])
    top = jnp.concatenate([
        jnp.broadcast_to(R, batch_shape + (3, 3)),
        jnp.broadcast_to(p, batch_shape + (3,))[..., None],
    ], axis=-1)
    bottom = jnp.broadcast_to(jnp.array([0.0, 0.0, 0.0, 1.0], dtype=top.dtype),
                              batch_shape + (1, 4))
    return jnp.concatenate([top, bottom], axis=-2)


def exp(twist: Array) -> Array:
    """
    Exponential map of a twist.

    The translation is ``V(w) @ v`` with ``V = I + B K + C K^2``,
    ``B = (1 - cos t) / t^2`` and ``C = (t - sin t) / t^3``.

    Args:
        twist: (..., 6) twist [v, w]

    Returns:
        (..., 4, 4) placement
    """
    v, w = twist[..., :3], twist[..., 3:]
    angle_sq = jnp.sum(w * w, axis=-1)
    small = angle_sq < so3.SMALL_ANGLE**2
    angle = jnp.sqrt(jnp.where(small, 1.0, angle_sq))

    B = jnp.where(small, 0.5 - angle_sq / 24.0, (1.0 - jnp.cos(angle)) / angle**2)
    C = jnp.where(small, 1.0 / 6.0 - angle_sq / 120.0, (angle - jnp.sin(angle)) / angle**3)

    K = so3.skew_symmetric(w)
    I = jnp.broadcast_to(jnp.eye(3, dtype=twist.dtype), K.shape)
    V = I + B[..., None, None] * K + C[..., None, None] * (K @ K)

    return from_position_and_rotation(so3.apply(V, v), so3.exp(w))


def get_position(T: Array) -> Array:
    """Translation part of a (..., 4, 4) placement."""
    return T[..., :3, 3]


def get_rotation(T: Array) -> Array:
    """Rotation part of a (..., 4, 4) placement."""
    return T[..., :3, :3]
