"""SO(3) and so(3) operations in JAX.

Rotations are 3x3 matrices, tangent vectors are axis-angle 3-vectors and
quaternions use the (w, x, y, z) convention. All functions are pure and
accept leading batch dimensions.
"""

import jax
import jax.numpy as jnp

Array = jax.Array

# Below this angle the closed forms are replaced by their Taylor expansions.
SMALL_ANGLE = 1e-6


def skew_symmetric(v: Array) -> Array:
    """
    Cross-product matrix of a 3-vector, ``skew(a) @ b == cross(a, b)``.

    Args:
        v: (..., 3) vector

    Returns:
        (..., 3, 3) skew-symmetric matrix
    """
    zeros = jnp.zeros(v.shape[:-1], dtype=v.dtype)
    x, y, z = v[..., 0], v[..., 1], v[..., 2]
    return jnp.stack([
        jnp.stack([zeros, -z, y], axis=-1),
        jnp.stack([z, zeros, -x], axis=-1),
        jnp.stack([-y, x, zeros], axis=-1),
    ], axis=-2)


def vee(S: Array) -> Array:
    """Inverse of :func:`skew_symmetric`, reading the antisymmetric part of ``S``."""
    return 0.5 * jnp.stack([
        S[..., 2, 1] - S[..., 1, 2],
        S[..., 0, 2] - S[..., 2, 0],
        S[..., 1, 0] - S[..., 0, 1],
    ], axis=-1)


def _safe_angle(omega: Array):
    # The returned angle is 1 where `small` holds; callers must select the
    # Taylor branch there.
    angle_sq = jnp.sum(omega * omega, axis=-1)
    small = angle_sq < SMALL_ANGLE**2
    safe_sq = jnp.where(small, 1.0, angle_sq)
    return jnp.sqrt(safe_sq), angle_sq, small


def exp(omega: Array) -> Array:
    """
    Exponential map (Rodrigues' formula).

    Args:
        omega: (..., 3) axis-angle vector

    Returns:
        (..., 3, 3) rotation matrix
    """
    angle, angle_sq, small = _safe_angle(omega)

    # R = I + a K + b K^2 with K = skew(omega)
    a = jnp.where(small, 1.0 - angle_sq / 6.0, jnp.sin(angle) / angle)
    b = jnp.where(small, 0.5 - angle_sq / 24.0, (1.0 - jnp.cos(angle)) / (angle * angle))

    K = skew_symmetric(omega)
    I = jnp.broadcast_to(jnp.eye(3, dtype=omega.dtype), K.shape)
    return I + a[..., None, None] * K + b[..., None, None] * (K @ K)


def log(R: Array) -> Array:
    """
    Logarithm map, inverse of :func:`exp` for angles in [0, pi].

    Args:
        R: (..., 3, 3) rotation matrix

    Returns:
        (..., 3) axis-angle vector
    """
    axis_sin = vee(R)  # sin(angle) * axis
    sin_angle = jnp.linalg.norm(axis_sin, axis=-1)
    cos_angle = 0.5 * (jnp.trace(R, axis1=-2, axis2=-1) - 1.0)
    angle = jnp.arctan2(sin_angle, cos_angle)

    small = sin_angle < SMALL_ANGLE
    near_pi = small & (cos_angle < 0.0)

    # Generic case
    scale = jnp.where(small, 1.0, angle / jnp.where(small, 1.0, sin_angle))
    omega = scale[..., None] * axis_sin

    # Near pi the axis is read from the symmetric part B = (R + I) / 2 = a a^T
    B = 0.5 * (R + jnp.eye(3, dtype=R.dtype))
    column = jnp.argmax(jnp.diagonal(B, axis1=-2, axis2=-1), axis=-1)
    axis_pi = jnp.take_along_axis(B, column[..., None, None], axis=-1)[..., 0]
    axis_pi = axis_pi / jnp.linalg.norm(axis_pi, axis=-1, keepdims=True)
    omega_pi = angle[..., None] * axis_pi

    return jnp.where(near_pi[..., None], omega_pi, omega)


def right_jacobian_inverse(omega: Array) -> Array:
    """
    Inverse right Jacobian of SO(3).

    ``log(exp(omega) @ exp(delta)) ~= omega + Jr^-1(omega) @ delta`` for a small
    ``delta``. The left inverse Jacobian is its transpose.

    Args:
        omega: (..., 3) axis-angle vector

    Returns:
        (..., 3, 3) matrix
    """
    angle, angle_sq, small = _safe_angle(omega)
    generic = (1.0 / (angle * angle)
               - (1.0 + jnp.cos(angle)) / (2.0 * angle * jnp.sin(angle)))
    c = jnp.where(small, 1.0 / 12.0 + angle_sq / 720.0, generic)

    K = skew_symmetric(omega)
    I = jnp.broadcast_to(jnp.eye(3, dtype=omega.dtype), K.shape)
    return I + 0.5 * K + c[..., None, None] * (K @ K)


def apply(R: Array, v: Array) -> Array:
    """Rotate (..., 3) vectors by (..., 3, 3) rotations."""
    return jnp.einsum('...ij,...j->...i', R, v)


def from_quaternion(quaternion: Array) -> Array:
    """
    Rotation matrix of a (w, x, y, z) quaternion. The input is normalized first.

    Args:
        quaternion: (..., 4) quaternion

    Returns:
        (..., 3, 3) rotation matrix
    """
    quaternion = quaternion / jnp.linalg.norm(quaternion, axis=-1, keepdims=True)
    w, x, y, z = jnp.moveaxis(quaternion, -1, 0)

    return jnp.stack([
        jnp.stack([1 - 2 * (y * y + z * z), 2 * (x * y - w * z), 2 * (x * z + w * y)], axis=-1),
        jnp.stack([2 * (x * y + w * z), 1 - 2 * (x * x + z * z), 2 * (y * z - w * x)], axis=-1),
        jnp.stack([2 * (x * z - w * y), 2 * (y * z + w * x), 1 - 2 * (x * x + y * y)], axis=-1),
    ], axis=-2)


def to_quaternion(R: Array) -> Array:
    """
    (w, x, y, z) quaternion of a rotation matrix, with a non-negative scalar part.

    The largest of the four candidate denominators is selected per element
    (Shepperd's method), which keeps the conversion batch-safe.

    Args:
        R: (..., 3, 3) rotation matrix

    Returns:
        (..., 4) unit quaternion
    """
    m00, m11, m22 = R[..., 0, 0], R[..., 1, 1], R[..., 2, 2]
    trace = m00 + m11 + m22

    candidates = jnp.stack([
        jnp.stack([1.0 + trace, R[..., 2, 1] - R[..., 1, 2],
                   R[..., 0, 2] - R[..., 2, 0], R[..., 1, 0] - R[..., 0, 1]], axis=-1),
        jnp.stack([R[..., 2, 1] - R[..., 1, 2], 1.0 + m00 - m11 - m22,
                   R[..., 0, 1] + R[..., 1, 0], R[..., 0, 2] + R[..., 2, 0]], axis=-1),
        jnp.stack([R[..., 0, 2] - R[..., 2, 0], R[..., 0, 1] + R[..., 1, 0],
                   1.0 - m00 + m11 - m22, R[..., 1, 2] + R[..., 2, 1]], axis=-1),
        jnp.stack([R[..., 1, 0] - R[..., 0, 1], R[..., 0, 2] + R[..., 2, 0],
                   R[..., 1, 2] + R[..., 2, 1], 1.0 - m00 - m11 + m22], axis=-1),
    ], axis=-2)  # (..., 4 candidates, 4 components)

    pivots = jnp.stack([1.0 + trace, 1.0 + m00 - m11 - m22,
                        1.0 - m00 + m11 - m22, 1.0 - m00 - m11 + m22], axis=-1)
    best = jnp.argmax(pivots, axis=-1)
    q = jnp.take_along_axis(candidates, best[..., None, None], axis=-2)[..., 0, :]

    q = q / jnp.linalg.norm(q, axis=-1, keepdims=True)
    return jnp.where(q[..., 0:1] < 0, -q, q)


def from_rpy(rpy: Array) -> Array:
    """
    Rotation matrix of URDF roll-pitch-yaw angles, ``Rz(yaw) @ Ry(pitch) @ Rx(roll)``.

    Args:
        rpy: (..., 3) angles in radians

    Returns:
        (..., 3, 3) rotation matrix
    """
    unit = jnp.eye(3, dtype=rpy.dtype)
    roll, pitch, yaw = rpy[..., 0], rpy[..., 1], rpy[..., 2]
    return (exp(yaw[..., None] * unit[2])
            @ exp(pitch[..., None] * unit[1])
            @ exp(roll[..., None] * unit[0]))
