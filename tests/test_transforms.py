"""Tests for the transforms module."""

import hypothesis
import jax
import jax.numpy as jnp
import numpy as np
from hypothesis import given, settings
from hypothesis import strategies as st

from jax_constraints.transforms import se3, so3

# Use hypothesis profile for CI
hypothesis.settings.register_profile("ci", max_examples=10, deadline=None)


def random_axis_angle(seed, max_angle=3.0):
    """Axis-angle vector with a random axis and an angle below ``max_angle``."""
    key_axis, key_angle = jax.random.split(jax.random.PRNGKey(seed))
    axis = jax.random.normal(key_axis, (3,))
    axis = axis / jnp.linalg.norm(axis)
    angle = jax.random.uniform(key_angle, (), minval=0.0, maxval=max_angle)
    return angle * axis


# Basic tests
def test_quaternion_identity():
    """Identity quaternion and identity matrix convert into each other."""
    np.testing.assert_allclose(so3.from_quaternion(jnp.array([1.0, 0.0, 0.0, 0.0])), jnp.eye(3), atol=1e-12)
    np.testing.assert_allclose(so3.to_quaternion(jnp.eye(3)), jnp.array([1.0, 0.0, 0.0, 0.0]), atol=1e-12)


def test_quaternion_quarter_turn_about_y():
    """90 degrees about Y, in both directions."""
    quat = jnp.array([np.sqrt(0.5), 0.0, np.sqrt(0.5), 0.0])
    expected = jnp.array([[0.0, 0.0, 1.0], [0.0, 1.0, 0.0], [-1.0, 0.0, 0.0]])
    np.testing.assert_allclose(so3.from_quaternion(quat), expected, atol=1e-12)
    np.testing.assert_allclose(so3.to_quaternion(expected), quat, atol=1e-12)


def test_skew_and_vee():
    """skew(a) @ b is the cross product and vee inverts skew."""
    a = jnp.array([0.3, -1.2, 2.0])
    b = jnp.array([-0.7, 0.4, 1.1])
    np.testing.assert_allclose(so3.skew_symmetric(a) @ b, jnp.cross(a, b), atol=1e-12)
    np.testing.assert_allclose(so3.vee(so3.skew_symmetric(a)), a, atol=1e-12)


def test_exp_small_angle():
    """Below the Taylor threshold exp is still I + skew(omega) to first order."""
    omega = jnp.array([1e-9, -2e-9, 3e-9])
    np.testing.assert_allclose(so3.exp(omega), jnp.eye(3) + so3.skew_symmetric(omega), atol=1e-15)
    np.testing.assert_allclose(so3.log(so3.exp(omega)), omega, atol=1e-15)


def test_log_near_pi():
    """The logarithm of a half turn recovers the axis up to sign."""
    axis = jnp.array([0.0, 0.6, 0.8])
    omega = so3.log(so3.exp(jnp.pi * axis))
    assert np.isclose(jnp.linalg.norm(omega), jnp.pi)
    np.testing.assert_allclose(jnp.abs(omega), jnp.pi * jnp.abs(axis), atol=1e-6)


def test_from_rpy_yaw():
    """A pure yaw of 90 degrees maps x to y."""
    R = so3.from_rpy(jnp.array([0.0, 0.0, jnp.pi / 2]))
    np.testing.assert_allclose(R @ jnp.array([1.0, 0.0, 0.0]), jnp.array([0.0, 1.0, 0.0]), atol=1e-12)


def test_se3_exp_pure_translation_and_rotation():
    """se3.exp of a pure translation or rotation twist."""
    T = se3.exp(jnp.array([0.1, 0.2, 0.3, 0.0, 0.0, 0.0]))
    np.testing.assert_allclose(se3.get_position(T), jnp.array([0.1, 0.2, 0.3]), atol=1e-12)
    np.testing.assert_allclose(se3.get_rotation(T), jnp.eye(3), atol=1e-12)

    T = se3.exp(jnp.array([0.0, 0.0, 0.0, 0.0, 0.0, 0.5]))
    np.testing.assert_allclose(se3.get_position(T), jnp.zeros(3), atol=1e-12)
    np.testing.assert_allclose(se3.get_rotation(T), so3.exp(jnp.array([0.0, 0.0, 0.5])), atol=1e-12)
    np.testing.assert_allclose(T[3], jnp.array([0.0, 0.0, 0.0, 1.0]))


def test_from_position_and_rotation_batched():
    """Batch dimensions broadcast between positions and rotations."""
    positions = jnp.tile(jnp.array([1.0, 2.0, 3.0]), (5, 1))
    T = se3.from_position_and_rotation(positions, jnp.eye(3))
    assert T.shape == (5, 4, 4)
    np.testing.assert_allclose(T[:, :3, 3], positions)


# JIT tests
def test_exp_log_jit():
    """exp and log compile."""
    omega = jnp.array([0.2, -0.1, 0.4])
    np.testing.assert_allclose(jax.jit(so3.log)(jax.jit(so3.exp)(omega)), omega, atol=1e-12)


# Property-based tests with hypothesis - explicit key handling
@given(st.integers(min_value=0, max_value=100))
@settings(max_examples=20, deadline=None)
def test_exp_log_roundtrip(seed):
    """log(exp(omega)) == omega for angles below pi."""
    omega = random_axis_angle(seed)
    np.testing.assert_allclose(so3.log(so3.exp(omega)), omega, atol=1e-9)


@given(st.integers(min_value=0, max_value=100))
@settings(max_examples=20, deadline=None)
def test_quaternion_roundtrip(seed):
    """matrix -> quaternion -> matrix is the identity."""
    R = so3.exp(random_axis_angle(seed))
    np.testing.assert_allclose(so3.from_quaternion(so3.to_quaternion(R)), R, atol=1e-9)


@given(st.integers(min_value=0, max_value=100))
@settings(max_examples=10, deadline=None)
def test_right_jacobian_inverse_matches_finite_differences(seed):
    """d/d(delta) log(exp(omega) exp(delta)) at delta = 0 is Jr^-1(omega)."""
    omega = random_axis_angle(seed, max_angle=2.5)
    R = so3.exp(omega)
    eps = 1e-6
    columns = []
    for k in range(3):
        delta = jnp.zeros(3).at[k].set(eps)
        plus = so3.log(R @ so3.exp(delta))
        minus = so3.log(R @ so3.exp(-delta))
        columns.append((plus - minus) / (2 * eps))
    numerical = jnp.stack(columns, axis=-1)
    np.testing.assert_allclose(so3.right_jacobian_inverse(omega), numerical, atol=1e-6)
