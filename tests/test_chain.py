"""Tests for forward kinematics, frame Jacobians and the Device wrapper."""

import jax
import jax.numpy as jnp
import numpy as np
import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from jax_constraints import ConstraintConfigurationError, Device
from jax_constraints import chain
from jax_constraints.io import load_urdf
from jax_constraints.transforms import so3

from conftest import FIXTURES, central_difference


@pytest.fixture(scope="module")
def robot():
    return load_urdf(str(FIXTURES / "biped_arm.urdf"))


def random_configuration(seed, num_dof):
    return jax.random.uniform(jax.random.PRNGKey(seed), (num_dof,), minval=-1.0, maxval=1.0)


def test_forward_kinematics_valid_transforms(robot):
    """Every placement is a rigid transform."""
    q = random_configuration(0, robot.num_dof)
    transforms = chain.forward_kinematics(robot, q)

    assert set(transforms) == set(robot.link_names)
    for name, T in transforms.items():
        assert T.shape == (4, 4)
        np.testing.assert_allclose(T[3], jnp.array([0.0, 0.0, 0.0, 1.0]), atol=1e-12)
        R = T[:3, :3]
        np.testing.assert_allclose(R @ R.T, jnp.eye(3), atol=1e-10, err_msg=name)
        assert jnp.linalg.det(R) == pytest.approx(1.0)


def test_forward_kinematics_zero_configuration(robot):
    """At q = 0 the placements are the products of the joint origins."""
    transforms = chain.forward_kinematics(robot, jnp.zeros(robot.num_dof))
    np.testing.assert_allclose(transforms["base_link"], jnp.eye(4))
    np.testing.assert_allclose(transforms["link1"][:3, 3], [0.0, 0.0, 0.3], atol=1e-12)
    np.testing.assert_allclose(transforms["left_foot"][:3, 3], [0.0, 0.15, -0.5], atol=1e-12)


def test_slider_positions():
    """The prismatic joint translates the carriage along x."""
    slider = load_urdf(str(FIXTURES / "slider.urdf"))
    transforms = chain.forward_kinematics(slider, jnp.array([0.7]))
    np.testing.assert_allclose(transforms["carriage"][:3, 3], [0.7, 0.0, 0.0], atol=1e-12)
    np.testing.assert_allclose(transforms["turned"][:3, :3] @ jnp.array([1.0, 0.0, 0.0]),
                               [0.0, 1.0, 0.0], atol=1e-12)


def test_forward_kinematics_jit(robot):
    """The jitted batch entry point matches the per-link dictionary."""
    q = random_configuration(1, robot.num_dof)
    world = chain.forward_kinematics_world(robot, q)
    transforms = chain.forward_kinematics(robot, q)
    for i, name in enumerate(robot.link_names):
        np.testing.assert_allclose(world[i], transforms[name])


@given(st.integers(min_value=0, max_value=100))
@settings(max_examples=5, deadline=None)
def test_frame_jacobian_matches_finite_differences(seed):
    """Linear rows differentiate the origin, angular rows vee(dR R^T)."""
    robot = load_urdf(str(FIXTURES / "biped_arm.urdf"))
    q = np.asarray(random_configuration(seed, robot.num_dof))
    link_idx = robot.link_index("tool")

    def placement(x):
        return np.asarray(chain.forward_kinematics_world(robot, jnp.asarray(x))[link_idx])

    J = np.asarray(chain.frame_jacobian(robot, jnp.asarray(q), link_idx))
    assert J.shape == (6, robot.num_dof)

    J_linear = central_difference(lambda x: placement(x)[:3, 3], q)
    np.testing.assert_allclose(J[:3], J_linear, atol=1e-6)

    R = placement(q)[:3, :3]
    dR = central_difference(lambda x: placement(x)[:3, :3].reshape(-1), q)
    J_angular = np.stack([np.asarray(so3.vee(dR[:, k].reshape(3, 3) @ R.T))
                          for k in range(robot.num_dof)], axis=-1)
    np.testing.assert_allclose(J[3:], J_angular, atol=1e-6)


def test_frame_jacobian_unaffected_columns(robot):
    """Joints outside the path to a link do not move it."""
    q = random_configuration(2, robot.num_dof)
    J = chain.frame_jacobian(robot, q, robot.link_index("left_foot"))
    # joint1..joint4 and right_hip are not ancestors of left_foot
    np.testing.assert_allclose(J[:, [0, 1, 2, 3, 5]], 0.0, atol=1e-12)


def test_center_of_mass(robot):
    """At q = 0 the center of mass is the mass-weighted mean of the link centers."""
    com = chain.center_of_mass(robot, jnp.zeros(robot.num_dof))
    transforms = chain.forward_kinematics(robot, jnp.zeros(robot.num_dof))
    masses = np.asarray(robot.link_masses)
    offsets = np.asarray(robot.link_com_offsets)
    link_coms = np.stack([np.asarray(transforms[name][:3, :3]) @ offsets[i] + np.asarray(transforms[name][:3, 3])
                          for i, name in enumerate(robot.link_names)])
    np.testing.assert_allclose(com, masses @ link_coms / masses.sum(), atol=1e-12)


def test_center_of_mass_jacobian_matches_finite_differences(robot):
    q = np.asarray(random_configuration(3, robot.num_dof))
    J = chain.center_of_mass_jacobian(robot, jnp.asarray(q))
    numerical = central_difference(lambda x: chain.center_of_mass(robot, jnp.asarray(x)), q)
    np.testing.assert_allclose(J, numerical, atol=1e-6)


# Device


def test_device_from_urdf(caplog):
    with caplog.at_level("INFO", logger="jax_constraints.device"):
        device = Device.from_urdf(FIXTURES / "biped_arm.urdf")
    assert device.nq == device.nv == 6
    assert device.name == "base_link"
    assert "6 degrees of freedom" in caplog.text


def test_device_requires_forward_kinematics():
    device = Device.from_urdf(FIXTURES / "slider.urdf")
    with pytest.raises(RuntimeError, match="forward kinematics"):
        device.frame_placement("carriage")
    device.compute_forward_kinematics()
    np.testing.assert_allclose(device.frame_placement("carriage")[:3, 3], np.zeros(3))

    device.set_configuration([0.5])
    with pytest.raises(RuntimeError):
        device.frame_placement("carriage")
    with pytest.raises(RuntimeError, match="forward kinematics"):
        device.frame_jacobian("carriage")
    with pytest.raises(RuntimeError, match="forward kinematics"):
        device.center_of_mass()
    with pytest.raises(RuntimeError, match="forward kinematics"):
        device.center_of_mass_jacobian()

    device.compute_forward_kinematics()
    np.testing.assert_allclose(device.center_of_mass_jacobian(), [[1.0], [0.0], [0.0]], atol=1e-12)


def test_device_unknown_frame():
    device = Device.from_urdf(FIXTURES / "slider.urdf")
    device.compute_forward_kinematics()
    with pytest.raises(ValueError, match="not found"):
        device.frame_placement("missing")


def test_device_configuration_size():
    device = Device.from_urdf(FIXTURES / "slider.urdf")
    with pytest.raises(ConstraintConfigurationError):
        device.set_configuration([0.0, 1.0])


def test_device_caches_until_configuration_changes():
    device = Device.from_urdf(FIXTURES / "slider.urdf")
    device.set_configuration([0.25])
    device.compute_forward_kinematics()
    J = device.frame_jacobian("carriage")
    assert device.frame_jacobian("carriage") is J
    np.testing.assert_allclose(J, [[1.0], [0.0], [0.0], [0.0], [0.0], [0.0]], atol=1e-12)

    com = device.center_of_mass()
    np.testing.assert_allclose(com, [0.25, 0.0, 0.0], atol=1e-12)
    assert device.center_of_mass() is com

    device.set_configuration([0.5])
    device.compute_forward_kinematics()
    assert device.frame_jacobian("carriage") is not J
    np.testing.assert_allclose(device.center_of_mass(), [0.5, 0.0, 0.0], atol=1e-12)
    np.testing.assert_allclose(device.current_configuration, [0.5])


def test_device_zero_mass():
    robot = load_urdf(str(FIXTURES / "slider.urdf"))
    device = Device(robot.replace(link_masses=jnp.zeros_like(robot.link_masses)), name="massless")
    device.compute_forward_kinematics()
    with pytest.raises(ValueError, match="zero total mass"):
        device.center_of_mass()
    with pytest.raises(ValueError, match="zero total mass"):
        device.center_of_mass_jacobian()
