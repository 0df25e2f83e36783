"""Tests for URDF parser functionality."""

import jax.numpy as jnp
import numpy as np
import pytest

from jax_constraints.core import RobotModel
from jax_constraints.io import load_urdf

from conftest import FIXTURES


def test_load_biped_urdf():
    """Load the biped fixture and verify the RobotModel structure."""
    robot = load_urdf(str(FIXTURES / "biped_arm.urdf"))

    assert isinstance(robot, RobotModel)

    # Breadth-first from the base: children of a link follow the joint order in the file
    assert robot.link_names == (
        "base_link", "link1", "left_foot", "right_foot", "link2", "link3", "link4", "tool")

    # The fixed tool joint is not part of the configuration
    assert robot.joint_names == ("joint1", "joint2", "joint3", "joint4", "left_hip", "right_hip")
    assert robot.num_dof == 6

    num_links = len(robot.link_names)
    assert robot.parent_indices.shape == (num_links,)
    assert robot.joint_transforms.shape == (num_links, 4, 4)
    assert robot.joint_axes.shape == (num_links, 6)
    assert robot.link_masses.shape == (num_links,)
    assert robot.link_com_offsets.shape == (num_links, 3)

    # Root parents itself, every other parent comes first
    assert robot.parent_indices[0] == 0
    for i in range(1, num_links):
        assert robot.parent_indices[i] < i

    for i in range(num_links):
        T = robot.joint_transforms[i]
        np.testing.assert_allclose(T[3, :], jnp.array([0, 0, 0, 1]), atol=1e-12)
        R = T[:3, :3]
        np.testing.assert_allclose(R @ R.T, jnp.eye(3), atol=1e-12)


def test_actuated_joint_to_link_idx():
    """Each configuration entry moves the child link of its joint."""
    robot = load_urdf(str(FIXTURES / "biped_arm.urdf"))
    expected = [robot.link_index(name)
                for name in ("link1", "link2", "link3", "link4", "left_foot", "right_foot")]
    np.testing.assert_array_equal(robot.actuated_joint_to_link_idx, expected)


def test_joint_twists():
    """Revolute axes go in the angular part, prismatic axes in the linear part."""
    robot = load_urdf(str(FIXTURES / "biped_arm.urdf"))
    axes = {name: robot.joint_axes[robot.link_index(name)] for name in robot.link_names}

    np.testing.assert_allclose(axes["link1"], [0, 0, 0, 0, 0, 1])
    np.testing.assert_allclose(axes["link2"], [0, 0, 0, 0, 1, 0])
    np.testing.assert_allclose(axes["link3"], [1, 0, 0, 0, 0, 0])
    np.testing.assert_allclose(axes["link4"], [0, 0, 0, 1, 0, 0])
    np.testing.assert_allclose(axes["tool"], np.zeros(6))
    np.testing.assert_allclose(axes["base_link"], np.zeros(6))


def test_inertials():
    """Masses and centers of mass are read; links without inertial are massless."""
    robot = load_urdf(str(FIXTURES / "biped_arm.urdf"))
    masses = dict(zip(robot.link_names, np.asarray(robot.link_masses)))
    assert masses["base_link"] == pytest.approx(4.0)
    assert masses["left_foot"] == pytest.approx(0.8)
    assert masses["tool"] == 0.0
    np.testing.assert_allclose(robot.link_com_offsets[robot.link_index("link2")], [0.1, 0.0, 0.15])


def test_joint_origin_rpy():
    """The tool frame is rotated a quarter turn about z."""
    robot = load_urdf(str(FIXTURES / "biped_arm.urdf"))
    T = robot.joint_transforms[robot.link_index("tool")]
    np.testing.assert_allclose(T[:3, :3] @ jnp.array([1.0, 0.0, 0.0]), [0.0, 1.0, 0.0], atol=1e-12)
    np.testing.assert_allclose(T[:3, 3], [0.05, 0.0, 0.0])


def test_default_axis_is_normalized(tmp_path):
    """A missing axis defaults to x, a non-unit axis is normalized."""
    urdf = tmp_path / "axes.urdf"
    urdf.write_text("""<?xml version="1.0"?>
<robot name="axes">
  <link name="a"/>
  <link name="b"/>
  <link name="c"/>
  <joint name="ab" type="revolute">
    <parent link="a"/>
    <child link="b"/>
  </joint>
  <joint name="bc" type="prismatic">
    <parent link="b"/>
    <child link="c"/>
    <axis xyz="0 3 4"/>
  </joint>
</robot>
""")
    robot = load_urdf(str(urdf))
    np.testing.assert_allclose(robot.joint_axes[1], [0, 0, 0, 1, 0, 0])
    np.testing.assert_allclose(robot.joint_axes[2], [0, 0.6, 0.8, 0, 0, 0])


def test_unsupported_joint_type(tmp_path):
    urdf = tmp_path / "floating.urdf"
    urdf.write_text("""<?xml version="1.0"?>
<robot name="floating">
  <link name="world"/>
  <link name="body"/>
  <joint name="free" type="floating">
    <parent link="world"/>
    <child link="body"/>
  </joint>
</robot>
""")
    with pytest.raises(ValueError, match="unsupported type 'floating'"):
        load_urdf(str(urdf))


def test_multiple_roots(tmp_path):
    urdf = tmp_path / "two_roots.urdf"
    urdf.write_text("""<?xml version="1.0"?>
<robot name="two_roots">
  <link name="a"/>
  <link name="b"/>
</robot>
""")
    with pytest.raises(ValueError, match="exactly one root"):
        load_urdf(str(urdf))


def test_link_index_unknown_link():
    robot = load_urdf(str(FIXTURES / "slider.urdf"))
    with pytest.raises(ValueError, match="not found"):
        robot.link_index("missing")
