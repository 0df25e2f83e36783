"""Forward kinematics, frame Jacobians and center of mass in pure JAX.

Jacobians are taken with respect to joint velocities. Frame Jacobians stack
the linear velocity of the frame origin over the angular velocity of the
frame, both expressed in world axes:

    [v; w] = J(q) @ dq
"""

from functools import partial
from typing import Dict

import jax
import jax.numpy as jnp
from jax import Array

from .core import RobotModel
from .transforms import se3, so3


def forward_kinematics(robot: RobotModel, q: Array) -> Dict[str, Array]:
    """World placements of every link, keyed by link name.

    Args:
        robot: RobotModel describing the kinematic tree
        q: (num_dof,) joint positions

    Returns:
        Dictionary mapping link names to (4, 4) placements
    """
    world_transforms = forward_kinematics_world(robot, q)
    return {name: world_transforms[i] for i, name in enumerate(robot.link_names)}


@jax.jit
def forward_kinematics_world(robot: RobotModel, q: Array) -> Array:
    """World placements of every link as one array.

    Args:
        robot: RobotModel describing the kinematic tree
        q: (num_dof,) joint positions

    Returns:
        (num_links, 4, 4) placements indexed by link id
    """
    num_links = len(robot.link_names)

    # Joint value of every link; fixed joints and the root stay at zero.
    q_full = jnp.zeros(num_links, dtype=q.dtype).at[robot.actuated_joint_to_link_idx].set(q)

    def scan_body(carry, i):
        T_world_to_parent = carry[robot.parent_indices[i]]
        T_parent_to_child = robot.joint_transforms[i] @ se3.exp(robot.joint_axes[i] * q_full[i])
        return carry.at[i].set(T_world_to_parent @ T_parent_to_child), None

    world_transforms = jnp.broadcast_to(jnp.eye(4, dtype=q.dtype), (num_links, 4, 4))
    world_transforms, _ = jax.lax.scan(scan_body, world_transforms, jnp.arange(1, num_links))
    return world_transforms


@partial(jax.jit, static_argnames=("link_idx",))
def frame_jacobian(robot: RobotModel, q: Array, link_idx: int) -> Array:
    """Jacobian of a link frame.

    Args:
        robot: RobotModel describing the kinematic tree
        q: (num_dof,) joint positions
        link_idx: link id of the frame

    Returns:
        (6, num_dof) Jacobian, linear rows first
    """
    def placement(joint_positions: Array) -> Array:
        return forward_kinematics_world(robot, joint_positions)[link_idx]

    T = placement(q)
    dT = jax.jacfwd(placement)(q)  # (4, 4, num_dof)

    J_linear = dT[:3, 3, :]
    # dR R^T is the skew matrix of the angular velocity, one per column
    dR_Rt = jnp.einsum('ijk,lj->kil', dT[:3, :3, :], se3.get_rotation(T))
    J_angular = so3.vee(dR_Rt).T
    return jnp.concatenate([J_linear, J_angular], axis=0)


@jax.jit
def center_of_mass(robot: RobotModel, q: Array) -> Array:
    """Mass-weighted mean of the link centers of mass, in world coordinates."""
    world_transforms = forward_kinematics_world(robot, q)
    link_coms = (jnp.einsum('nij,nj->ni', se3.get_rotation(world_transforms), robot.link_com_offsets)
                 + se3.get_position(world_transforms))
    return robot.link_masses @ link_coms / jnp.sum(robot.link_masses)


@jax.jit
def center_of_mass_jacobian(robot: RobotModel, q: Array) -> Array:
    """(3, num_dof) Jacobian of :func:`center_of_mass`."""
    return jax.jacfwd(lambda joint_positions: center_of_mass(robot, joint_positions))(q)
