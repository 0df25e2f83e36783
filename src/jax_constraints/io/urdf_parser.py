"""URDF parser producing RobotModel PyTrees.

Only single degree of freedom joints (revolute, continuous, prismatic) and
fixed joints are supported, which keeps the configuration space a vector
space of dimension ``num_dof``. Link inertials are read for the center of mass.
"""

from collections import deque
from typing import Dict, List

import jax.numpy as jnp
import numpy as np
from lxml import etree

from jax_constraints.core.robot_model import RobotModel
from jax_constraints.transforms import se3, so3

ACTUATED_JOINT_TYPES = ("revolute", "continuous", "prismatic")


def load_urdf(urdf_path: str) -> RobotModel:
    """Load a URDF file into a RobotModel.

    Args:
        urdf_path: Path to the URDF file.

    Returns:
        RobotModel with links in breadth-first order from the root.

    Raises:
        ValueError: if the file does not describe a single tree or uses an
            unsupported joint type.
    """
    root = etree.parse(urdf_path).getroot()

    inertials = {link.get('name'): _parse_inertial(link) for link in root.findall('link')}

    joints: List[dict] = []
    for joint in root.findall('joint'):
        joint_type = joint.get('type')
        if joint_type != 'fixed' and joint_type not in ACTUATED_JOINT_TYPES:
            raise ValueError(f"Joint '{joint.get('name')}' has unsupported type '{joint_type}'")
        joints.append({
            'name': joint.get('name'),
            'type': joint_type,
            'parent': joint.find('parent').get('link'),
            'child': joint.find('child').get('link'),
            'elem': joint,
        })

    joint_by_child = {j['child']: j for j in joints}
    root_links = set(inertials) - set(joint_by_child)
    if len(root_links) != 1:
        raise ValueError(f"Expected exactly one root link, found: {sorted(root_links)}")
    root_link = root_links.pop()

    # Breadth-first ordering puts every parent before its children
    ordered_links = []
    queue = deque([root_link])
    while queue:
        link_name = queue.popleft()
        if link_name in ordered_links:
            raise ValueError(f"Link '{link_name}' is reached twice, the model is not a tree")
        ordered_links.append(link_name)
        queue.extend(j['child'] for j in joints if j['parent'] == link_name)
    link_map: Dict[str, int] = {name: i for i, name in enumerate(ordered_links)}

    num_links = len(ordered_links)
    parent_indices = np.arange(num_links)
    joint_transforms = np.tile(np.eye(4), (num_links, 1, 1))
    joint_axes = np.zeros((num_links, 6))
    link_masses = np.zeros(num_links)
    link_com_offsets = np.zeros((num_links, 3))

    for i, link_name in enumerate(ordered_links):
        link_masses[i], link_com_offsets[i] = inertials[link_name]
        joint = joint_by_child.get(link_name)
        if joint is None:
            continue
        parent_indices[i] = link_map[joint['parent']]
        joint_transforms[i] = _parse_origin(joint['elem'])
        joint_axes[i] = _joint_twist(joint)

    actuated = [j for j in joints if j['type'] in ACTUATED_JOINT_TYPES]

    return RobotModel(
        link_names=tuple(ordered_links),
        joint_names=tuple(j['name'] for j in actuated),
        parent_indices=jnp.asarray(parent_indices, dtype=jnp.int32),
        joint_transforms=jnp.asarray(joint_transforms),
        joint_axes=jnp.asarray(joint_axes),
        actuated_joint_to_link_idx=jnp.asarray([link_map[j['child']] for j in actuated],
                                               dtype=jnp.int32),
        link_masses=jnp.asarray(link_masses),
        link_com_offsets=jnp.asarray(link_com_offsets),
    )


def _floats(text: str, default: str) -> np.ndarray:
    return np.array([float(x) for x in (text or default).split()])


def _parse_origin(elem) -> np.ndarray:
    origin = elem.find('origin')
    if origin is None:
        return np.eye(4)
    xyz = _floats(origin.get('xyz'), '0 0 0')
    rpy = _floats(origin.get('rpy'), '0 0 0')
    return np.asarray(se3.from_position_and_rotation(jnp.asarray(xyz),
                                                     so3.from_rpy(jnp.asarray(rpy))))


def _parse_inertial(link):
    """Mass and local center of mass of a link; massless when no inertial is given."""
    inertial = link.find('inertial')
    if inertial is None:
        return 0.0, np.zeros(3)
    mass = inertial.find('mass')
    mass_value = float(mass.get('value')) if mass is not None else 0.0
    # The center of mass is the inertial origin; its orientation does not move it.
    origin = inertial.find('origin')
    com = _floats(origin.get('xyz') if origin is not None else None, '0 0 0')
    return mass_value, com


def _joint_twist(joint: dict) -> np.ndarray:
    if joint['type'] == 'fixed':
        return np.zeros(6)
    axis_elem = joint['elem'].find('axis')
    axis = _floats(axis_elem.get('xyz') if axis_elem is not None else None, '1 0 0')
    axis = axis / np.linalg.norm(axis)
    if joint['type'] == 'prismatic':
        return np.concatenate([axis, np.zeros(3)])
    return np.concatenate([np.zeros(3), axis])
