"""RobotModel PyTree: the kinematic and inertial description of a robot.

The model is immutable and built once by the URDF parser; the stateful
:class:`jax_constraints.device.Device` evaluates it for a configuration.
"""

from typing import Tuple

from flax import struct
from jax import Array


@struct.dataclass
class RobotModel:
    """Immutable PyTree description of a tree of links.

    Links are stored in breadth-first order so that every parent precedes its
    children. Each non-root link carries the joint that attaches it to its
    parent.

    Attributes:
        link_names: Names of all links; the index is the link id. Static.
        joint_names: Names of the actuated joints, in configuration order. Static.
        parent_indices: (num_links,) parent link id; the root parents itself.
        joint_transforms: (num_links, 4, 4) placement of each joint frame in its
                          parent link frame.
        joint_axes: (num_links, 6) unit twist of each joint, [v, w]; zero for
                    fixed joints and the root.
        actuated_joint_to_link_idx: (num_dof,) link id moved by each actuated
                                    joint, in configuration order.
        link_masses: (num_links,) link masses.
        link_com_offsets: (num_links, 3) center of mass of each link in its frame.
    """
    link_names: Tuple[str, ...] = struct.field(pytree_node=False)
    joint_names: Tuple[str, ...] = struct.field(pytree_node=False)
    parent_indices: Array
    joint_transforms: Array
    joint_axes: Array
    actuated_joint_to_link_idx: Array
    link_masses: Array
    link_com_offsets: Array

    @property
    def num_dof(self) -> int:
        return len(self.joint_names)

    def link_index(self, link_name: str) -> int:
        try:
            return self.link_names.index(link_name)
        except ValueError:
            raise ValueError(f"Link '{link_name}' not found in robot model")
