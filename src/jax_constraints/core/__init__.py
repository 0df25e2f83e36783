"""Core robot model data structures.

The robot description is an immutable, JAX-native PyTree.
"""

from .robot_model import RobotModel

__all__ = ["RobotModel"]
