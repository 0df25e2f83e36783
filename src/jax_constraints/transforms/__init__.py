"""
Rigid-body transform primitives in JAX.

- so3: rotations, the exponential/logarithm maps and the inverse right Jacobian
- se3: homogeneous placements used by forward kinematics
"""

from . import so3
from . import se3

__all__ = [
    "so3",
    "se3",
]
