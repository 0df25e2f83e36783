"""
JAX Constraints: differentiable kinematic constraints and hybrid
explicit/implicit reduction for inverse kinematics.

Constraint functions return a residual and its Jacobian with respect to the
robot velocity. Explicit functions eliminate variables in closed form and the
hybrid solver projects the remaining implicit constraints onto the free
variables.
"""

import jax
jax.config.update("jax_enable_x64", True)

from . import transforms
from . import core
from . import io
from .errors import ConstraintConfigurationError, EliminationCycleError
from .liegroup import LiegroupSpace
from .indices import BlockIndices
from .device import Device, KinematicsProvider
from .expression import ExpressionContext, ExpressionGraph, NodeKind
from .function import AffineFunction, AutodiffFunction, DifferentiableFunction, ExpressionFunction
from .configuration_constraint import ConfigurationConstraint
from .com_between_feet import ComBetweenFeet
from .explicit import ExplicitFunction, ExplicitSystem
from .hybrid_solver import HybridSolver

__version__ = "0.1.0"
__all__ = [
    "transforms",
    "core",
    "io",
    "AffineFunction",
    "AutodiffFunction",
    "BlockIndices",
    "ComBetweenFeet",
    "ConfigurationConstraint",
    "ConstraintConfigurationError",
    "Device",
    "DifferentiableFunction",
    "EliminationCycleError",
    "ExplicitFunction",
    "ExplicitSystem",
    "ExpressionContext",
    "ExpressionFunction",
    "ExpressionGraph",
    "HybridSolver",
    "KinematicsProvider",
    "LiegroupSpace",
    "NodeKind",
]
