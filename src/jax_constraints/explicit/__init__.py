"""Explicit eliminations: variables computed in closed form from other variables."""

from .function import ExplicitFunction, FunctionOutputMap, IdentityOutputMap
from .system import ExplicitSystem

__all__ = ["ExplicitFunction", "ExplicitSystem", "FunctionOutputMap", "IdentityOutputMap"]
