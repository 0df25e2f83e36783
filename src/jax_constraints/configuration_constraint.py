"""Weighted squared distance of the configuration to a goal configuration."""

from typing import Optional, Sequence

import numpy as np

from .errors import ConstraintConfigurationError
from .function import DifferentiableFunction
from .liegroup import LiegroupSpace


class ConfigurationConstraint(DifferentiableFunction):
    """``0.5 * sum_i w_i d_i^2`` with ``d = difference(q, goal)``.

    The difference is taken on the configuration space, so rotations are
    compared through their logarithm. The Jacobian is ``(w * d)^T dd/dq``.

    Args:
        name: Function name.
        config_space: Configuration space of the robot.
        goal: Goal configuration.
        weights: One non-negative weight per velocity coordinate; defaults to ones.
        mask: Alternative to ``weights``: ``True`` entries get weight 1,
              ``False`` entries weight 0.
    """

    def __init__(self, name: str, config_space: LiegroupSpace, goal,
                 weights: Optional[Sequence[float]] = None,
                 mask: Optional[Sequence[bool]] = None):
        super().__init__(name, config_space.nq, config_space.nv, 1)
        if weights is not None and mask is not None:
            raise ConstraintConfigurationError(f"{name}: give either weights or a mask")
        if mask is not None:
            weights = np.asarray(mask, dtype=bool).astype(float)
        elif weights is None:
            weights = np.ones(config_space.nv)
        weights = np.asarray(weights, dtype=float).reshape(-1)
        if weights.size != config_space.nv:
            raise ConstraintConfigurationError(
                f"{name}: {weights.size} weights for {config_space.nv} velocity coordinates")
        goal = np.asarray(goal, dtype=float)
        if goal.shape != (config_space.nq,):
            raise ConstraintConfigurationError(
                f"{name}: goal has shape {goal.shape}, expected ({config_space.nq},)")

        self.config_space = config_space
        self.goal = goal
        self.weights = weights

    def _impl_compute(self, result, q):
        d = self.config_space.difference(q, self.goal)
        result[0] = 0.5 * self.weights @ (d * d)

    def _impl_jacobian(self, jacobian, q):
        d = self.config_space.difference(q, self.goal)
        J_q, _ = self.config_space.jacobian_difference(q, self.goal)
        jacobian[0, :] = (self.weights * d) @ J_q
