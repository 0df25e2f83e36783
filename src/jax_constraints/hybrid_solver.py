"""Implicit constraints reduced through explicit eliminations.

The solver holds a stack of implicit constraint functions and an
:class:`~jax_constraints.explicit.system.ExplicitSystem`. Variables computed
by explicit functions are removed from the implicit problem: by the chain
rule, the Jacobian of every implicit constraint with respect to the free
variables is

    reduced_J = J[:, free] + J[:, eliminated] @ Je

where ``Je`` is the Jacobian of the eliminated variables with respect to the
free ones. The outer iterative solver then works on the free variables only.
"""

import logging
from dataclasses import dataclass
from typing import List, Tuple

import numpy as np

from .errors import ConstraintConfigurationError
from .explicit.function import ExplicitFunction
from .explicit.system import ExplicitSystem
from .function import DifferentiableFunction
from .indices import BlockIndices
from .liegroup import LiegroupSpace

logger = logging.getLogger(__name__)


@dataclass
class StackEntry:
    """Reduction state of one implicit constraint."""
    function: DifferentiableFunction
    slot: int
    value: np.ndarray
    jacobian: np.ndarray
    reduced_jacobian: np.ndarray


class HybridSolver:
    """Stack of implicit constraints plus explicit eliminations.

    Call :meth:`explicit_solver_has_changed` after adding or removing explicit
    functions, then :meth:`compute_value` and :meth:`update_jacobian` for each
    configuration visited by the outer solver.

    Not thread-safe: every buffer belongs to this instance.
    """

    def __init__(self, config_space: LiegroupSpace):
        self.config_space = config_space
        self.explicit = ExplicitSystem(config_space)
        self._stack: List[StackEntry] = []
        self._partition_valid = True
        self._free_ders = BlockIndices.full(config_space.nv)
        self._reducible_ders = BlockIndices()
        self._je_expanded = np.zeros((config_space.nv, config_space.nv))
        self._je = np.zeros((0, config_space.nv))

    # Stack

    def add(self, function: DifferentiableFunction) -> int:
        """Append an implicit constraint and return its slot."""
        if (function.input_size, function.input_derivative_size) != (self.config_space.nq, self.config_space.nv):
            raise ConstraintConfigurationError(
                f"{function.name} takes ({function.input_size}, {function.input_derivative_size}) "
                f"arguments, the configuration space is ({self.config_space.nq}, {self.config_space.nv})")
        if not function.output_space.is_vector_space:
            raise ConstraintConfigurationError(
                f"{function.name}: implicit constraints need a vector space output, got {function.output_space}")
        m = function.output_derivative_size
        entry = StackEntry(
            function=function,
            slot=len(self._stack),
            value=np.zeros(function.output_size),
            jacobian=np.zeros((m, self.config_space.nv)),
            reduced_jacobian=np.zeros((m, self._free_ders.size)),
        )
        self._stack.append(entry)
        return entry.slot

    def add_explicit(self, function: ExplicitFunction) -> int:
        """Add an explicit function; call :meth:`explicit_solver_has_changed` afterwards."""
        slot = self.explicit.add(function)
        self._partition_valid = False
        return slot

    def remove_explicit(self, slot: int) -> ExplicitFunction:
        function = self.explicit.remove(slot)
        self._partition_valid = False
        return function

    def __len__(self) -> int:
        return len(self._stack)

    @property
    def stack(self) -> Tuple[StackEntry, ...]:
        return tuple(self._stack)

    @property
    def free_ders(self) -> BlockIndices:
        return self._free_ders

    @property
    def reducible_ders(self) -> BlockIndices:
        return self._reducible_ders

    @property
    def explicit_jacobian(self) -> np.ndarray:
        """Compressed Jacobian of the eliminated variables w.r.t. the free ones."""
        return self._je

    # Evaluation

    def explicit_solver_has_changed(self) -> None:
        """Recompute the free / eliminated partition of the velocity variables.

        Raises:
            EliminationCycleError: if the explicit functions cannot be ordered.
        """
        self.explicit.compute_order()
        self._free_ders = self.explicit.free_ders
        self._reducible_ders = self.explicit.out_ders
        self._je = np.zeros((self._reducible_ders.size, self._free_ders.size))
        for entry in self._stack:
            entry.reduced_jacobian = np.zeros((entry.jacobian.shape[0], self._free_ders.size))
        self._partition_valid = True
        logger.info("explicit partition: %d free and %d eliminated velocity variables",
                    self._free_ders.size, self._reducible_ders.size)

    def compute_value(self, q) -> None:
        """Evaluate every implicit constraint at ``q``."""
        for entry in self._stack:
            entry.function.value(q, out=entry.value)

    def update_jacobian(self, q) -> None:
        """Compute ``Je`` and the reduced Jacobian of every implicit constraint at ``q``."""
        if not self._partition_valid:
            raise ConstraintConfigurationError(
                "explicit functions changed: call explicit_solver_has_changed() first")

        self.explicit.jacobian(q, out=self._je_expanded)
        self.explicit.view_jacobian(self._je_expanded, out=self._je)
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("Jacobian of explicit system:\n%s", np.array2string(self._je, precision=6))

        for entry in self._stack:
            entry.function.jacobian(q, out=entry.jacobian)
            entry.reduced_jacobian[:] = self._free_ders.cview(entry.jacobian)
            entry.reduced_jacobian += self._reducible_ders.cview(entry.jacobian) @ self._je
            if logger.isEnabledFor(logging.DEBUG):
                logger.debug("reduced Jacobian of %s:\n%s", entry.function.name,
                             np.array2string(entry.reduced_jacobian, precision=6))

    # Read access

    def residual(self, slot: int) -> np.ndarray:
        return self._stack[slot].value

    def jacobian(self, slot: int) -> np.ndarray:
        return self._stack[slot].jacobian

    def reduced_jacobian(self, slot: int) -> np.ndarray:
        return self._stack[slot].reduced_jacobian

    def reduced_system(self) -> Tuple[np.ndarray, np.ndarray]:
        """Stacked residuals and reduced Jacobians from the last evaluation."""
        if not self._stack:
            return np.zeros(0), np.zeros((0, self._free_ders.size))
        return (np.concatenate([e.value for e in self._stack]),
                np.vstack([e.reduced_jacobian for e in self._stack]))

    def lift_velocity(self, dq_free) -> np.ndarray:
        """Full tangent vector from a step on the free variables."""
        dq_free = np.asarray(dq_free, dtype=float)
        if dq_free.shape != (self._free_ders.size,):
            raise ConstraintConfigurationError(
                f"expected {self._free_ders.size} free velocity variables, got shape {dq_free.shape}")
        dq = np.zeros(self.config_space.nv)
        dq[self._free_ders.index] = dq_free
        dq[self._reducible_ders.index] = self._je @ dq_free
        return dq

    def solve_explicit(self, q) -> np.ndarray:
        """Configuration with every eliminated variable recomputed from its inputs."""
        return self.explicit.solve(q)
