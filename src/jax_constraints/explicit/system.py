"""A set of explicit functions eliminating disjoint groups of variables.

Functions may chain: the output of one can be an input of another. They are
then evaluated in an elimination order; a cycle is rejected.
"""

import logging
from typing import Dict, List, Optional, Tuple

import numpy as np

from ..errors import ConstraintConfigurationError, EliminationCycleError
from ..function import check_buffer
from ..indices import BlockIndices
from ..liegroup import LiegroupSpace
from .function import ExplicitFunction

logger = logging.getLogger(__name__)


class ExplicitSystem:
    """Aggregate of explicit functions over one configuration space.

    Attributes:
        config_space: The configuration space every function is defined on.
        out_args: Configuration variables eliminated by some function.
        out_ders: Velocity variables eliminated by some function.
        free_ders: Velocity variables eliminated by none.
    """

    def __init__(self, config_space: LiegroupSpace):
        self.config_space = config_space
        self._functions: List[Optional[ExplicitFunction]] = []
        self._order: Optional[Tuple[int, ...]] = ()
        self.out_args = BlockIndices()
        self.out_ders = BlockIndices()
        self.free_ders = BlockIndices.full(config_space.nv)
        self._jacobians: Dict[int, np.ndarray] = {}

    @property
    def functions(self) -> Tuple[ExplicitFunction, ...]:
        return tuple(f for f in self._functions if f is not None)

    def __len__(self) -> int:
        return len(self.functions)

    def add(self, function: ExplicitFunction) -> int:
        """Add a function and return its slot.

        Raises:
            ConstraintConfigurationError: if the function lives on another space
                or eliminates variables already eliminated.
        """
        if function.config_space != self.config_space:
            raise ConstraintConfigurationError(
                f"{function.name} is defined on {function.config_space}, not {self.config_space}")
        if function.output_conf.intersects(self.out_args) or function.output_velocity.intersects(self.out_ders):
            raise ConstraintConfigurationError(
                f"{function.name} eliminates variables already eliminated by another function")
        self._functions.append(function)
        self._partition_changed()
        return len(self._functions) - 1

    def remove(self, slot: int) -> ExplicitFunction:
        function = self._functions[slot]
        if function is None:
            raise ConstraintConfigurationError(f"slot {slot} is empty")
        self._functions[slot] = None
        self._partition_changed()
        return function

    def _partition_changed(self) -> None:
        self._order = None
        out_args, out_ders = BlockIndices(), BlockIndices()
        for f in self.functions:
            out_args = out_args.union(f.output_conf)
            out_ders = out_ders.union(f.output_velocity)
        self.out_args = out_args
        self.out_ders = out_ders
        self.free_ders = out_ders.complement(self.config_space.nv)
        self._jacobians = {slot: np.zeros((f.output_derivative_size, self.config_space.nv))
                           for slot, f in enumerate(self._functions) if f is not None}

    @property
    def order(self) -> Tuple[int, ...]:
        if self._order is None:
            self.compute_order()
        return self._order

    def compute_order(self) -> Tuple[int, ...]:
        """Slots sorted so that every function comes after those computing its inputs.

        Raises:
            EliminationCycleError: if an output feeds back, possibly through other
                functions, into the input of the function computing it.
        """
        slots = [i for i, f in enumerate(self._functions) if f is not None]
        depends_on = {
            j: {i for i in slots
                if i != j and self._functions[j].input_velocity.intersects(self._functions[i].output_velocity)}
            for j in slots
        }

        order: List[int] = []
        done = set()
        visiting: List[int] = []

        def visit(slot):
            if slot in done:
                return
            if slot in visiting:
                cycle = visiting[visiting.index(slot):] + [slot]
                raise EliminationCycleError(self._functions[s].name for s in cycle)
            visiting.append(slot)
            for dependency in sorted(depends_on[slot]):
                visit(dependency)
            visiting.pop()
            done.add(slot)
            order.append(slot)

        for slot in slots:
            visit(slot)
        self._order = tuple(order)
        logger.debug("elimination order: %s", ", ".join(self._functions[s].name for s in self._order))
        return self._order

    def jacobian(self, q, out: Optional[np.ndarray] = None) -> np.ndarray:
        """Expanded (nv, nv) Jacobian of every velocity variable w.r.t. the free ones.

        Rows of free variables are identity rows. Rows of eliminated variables
        hold ``-(dr/dq_out)^-1 dr/dq_in`` applied to the rows of their inputs,
        where ``r`` is the residual of the eliminating function. With an
        identity ``g`` and at a solution this is ``Jf``.
        """
        nv = self.config_space.nv
        if out is None:
            out = np.zeros((nv, nv))
        else:
            check_buffer(out, (nv, nv), "expanded Jacobian")
        free = self.free_ders.indices
        out[free, :] = 0.0
        out[free, free] = 1.0

        for slot in self.order:
            f = self._functions[slot]
            J = f.jacobian(q, out=self._jacobians[slot])
            J_out = f.output_velocity.cview(J)
            J_in = f.input_velocity.cview(J)
            d_out_d_in = -np.linalg.solve(J_out, J_in)
            out[f.output_velocity.index, :] = d_out_d_in @ f.input_velocity.rview(out)
        return out

    def view_jacobian(self, expanded: np.ndarray, out: Optional[np.ndarray] = None) -> np.ndarray:
        """Compressed Jacobian: eliminated rows, free columns."""
        block = self.out_ders.block(expanded, self.free_ders)
        if out is None:
            return block
        out[:] = block
        return out

    def solve(self, q) -> np.ndarray:
        """Configuration where every eliminated variable is recomputed from its inputs."""
        q = np.array(q, dtype=float)
        for slot in self.order:
            self._functions[slot].solve(q, out=q)
        return q
