"""Explicit relations between configuration variables.

An explicit function states that the variables ``q_out`` are determined by
the disjoint variables ``q_in`` through ``g(q_out) = f(q_in)``. As a
constraint it is the residual

    r(q) = g(q_out) - f(q_in)

where ``-`` is the difference on the output space of ``f``. The outer map
``g`` is usually the identity; the choice is made once at construction by
picking an output map strategy.
"""

from typing import Optional, Sequence, Union

import numpy as np

from ..errors import ConstraintConfigurationError
from ..function import DifferentiableFunction, check_buffer
from ..indices import BlockIndices, Segment
from ..liegroup import LiegroupSpace

IndexSet = Union[BlockIndices, Sequence[Segment]]


class IdentityOutputMap:
    """``g(q_out) = q_out``."""

    is_identity = True

    def value(self, q_out: np.ndarray) -> np.ndarray:
        return q_out

    def apply_jacobian(self, J_difference: np.ndarray, q_out: np.ndarray) -> np.ndarray:
        return J_difference

    def inverse(self, value: np.ndarray) -> np.ndarray:
        return value


class FunctionOutputMap:
    """``g(q_out)`` given by a differentiable function.

    Args:
        g: Function from ``q_out`` to the output space of ``f``.
        g_inverse: Optional inverse of ``g``, needed to solve for ``q_out``.
    """

    is_identity = False

    def __init__(self, g: DifferentiableFunction, g_inverse: Optional[DifferentiableFunction] = None):
        self.g = g
        self.g_inverse = g_inverse
        self._value = np.zeros(g.output_size)
        self._jacobian = np.zeros((g.output_derivative_size, g.input_derivative_size))

    def value(self, q_out: np.ndarray) -> np.ndarray:
        return self.g.value(q_out, out=self._value)

    def apply_jacobian(self, J_difference: np.ndarray, q_out: np.ndarray) -> np.ndarray:
        return J_difference @ self.g.jacobian(q_out, out=self._jacobian)

    def inverse(self, value: np.ndarray) -> np.ndarray:
        if self.g_inverse is None:
            raise ConstraintConfigurationError(
                f"output map {self.g.name} has no inverse, q_out cannot be solved for")
        return self.g_inverse.value(value)


class ExplicitFunction(DifferentiableFunction):
    """Residual ``g(q_out) - f(q_in)`` over the whole configuration.

    The Jacobian is scattered into full-width rows through index sets computed
    at construction; only the columns outside ``q_in`` and ``q_out`` are
    zeroed on each call.

    Args:
        config_space: Configuration space of the robot.
        function: ``f``, from ``q_in`` to its output space.
        input_conf: Configuration indices of ``q_in``.
        input_velocity: Velocity indices of ``q_in``.
        output_conf: Configuration indices of ``q_out``.
        output_velocity: Velocity indices of ``q_out``.
        g: Optional outer map; identity when omitted.
        g_inverse: Optional inverse of ``g``, used by :meth:`solve`.
        name: Defaults to ``"explicit <f name>"``.

    Raises:
        ConstraintConfigurationError: on overlapping or out-of-range index sets
            and on sizes that do not match ``f`` (or ``g``).
    """

    def __init__(self, config_space: LiegroupSpace, function: DifferentiableFunction,
                 input_conf: IndexSet, input_velocity: IndexSet,
                 output_conf: IndexSet, output_velocity: IndexSet,
                 g: Optional[DifferentiableFunction] = None,
                 g_inverse: Optional[DifferentiableFunction] = None,
                 name: Optional[str] = None):
        name = name or f"explicit {function.name}"
        nq, nv = config_space.nq, config_space.nv
        self.input_conf = BlockIndices.coerce(input_conf, nq)
        self.input_velocity = BlockIndices.coerce(input_velocity, nv)
        self.output_conf = BlockIndices.coerce(output_conf, nq)
        self.output_velocity = BlockIndices.coerce(output_velocity, nv)

        if self.input_conf.intersects(self.output_conf):
            raise ConstraintConfigurationError(f"{name}: input and output configuration variables overlap")
        if self.input_velocity.intersects(self.output_velocity):
            raise ConstraintConfigurationError(f"{name}: input and output velocity variables overlap")
        _check_size(name, "f input", function.input_size, "input configuration", self.input_conf.size)
        _check_size(name, "f input derivative", function.input_derivative_size,
                    "input velocity", self.input_velocity.size)
        _check_size(name, "f output derivative", function.output_derivative_size,
                    "output velocity", self.output_velocity.size)

        if g is None:
            _check_size(name, "f output", function.output_size, "output configuration", self.output_conf.size)
            self.output_map = IdentityOutputMap()
        else:
            _check_size(name, "g input", g.input_size, "output configuration", self.output_conf.size)
            _check_size(name, "g input derivative", g.input_derivative_size,
                        "output velocity", self.output_velocity.size)
            if g.output_space != function.output_space:
                raise ConstraintConfigurationError(
                    f"{name}: g maps to {g.output_space} but f maps to {function.output_space}")
            self.output_map = FunctionOutputMap(g, g_inverse)

        super().__init__(name, nq, nv, function.output_derivative_size)
        self.config_space = config_space
        self.function = function
        self.other_velocity = self.input_velocity.union(self.output_velocity).complement(nv)
        self._f_jacobian = np.zeros((function.output_derivative_size, function.input_derivative_size))

    @property
    def input_to_output(self) -> DifferentiableFunction:
        """``f``, mapping input variables to output variables."""
        return self.function

    def _impl_compute(self, result, q):
        f_q_in = self.function.value(self.input_conf.view(q))
        g_q_out = self.output_map.value(self.output_conf.view(q))
        result[:] = self.function.output_space.difference(f_q_in, g_q_out)

    def _impl_jacobian(self, jacobian, q):
        q_in = self.input_conf.view(q)
        q_out = self.output_conf.view(q)
        f_q_in = self.function.value(q_in)
        g_q_out = self.output_map.value(q_out)
        J_f_side, J_g_side = self.function.output_space.jacobian_difference(f_q_in, g_q_out)

        J_f = self.function.jacobian(q_in, out=self._f_jacobian)
        jacobian[:, self.input_velocity.index] = J_f_side @ J_f
        jacobian[:, self.output_velocity.index] = self.output_map.apply_jacobian(J_g_side, q_out)
        jacobian[:, self.other_velocity.index] = 0.0

    def solve(self, q, out: Optional[np.ndarray] = None) -> np.ndarray:
        """Configuration where ``q_out`` is set from ``q_in`` so that the residual vanishes."""
        q = self._check_argument(q)
        if out is None:
            out = q.copy()
        else:
            check_buffer(out, (self.input_size,), f"{self.name}: configuration")
            if out is not q:
                out[:] = q
        f_q_in = self.function.value(self.input_conf.view(q))
        out[self.output_conf.index] = self.output_map.inverse(f_q_in)
        return out


def _check_size(name, what, size, against, expected):
    if size != expected:
        raise ConstraintConfigurationError(
            f"{name}: {what} size {size} does not match {against} size {expected}")
