"""Differentiable functions of the robot configuration.

A :class:`DifferentiableFunction` maps a configuration (size ``input_size``)
to a value in its ``output_space`` and provides the Jacobian with respect to
the input velocity (shape ``output_space.nv x input_derivative_size``).
"""

import abc
from typing import Callable, Optional, Sequence, Union

import jax
import jax.numpy as jnp
import numpy as np

from .errors import ConstraintConfigurationError
from .expression import ExpressionContext, ExpressionGraph
from .liegroup import LiegroupSpace


def _output_space(output_space: Union[int, LiegroupSpace]) -> LiegroupSpace:
    if isinstance(output_space, LiegroupSpace):
        return output_space
    return LiegroupSpace.Rn(int(output_space))


class DifferentiableFunction(abc.ABC):
    """Base class of every constraint function.

    Subclasses implement :meth:`_impl_compute` and :meth:`_impl_jacobian`,
    which receive validated arguments and must write every entry of the
    result they are given.
    """

    def __init__(self, name: str, input_size: int, input_derivative_size: int,
                 output_space: Union[int, LiegroupSpace]):
        self.name = name
        self.input_size = int(input_size)
        self.input_derivative_size = int(input_derivative_size)
        self.output_space = _output_space(output_space)

    @property
    def output_size(self) -> int:
        return self.output_space.nq

    @property
    def output_derivative_size(self) -> int:
        return self.output_space.nv

    def value(self, q, out: Optional[np.ndarray] = None) -> np.ndarray:
        """Value at configuration ``q``, written into ``out`` when given."""
        q = self._check_argument(q)
        out = self._check_buffer(out, (self.output_size,), "value")
        self._impl_compute(out, q)
        return out

    def jacobian(self, q, out: Optional[np.ndarray] = None) -> np.ndarray:
        """Jacobian at configuration ``q``, written into ``out`` when given."""
        q = self._check_argument(q)
        out = self._check_buffer(
            out, (self.output_derivative_size, self.input_derivative_size), "Jacobian")
        self._impl_jacobian(out, q)
        return out

    @abc.abstractmethod
    def _impl_compute(self, result: np.ndarray, q: np.ndarray) -> None:
        ...

    @abc.abstractmethod
    def _impl_jacobian(self, jacobian: np.ndarray, q: np.ndarray) -> None:
        ...

    def _check_argument(self, q) -> np.ndarray:
        q = np.asarray(q, dtype=float)
        if q.shape != (self.input_size,):
            raise ConstraintConfigurationError(
                f"{self.name}: expected a configuration of size {self.input_size}, got shape {q.shape}")
        return q

    def _check_buffer(self, out, shape, what) -> np.ndarray:
        if out is None:
            return np.zeros(shape)
        return check_buffer(out, shape, f"{self.name}: {what}")

    def __repr__(self):
        return (f"{type(self).__name__}({self.name!r}, R^{self.input_size} -> {self.output_space}, "
                f"nv {self.input_derivative_size})")


def check_buffer(out, shape, what: str) -> np.ndarray:
    """Validate a caller-supplied output buffer.

    Raises:
        ConstraintConfigurationError: if ``out`` is not a floating point
            ndarray of the given shape.
    """
    if not isinstance(out, np.ndarray) or not np.issubdtype(out.dtype, np.floating):
        raise ConstraintConfigurationError(
            f"{what} buffer must be a floating point ndarray, got {getattr(out, 'dtype', type(out).__name__)}")
    if out.shape != shape:
        raise ConstraintConfigurationError(f"{what} buffer has shape {out.shape}, expected {shape}")
    return out


class ExpressionFunction(DifferentiableFunction):
    """Rows of an expression node, optionally filtered by a mask.

    Each evaluation moves the device to the configuration, recomputes its
    forward kinematics and invalidates the expression context before reading
    the root.

    Args:
        name: Function name.
        device: Kinematics provider, see :class:`jax_constraints.device.KinematicsProvider`.
        graph: Expression graph holding ``root``.
        root: Node whose value is exposed.
        mask: One boolean per row of ``root``; only ``True`` rows are exposed,
              in order. Defaults to every row.
    """

    def __init__(self, name: str, device, graph: ExpressionGraph, root: int,
                 mask: Optional[Sequence[bool]] = None):
        size = graph.size(root)
        if mask is None:
            mask = [True] * size
        mask = np.asarray(mask, dtype=bool).reshape(-1)
        if mask.size != size:
            raise ConstraintConfigurationError(
                f"{name}: mask has {mask.size} entries but the expression has {size} rows")
        super().__init__(name, device.nq, device.nv, int(mask.sum()))
        self.device = device
        self.graph = graph
        self.root = root
        self.mask = tuple(bool(m) for m in mask)
        self.context = ExpressionContext(graph, device)
        self._rows = np.flatnonzero(mask)

    def _impl_compute(self, result, q):
        self.context.update(q)
        result[:] = self.context.compute_value(self.root)[self._rows]

    def _impl_jacobian(self, jacobian, q):
        self.context.update(q)
        jacobian[:] = self.context.compute_jacobian(self.root)[self._rows]


class AffineFunction(DifferentiableFunction):
    """``A q + b`` over a vector space."""

    def __init__(self, matrix, constant=None, name: str = "affine"):
        A = np.atleast_2d(np.asarray(matrix, dtype=float))
        b = np.zeros(A.shape[0]) if constant is None else np.asarray(constant, dtype=float).reshape(-1)
        if b.shape != (A.shape[0],):
            raise ConstraintConfigurationError(
                f"{name}: constant has {b.size} entries, matrix has {A.shape[0]} rows")
        super().__init__(name, A.shape[1], A.shape[1], A.shape[0])
        self.matrix = A
        self.constant = b

    def _impl_compute(self, result, q):
        result[:] = self.matrix @ q + self.constant

    def _impl_jacobian(self, jacobian, q):
        jacobian[:] = self.matrix


class AutodiffFunction(DifferentiableFunction):
    """Wrap a pure JAX function of a vector-space argument.

    The Jacobian is obtained with ``jax.jacfwd`` when the output is a vector
    space. For other output spaces the tangent-space Jacobian cannot be read
    off the coordinates and ``jacobian_fn`` must be supplied.

    Args:
        name: Function name.
        fn: ``fn(q) -> value`` built from jax.numpy operations.
        input_size: Size of ``q``.
        output_space: Output space, or output size for R^n. Defaults to the
                      size of ``fn`` evaluated at zero.
        jacobian_fn: Optional ``jacobian_fn(q) -> (output nv, input_size)``.
    """

    def __init__(self, name: str, fn: Callable, input_size: int,
                 output_space: Union[int, LiegroupSpace, None] = None,
                 jacobian_fn: Optional[Callable] = None):
        if output_space is None:
            output_space = int(np.size(fn(jnp.zeros(input_size))))
        output_space = _output_space(output_space)
        if jacobian_fn is None and not output_space.is_vector_space:
            raise ConstraintConfigurationError(
                f"{name}: output space {output_space} needs an explicit jacobian_fn")
        super().__init__(name, input_size, input_size, output_space)
        self._fn = jax.jit(fn)
        self._jacobian_fn = jacobian_fn if jacobian_fn is not None else jax.jit(jax.jacfwd(fn))

    def _impl_compute(self, result, q):
        result[:] = np.asarray(self._fn(jnp.asarray(q))).reshape(-1)

    def _impl_jacobian(self, jacobian, q):
        jacobian[:] = np.asarray(self._jacobian_fn(jnp.asarray(q))).reshape(jacobian.shape)
