"""Composite kinematic expressions with values and Jacobians.

An :class:`ExpressionGraph` is an arena of immutable nodes. Builder methods
append a node and return its index; children always precede their parent, so
the graph is a DAG and a sub-expression can be shared by several parents.

An :class:`ExpressionContext` evaluates a graph against a kinematics provider
and owns every cached value and Jacobian. Results are memoized per
generation: :meth:`ExpressionContext.invalidate` starts a new generation and
each node is recomputed at most once in it, however many parents reach it.
Reading after a configuration change without invalidating returns the
memoized results.

Frame Jacobians are [linear; angular] in world axes, so for a frame of
rotation ``R`` and angular velocity Jacobian ``Jw``:

    d(R v)   = R Jv - skew(R v) Jw
    d(R^T v) = R^T (Jv + skew(v) Jw)
"""

import enum
from typing import Dict, List, Optional, Sequence, Tuple

import jax.numpy as jnp
import numpy as np
from flax import struct

from .errors import ConstraintConfigurationError
from .transforms import so3


class NodeKind(enum.Enum):
    CONSTANT = "constant"
    POINT_IN_FRAME = "point_in_frame"
    CENTER_OF_MASS = "center_of_mass"
    SUM = "sum"
    DIFFERENCE = "difference"
    SCALAR_MULTIPLY = "scalar_multiply"
    CROSS_PRODUCT = "cross_product"
    ROTATION_MULTIPLY = "rotation_multiply"


@struct.dataclass
class Node:
    """One expression node.

    Attributes:
        kind: Which combinator or leaf this is.
        size: Number of rows of the value.
        children: Indices of the child nodes in the graph.
        frame: Frame name for frame-dependent nodes.
        transpose: Multiply by R^T instead of R (rotation multiply).
        scalar: Factor of a scalar multiply.
        vector: Constant value, or the local point of a point in frame.
    """
    kind: NodeKind = struct.field(pytree_node=False)
    size: int = struct.field(pytree_node=False)
    children: Tuple[int, ...] = struct.field(pytree_node=False, default=())
    frame: Optional[str] = struct.field(pytree_node=False, default=None)
    transpose: bool = struct.field(pytree_node=False, default=False)
    scalar: float = 1.0
    vector: Optional[np.ndarray] = None


def _skew(v: np.ndarray) -> np.ndarray:
    return np.asarray(so3.skew_symmetric(jnp.asarray(v, dtype=float)))


def _vector3(value, what: str) -> np.ndarray:
    v = np.asarray(value, dtype=float)
    if v.shape != (3,):
        raise ConstraintConfigurationError(f"{what} must be a 3-vector, got shape {v.shape}")
    v.setflags(write=False)
    return v


class ExpressionGraph:
    """Arena of expression nodes, referenced by integer index."""

    def __init__(self):
        self.nodes: List[Node] = []

    def __len__(self) -> int:
        return len(self.nodes)

    def size(self, node: int) -> int:
        return self.nodes[node].size

    def _add(self, node: Node) -> int:
        self.nodes.append(node)
        return len(self.nodes) - 1

    def _check(self, node: int) -> Node:
        if not 0 <= node < len(self.nodes):
            raise ConstraintConfigurationError(f"node {node} is not in this graph")
        return self.nodes[node]

    def _check3(self, node: int, what: str) -> Node:
        n = self._check(node)
        if n.size != 3:
            raise ConstraintConfigurationError(f"{what} needs 3-vector operands, node {node} has size {n.size}")
        return n

    # Leaves

    def constant(self, vector) -> int:
        v = np.array(vector, dtype=float).reshape(-1)
        v.setflags(write=False)
        return self._add(Node(kind=NodeKind.CONSTANT, size=v.size, vector=v))

    def point_in_frame(self, frame: str, local_point=(0.0, 0.0, 0.0)) -> int:
        """World position of a point fixed in a frame."""
        return self._add(Node(kind=NodeKind.POINT_IN_FRAME, size=3, frame=frame,
                              vector=_vector3(local_point, "local point")))

    def center_of_mass(self) -> int:
        return self._add(Node(kind=NodeKind.CENTER_OF_MASS, size=3))

    # Combinators

    def sum(self, a: int, b: int) -> int:
        return self._add(Node(kind=NodeKind.SUM, size=self._same_size(a, b), children=(a, b)))

    def difference(self, a: int, b: int) -> int:
        """``a - b``."""
        return self._add(Node(kind=NodeKind.DIFFERENCE, size=self._same_size(a, b), children=(a, b)))

    def scalar_multiply(self, scalar: float, a: int) -> int:
        return self._add(Node(kind=NodeKind.SCALAR_MULTIPLY, size=self._check(a).size,
                              children=(a,), scalar=float(scalar)))

    def cross_product(self, a: int, b: int) -> int:
        """``a x b``."""
        self._check3(a, "cross product")
        self._check3(b, "cross product")
        return self._add(Node(kind=NodeKind.CROSS_PRODUCT, size=3, children=(a, b)))

    def rotation_multiply(self, frame: str, a: int, transpose: bool = False) -> int:
        """``R a`` (or ``R^T a``) with ``R`` the rotation of ``frame``."""
        self._check3(a, "rotation multiply")
        return self._add(Node(kind=NodeKind.ROTATION_MULTIPLY, size=3, children=(a,),
                              frame=frame, transpose=bool(transpose)))

    def _same_size(self, a: int, b: int) -> int:
        size_a, size_b = self._check(a).size, self._check(b).size
        if size_a != size_b:
            raise ConstraintConfigurationError(
                f"operands of sizes {size_a} and {size_b} cannot be combined")
        return size_a


class ExpressionContext:
    """Evaluation state of an :class:`ExpressionGraph` for one kinematics provider.

    Not thread-safe: use one context per thread.
    """

    def __init__(self, graph: ExpressionGraph, device):
        self.graph = graph
        self.device = device
        self.generation = 0
        self._values: Dict[int, np.ndarray] = {}
        self._jacobians: Dict[int, np.ndarray] = {}
        self._value_generation: Dict[int, int] = {}
        self._jacobian_generation: Dict[int, int] = {}

    def update(self, q) -> None:
        """Move the device to ``q``, recompute its placements and invalidate."""
        self.device.set_configuration(q)
        self.device.compute_forward_kinematics()
        self.invalidate()

    def invalidate(self, node: Optional[int] = None) -> None:
        """Mark ``node`` and its descendants (default: every node) as not computed."""
        if node is None:
            self.generation += 1
            return
        pending = [node]
        seen = set()
        while pending:
            n = pending.pop()
            if n in seen:
                continue
            seen.add(n)
            self._value_generation.pop(n, None)
            self._jacobian_generation.pop(n, None)
            pending.extend(self.graph.nodes[n].children)

    def is_computed(self, node: int) -> bool:
        return self._value_generation.get(node) == self.generation

    def compute_value(self, node: int) -> np.ndarray:
        """Value of ``node``, read-only, shape (size,)."""
        if self._value_generation.get(node) == self.generation:
            return self._values[node]
        n = self.graph.nodes[node]
        children = [self.compute_value(c) for c in n.children]
        value = np.asarray(self._combine_values(n, children), dtype=float)
        value.setflags(write=False)
        self._values[node] = value
        self._value_generation[node] = self.generation
        return value

    def compute_jacobian(self, node: int) -> np.ndarray:
        """Jacobian of ``node``, read-only, shape (size, nv)."""
        if self._jacobian_generation.get(node) == self.generation:
            return self._jacobians[node]
        n = self.graph.nodes[node]
        jacobians = [self.compute_jacobian(c) for c in n.children]
        jacobian = np.asarray(self._combine_jacobians(n, jacobians), dtype=float)
        jacobian.setflags(write=False)
        self._jacobians[node] = jacobian
        self._jacobian_generation[node] = self.generation
        return jacobian

    def _rotation(self, frame: str) -> np.ndarray:
        return self.device.frame_placement(frame)[:3, :3]

    def _combine_values(self, n: Node, children: Sequence[np.ndarray]) -> np.ndarray:
        kind = n.kind
        if kind is NodeKind.CONSTANT:
            return n.vector
        if kind is NodeKind.POINT_IN_FRAME:
            T = self.device.frame_placement(n.frame)
            return T[:3, :3] @ n.vector + T[:3, 3]
        if kind is NodeKind.CENTER_OF_MASS:
            return self.device.center_of_mass()
        if kind is NodeKind.SUM:
            return children[0] + children[1]
        if kind is NodeKind.DIFFERENCE:
            return children[0] - children[1]
        if kind is NodeKind.SCALAR_MULTIPLY:
            return n.scalar * children[0]
        if kind is NodeKind.CROSS_PRODUCT:
            return np.cross(children[0], children[1])
        if kind is NodeKind.ROTATION_MULTIPLY:
            R = self._rotation(n.frame)
            return (R.T if n.transpose else R) @ children[0]
        raise TypeError(f"unknown node kind {kind}")

    def _combine_jacobians(self, n: Node, jacobians: Sequence[np.ndarray]) -> np.ndarray:
        kind = n.kind
        if kind is NodeKind.CONSTANT:
            return np.zeros((n.size, self.device.nv))
        if kind is NodeKind.POINT_IN_FRAME:
            J = self.device.frame_jacobian(n.frame)
            Rp = self._rotation(n.frame) @ n.vector
            return J[:3] - _skew(Rp) @ J[3:]
        if kind is NodeKind.CENTER_OF_MASS:
            return self.device.center_of_mass_jacobian()
        if kind is NodeKind.SUM:
            return jacobians[0] + jacobians[1]
        if kind is NodeKind.DIFFERENCE:
            return jacobians[0] - jacobians[1]
        if kind is NodeKind.SCALAR_MULTIPLY:
            return n.scalar * jacobians[0]
        if kind is NodeKind.CROSS_PRODUCT:
            a = self.compute_value(n.children[0])
            b = self.compute_value(n.children[1])
            return _skew(a) @ jacobians[1] - _skew(b) @ jacobians[0]
        if kind is NodeKind.ROTATION_MULTIPLY:
            v = self.compute_value(n.children[0])
            R = self._rotation(n.frame)
            J_angular = self.device.frame_jacobian(n.frame)[3:]
            if n.transpose:
                return R.T @ (jacobians[0] + _skew(v) @ J_angular)
            return R @ jacobians[0] - _skew(R @ v) @ J_angular
        raise TypeError(f"unknown node kind {kind}")
