"""Constraint keeping the center of mass between two feet.

With ``x`` the center of mass, ``xL``/``xR`` the foot points, ``u = xR - xL``
and ``R`` the rotation of a reference frame, the value is::

    f0 = (R^T ((x - (xL + xR) / 2) x u))_z
    f1 = (x - xR) . (xL - xR)
    f2 = (x - xL) . (xR - xL)

``f0`` vanishes when the center of mass lies in the vertical plane through
both feet (vertical taken in the reference frame); ``f1`` and ``f2`` are
positive while its projection stays between the feet.
"""

from typing import Sequence

import numpy as np

from .errors import ConstraintConfigurationError
from .expression import ExpressionContext, ExpressionGraph
from .function import DifferentiableFunction


class ComBetweenFeet(DifferentiableFunction):
    """Center of mass between feet, exposed through a 3-entry row mask.

    Args:
        name: Function name.
        device: Kinematics provider.
        joint_left: Frame of the left foot.
        joint_right: Frame of the right foot.
        point_left: Foot point in the left frame.
        point_right: Foot point in the right frame.
        joint_reference: Frame whose z axis defines the vertical.
        mask: Which of the three rows are exposed.
    """

    def __init__(self, name: str, device, joint_left: str, joint_right: str,
                 point_left, point_right, joint_reference: str,
                 mask: Sequence[bool] = (True, True, True)):
        mask = np.asarray(mask, dtype=bool).reshape(-1)
        if mask.size != 3:
            raise ConstraintConfigurationError(f"{name}: mask must have 3 entries, got {mask.size}")
        super().__init__(name, device.nq, device.nv, int(mask.sum()))
        self.device = device
        self.mask = tuple(bool(m) for m in mask)
        self._rows = np.flatnonzero(mask)

        graph = ExpressionGraph()
        com = graph.center_of_mass()
        left = graph.point_in_frame(joint_left, point_left)
        right = graph.point_in_frame(joint_right, point_right)
        middle = graph.scalar_multiply(0.5, graph.sum(left, right))
        self._u = graph.difference(right, left)
        self._x_minus_left = graph.difference(com, left)
        self._x_minus_right = graph.difference(com, right)
        e_cross_u = graph.cross_product(graph.difference(com, middle), self._u)
        self._expr = graph.rotation_multiply(joint_reference, e_cross_u, transpose=True)

        self.graph = graph
        self.context = ExpressionContext(graph, device)
        self._result = np.zeros(3)
        self._jacobian = np.zeros((3, device.nv))

    def _impl_compute(self, result, q):
        ctx = self.context
        ctx.update(q)
        u = ctx.compute_value(self._u)
        self._result[0] = ctx.compute_value(self._expr)[2]
        self._result[1] = -(ctx.compute_value(self._x_minus_right) @ u)
        self._result[2] = ctx.compute_value(self._x_minus_left) @ u
        result[:] = self._result[self._rows]

    def _impl_jacobian(self, jacobian, q):
        ctx = self.context
        ctx.update(q)
        u = ctx.compute_value(self._u)
        J_u = ctx.compute_jacobian(self._u)
        x_minus_left = ctx.compute_value(self._x_minus_left)
        x_minus_right = ctx.compute_value(self._x_minus_right)

        self._jacobian[0] = ctx.compute_jacobian(self._expr)[2]
        self._jacobian[1] = -(x_minus_right @ J_u + u @ ctx.compute_jacobian(self._x_minus_right))
        self._jacobian[2] = x_minus_left @ J_u + u @ ctx.compute_jacobian(self._x_minus_left)
        jacobian[:] = self._jacobian[self._rows]
