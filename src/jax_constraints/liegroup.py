"""Configuration spaces as products of Lie groups.

A :class:`LiegroupSpace` is a cartesian product of vector spaces, SO(2) and
SO(3). Elements are flat arrays of size ``nq``, tangent vectors flat arrays of
size ``nv``. ``difference(q0, q1)`` is the tangent vector ``v`` at ``q0`` such
that ``integrate(q0, v) == q1``.

Element layouts:

- ``VectorSpace(n)``: n coordinates
- ``SO2``: (cos t, sin t)
- ``SO3``: unit quaternion (w, x, y, z)
"""

from typing import Sequence, Tuple

import jax.numpy as jnp
import numpy as np

from .transforms import so3


class VectorSpace:
    """R^n with plain subtraction."""

    def __init__(self, n: int):
        self.nq = self.nv = int(n)

    def neutral(self) -> np.ndarray:
        return np.zeros(self.nq)

    def difference(self, q0, q1) -> np.ndarray:
        return q1 - q0

    def integrate(self, q, v) -> np.ndarray:
        return q + v

    def jacobian_difference(self, q0, q1) -> Tuple[np.ndarray, np.ndarray]:
        return -np.eye(self.nv), np.eye(self.nv)

    def __eq__(self, other):
        return isinstance(other, VectorSpace) and other.nq == self.nq

    def __repr__(self):
        return f"R{self.nq}"


class SO2:
    """Planar rotations stored as (cos t, sin t)."""

    nq = 2
    nv = 1

    def neutral(self) -> np.ndarray:
        return np.array([1.0, 0.0])

    def difference(self, q0, q1) -> np.ndarray:
        c0, s0 = q0
        c1, s1 = q1
        return np.array([np.arctan2(c0 * s1 - s0 * c1, c0 * c1 + s0 * s1)])

    def integrate(self, q, v) -> np.ndarray:
        angle = np.arctan2(q[1], q[0]) + v[0]
        return np.array([np.cos(angle), np.sin(angle)])

    def jacobian_difference(self, q0, q1) -> Tuple[np.ndarray, np.ndarray]:
        return -np.ones((1, 1)), np.ones((1, 1))

    def __eq__(self, other):
        return isinstance(other, SO2)

    def __repr__(self):
        return "SO(2)"


class SO3:
    """Spatial rotations stored as unit quaternions (w, x, y, z)."""

    nq = 4
    nv = 3

    def neutral(self) -> np.ndarray:
        return np.array([1.0, 0.0, 0.0, 0.0])

    def difference(self, q0, q1) -> np.ndarray:
        R0 = so3.from_quaternion(jnp.asarray(q0))
        R1 = so3.from_quaternion(jnp.asarray(q1))
        return np.asarray(so3.log(R0.T @ R1))

    def integrate(self, q, v) -> np.ndarray:
        R = so3.from_quaternion(jnp.asarray(q)) @ so3.exp(jnp.asarray(v))
        return np.asarray(so3.to_quaternion(R))

    def jacobian_difference(self, q0, q1) -> Tuple[np.ndarray, np.ndarray]:
        # q1 moves on the right of log(R0^T R1), q0 on the left with a minus sign.
        Jr_inv = np.asarray(so3.right_jacobian_inverse(jnp.asarray(self.difference(q0, q1))))
        return -Jr_inv.T, Jr_inv

    def __eq__(self, other):
        return isinstance(other, SO3)

    def __repr__(self):
        return "SO(3)"


class LiegroupSpace:
    """Cartesian product of elementary Lie groups.

    Adjacent vector spaces are merged, so ``Rn(2) * Rn(3) == Rn(5)``.
    """

    def __init__(self, components: Sequence = ()):
        merged = []
        for component in components:
            if isinstance(component, LiegroupSpace):
                parts = component.components
            else:
                parts = (component,)
            for part in parts:
                if part.nq == 0:
                    continue
                if merged and isinstance(part, VectorSpace) and isinstance(merged[-1], VectorSpace):
                    merged[-1] = VectorSpace(merged[-1].nq + part.nq)
                else:
                    merged.append(part)
        self.components = tuple(merged)

        self._q_slices = []
        self._v_slices = []
        iq = iv = 0
        for component in self.components:
            self._q_slices.append(slice(iq, iq + component.nq))
            self._v_slices.append(slice(iv, iv + component.nv))
            iq += component.nq
            iv += component.nv
        self.nq = iq
        self.nv = iv

    @classmethod
    def Rn(cls, n: int) -> "LiegroupSpace":
        return cls((VectorSpace(n),))

    @classmethod
    def R3(cls) -> "LiegroupSpace":
        return cls.Rn(3)

    @classmethod
    def SO2(cls) -> "LiegroupSpace":
        return cls((SO2(),))

    @classmethod
    def SO3(cls) -> "LiegroupSpace":
        return cls((SO3(),))

    @classmethod
    def R3xSO3(cls) -> "LiegroupSpace":
        return cls((VectorSpace(3), SO3()))

    @property
    def is_vector_space(self) -> bool:
        return all(isinstance(c, VectorSpace) for c in self.components)

    def neutral(self) -> np.ndarray:
        return np.concatenate([c.neutral() for c in self.components] or [np.zeros(0)])

    def difference(self, q0, q1) -> np.ndarray:
        """Tangent vector at ``q0`` leading to ``q1``."""
        q0 = np.asarray(q0, dtype=float)
        q1 = np.asarray(q1, dtype=float)
        out = np.empty(self.nv)
        for c, sq, sv in zip(self.components, self._q_slices, self._v_slices):
            out[sv] = c.difference(q0[sq], q1[sq])
        return out

    def integrate(self, q, v) -> np.ndarray:
        q = np.asarray(q, dtype=float)
        v = np.asarray(v, dtype=float)
        out = np.empty(self.nq)
        for c, sq, sv in zip(self.components, self._q_slices, self._v_slices):
            out[sq] = c.integrate(q[sq], v[sv])
        return out

    def jacobian_difference(self, q0, q1) -> Tuple[np.ndarray, np.ndarray]:
        """Jacobians of :meth:`difference` with respect to the tangent of q0 and of q1.

        Returns:
            Two (nv, nv) block diagonal matrices.
        """
        q0 = np.asarray(q0, dtype=float)
        q1 = np.asarray(q1, dtype=float)
        J0 = np.zeros((self.nv, self.nv))
        J1 = np.zeros((self.nv, self.nv))
        for c, sq, sv in zip(self.components, self._q_slices, self._v_slices):
            J0[sv, sv], J1[sv, sv] = c.jacobian_difference(q0[sq], q1[sq])
        return J0, J1

    def __mul__(self, other: "LiegroupSpace") -> "LiegroupSpace":
        return LiegroupSpace(self.components + other.components)

    def __eq__(self, other):
        return isinstance(other, LiegroupSpace) and self.components == other.components

    def __hash__(self):
        return hash(repr(self))

    def __repr__(self):
        return " x ".join(repr(c) for c in self.components) or "R0"
