"""Shared fixtures: robots loaded from URDF and central finite differences."""

from pathlib import Path

import numpy as np
import pytest

from jax_constraints import Device

FIXTURES = Path(__file__).parent / "fixtures"


def central_difference(fn, q, config_space=None, eps=1e-6):
    """(m, nv) Jacobian of a vector-valued ``fn`` by central differences.

    Perturbations are applied through ``config_space.integrate`` when a space
    is given, so the result is comparable to tangent-space Jacobians.
    """
    q = np.asarray(q, dtype=float)
    if config_space is None:
        nv = q.size

        def integrate(x, v):
            return x + v
    else:
        nv = config_space.nv
        integrate = config_space.integrate

    columns = []
    for k in range(nv):
        step = np.zeros(nv)
        step[k] = eps
        plus = np.asarray(fn(integrate(q, step)), dtype=float)
        minus = np.asarray(fn(integrate(q, -step)), dtype=float)
        columns.append((plus - minus) / (2.0 * eps))
    return np.stack(columns, axis=-1)


@pytest.fixture(scope="module")
def finite_difference():
    return central_difference


@pytest.fixture(scope="module")
def biped():
    """Six degree of freedom tree: a 4-joint arm on a base with two feet."""
    return Device.from_urdf(FIXTURES / "biped_arm.urdf")


@pytest.fixture(scope="module")
def slider():
    """One prismatic joint along x; frame 'turned' is rotated 90 degrees about z."""
    return Device.from_urdf(FIXTURES / "slider.urdf")
