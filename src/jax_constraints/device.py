"""Kinematics provider: a robot evaluated at its current configuration.

Constraint functions consume kinematics through :class:`KinematicsProvider`.
:class:`Device` implements it on top of the pure functions of
:mod:`jax_constraints.chain`, caching results until the configuration changes.
"""

import logging
from typing import Dict, Optional, Protocol

import jax.numpy as jnp
import numpy as np

from . import chain
from .core import RobotModel
from .errors import ConstraintConfigurationError
from .io import load_urdf
from .liegroup import LiegroupSpace

logger = logging.getLogger(__name__)


class KinematicsProvider(Protocol):
    """What the constraint functions need from a robot.

    Jacobians are taken with respect to the velocity of the configuration and
    expressed in world axes; frame Jacobians stack linear over angular rows.
    """

    nq: int
    nv: int

    def set_configuration(self, q) -> None: ...

    def compute_forward_kinematics(self) -> None: ...

    def frame_placement(self, frame: str) -> np.ndarray: ...

    def frame_jacobian(self, frame: str) -> np.ndarray: ...

    def center_of_mass(self) -> np.ndarray: ...

    def center_of_mass_jacobian(self) -> np.ndarray: ...


class Device:
    """Stateful robot: a RobotModel plus its current configuration.

    Placements are computed by :meth:`compute_forward_kinematics`; frame and
    center of mass Jacobians are computed on first request. Everything is
    dropped by :meth:`set_configuration`, and every query raises
    ``RuntimeError`` until forward kinematics is computed again.
    """

    def __init__(self, robot: RobotModel, name: Optional[str] = None):
        self.robot = robot
        self.name = name or robot.link_names[0]
        self.config_space = LiegroupSpace.Rn(robot.num_dof)
        self._q = np.zeros(robot.num_dof)
        self._placements: Optional[np.ndarray] = None
        self._frame_jacobians: Dict[int, np.ndarray] = {}
        self._com: Optional[np.ndarray] = None
        self._com_jacobian: Optional[np.ndarray] = None

    @classmethod
    def from_urdf(cls, urdf_path: str) -> "Device":
        robot = load_urdf(str(urdf_path))
        logger.info("loaded %s: %d links, %d degrees of freedom",
                    urdf_path, len(robot.link_names), robot.num_dof)
        return cls(robot)

    @property
    def nq(self) -> int:
        return self.config_space.nq

    @property
    def nv(self) -> int:
        return self.config_space.nv

    @property
    def current_configuration(self) -> np.ndarray:
        return self._q.copy()

    def set_configuration(self, q) -> None:
        q = np.asarray(q, dtype=float)
        if q.shape != (self.nq,):
            raise ConstraintConfigurationError(
                f"configuration of {self.name} has size {self.nq}, got shape {q.shape}")
        self._q = q.copy()
        self._placements = None
        self._frame_jacobians.clear()
        self._com = None
        self._com_jacobian = None

    def compute_forward_kinematics(self) -> None:
        self._placements = np.asarray(chain.forward_kinematics_world(self.robot, jnp.asarray(self._q)))

    def frame_placement(self, frame: str) -> np.ndarray:
        """(4, 4) world placement of a link frame."""
        self._require_forward_kinematics()
        return self._placements[self.robot.link_index(frame)]

    def frame_jacobian(self, frame: str) -> np.ndarray:
        """(6, nv) Jacobian of a link frame, linear rows first."""
        self._require_forward_kinematics()
        link_idx = self.robot.link_index(frame)
        if link_idx not in self._frame_jacobians:
            self._frame_jacobians[link_idx] = np.asarray(
                chain.frame_jacobian(self.robot, jnp.asarray(self._q), link_idx))
        return self._frame_jacobians[link_idx]

    def center_of_mass(self) -> np.ndarray:
        self._require_forward_kinematics()
        if self._com is None:
            self._check_mass()
            self._com = np.asarray(chain.center_of_mass(self.robot, jnp.asarray(self._q)))
        return self._com

    def center_of_mass_jacobian(self) -> np.ndarray:
        self._require_forward_kinematics()
        if self._com_jacobian is None:
            self._check_mass()
            self._com_jacobian = np.asarray(
                chain.center_of_mass_jacobian(self.robot, jnp.asarray(self._q)))
        return self._com_jacobian

    def _require_forward_kinematics(self) -> None:
        if self._placements is None:
            raise RuntimeError("forward kinematics not computed for the current configuration")

    def _check_mass(self) -> None:
        if not float(jnp.sum(self.robot.link_masses)) > 0.0:
            raise ValueError(f"robot {self.name} has zero total mass")
