"""Interpretation of flat generalized state vectors as structured robot states."""

from __future__ import annotations

import abc

import jax.numpy as jnp
import jax_dataclasses as jdc
from jaxlie import SE3

from mjcost.configuration import se3_from_base_euler_xyz, se3_from_base_quaternion
from mjcost.exceptions import DimensionMismatchError
from mjcost.typing import BaseType


@jdc.pytree_dataclass
class RBDState:
    """Structured state of a rigid body system.

    :param base_pose: pose of the base in world frame, identity for fixed-base robots.
    :param joint_positions: joint positions, of shape (n_joints,).
    :param base_velocity: angular and linear velocity of the base, of shape (6,).
    :param joint_velocities: joint velocities, of shape (n_joints,).
    """

    base_pose: SE3
    joint_positions: jnp.ndarray
    base_velocity: jnp.ndarray
    joint_velocities: jnp.ndarray


@jdc.pytree_dataclass
class StateInterpreter(abc.ABC):
    """Base class of the generalized state layouts.

    The layout is chosen once per robot, see :py:func:`make_state_interpreter`.

    :param n_joints: number of scalar joints of the robot.
    """

    n_joints: jdc.Static[int]

    @property
    @abc.abstractmethod
    def state_dim(self) -> int:  # pragma: no cover
        """Length of the generalized state vector in this layout."""
        pass

    @abc.abstractmethod
    def reconstruct(self, x: jnp.ndarray) -> RBDState:  # pragma: no cover
        """
        Split the flat state vector into a structured state.

        :param x: generalized state, of shape (state_dim,).
        :return: the structured state.
        """
        pass


@jdc.pytree_dataclass
class FixedBaseInterpreter(StateInterpreter):
    r"""Layout of the fixed-base robot state.

    .. math::

        x = \begin{bmatrix} q & \dot{q} \end{bmatrix}

    The base pose is identity, the base velocity is zero.
    """

    @property
    def state_dim(self) -> int:
        return 2 * self.n_joints

    def reconstruct(self, x: jnp.ndarray) -> RBDState:
        n = self.n_joints
        return RBDState(
            base_pose=SE3.identity(),
            joint_positions=x[:n],
            base_velocity=jnp.zeros(6, dtype=x.dtype),
            joint_velocities=x[n:],
        )


@jdc.pytree_dataclass
class FloatingBaseEulerXyzInterpreter(StateInterpreter):
    r"""Layout of the floating-base robot state with Euler angles base orientation.

    .. math::

        x = \begin{bmatrix} \theta_{xyz} & p & q & \omega & v & \dot{q} \end{bmatrix}

    where :math:`\theta_{xyz}` are intrinsic X-Y-Z Euler angles of the base.
    """

    @property
    def state_dim(self) -> int:
        return 2 * (6 + self.n_joints)

    def reconstruct(self, x: jnp.ndarray) -> RBDState:
        n = self.n_joints
        return RBDState(
            base_pose=se3_from_base_euler_xyz(x[0:3], x[3:6]),
            joint_positions=x[6 : 6 + n],
            base_velocity=x[6 + n : 12 + n],
            joint_velocities=x[12 + n :],
        )


@jdc.pytree_dataclass
class FloatingBaseQuaternionInterpreter(StateInterpreter):
    r"""Layout of the floating-base robot state with quaternion base orientation.

    .. math::

        x = \begin{bmatrix} q_{wxyz} & p & q & \omega & v & \dot{q} \end{bmatrix}

    The quaternion takes one more entry than Euler angles, while the base velocity
    stays 6-dimensional. The quaternion is normalized on reconstruction.
    """

    @property
    def state_dim(self) -> int:
        return 2 * (6 + self.n_joints) + 1

    def reconstruct(self, x: jnp.ndarray) -> RBDState:
        n = self.n_joints
        return RBDState(
            base_pose=se3_from_base_quaternion(x[0:4], x[4:7]),
            joint_positions=x[7 : 7 + n],
            base_velocity=x[7 + n : 13 + n],
            joint_velocities=x[13 + n :],
        )


def make_state_interpreter(base_type: BaseType | str, n_joints: int, state_dim: int) -> StateInterpreter:
    """
    Select the state layout for the robot.

    For a floating base, the orientation encoding is deduced from the state dimension:
    Euler angles take ``2 * (6 + n_joints)`` entries, a quaternion one more.

    :param base_type: mobility of the robot base.
    :param n_joints: number of scalar joints.
    :param state_dim: declared dimension of the generalized state.
    :raises DimensionMismatchError: if state dimension matches none of the layouts.
    :return: the state interpreter.
    """
    if isinstance(base_type, str):
        base_type = BaseType.from_str(base_type)
    if n_joints < 0:
        raise ValueError(f"number of joints has to be non-negative, got {n_joints}")

    candidates: tuple[StateInterpreter, ...]
    if BaseType.is_floating(base_type):
        candidates = (
            FloatingBaseEulerXyzInterpreter(n_joints=n_joints),
            FloatingBaseQuaternionInterpreter(n_joints=n_joints),
        )
    else:
        candidates = (FixedBaseInterpreter(n_joints=n_joints),)

    for interpreter in candidates:
        if interpreter.state_dim == state_dim:
            return interpreter

    raise DimensionMismatchError(
        f"state dimension {state_dim} does not fit a {base_type.name.lower()}-base robot with {n_joints} joints: "
        f"expected one of {[interpreter.state_dim for interpreter in candidates]}"
    )
