"""Task-space pose term implementation."""

from __future__ import annotations

import warnings
from collections.abc import Sequence
from typing import final

import jax.numpy as jnp
import jax_dataclasses as jdc
from jaxlie import SO3

from mjcost.components.terms._base import JaxTerm, Term
from mjcost.config import ConfigSource, TaskspacePoseConfig, load_taskspace_pose_config
from mjcost.configuration import so3_from_euler_xyz, so3_from_quaternion_wxyz
from mjcost.exceptions import ConfigurationError
from mjcost.kinematics import Kinematics
from mjcost.state import RBDState, StateInterpreter, make_state_interpreter
from mjcost.typing import ArrayOrFloat, BaseType, ndarray


def frobenius_norm(matrix: jnp.ndarray) -> jnp.ndarray:
    """
    Frobenius norm with a well-defined derivative at zero.

    The square root is guarded, so that the derivative at the zero matrix is zero
    instead of NaN. The value is the same as ``jnp.linalg.norm(matrix)``.

    :param matrix: the matrix.
    :return: the norm.
    """
    squared = jnp.sum(matrix**2)
    is_zero = squared == 0
    return jnp.where(is_zero, 0.0, jnp.sqrt(jnp.where(is_zero, 1.0, squared)))


@jdc.pytree_dataclass
class JaxTaskspacePoseTerm(JaxTerm):
    r"""
    A JAX-based implementation of the task-space pose cost term.

    The term penalizes deviation of the end effector position :math:`p(x)` and
    orientation :math:`R(x)` in world frame from the reference pose
    :math:`(p_{ref}, R_{ref})`:

    .. math::

        l(x, u, t) = e^T Q_{pos} e + Q_{rot} \| R_{ref}^T R(x) - I \|_F, \qquad e = p(x) - p_{ref}

    The orientation part is zero if and only if the orientation matches the reference,
    and equals :math:`Q_{rot} \sqrt{6 - 2 \operatorname{tr}(R_{ref}^T R)}`, which grows
    monotonically with the rotation angle on :math:`(0, \pi)`. Control and time are not used.

    :param kinematics: forward kinematics of the robot.
    :param state_interpreter: layout of the generalized state.
    :param ee_id: index of the end effector.
    :param position_weight: weight matrix of the position error, of shape (3, 3).
    :param rotation_weight: weight of the orientation error.
    :param target_pos: reference position in world frame.
    :param target_rotation: reference orientation in world frame.
    """

    kinematics: Kinematics
    state_interpreter: StateInterpreter
    ee_id: jdc.Static[int]
    position_weight: jnp.ndarray
    rotation_weight: jnp.ndarray
    target_pos: jnp.ndarray
    target_rotation: SO3

    def _errors(self, x: jnp.ndarray) -> tuple[jnp.ndarray, jnp.ndarray]:
        rbd_state: RBDState = self.state_interpreter.reconstruct(x)

        ee_pos, ee_rot = self.kinematics.ee_pose_in_world(self.ee_id, rbd_state.base_pose, rbd_state.joint_positions)

        pos_error = ee_pos - self.target_pos
        rot_error = self.target_rotation.as_matrix().T @ ee_rot
        return pos_error, rot_error

    def position_error(self, x: jnp.ndarray) -> jnp.ndarray:
        """
        Compute the end effector position error :math:`p(x) - p_{ref}` in world frame.

        :param x: generalized state.
        :return: position error, of shape (3,).
        """
        return self._errors(x)[0]

    def rotation_error(self, x: jnp.ndarray) -> jnp.ndarray:
        """
        Compute the relative rotation :math:`R_{ref}^T R(x)` from the reference to the current orientation.

        :param x: generalized state.
        :return: rotation matrix, of shape (3, 3).
        """
        return self._errors(x)[1]

    @final
    def __call__(self, x: jnp.ndarray, u: jnp.ndarray, t: jnp.ndarray | float) -> jnp.ndarray:
        pos_error, rot_error = self._errors(x)

        pos_cost = pos_error @ self.position_weight @ pos_error
        # frobenius norm of (R_diff - I)
        rot_cost = self.rotation_weight * frobenius_norm(rot_error - jnp.eye(3))
        return pos_cost + rot_cost


class TaskspacePoseTerm(Term[JaxTaskspacePoseTerm]):
    """
    A high-level representation of the task-space pose cost term.

    The reference orientation might be provided either as a rotation (SO3 object,
    quaternion in (w, x, y, z) order, or a rotation matrix), or as intrinsic X-Y-Z
    Euler angles. In any case, it is stored as a proper rotation.

    The layout of the generalized state is selected once, based on the base type,
    number of joints of the kinematics, and the state dimension.

    :param name: The name of the term.
    :param kinematics: forward kinematics of the robot.
    :param state_dim: dimension of the generalized state.
    :param control_dim: dimension of the control.
    :param ee_id: index of the end effector in the kinematics.
    :param position_weight: weight of the position error: scalar, diagonal, or a 3x3 matrix.
    :param rotation_weight: non-negative weight of the orientation error.
    :param target_pos: reference position in world frame.
    :param target_rotation: reference orientation in world frame.
    :param target_euler_xyz: reference orientation in world frame as Euler angles.
    :param base_type: mobility of the robot base, either "fixed" or "floating".
    :raises DimensionMismatchError: if the state dimension does not fit the robot.
    """

    JaxComponentType: type = JaxTaskspacePoseTerm

    _kinematics: Kinematics
    _base_type: BaseType
    _state_interpreter: StateInterpreter
    _ee_id: int
    _position_weight: jnp.ndarray
    _rotation_weight: jnp.ndarray
    _target_pos: jnp.ndarray
    _target_rotation: SO3

    def __init__(
        self,
        name: str,
        kinematics: Kinematics,
        state_dim: int,
        control_dim: int,
        ee_id: int,
        position_weight: ArrayOrFloat,
        rotation_weight: float,
        target_pos: Sequence | ndarray,
        target_rotation: SO3 | Sequence | ndarray | None = None,
        target_euler_xyz: Sequence | ndarray | None = None,
        base_type: BaseType | str = BaseType.FIXED,
    ):
        super().__init__(name, state_dim, control_dim)
        self._kinematics = kinematics
        self._base_type = BaseType.from_str(base_type) if isinstance(base_type, str) else base_type
        self._state_interpreter = make_state_interpreter(self._base_type, kinematics.n_joints, state_dim)
        self._jax_component = jdc.replace(
            self._jax_component,
            kinematics=self._kinematics,
            state_interpreter=self._state_interpreter,
        )

        self.ee_id = ee_id
        self.position_weight = position_weight
        self.rotation_weight = rotation_weight
        self.target_pos = target_pos

        if target_rotation is not None and target_euler_xyz is not None:
            raise ValueError("provide either target rotation or target euler angles, not both")
        if target_euler_xyz is not None:
            self.update_target_euler_xyz(target_euler_xyz)
        else:
            self.target_rotation = target_rotation if target_rotation is not None else SO3.identity()

    @classmethod
    def from_config(
        cls,
        source: ConfigSource,
        term_name: str,
        kinematics: Kinematics,
        state_dim: int,
        control_dim: int,
        base_type: BaseType | str = BaseType.FIXED,
        verbose: bool = False,
    ) -> TaskspacePoseTerm:
        """
        Construct the term from the configuration.

        :param source: mapping, or path to a YAML file.
        :param term_name: name of the section with the term parameters, used as the term name as well.
        :param kinematics: forward kinematics of the robot.
        :param state_dim: dimension of the generalized state.
        :param control_dim: dimension of the control.
        :param base_type: mobility of the robot base.
        :param verbose: log the parsed values with INFO level.
        :raises ConfigurationError: if the configuration is incomplete or malformed.
        :return: the term.
        """
        config = load_taskspace_pose_config(source, term_name, verbose)
        cls._validate_config(config, kinematics)
        return cls(
            term_name,
            kinematics,
            state_dim,
            control_dim,
            ee_id=config.ee_id,
            position_weight=config.position_weight,
            rotation_weight=config.rotation_weight,
            target_pos=config.target_pos,
            target_rotation=config.target_rotation,
            base_type=base_type,
        )

    @staticmethod
    def _validate_config(config: TaskspacePoseConfig, kinematics: Kinematics):
        if config.ee_id >= kinematics.n_end_effectors:
            raise ConfigurationError(
                f"eeId {config.ee_id} is out of range, kinematics has {kinematics.n_end_effectors} end effectors"
            )

    def load_configuration(self, source: ConfigSource, term_name: str, verbose: bool = False) -> None:
        config = load_taskspace_pose_config(source, term_name, verbose)
        self._validate_config(config, self._kinematics)

        self.ee_id = config.ee_id
        self.position_weight = config.position_weight
        self.rotation_weight = config.rotation_weight
        self.target_pos = config.target_pos
        self.target_rotation = config.target_rotation

    def clone(self) -> TaskspacePoseTerm:
        return TaskspacePoseTerm(
            self.name,
            self._kinematics,
            self.state_dim,
            self.control_dim,
            ee_id=self._ee_id,
            position_weight=jnp.array(self._position_weight, copy=True),
            rotation_weight=float(self._rotation_weight),
            target_pos=jnp.array(self._target_pos, copy=True),
            target_rotation=SO3(wxyz=jnp.array(self._target_rotation.wxyz, copy=True)),
            base_type=self._base_type,
        )

    @property
    def kinematics(self) -> Kinematics:
        return self._kinematics

    @property
    def base_type(self) -> BaseType:
        return self._base_type

    @property
    def state_interpreter(self) -> StateInterpreter:
        return self._state_interpreter

    @property
    def ee_id(self) -> int:
        """
        Get the index of the end effector.

        :return: index of the end effector in the kinematics.
        """
        return self._ee_id

    @ee_id.setter
    def ee_id(self, value: int):
        self.update_ee_id(value)
        self._jax_component = jdc.replace(self._jax_component, ee_id=self._ee_id)

    def update_ee_id(self, ee_id: int):
        """
        Update the index of the end effector.

        :param ee_id: index of the end effector.
        :raises ValueError: if the index is out of the kinematics range.
        """
        ee_id = int(ee_id)
        if not 0 <= ee_id < self._kinematics.n_end_effectors:
            raise ValueError(
                f"end effector index {ee_id} is out of range [0, {self._kinematics.n_end_effectors})"
            )
        self._ee_id = ee_id

    @property
    def position_weight(self) -> jnp.ndarray:
        return self._position_weight

    @position_weight.setter
    def position_weight(self, value: ArrayOrFloat):
        self.update_position_weight(value)
        self._jax_component = jdc.replace(self._jax_component, position_weight=self.matrix_position_weight)

    def update_position_weight(self, position_weight: ArrayOrFloat):
        """
        Update the weight of the position error.

        :param position_weight: scalar, vector of length 3, or a 3x3 matrix.
        :raises ValueError: if the weight has wrong shape.
        """
        position_weight = jnp.array(position_weight)
        if position_weight.ndim > 2:
            raise ValueError(f"the position_weight.ndim is too high: expected <= 2, got {position_weight.ndim}")
        if position_weight.ndim == 1 and position_weight.shape != (3,):
            raise ValueError(f"fail to construct matrix jnp.diag((3,)) from vector of length {position_weight.shape}")
        if position_weight.ndim == 2:
            if position_weight.shape != (3, 3):
                raise ValueError(f"wrong shape of the position weight: {position_weight.shape} != (3, 3)")
            if not jnp.allclose(position_weight, position_weight.T):
                warnings.warn("position weight is not symmetric, only its symmetric part affects the cost", stacklevel=3)
        self._position_weight = position_weight

    @property
    def matrix_position_weight(self) -> jnp.ndarray:
        # scalar -> jnp.eye(3) * scalar
        # vector -> jnp.diag(vector)
        # matrix -> matrix
        match self._position_weight.ndim:
            case 0:
                return jnp.eye(3) * self._position_weight
            case 1:
                return jnp.diag(self._position_weight)
            case _:
                return self._position_weight

    @property
    def rotation_weight(self) -> jnp.ndarray:
        return self._rotation_weight

    @rotation_weight.setter
    def rotation_weight(self, value: float):
        self.update_rotation_weight(value)
        self._jax_component = jdc.replace(self._jax_component, rotation_weight=self._rotation_weight)

    def update_rotation_weight(self, rotation_weight: float):
        """
        Update the weight of the orientation error.

        :param rotation_weight: non-negative scalar weight.
        :raises ValueError: if the weight is not a scalar or is negative.
        """
        rotation_weight_jnp = jnp.array(rotation_weight)
        if rotation_weight_jnp.ndim != 0:
            raise ValueError(f"rotation weight has to be a scalar, got shape {rotation_weight_jnp.shape}")
        if rotation_weight_jnp < 0:
            raise ValueError("rotation weight has to be non-negative")
        self._rotation_weight = rotation_weight_jnp

    @property
    def target_pos(self) -> jnp.ndarray:
        """
        Get the reference position of the end effector.

        :return: The reference position in world frame.
        """
        return self._target_pos

    @target_pos.setter
    def target_pos(self, value: Sequence | ndarray):
        self.update_target_pos(value)
        self._jax_component = jdc.replace(self._jax_component, target_pos=self._target_pos)

    def update_target_pos(self, target_pos: Sequence | ndarray):
        """
        Update the reference position of the end effector.

        :param target_pos: The new reference position in world frame.
        :raises ValueError: If the provided sequence doesn't have length 3.
        """
        target_pos_jnp = jnp.array(target_pos)
        if target_pos_jnp.shape != (3,):
            raise ValueError(f"Invalid dimension of the target position: expected (3,), got {target_pos_jnp.shape}")
        self._target_pos = target_pos_jnp

    @property
    def target_rotation(self) -> SO3:
        """
        Get the reference orientation of the end effector.

        :return: The reference orientation in world frame.
        """
        return self._target_rotation

    @target_rotation.setter
    def target_rotation(self, value: SO3 | Sequence | ndarray):
        self.update_target_rotation(value)
        self._jax_component = jdc.replace(self._jax_component, target_rotation=self._target_rotation)

    def update_target_rotation(self, target_rotation: SO3 | Sequence | ndarray):
        """
        Update the reference orientation of the end effector.

        :param target_rotation: SO3 object, quaternion in (w, x, y, z) order, or a rotation matrix.
        :raises ValueError: if the quaternion has zero norm, the matrix is not a rotation,
            or the array has an unexpected shape.
        """
        if isinstance(target_rotation, SO3):
            self._target_rotation = so3_from_quaternion_wxyz(target_rotation.wxyz)
            return

        target_rotation_jnp = jnp.array(target_rotation)
        match target_rotation_jnp.shape:
            case (4,):
                self._target_rotation = so3_from_quaternion_wxyz(target_rotation_jnp)
            case (3, 3):
                is_orthonormal = jnp.allclose(target_rotation_jnp.T @ target_rotation_jnp, jnp.eye(3), atol=1e-5)
                if not is_orthonormal or jnp.linalg.det(target_rotation_jnp) <= 0:
                    raise ValueError("target rotation matrix is not a proper rotation")
                self._target_rotation = so3_from_quaternion_wxyz(SO3.from_matrix(target_rotation_jnp).wxyz)
            case _:
                raise ValueError(
                    "Target rotation provided via array must be a quaternion (w, x, y, z) or a 3x3 rotation matrix, "
                    f"got shape {target_rotation_jnp.shape}"
                )

    def update_target_euler_xyz(self, target_euler_xyz: Sequence | ndarray):
        """
        Set the reference orientation from intrinsic X-Y-Z Euler angles.

        :param target_euler_xyz: angles in radians.
        :raises ValueError: if the angles vector doesn't have length 3.
        """
        self.target_rotation = so3_from_euler_xyz(jnp.array(target_euler_xyz))
