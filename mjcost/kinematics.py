"""Forward kinematics collaborators of the task-space cost terms."""

from __future__ import annotations

import abc
from collections.abc import Sequence

import jax.numpy as jnp
import jax_dataclasses as jdc
import mujoco as mj
import mujoco.mjx as mjx
from jaxlie import SE3

from mjcost.configuration import get_obj_pos, get_obj_rotation, update


class Kinematics(abc.ABC):
    """Stateless forward kinematics of a robot with a set of end effectors.

    Implementations map a base pose and joint positions into world-frame poses of
    the end effectors. They must be written in terms of ``jax.numpy`` operations,
    so that cost terms built on top of them can be traced, differentiated and
    vectorized.
    """

    @property
    @abc.abstractmethod
    def n_joints(self) -> int:  # pragma: no cover
        """Number of joint positions expected by the kinematics."""
        pass

    @property
    @abc.abstractmethod
    def n_end_effectors(self) -> int:  # pragma: no cover
        """Number of end effectors which could be queried."""
        pass

    @abc.abstractmethod
    def ee_position_in_world(
        self, ee_id: int, base_pose: SE3, joint_positions: jnp.ndarray
    ) -> jnp.ndarray:  # pragma: no cover
        """
        Compute the position of the end effector in world frame.

        :param ee_id: index of the end effector.
        :param base_pose: pose of the robot base in world frame.
        :param joint_positions: joint positions, of shape (n_joints,).
        :return: end effector position, of shape (3,).
        """
        pass

    @abc.abstractmethod
    def ee_rotation_in_world(
        self, ee_id: int, base_pose: SE3, joint_positions: jnp.ndarray
    ) -> jnp.ndarray:  # pragma: no cover
        """
        Compute the orientation of the end effector in world frame.

        :param ee_id: index of the end effector.
        :param base_pose: pose of the robot base in world frame.
        :param joint_positions: joint positions, of shape (n_joints,).
        :return: end effector rotation matrix, of shape (3, 3).
        """
        pass

    def ee_pose_in_world(
        self, ee_id: int, base_pose: SE3, joint_positions: jnp.ndarray
    ) -> tuple[jnp.ndarray, jnp.ndarray]:
        """
        Compute both position and orientation of the end effector in world frame.

        Implementations which share the forward kinematics pass between the two
        quantities should override this method.

        :param ee_id: index of the end effector.
        :param base_pose: pose of the robot base in world frame.
        :param joint_positions: joint positions, of shape (n_joints,).
        :return: end effector position, of shape (3,), and rotation matrix, of shape (3, 3).
        """
        return (
            self.ee_position_in_world(ee_id, base_pose, joint_positions),
            self.ee_rotation_in_world(ee_id, base_pose, joint_positions),
        )


@jdc.pytree_dataclass
class MjxKinematics(Kinematics):
    r"""Forward kinematics computed by MuJoCo MJX.

    The world frame of the MuJoCo model is treated as the frame of the robot base.
    The pose of the end effector in world frame is then a composition of the base
    pose and the pose computed by MuJoCo:

    .. math::

        p_{world} = T_{base} \, p_{model}(q), \qquad R_{world} = R_{base} \, R_{model}(q)

    For fixed-base robots the base pose is the identity, and the model frame is the
    world frame.

    :param model: MuJoCo model containing only scalar (hinge or slide) joints.
    :param ee_ids: ids of the end effector objects.
    :param ee_types: types of the end effector objects (body, geom, or site).
    """

    model: mjx.Model
    ee_ids: jdc.Static[tuple[int, ...]]
    ee_types: jdc.Static[tuple[mj.mjtObj, ...]]

    @staticmethod
    def from_model(
        model: mjx.Model | mj.MjModel,
        ee_names: Sequence[str],
        obj_type: mj.mjtObj = mj.mjtObj.mjOBJ_BODY,
    ) -> MjxKinematics:
        """
        Construct kinematics from the model and names of end effectors.

        :param model: MuJoCo model, either MJX or regular one.
        :param ee_names: names of the end effector objects, the index in this sequence is the end effector id.
        :param obj_type: type of the end effector objects.
        :raises ValueError: if the model has free or ball joints, or if some object is not found.
        :return: kinematics instance.
        """
        if isinstance(model, mj.MjModel):
            model = mjx.put_model(model)

        for jnt_id in range(model.njnt):
            jnt_type = model.jnt_type[jnt_id]
            if jnt_type == mj.mjtJoint.mjJNT_FREE or jnt_type == mj.mjtJoint.mjJNT_BALL:
                raise ValueError(
                    f"joint {jnt_id} is a free or ball joint. Only scalar joints are supported, "
                    "the floating base is described by the state vector instead."
                )

        ee_ids = []
        for ee_name in ee_names:
            obj_id = mjx.name2id(model, obj_type, ee_name)
            if obj_id == -1:
                raise ValueError(f"object with type {obj_type} and name {ee_name} is not found.")
            ee_ids.append(obj_id)

        return MjxKinematics(model=model, ee_ids=tuple(ee_ids), ee_types=(obj_type,) * len(ee_ids))

    @property
    def n_joints(self) -> int:
        return self.model.nq

    @property
    def n_end_effectors(self) -> int:
        return len(self.ee_ids)

    def ee_pose_in_world(
        self, ee_id: int, base_pose: SE3, joint_positions: jnp.ndarray
    ) -> tuple[jnp.ndarray, jnp.ndarray]:
        data = update(self.model, joint_positions)
        obj_id, obj_type = self.ee_ids[ee_id], self.ee_types[ee_id]

        position = base_pose @ get_obj_pos(data, obj_id, obj_type)
        rotation = base_pose.rotation().as_matrix() @ get_obj_rotation(data, obj_id, obj_type)
        return position, rotation

    def ee_position_in_world(self, ee_id: int, base_pose: SE3, joint_positions: jnp.ndarray) -> jnp.ndarray:
        return self.ee_pose_in_world(ee_id, base_pose, joint_positions)[0]

    def ee_rotation_in_world(self, ee_id: int, base_pose: SE3, joint_positions: jnp.ndarray) -> jnp.ndarray:
        return self.ee_pose_in_world(ee_id, base_pose, joint_positions)[1]
