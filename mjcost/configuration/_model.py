import jax.numpy as jnp
import mujoco as mj
from mujoco import mjx


def update(model: mjx.Model, q: jnp.ndarray) -> mjx.Data:
    """
    Create MuJoCo data for given joint positions and run forward kinematics.

    Only kinematic quantities (body, geom and site poses) are computed.

    :param model: The MuJoCo model.
    :param q: joint positions, of shape (nq,).
    :return: Updated MuJoCo data.
    """
    data = mjx.make_data(model).replace(qpos=q)
    return mjx.kinematics(model, data)


def get_obj_pos(data: mjx.Data, obj_id: int, obj_type: mj.mjtObj = mj.mjtObj.mjOBJ_BODY) -> jnp.ndarray:
    """
    Get the position of an object in the model frame.

    :param data: The MuJoCo data, after forward kinematics.
    :param obj_id: The ID of the object.
    :param obj_type: The type of the object (mjOBJ_BODY, mjOBJ_GEOM, or mjOBJ_SITE).
    :return: position of the object, of shape (3,).
    """
    match obj_type:
        case mj.mjtObj.mjOBJ_GEOM:
            return data.geom_xpos[obj_id]
        case mj.mjtObj.mjOBJ_SITE:
            return data.site_xpos[obj_id]
        case _:  # default -- mjOBJ_BODY:
            return data.xpos[obj_id]


def get_obj_rotation(data: mjx.Data, obj_id: int, obj_type: mj.mjtObj = mj.mjtObj.mjOBJ_BODY) -> jnp.ndarray:
    """
    Get the rotation matrix of an object in the model frame.

    :param data: The MuJoCo data, after forward kinematics.
    :param obj_id: The ID of the object.
    :param obj_type: The type of the object (mjOBJ_BODY, mjOBJ_GEOM, or mjOBJ_SITE).
    :return: rotation matrix of the object, of shape (3, 3).
    """
    match obj_type:
        case mj.mjtObj.mjOBJ_GEOM:
            return data.geom_xmat[obj_id].reshape(3, 3)
        case mj.mjtObj.mjOBJ_SITE:
            return data.site_xmat[obj_id].reshape(3, 3)
        case _:  # default -- mjOBJ_BODY:
            return data.xmat[obj_id].reshape(3, 3)
