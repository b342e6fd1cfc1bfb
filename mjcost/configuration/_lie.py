import jax.numpy as jnp
from jaxlie import SE3, SO3

from mjcost.typing import ndarray


def so3_from_quaternion_wxyz(quat: ndarray) -> SO3:
    """
    Build a rotation from a quaternion in scalar-first order.

    The quaternion is normalized before conversion, so any non-zero 4-vector
    describes a proper rotation:

    .. math::

        q \\leftarrow \\frac{q}{\\|q\\|}

    :param quat: quaternion (w, x, y, z).
    :raises ValueError: quaternion has wrong length or zero norm.
    :return: the corresponding SO3 element.
    """
    quat = jnp.asarray(quat)
    if quat.shape != (4,):
        raise ValueError(f"quaternion must have shape (4,), got {quat.shape}")
    norm = jnp.linalg.norm(quat)
    if not norm > 0:
        raise ValueError("quaternion with zero norm does not describe a rotation")
    return SO3(wxyz=quat / norm)


def so3_from_euler_xyz(euler_xyz: ndarray) -> SO3:
    """
    Build a rotation from intrinsic X-Y-Z Euler angles.

    The three elementary rotations are composed in order:

    .. math::

        R = R_x(\\alpha) R_y(\\beta) R_z(\\gamma)

    Note that this differs from :py:meth:`jaxlie.SO3.from_rpy_radians`, which composes
    extrinsic rotations.

    :param euler_xyz: angles (alpha, beta, gamma) in radians.
    :raises ValueError: angles vector has wrong length.
    :return: the corresponding SO3 element.
    """
    euler_xyz = jnp.asarray(euler_xyz)
    if euler_xyz.shape != (3,):
        raise ValueError(f"euler angles must have shape (3,), got {euler_xyz.shape}")
    return (
        SO3.from_x_radians(euler_xyz[0]) @ SO3.from_y_radians(euler_xyz[1]) @ SO3.from_z_radians(euler_xyz[2])
    )


def so3_to_euler_xyz(rotation: SO3) -> jnp.ndarray:
    """
    Recover intrinsic X-Y-Z Euler angles from a rotation.

    The inverse of :py:func:`so3_from_euler_xyz`, with :math:`\\beta \\in [-\\pi/2, \\pi/2]`.
    Near gimbal lock (:math:`|\\beta| = \\pi/2`) the split between :math:`\\alpha` and
    :math:`\\gamma` is arbitrary.

    :param rotation: rotation to decompose.
    :return: angles (alpha, beta, gamma) in radians.
    """
    R = rotation.as_matrix()
    return jnp.array(
        [
            jnp.arctan2(-R[1, 2], R[2, 2]),
            jnp.arcsin(jnp.clip(R[0, 2], -1.0, 1.0)),
            jnp.arctan2(-R[0, 1], R[0, 0]),
        ]
    )


def se3_from_base_euler_xyz(euler_xyz: jnp.ndarray, position: jnp.ndarray) -> SE3:
    """
    Base pose from Euler angles and a world-frame position.

    Unlike :py:func:`so3_from_euler_xyz`, no shape validation is done here: it is
    called inside traced code on slices of the state vector.

    :param euler_xyz: base orientation, intrinsic X-Y-Z Euler angles.
    :param position: base position in world frame.
    :return: base pose.
    """
    rotation = SO3.from_x_radians(euler_xyz[0]) @ SO3.from_y_radians(euler_xyz[1]) @ SO3.from_z_radians(euler_xyz[2])
    return SE3.from_rotation_and_translation(rotation, position)


def se3_from_base_quaternion(quat_wxyz: jnp.ndarray, position: jnp.ndarray) -> SE3:
    """
    Base pose from a (possibly unnormalized) quaternion and a world-frame position.

    :param quat_wxyz: base orientation, quaternion (w, x, y, z).
    :param position: base position in world frame.
    :return: base pose.
    """
    return SE3.from_rotation_and_translation(SO3(wxyz=quat_wxyz / jnp.linalg.norm(quat_wxyz)), position)
