from ._lie import (
    se3_from_base_euler_xyz,
    se3_from_base_quaternion,
    so3_from_euler_xyz,
    so3_from_quaternion_wxyz,
    so3_to_euler_xyz,
)
from ._model import get_obj_pos, get_obj_rotation, update

__all__ = [
    "get_obj_pos",
    "get_obj_rotation",
    "se3_from_base_euler_xyz",
    "se3_from_base_quaternion",
    "so3_from_euler_xyz",
    "so3_from_quaternion_wxyz",
    "so3_to_euler_xyz",
    "update",
]
