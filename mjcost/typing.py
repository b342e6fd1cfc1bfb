"""Typings which are utilized in the mjcost"""

from __future__ import annotations

from enum import Enum
from typing import TypeAlias

import jax.numpy as jnp
import numpy as np

ndarray: TypeAlias = np.ndarray | jnp.ndarray
ArrayOrFloat: TypeAlias = ndarray | float


class BaseType(Enum):
    """Type which describes the mobility of the robot base.

    The base is either rigidly attached to the world, or moves freely in space.
    """

    FIXED = 0
    FLOATING = 1

    @staticmethod
    def from_str(type: str) -> BaseType:
        """Generates base type from string.

        :param type: base type.
        :raises ValueError: base type name is not 'fixed' or 'floating'.
        :return: corresponding enum type.
        """
        match type.lower():
            case "fixed":
                return BaseType.FIXED
            case "floating":
                return BaseType.FLOATING
            case _:
                raise ValueError(f"[BaseType] invalid base type: {type}. " f"Expected {{'fixed', 'floating'}}")

    @staticmethod
    def is_floating(type: BaseType) -> bool:
        """Either given base type carries a base pose in the state or not.

        :param type: base type to be processed.
        :return: True, if base is floating, False otherwise.
        """
        return type == BaseType.FLOATING
