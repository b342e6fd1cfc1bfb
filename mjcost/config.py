"""Loading cost term parameters from hierarchical key/value configuration files.

A configuration source is either a mapping, or a path to a YAML document. Every
term reads its parameters from a named section; nested sections are addressed
with dotted names. The parameters might be put directly into the section, or into
its ``weights`` sub-section::

    ee_pose:
      weights:
        eeId: 0
        Q_rot: 1.0
        Q_pos: [[1.0, 0.0, 0.0], [0.0, 1.0, 0.0], [0.0, 0.0, 1.0]]
        x_des: [0.5, 0.0, 0.4]
        quat_des: [1.0, 0.0, 0.0, 0.0]

Matrices and vectors are written as nested lists, flat row-major lists, or as a
mapping of entries ``"(i,j)": value`` with an optional ``scaling`` factor. Absent
entries of such a mapping are zero.
"""

from __future__ import annotations

import logging
import math
import os
import re
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any, TypeAlias

import jax.numpy as jnp
import numpy as np
import yaml
from jaxlie import SO3
from pydantic import (
    BaseModel,
    Field,
    FiniteFloat,
    NonNegativeInt,
    ValidationError,
    ValidationInfo,
    field_validator,
    model_validator,
)

from mjcost.configuration import so3_from_euler_xyz, so3_from_quaternion_wxyz, so3_to_euler_xyz
from mjcost.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

ConfigSource: TypeAlias = Mapping[str, Any] | str | os.PathLike

_ENTRY_PATTERN = re.compile(r"^\(\s*(\d+)\s*,\s*(\d+)\s*\)$")


def load_config_source(source: ConfigSource) -> Mapping[str, Any]:
    """
    Read the configuration document.

    :param source: mapping, or path to a YAML file.
    :raises ConfigurationError: if the file could not be read or parsed, or it is not a mapping.
    :return: the configuration document.
    """
    if isinstance(source, Mapping):
        return source

    path = Path(source)
    try:
        with open(path) as f:
            document = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"failed to read configuration file {path}: {e}") from e

    if not isinstance(document, Mapping):
        raise ConfigurationError(f"configuration file {path} does not contain a mapping")
    return document


def get_section(document: Mapping[str, Any], term_name: str) -> Mapping[str, Any]:
    """
    Get parameters of the term from the configuration document.

    Parameters from the ``weights`` sub-section take precedence over the ones
    placed directly into the section.

    :param document: the configuration document.
    :param term_name: name of the section, dotted names address nested sections.
    :raises ConfigurationError: if the section is not found.
    :return: mapping of parameter names to raw values.
    """
    section: Any = document
    for part in term_name.split("."):
        if not isinstance(section, Mapping) or part not in section:
            raise ConfigurationError(f"section '{term_name}' is not found in the configuration")
        section = section[part]
    if not isinstance(section, Mapping):
        raise ConfigurationError(f"section '{term_name}' is not a mapping")

    weights = section.get("weights")
    if isinstance(weights, Mapping):
        return {**section, **weights}
    return section


def parse_matrix(value: Any, shape: tuple[int, ...]) -> np.ndarray:
    """
    Convert a raw configuration value into a matrix or a vector.

    :param value: nested list, flat row-major list, or a mapping of ``"(i,j)"`` entries.
    :param shape: expected shape, either (n,) or (n, m).
    :raises ValueError: if the value has wrong size, or non-numeric or non-finite entries.
    :return: the array of the requested shape.
    """
    if isinstance(value, Mapping):
        matrix = _matrix_from_entries(value, shape)
    else:
        try:
            matrix = np.asarray(value, dtype=np.float64)
        except (TypeError, ValueError) as e:
            raise ValueError(f"expected a numeric array, got {value!r}") from e
        if matrix.size != math.prod(shape):
            raise ValueError(f"expected {math.prod(shape)} entries, got {matrix.size}")
        matrix = matrix.reshape(shape)

    if not np.all(np.isfinite(matrix)):
        raise ValueError("array contains non-finite entries")
    return matrix


def _matrix_from_entries(entries: Mapping[str, Any], shape: tuple[int, ...]) -> np.ndarray:
    rows, cols = shape if len(shape) == 2 else (shape[0], 1)
    matrix = np.zeros((rows, cols))

    for entry, value in entries.items():
        if entry == "scaling":
            continue
        match = _ENTRY_PATTERN.match(str(entry))
        if match is None:
            raise ValueError(f"invalid entry name '{entry}', expected '(i,j)'")
        i, j = int(match.group(1)), int(match.group(2))
        if i >= rows or j >= cols:
            raise ValueError(f"entry ({i},{j}) is out of bounds for shape {shape}")
        try:
            matrix[i, j] = value
        except (TypeError, ValueError) as e:
            raise ValueError(f"entry ({i},{j}) must be a number, got {value!r}") from e

    try:
        scaling = np.float64(entries.get("scaling", 1.0))
    except (TypeError, ValueError) as e:
        raise ValueError(f"scaling must be a number, got {entries['scaling']!r}") from e
    return (scaling * matrix).reshape(shape)


def try_load_quaternion(section: Mapping[str, Any]) -> SO3 | None:
    """
    Attempt to read the reference orientation from the ``quat_des`` field (w, x, y, z).

    :param section: parameters of the term.
    :return: the normalized rotation, or None if the field is absent or malformed.
    """
    if "quat_des" not in section:
        logger.debug("quat_des is not given")
        return None
    try:
        quat = parse_matrix(section["quat_des"], (4,))
        rotation = so3_from_quaternion_wxyz(quat)
    except ValueError as e:
        logger.debug("could not read quaternion orientation: %s", e)
        return None
    logger.debug("read quat_des as %s", quat)
    return rotation


def try_load_euler_xyz(section: Mapping[str, Any]) -> SO3 | None:
    """
    Attempt to read the reference orientation from the ``eulerXyz_des`` field.

    :param section: parameters of the term.
    :return: the rotation, or None if the field is absent or malformed.
    """
    if "eulerXyz_des" not in section:
        logger.debug("eulerXyz_des is not given")
        return None
    try:
        euler_xyz = parse_matrix(section["eulerXyz_des"], (3,))
    except ValueError as e:
        logger.debug("could not read euler angles orientation: %s", e)
        return None
    logger.debug("read eulerXyz_des as %s", euler_xyz)
    return so3_from_euler_xyz(euler_xyz)


ORIENTATION_LOADERS: tuple[Callable[[Mapping[str, Any]], SO3 | None], ...] = (
    try_load_quaternion,
    try_load_euler_xyz,
)


def load_orientation(section: Mapping[str, Any]) -> SO3:
    """
    Read the reference orientation, trying every supported encoding in priority order.

    :param section: parameters of the term.
    :raises ConfigurationError: if no encoding could be read.
    :return: the reference orientation.
    """
    for loader in ORIENTATION_LOADERS:
        rotation = loader(section)
        if rotation is not None:
            return rotation
    raise ConfigurationError("could not find a desired end effector orientation, expected 'quat_des' or 'eulerXyz_des'")


_MATRIX_SHAPES = {"position_weight": (3, 3), "target_pos": (3,)}


class TaskspacePoseConfig(BaseModel):
    """Parameters of a task-space pose term, as read from the configuration.

    Fields are populated by their configuration keys. The reference orientation is
    resolved from ``quat_des`` or ``eulerXyz_des``, in this order, and kept as a unit
    quaternion.
    """

    model_config = {"arbitrary_types_allowed": True, "frozen": True}

    ee_id: NonNegativeInt = Field(alias="eeId")
    """Index of the end effector."""
    rotation_weight: FiniteFloat = Field(alias="Q_rot", ge=0.0)
    """Weight of the orientation error."""
    position_weight: np.ndarray = Field(alias="Q_pos")
    """Weight matrix of the position error, of shape (3, 3)."""
    target_pos: np.ndarray = Field(alias="x_des")
    """Reference position in world frame."""
    target_wxyz: np.ndarray
    """Reference orientation in world frame, as a unit quaternion (w, x, y, z)."""

    @field_validator("ee_id", "rotation_weight", mode="before")
    def reject_booleans(cls, v: Any) -> Any:  # noqa: N805
        if isinstance(v, bool):
            raise ValueError(f"expected a number, got {v!r}")
        return v

    @field_validator("position_weight", "target_pos", mode="before")
    def convert_matrices(cls, v: Any, info: ValidationInfo) -> np.ndarray:  # noqa: N805
        """Convert lists and sparse entries to arrays of the expected shape."""
        return parse_matrix(v, _MATRIX_SHAPES[info.field_name])

    @model_validator(mode="before")
    @classmethod
    def resolve_orientation(cls, data: Any) -> Any:
        if not isinstance(data, Mapping) or "target_wxyz" in data:
            return data
        rotation = load_orientation(data)
        return {**data, "target_wxyz": np.asarray(rotation.wxyz)}

    @property
    def target_rotation(self) -> SO3:
        """Reference orientation in world frame."""
        return SO3(wxyz=jnp.asarray(self.target_wxyz))


def load_taskspace_pose_config(source: ConfigSource, term_name: str, verbose: bool = False) -> TaskspacePoseConfig:
    """
    Read all parameters of a task-space pose term.

    Required fields are ``eeId``, ``Q_rot``, ``Q_pos``, ``x_des``, and one of ``quat_des``
    or ``eulerXyz_des``. If both orientations are given, the quaternion wins.

    :param source: mapping, or path to a YAML file.
    :param term_name: name of the section with term parameters.
    :param verbose: log the parsed values with INFO level instead of DEBUG.
    :raises ConfigurationError: if any required field is missing or malformed.
    :return: parsed parameters.
    """
    level = logging.INFO if verbose else logging.DEBUG
    if not isinstance(source, Mapping):
        logger.log(level, "loading task-space pose term '%s' from file %s", term_name, source)

    section = get_section(load_config_source(source), term_name)
    try:
        config = TaskspacePoseConfig.model_validate(dict(section))
    except ValidationError as e:
        raise ConfigurationError(f"invalid parameters of the term '{term_name}': {e}") from e

    logger.log(level, "read eeId as %d", config.ee_id)
    logger.log(level, "read Q_pos as\n%s", config.position_weight)
    logger.log(level, "read Q_rot as %s", config.rotation_weight)
    logger.log(level, "read x_des as %s", config.target_pos)
    logger.log(level, "resolved orientation as euler xyz %s", np.asarray(so3_to_euler_xyz(config.target_rotation)))
    return config
