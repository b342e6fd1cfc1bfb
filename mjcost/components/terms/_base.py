from __future__ import annotations

import abc
from typing import Generic, TypeVar

import jax
import jax.numpy as jnp
import jax_dataclasses as jdc

from mjcost.config import ConfigSource
from mjcost.exceptions import DimensionMismatchError
from mjcost.typing import ndarray


@jdc.pytree_dataclass
class JaxTerm(abc.ABC):
    r"""Base class for all JAX-based cost terms.

    A cost term is a scalar function of the generalized state :math:`x`, control
    :math:`u`, and time :math:`t`:

    .. math::

        l(x, u, t) \in \mathbb{R}

    The term is an immutable pytree, so it could be passed into ``jax.jit`` and
    ``jax.vmap`` transformed functions. All derivatives are obtained by automatic
    differentiation of :py:meth:`__call__`, which is written once for both plain and
    traced arrays.

    :param state_dim: dimension of the generalized state.
    :param control_dim: dimension of the control.
    """

    state_dim: jdc.Static[int]
    control_dim: jdc.Static[int]

    @abc.abstractmethod
    def __call__(self, x: jnp.ndarray, u: jnp.ndarray, t: jnp.ndarray | float) -> jnp.ndarray:  # pragma: no cover
        """
        Compute the cost value :math:`l(x, u, t)`.

        No shape validation is done here, see :py:meth:`evaluate`.

        :param x: generalized state, of shape (state_dim,).
        :param u: control, of shape (control_dim,).
        :param t: time.
        :return: the scalar cost.
        """
        pass

    def _prepare(self, x: ndarray, u: ndarray) -> tuple[jnp.ndarray, jnp.ndarray]:
        x_jnp = jnp.asarray(x, dtype=jnp.result_type(float))
        u_jnp = jnp.asarray(u, dtype=jnp.result_type(float))
        if x_jnp.shape != (self.state_dim,):
            raise DimensionMismatchError(f"wrong dimension of the state: expected ({self.state_dim},), got {x_jnp.shape}")
        if u_jnp.shape != (self.control_dim,):
            raise DimensionMismatchError(
                f"wrong dimension of the control: expected ({self.control_dim},), got {u_jnp.shape}"
            )
        return x_jnp, u_jnp

    def evaluate(self, x: ndarray, u: ndarray, t: jnp.ndarray | float) -> jnp.ndarray:
        """
        Compute the cost value, validating dimensions of the inputs.

        :param x: generalized state, of shape (state_dim,).
        :param u: control, of shape (control_dim,).
        :param t: time.
        :raises DimensionMismatchError: if state or control has a wrong shape.
        :return: the scalar cost.
        """
        x, u = self._prepare(x, u)
        return self(x, u, t)

    def evaluate_differentiable(
        self, x: ndarray, u: ndarray, t: jnp.ndarray | float
    ) -> tuple[jnp.ndarray, jnp.ndarray, jnp.ndarray]:
        r"""
        Compute the cost value together with its first derivatives.

        Derivatives are computed by forward-mode automatic differentiation:

        .. math::

            \left( l, \; \frac{\partial l}{\partial x}, \; \frac{\partial l}{\partial u} \right)

        :param x: generalized state, of shape (state_dim,).
        :param u: control, of shape (control_dim,).
        :param t: time.
        :raises DimensionMismatchError: if state or control has a wrong shape.
        :return: cost, its gradient w.r.t. state, and its gradient w.r.t. control.
        """
        x, u = self._prepare(x, u)

        def value_with_aux(x_: jnp.ndarray, u_: jnp.ndarray) -> tuple[jnp.ndarray, jnp.ndarray]:
            value = self(x_, u_, t)
            return value, value

        (dx, du), value = jax.jacfwd(value_with_aux, argnums=(0, 1), has_aux=True)(x, u)
        return value, dx, du

    def state_derivative(self, x: ndarray, u: ndarray, t: jnp.ndarray | float) -> jnp.ndarray:
        """Gradient of the cost w.r.t. state, of shape (state_dim,)."""
        x, u = self._prepare(x, u)
        return jax.jacfwd(self.__call__, argnums=0)(x, u, t)

    def control_derivative(self, x: ndarray, u: ndarray, t: jnp.ndarray | float) -> jnp.ndarray:
        """Gradient of the cost w.r.t. control, of shape (control_dim,)."""
        x, u = self._prepare(x, u)
        return jax.jacfwd(self.__call__, argnums=1)(x, u, t)

    def state_second_derivative(self, x: ndarray, u: ndarray, t: jnp.ndarray | float) -> jnp.ndarray:
        """Hessian of the cost w.r.t. state, of shape (state_dim, state_dim)."""
        x, u = self._prepare(x, u)
        return jax.hessian(self.__call__, argnums=0)(x, u, t)

    def control_second_derivative(self, x: ndarray, u: ndarray, t: jnp.ndarray | float) -> jnp.ndarray:
        """Hessian of the cost w.r.t. control, of shape (control_dim, control_dim)."""
        x, u = self._prepare(x, u)
        return jax.hessian(self.__call__, argnums=1)(x, u, t)

    def state_control_derivative(self, x: ndarray, u: ndarray, t: jnp.ndarray | float) -> jnp.ndarray:
        """Mixed second derivative of the cost, of shape (control_dim, state_dim)."""
        x, u = self._prepare(x, u)
        return jax.jacfwd(jax.jacfwd(self.__call__, argnums=1), argnums=0)(x, u, t)


AtomicTermType = TypeVar("AtomicTermType", bound=JaxTerm)


class Term(Generic[AtomicTermType], abc.ABC):
    """High-level interface for cost terms.

    This class provides a Python-friendly interface for creating and manipulating
    cost terms: it validates the parameters and keeps them compiled into an
    immutable JAX-compatible representation, which does the actual computations.

    :param name: The name of the term.
    :param state_dim: dimension of the generalized state.
    :param control_dim: dimension of the control.
    """

    JaxComponentType: type

    _name: str
    _state_dim: int
    _control_dim: int
    _jax_component: AtomicTermType

    def __init__(self, name: str, state_dim: int, control_dim: int):
        if state_dim <= 0:
            raise ValueError(f"state dimension has to be positive, got {state_dim}")
        if control_dim < 0:
            raise ValueError(f"control dimension has to be non-negative, got {control_dim}")

        self._name = name
        self._state_dim = state_dim
        self._control_dim = control_dim

        self._jax_component = self.JaxComponentType(
            **{attr: None for attr in self.JaxComponentType.__dataclass_fields__.keys()}
        )  # type: ignore
        self._jax_component = jdc.replace(self._jax_component, state_dim=state_dim, control_dim=control_dim)

    @property
    def name(self) -> str:
        """
        Get the name of the term.

        :return: The term name.
        """
        return self._name

    @property
    def state_dim(self) -> int:
        return self._state_dim

    @property
    def control_dim(self) -> int:
        return self._control_dim

    @property
    def jax_component(self) -> AtomicTermType:
        """
        Get the JAX implementation of the term.

        :return: The JAX term instance.
        :raises ValueError: If some of the term parameters are not set.
        """
        missing = [
            attr
            for attr in self.JaxComponentType.__dataclass_fields__.keys()
            if getattr(self._jax_component, attr) is None
        ]
        if missing:
            raise ValueError(f"term '{self._name}' is not fully specified, missing: {missing}")
        return self._jax_component

    def evaluate(self, x: ndarray, u: ndarray, t: jnp.ndarray | float = 0.0) -> jnp.ndarray:
        """See :py:meth:`JaxTerm.evaluate`."""
        return self.jax_component.evaluate(x, u, t)

    def evaluate_differentiable(
        self, x: ndarray, u: ndarray, t: jnp.ndarray | float = 0.0
    ) -> tuple[jnp.ndarray, jnp.ndarray, jnp.ndarray]:
        """See :py:meth:`JaxTerm.evaluate_differentiable`."""
        return self.jax_component.evaluate_differentiable(x, u, t)

    def state_derivative(self, x: ndarray, u: ndarray, t: jnp.ndarray | float = 0.0) -> jnp.ndarray:
        return self.jax_component.state_derivative(x, u, t)

    def control_derivative(self, x: ndarray, u: ndarray, t: jnp.ndarray | float = 0.0) -> jnp.ndarray:
        return self.jax_component.control_derivative(x, u, t)

    def state_second_derivative(self, x: ndarray, u: ndarray, t: jnp.ndarray | float = 0.0) -> jnp.ndarray:
        return self.jax_component.state_second_derivative(x, u, t)

    def control_second_derivative(self, x: ndarray, u: ndarray, t: jnp.ndarray | float = 0.0) -> jnp.ndarray:
        return self.jax_component.control_second_derivative(x, u, t)

    def state_control_derivative(self, x: ndarray, u: ndarray, t: jnp.ndarray | float = 0.0) -> jnp.ndarray:
        return self.jax_component.state_control_derivative(x, u, t)

    @abc.abstractmethod
    def clone(self) -> Term[AtomicTermType]:  # pragma: no cover
        """
        Create a fully independent copy of the term.

        :return: the copy, which shares no mutable state with the original.
        """
        pass

    @abc.abstractmethod
    def load_configuration(
        self, source: ConfigSource, term_name: str, verbose: bool = False
    ) -> None:  # pragma: no cover
        """
        Populate parameters of the term from the configuration.

        The term is left untouched if loading fails.

        :param source: mapping, or path to a YAML file.
        :param term_name: name of the section with the term parameters.
        :param verbose: log the parsed values with INFO level.
        :raises ConfigurationError: if the configuration is incomplete or malformed.
        """
        pass
