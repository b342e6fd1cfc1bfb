import unittest

import jax.numpy as jnp
import jax_dataclasses as jdc
import numpy as np

from mjcost.components.terms import JaxTerm, Term
from mjcost.exceptions import DimensionMismatchError


@jdc.pytree_dataclass
class DummyJaxTerm(JaxTerm):
    weight: jnp.ndarray

    def __call__(self, x: jnp.ndarray, u: jnp.ndarray, t: jnp.ndarray | float) -> jnp.ndarray:
        """Immitating quadratic state and control cost with a state-control coupling"""
        return self.weight * (x @ x + u @ u + x[0] * u[0]) + t


class DummyTerm(Term[DummyJaxTerm]):
    JaxComponentType: type = DummyJaxTerm

    def set_weight(self, weight: float):
        self._jax_component = jdc.replace(self._jax_component, weight=jnp.array(weight))

    def clone(self) -> "DummyTerm":
        term = DummyTerm(self.name, self.state_dim, self.control_dim)
        term._jax_component = self._jax_component
        return term

    def load_configuration(self, source, term_name, verbose=False):
        self.set_weight(source[term_name]["weight"])


class TestTerm(unittest.TestCase):
    def setUp(self):
        self.term = DummyTerm("dummy_term", state_dim=2, control_dim=1)

    def test_dimensions(self):
        self.assertEqual(self.term.name, "dummy_term")
        self.assertEqual(self.term.state_dim, 2)
        self.assertEqual(self.term.control_dim, 1)

        with self.assertRaises(ValueError):
            _ = DummyTerm("no_state", state_dim=0, control_dim=1)
        with self.assertRaises(ValueError):
            _ = DummyTerm("negative_control", state_dim=2, control_dim=-1)

    def test_unspecified_component(self):
        with self.assertRaises(ValueError):
            _ = self.term.jax_component

        self.term.set_weight(2.0)
        self.assertEqual(self.term.jax_component.state_dim, 2)
        self.assertEqual(self.term.jax_component.control_dim, 1)

    def test_evaluate(self):
        self.term.load_configuration({"dummy_term": {"weight": 2.0}}, "dummy_term")
        x, u = jnp.array([1.0, 2.0]), jnp.array([3.0])

        self.assertAlmostEqual(float(self.term.evaluate(x, u, 1.0)), 2.0 * (5.0 + 9.0 + 3.0) + 1.0)
        # Lists and integer arrays are accepted as well
        self.assertAlmostEqual(float(self.term.evaluate([1, 2], [3], 1.0)), 35.0)

        with self.assertRaises(DimensionMismatchError):
            self.term.evaluate(jnp.ones(3), u, 0.0)
        with self.assertRaises(DimensionMismatchError):
            self.term.evaluate(x, jnp.ones((1, 1)), 0.0)

    def test_derivatives(self):
        self.term.set_weight(2.0)
        x, u = jnp.array([1.0, 2.0]), jnp.array([3.0])

        cost, dx, du = self.term.evaluate_differentiable(x, u, 0.0)
        self.assertAlmostEqual(float(cost), 34.0, places=5)
        np.testing.assert_array_almost_equal(dx, jnp.array([2.0 * (2 * 1.0 + 3.0), 2.0 * 2 * 2.0]))
        np.testing.assert_array_almost_equal(du, jnp.array([2.0 * (2 * 3.0 + 1.0)]))

        np.testing.assert_array_almost_equal(self.term.state_derivative(x, u), dx)
        np.testing.assert_array_almost_equal(self.term.control_derivative(x, u), du)
        np.testing.assert_array_almost_equal(self.term.state_second_derivative(x, u), 4.0 * jnp.eye(2))
        np.testing.assert_array_almost_equal(self.term.control_second_derivative(x, u), jnp.array([[4.0]]))
        np.testing.assert_array_almost_equal(self.term.state_control_derivative(x, u), jnp.array([[2.0, 0.0]]))

        with self.assertRaises(DimensionMismatchError):
            self.term.evaluate_differentiable(jnp.ones(1), u, 0.0)
