"""Tests for residual and Jacobian evaluation in trustnewton.utils.jacobian."""

import chex
import jax
import jax.numpy as jnp
import pytest
from absl.testing import parameterized

from trustnewton.utils import (
    JACOBIAN_BACKENDS,
    check_jacobian_backend,
    evaluate_residual,
    finite_difference_jacobian,
    value_and_jacobian,
)


def _coupled(x: jnp.ndarray) -> jnp.ndarray:
    return jnp.array([x[0] ** 2 + x[1], jnp.sin(x[0]) - x[1] ** 3])


class TestEvaluateResidual(chex.TestCase):
    """Test flat residual evaluation."""

    def test_flattens_output(self) -> None:
        """A residual in matrix shape is returned flat."""

        def residual_fn(x: jnp.ndarray) -> jnp.ndarray:
            return x**2 - 1.0

        z = jnp.array([1.0, 2.0, 3.0, 4.0])
        fx = evaluate_residual(residual_fn, z, None, (2, 2))
        chex.assert_shape(fx, (4,))
        chex.assert_trees_all_close(fx, z**2 - 1.0)

    def test_scalar_iterate(self) -> None:
        """A 0-d iterate is passed to the residual as a scalar."""

        def residual_fn(x: jnp.ndarray) -> jnp.ndarray:
            assert x.shape == ()
            return x**2 - 2.0

        fx = evaluate_residual(residual_fn, jnp.array([1.0]), None, ())
        chex.assert_trees_all_close(fx, jnp.array([-1.0]))

    def test_forwards_args(self) -> None:
        """args is passed as the second argument."""

        def residual_fn(x: jnp.ndarray, target: jnp.ndarray) -> jnp.ndarray:
            return x - target

        fx = evaluate_residual(
            residual_fn, jnp.zeros(2), jnp.array([1.0, 2.0]), (2,)
        )
        chex.assert_trees_all_close(fx, jnp.array([-1.0, -2.0]))

    def test_non_square_raises(self) -> None:
        """A residual with a different size is rejected."""

        def residual_fn(x: jnp.ndarray) -> jnp.ndarray:
            return jnp.concatenate([x, x[:1]])

        with pytest.raises(ValueError, match="square"):
            evaluate_residual(residual_fn, jnp.zeros(2), None, (2,))


class TestValueAndJacobian(chex.TestCase, parameterized.TestCase):
    """Test the Jacobian backends against jax.jacfwd."""

    @parameterized.named_parameters(
        ("forward", "forward", 1e-12),
        ("reverse", "reverse", 1e-12),
        ("finite", "finite", 1e-6),
    )
    def test_backends_agree(self, backend: str, atol: float) -> None:
        """Every backend reproduces the analytic Jacobian."""
        z = jnp.array([0.3, -0.7])
        fx, jac = value_and_jacobian(_coupled, z, None, (2,), backend)
        chex.assert_trees_all_close(fx, _coupled(z))
        chex.assert_trees_all_close(
            jac, jax.jacfwd(_coupled)(z), atol=atol, rtol=atol
        )

    def test_callable_backend(self) -> None:
        """A callable backend is reshaped to (n, n)."""

        def jac_fn(x: jnp.ndarray) -> jnp.ndarray:
            return jnp.array(
                [[2.0 * x[0], 1.0], [jnp.cos(x[0]), -3.0 * x[1] ** 2]]
            )

        z = jnp.array([0.3, -0.7])
        _, jac = value_and_jacobian(_coupled, z, None, (2,), jac_fn)
        chex.assert_trees_all_close(jac, jax.jacfwd(_coupled)(z))

    def test_matrix_shaped_iterate(self) -> None:
        """Jacobians of matrix-shaped problems are taken on flat vectors."""

        def residual_fn(x: jnp.ndarray) -> jnp.ndarray:
            return x @ x - jnp.eye(2)

        z = jnp.array([1.0, 0.5, 0.0, 2.0])
        fx, jac = value_and_jacobian(residual_fn, z, None, (2, 2))
        chex.assert_shape(fx, (4,))
        chex.assert_shape(jac, (4, 4))

        def flat_fn(v: jnp.ndarray) -> jnp.ndarray:
            return residual_fn(v.reshape(2, 2)).ravel()

        chex.assert_trees_all_close(jac, jax.jacfwd(flat_fn)(z))

    def test_complex_holomorphic(self) -> None:
        """Complex residuals use the holomorphic derivative."""

        def residual_fn(x: jnp.ndarray) -> jnp.ndarray:
            return x**2 - (1.0 + 1.0j)

        z = jnp.array([1.0 + 0.5j, -0.5 + 2.0j])
        _, jac = value_and_jacobian(residual_fn, z, None, (2,))
        chex.assert_trees_all_close(jac, jnp.diag(2.0 * z))

    @chex.variants(with_jit=True, without_jit=True)
    def test_finite_difference_jit(self) -> None:
        """The finite-difference Jacobian is jittable."""

        def run(z: jnp.ndarray) -> jnp.ndarray:
            return finite_difference_jacobian(_coupled, z, _coupled(z))

        var_run = self.variant(run)
        z = jnp.array([0.3, -0.7])
        chex.assert_trees_all_close(
            var_run(z), jax.jacfwd(_coupled)(z), atol=1e-6, rtol=1e-6
        )


class TestCheckJacobianBackend(chex.TestCase):
    """Test backend validation."""

    def test_known_names(self) -> None:
        """Built-in names and callables are accepted."""
        for backend in JACOBIAN_BACKENDS:
            check_jacobian_backend(backend)
        check_jacobian_backend(jax.jacfwd(_coupled))

    def test_unknown_name_raises(self) -> None:
        """Unknown names raise ValueError."""
        with pytest.raises(ValueError, match="Unknown Jacobian backend"):
            check_jacobian_backend("central")
