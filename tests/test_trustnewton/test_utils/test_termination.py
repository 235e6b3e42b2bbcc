"""Tests for termination conditions in trustnewton.utils.termination."""

import chex
import jax.numpy as jnp
from absl.testing import parameterized

from trustnewton.types import make_termination_condition
from trustnewton.utils import (
    check_termination,
    default_tolerance,
    resolve_termination,
)


def _check(mode, residual, x, x_prev, abstol=0.0, reltol=0.0) -> bool:
    condition = resolve_termination(
        make_termination_condition(mode, abstol=abstol, reltol=reltol),
        jnp.float64,
    )
    return bool(
        check_termination(
            condition, jnp.array(residual), jnp.array(x), jnp.array(x_prev)
        )
    )


class TestDefaultTolerance(chex.TestCase):
    """Test default tolerances."""

    def test_float64(self) -> None:
        """The float64 default is eps ** (4/5)."""
        expected = float(jnp.finfo(jnp.float64).eps) ** 0.8
        chex.assert_trees_all_close(default_tolerance(jnp.float64), expected)

    def test_complex_uses_real_eps(self) -> None:
        """complex128 shares the float64 default."""
        assert default_tolerance(jnp.complex128) == default_tolerance(
            jnp.float64
        )

    def test_float32_is_looser(self) -> None:
        """Lower precision gives a larger default."""
        assert default_tolerance(jnp.float32) > default_tolerance(
            jnp.float64
        )


class TestResolveTermination(chex.TestCase):
    """Test filling of unset tolerances."""

    def test_fills_defaults(self) -> None:
        """None tolerances become the dtype default."""
        condition = resolve_termination(
            make_termination_condition(), jnp.float64
        )
        chex.assert_trees_all_close(
            condition.abstol, default_tolerance(jnp.float64)
        )
        chex.assert_trees_all_close(
            condition.reltol, default_tolerance(jnp.float64)
        )
        assert condition.mode == "abs_norm"

    def test_keeps_explicit_values(self) -> None:
        """Explicit tolerances are kept and cast to the real dtype."""
        condition = resolve_termination(
            make_termination_condition("rel", abstol=1e-3, reltol=1e-2),
            jnp.complex128,
        )
        chex.assert_trees_all_close(condition.abstol, 1e-3)
        chex.assert_trees_all_close(condition.reltol, 1e-2)
        assert condition.abstol.dtype == jnp.float64


class TestCheckTermination(chex.TestCase, parameterized.TestCase):
    """Test every built-in termination mode."""

    @parameterized.named_parameters(
        ("abs_met", "abs", [1e-3, -2e-3], 3e-3, 0.0, True),
        ("abs_unmet", "abs", [1e-3, -2e-3], 1e-3, 0.0, False),
        ("abs_norm_met", "abs_norm", [3e-4, 4e-4], 6e-4, 0.0, True),
        ("abs_norm_unmet", "abs_norm", [3e-4, 4e-4], 4e-4, 0.0, False),
        ("rel_met", "rel", [1e-3, 1e-3], 0.0, 1e-2, True),
        ("rel_unmet", "rel", [1e-3, 1.0], 0.0, 1e-2, False),
        ("rel_norm_met", "rel_norm", [1e-4, 0.0], 0.0, 1e-3, True),
        ("norm_via_abs", "norm", [1e-9, 0.0], 1e-8, 0.0, True),
        ("norm_via_rel", "norm", [1e-4, 0.0], 0.0, 1e-3, True),
        ("norm_unmet", "norm", [1.0, 0.0], 1e-8, 1e-3, False),
    )
    def test_residual_modes(
        self,
        mode: str,
        residual: list,
        abstol: float,
        reltol: float,
        expected: bool,
    ) -> None:
        """Residual-based modes compare F against the tolerances."""
        x = [1.0, 1.0]
        assert _check(mode, residual, x, x, abstol, reltol) == expected

    def test_step_mode(self) -> None:
        """The step mode compares consecutive accepted points."""
        assert _check("step", [1.0], [1.0], [1.0 + 1e-10], abstol=1e-8)
        assert not _check("step", [1.0], [1.0], [1.1], abstol=1e-8)
        assert _check("step", [1.0], [100.0], [100.05], reltol=1e-3)

    def test_callable_mode(self) -> None:
        """A callable receives (residual, x, x_prev)."""
        calls = []

        def first_component_small(residual, x, x_prev):
            calls.append((residual.shape, x.shape, x_prev.shape))
            return jnp.abs(residual[0]) < 1e-6

        assert _check(first_component_small, [0.0, 5.0], [1.0, 1.0], [0.0, 0.0])
        assert not _check(
            first_component_small, [1.0, 0.0], [1.0, 1.0], [0.0, 0.0]
        )
        assert calls[0] == ((2,), (2,), (2,))
