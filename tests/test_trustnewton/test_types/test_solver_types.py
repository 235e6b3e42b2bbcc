"""Tests for PyTree types in trustnewton.types.solver_types."""

import chex
import jax
import jax.numpy as jnp
import pytest
from absl.testing import parameterized

from trustnewton.types import (
    TERMINATION_MODES,
    DoglegCache,
    NonlinearSolution,
    ReturnCode,
    TerminationCondition,
    TrustRegionParams,
    is_successful,
    make_dogleg_cache,
    make_nonlinear_solution,
    make_solve_stats,
    make_termination_condition,
    make_trust_region_params,
    make_trust_region_trace,
    return_code_name,
)


class TestMakeTrustRegionParams(chex.TestCase, parameterized.TestCase):
    """Test the make_trust_region_params factory."""

    def test_defaults(self) -> None:
        """Default thresholds and factors follow the classic choices."""
        params = make_trust_region_params()
        assert isinstance(params, TrustRegionParams)
        chex.assert_trees_all_close(params.max_trust_radius, 0.0)
        chex.assert_trees_all_close(params.initial_trust_radius, 0.0)
        chex.assert_trees_all_close(params.step_threshold, 1e-4)
        chex.assert_trees_all_close(params.shrink_threshold, 0.25)
        chex.assert_trees_all_close(params.expand_threshold, 0.75)
        chex.assert_trees_all_close(params.shrink_factor, 0.25)
        chex.assert_trees_all_close(params.expand_factor, 2.0)
        assert int(params.max_shrink_times) == 32

    def test_leaf_dtypes(self) -> None:
        """Float fields are float64 and the shrink limit is int32."""
        params = make_trust_region_params(max_trust_radius=3.0)
        for leaf in params[:-1]:
            assert leaf.dtype == jnp.float64
            chex.assert_shape(leaf, ())
        assert params.max_shrink_times.dtype == jnp.int32

    @parameterized.named_parameters(
        ("negative_max_radius", {"max_trust_radius": -1.0}),
        ("negative_initial_radius", {"initial_trust_radius": -0.5}),
        ("negative_step_threshold", {"step_threshold": -1e-3}),
        ("step_above_expand", {"step_threshold": 0.9}),
        ("shrink_above_expand", {"shrink_threshold": 0.8}),
        ("shrink_factor_one", {"shrink_factor": 1.0}),
        ("shrink_factor_zero", {"shrink_factor": 0.0}),
        ("expand_factor_one", {"expand_factor": 1.0}),
        ("negative_shrink_times", {"max_shrink_times": -1}),
    )
    def test_invalid_values_raise(self, kwargs: dict) -> None:
        """Out-of-range parameters are rejected."""
        with pytest.raises(ValueError):
            make_trust_region_params(**kwargs)

    def test_pytree_roundtrip_under_jit(self) -> None:
        """Params pass through jit as a PyTree."""
        params = make_trust_region_params(
            max_trust_radius=10.0, initial_trust_radius=1.0
        )
        roundtrip = jax.jit(lambda p: p)(params)
        assert isinstance(roundtrip, TrustRegionParams)
        chex.assert_trees_all_close(roundtrip, params)

    def test_traced_values_skip_validation(self) -> None:
        """The factory can be called with traced scalars."""

        def build(radius: jnp.ndarray) -> TrustRegionParams:
            return make_trust_region_params(max_trust_radius=radius)

        params = jax.jit(build)(jnp.array(4.0))
        chex.assert_trees_all_close(params.max_trust_radius, 4.0)


class TestMakeTerminationCondition(chex.TestCase, parameterized.TestCase):
    """Test the make_termination_condition factory."""

    def test_default_mode(self) -> None:
        """The default mode is abs_norm with unset tolerances."""
        condition = make_termination_condition()
        assert condition.mode == "abs_norm"
        assert condition.abstol is None
        assert condition.reltol is None

    @parameterized.named_parameters(
        *[(mode, mode) for mode in TERMINATION_MODES]
    )
    def test_known_modes(self, mode: str) -> None:
        """Every built-in mode is accepted."""
        condition = make_termination_condition(mode, abstol=1e-8)
        assert condition.mode == mode
        chex.assert_trees_all_close(condition.abstol, 1e-8)

    def test_unknown_mode_raises(self) -> None:
        """An unknown mode name raises ValueError."""
        with pytest.raises(ValueError, match="Unknown termination mode"):
            make_termination_condition("residual")

    def test_negative_tolerance_raises(self) -> None:
        """Negative tolerances raise ValueError."""
        with pytest.raises(ValueError):
            make_termination_condition(abstol=-1.0)
        with pytest.raises(ValueError):
            make_termination_condition(reltol=-1.0)

    def test_callable_mode(self) -> None:
        """A callable is stored as the mode."""

        def small_residual(residual, x, x_prev):
            return jnp.linalg.norm(residual) < 1e-6

        condition = make_termination_condition(small_residual)
        assert condition.mode is small_residual

    def test_mode_is_static(self) -> None:
        """The mode is aux data; only tolerances are leaves."""
        condition = make_termination_condition(
            "norm", abstol=1e-6, reltol=1e-3
        )
        leaves, treedef = jax.tree_util.tree_flatten(condition)
        assert len(leaves) == 2
        rebuilt = jax.tree_util.tree_unflatten(treedef, leaves)
        assert isinstance(rebuilt, TerminationCondition)
        assert rebuilt.mode == "norm"
        unset_leaves = jax.tree_util.tree_leaves(make_termination_condition())
        assert len(unset_leaves) == 0


class TestSmallFactories(chex.TestCase):
    """Test the cache, stats, trace and solution factories."""

    def test_dogleg_cache(self) -> None:
        """The cache starts at zero with no branch taken."""
        cache = make_dogleg_cache(3)
        assert isinstance(cache, DoglegCache)
        chex.assert_trees_all_close(cache.newton_step, jnp.zeros(3))
        chex.assert_trees_all_close(cache.steepest_descent, jnp.zeros(3))
        assert int(cache.branch) == -1

    def test_dogleg_cache_complex(self) -> None:
        """The cache follows the requested dtype."""
        cache = make_dogleg_cache(2, jnp.complex128)
        assert cache.newton_minus_descent.dtype == jnp.complex128

    def test_solve_stats(self) -> None:
        """Stats are int32 counters."""
        stats = make_solve_stats(nf=3, njacs=2)
        assert int(stats.nf) == 3
        assert int(stats.njacs) == 2
        assert int(stats.nsolve) == 0
        assert stats.nsteps.dtype == jnp.int32

    def test_trace_fill_values(self) -> None:
        """An empty trace is filled with NaN, -1 and False."""
        trace = make_trust_region_trace(4)
        chex.assert_shape(trace.merit, (4,))
        assert bool(jnp.all(jnp.isnan(trace.radius)))
        assert bool(jnp.all(trace.branch == -1))
        assert bool(jnp.all(trace.shrink_counter == -1))
        assert not bool(jnp.any(trace.accepted))

    def test_nonlinear_solution(self) -> None:
        """A solution defaults to zero stats and the DEFAULT code."""
        solution = make_nonlinear_solution(jnp.ones(2), jnp.zeros(2))
        assert isinstance(solution, NonlinearSolution)
        assert int(solution.retcode) == ReturnCode.DEFAULT
        assert int(solution.stats.nf) == 0
        assert not bool(is_successful(solution))

    def test_is_successful(self) -> None:
        """Only CONVERGED counts as success."""
        converged = make_nonlinear_solution(
            jnp.ones(2), jnp.zeros(2), retcode=int(ReturnCode.CONVERGED)
        )
        failed = make_nonlinear_solution(
            jnp.ones(2),
            jnp.zeros(2),
            retcode=int(ReturnCode.CONVERGENCE_FAILURE),
        )
        assert bool(is_successful(converged))
        assert not bool(is_successful(failed))


class TestReturnCode(chex.TestCase):
    """Test return code values and names."""

    def test_values(self) -> None:
        """Return codes have stable integer values."""
        assert int(ReturnCode.DEFAULT) == 0
        assert int(ReturnCode.CONVERGED) == 1
        assert int(ReturnCode.MAX_ITERS) == 2
        assert int(ReturnCode.CONVERGENCE_FAILURE) == 3

    def test_names(self) -> None:
        """Integer and array codes map to member names."""
        assert return_code_name(1) == "CONVERGED"
        assert return_code_name(jnp.array(3, dtype=jnp.int32)) == (
            "CONVERGENCE_FAILURE"
        )
