"""Trust-region Newton iteration for square nonlinear systems.

Extended Summary
----------------
Solves F(x) = 0 for F: ℝⁿ → ℝⁿ (or ℂⁿ → ℂⁿ) by minimizing the merit
function f(x) = ‖F(x)‖² / 2. Each iteration builds the Gauss-Newton
model of f at the last accepted point xₒ,

    m(δ) = f(xₒ) + Re⟨δ, g⟩ + Re⟨δ, H δ⟩ / 2,   g = Jᴴ F,   H = Jᴴ J,

takes the dogleg step δ inside the trust radius Δ, and compares the
actual change in f with the change predicted by the model. The ratio
decides whether the trial point is accepted and how Δ is updated.

Routine Listings
----------------
trust_region_init : function
    Evaluate the starting point and derive the initial radii.
trust_region_step : function
    Perform one trust-region iteration.
trust_region_solve : function
    Iterate to convergence and return a NonlinearSolution.
trust_region_history : function
    Like ``trust_region_solve``, also returning per-iteration diagnostics.

Notes
-----
Per iteration, with r the reduction ratio:

1. r < η2 shrinks the radius, Δ ← t1 Δ, and increments the consecutive
   shrink counter. Any other ratio resets the counter.
2. A counter above ``max_shrink_times`` stops the solve with
   ``ReturnCode.CONVERGENCE_FAILURE``.
3. r > η1 accepts the trial point and resets the counter.
4. The termination condition is checked at an accepted point only.
5. If the point is accepted and the solve continues, the Jacobian is
   re-evaluated there, and the radius grows, Δ ← min(t2 Δ, Δmax), when
   r > η3 and the step reached the boundary, ‖δ‖ ≈ Δ.

A model that does not predict a decrease gives r = 0, which is treated
as a failed step. At a root the model predicts nothing measurable; a
trial there that does not increase f is accepted with r = 1.

The loop runs inside ``jax.lax.while_loop`` under ``jax.jit``. Residual
function, Jacobian backend, linear solver and ``max_iters`` are static
arguments; a new residual function triggers a new compilation.

References
----------
.. [1] Nocedal & Wright, "Numerical Optimization", 2nd ed., Chapter 4
.. [2] Moré, Garbow & Hillstrom, "User Guide for MINPACK-1" (1980)
"""

import logging
from functools import partial

import jax
import jax.numpy as jnp
from beartype import beartype
from beartype.typing import Any, Callable, Optional, Tuple, Union
from jaxtyping import Array, Bool, Float, Inexact, Int, jaxtyped

from trustnewton.types import (
    DoglegCache,
    NonlinearSolution,
    ReturnCode,
    SolveStats,
    TerminationCondition,
    TrustRegionParams,
    TrustRegionState,
    TrustRegionTrace,
    make_dogleg_cache,
    make_nonlinear_solution,
    make_solve_stats,
    make_termination_condition,
    make_trust_region_params,
    make_trust_region_trace,
    return_code_name,
)
from trustnewton.utils import (
    approx_equal,
    check_jacobian_backend,
    check_linear_solver,
    check_termination,
    evaluate_residual,
    flatten_vector,
    merit_value,
    real_dot,
    real_dtype,
    resolve_termination,
    restructure_vector,
    value_and_jacobian,
    vector_norm,
)

from .dogleg import dogleg_step

logger: logging.Logger = logging.getLogger(__name__)


# =============================================================================
# Input resolution
# =============================================================================


def _resolve_params(
    params: Optional[TrustRegionParams], dtype: Any
) -> TrustRegionParams:
    """Default ``params`` and cast its float fields to the real dtype."""
    if params is None:
        params = make_trust_region_params()
    float_dtype: Any = real_dtype(dtype)
    return TrustRegionParams(
        *[jnp.asarray(value, dtype=float_dtype) for value in params[:-1]],
        jnp.asarray(params.max_shrink_times, dtype=jnp.int32),
    )


def _resolve_condition(
    termination: Optional[TerminationCondition], dtype: Any
) -> TerminationCondition:
    if termination is None:
        termination = make_termination_condition()
    return resolve_termination(termination, dtype)


def _validate_max_iters(max_iters: int) -> None:
    if max_iters < 1:
        raise ValueError(f"max_iters must be >= 1, got {max_iters}")


def _prepare_inputs(
    x0: Any,
    params: Optional[TrustRegionParams],
    termination: Optional[TerminationCondition],
    max_iters: int,
    jacobian: Union[str, Callable[..., Any]],
    linear_solver: Union[str, Callable[..., Any]],
) -> Tuple[Inexact[Array, " ..."], TrustRegionParams, TerminationCondition]:
    """Validate configuration and cast everything to the iterate's dtype.

    Raises
    ------
    ValueError
        If ``max_iters`` is below 1, or the Jacobian backend or linear
        solver is unknown.
    """
    _validate_max_iters(max_iters)
    check_jacobian_backend(jacobian)
    check_linear_solver(linear_solver)
    flat: Inexact[Array, " n"]
    shape: Tuple[int, ...]
    flat, shape = flatten_vector(x0)
    return (
        restructure_vector(flat, shape),
        _resolve_params(params, flat.dtype),
        _resolve_condition(termination, flat.dtype),
    )


def _residual_shape(
    residual_fn: Callable[..., Any], x0: Inexact[Array, " ..."], args: Any
) -> Tuple[int, ...]:
    """Output shape of ``residual_fn`` without evaluating it."""

    def apply(z: Inexact[Array, " ..."]) -> Any:
        if args is None:
            return residual_fn(z)
        return residual_fn(z, args)

    return tuple(jax.eval_shape(apply, x0).shape)


def _starts_converged(
    termination: TerminationCondition,
    residual: Inexact[Array, " n"],
    x: Inexact[Array, " n"],
) -> Bool[Array, " "]:
    """Check the starting point against residual-based conditions.

    Step-based and user conditions need a previous iterate and are only
    checked after the first accepted step.
    """
    if callable(termination.mode) or termination.mode == "step":
        return jnp.asarray(False)
    return check_termination(termination, residual, x, x)


# =============================================================================
# Logging
# =============================================================================


def _log_iteration(
    iteration: Any, merit: Any, radius: Any, ratio: Any, accepted: Any
) -> None:
    logger.debug(
        "iteration %d: merit=%.6e radius=%.6e ratio=%.4f accepted=%s",
        int(iteration),
        float(merit),
        float(radius),
        float(ratio),
        bool(accepted),
    )


def _log_summary(retcode: Any, iterations: Any, residual_norm: Any) -> None:
    code: int = int(retcode)
    level: int = (
        logging.INFO if code == int(ReturnCode.CONVERGED) else logging.WARNING
    )
    logger.log(
        level,
        "trust-region solve stopped with %s after %d iterations, "
        "||F|| = %.3e",
        return_code_name(code),
        int(iterations),
        float(residual_norm),
    )


# =============================================================================
# Initialization and single step
# =============================================================================


@jaxtyped(typechecker=beartype)
def trust_region_init(
    residual_fn: Callable[..., Any],
    x0: Any,
    args: Any = None,
    params: Optional[TrustRegionParams] = None,
    termination: Optional[TerminationCondition] = None,
    jacobian: Union[str, Callable[..., Any]] = "forward",
) -> TrustRegionState:
    """Evaluate the starting point of a trust-region solve.

    Parameters
    ----------
    residual_fn : Callable
        ``residual_fn(x)`` or ``residual_fn(x, args)`` returning F(x)
        with as many entries as ``x``.
    x0 : array_like
        Initial guess of any shape. It is copied, never modified.
    args : Any, optional
        Extra PyTree argument forwarded to ``residual_fn``.
    params : Optional[TrustRegionParams], optional
        Trust-region parameters. Default is
        ``make_trust_region_params()``.
    termination : Optional[TerminationCondition], optional
        Termination condition. Default is ``"abs_norm"`` with tolerance
        eps ** (4/5).
    jacobian : Union[str, Callable], optional
        Jacobian backend. Default is ``"forward"``.

    Returns
    -------
    state : TrustRegionState
        State at xₒ = x0 with zero iterations. ``done`` is already True
        with ``ReturnCode.CONVERGED`` if x0 satisfies a residual-based
        termination condition.

    Notes
    -----
    A zero ``max_trust_radius`` becomes max(‖F(x0)‖, max(x0) - min(x0)),
    floored at machine epsilon,
    and a zero ``initial_trust_radius`` becomes Δmax / 11. The initial
    radius is clipped to Δmax.
    """
    x: Inexact[Array, " n"]
    shape: Tuple[int, ...]
    x, shape = flatten_vector(x0)
    float_dtype: Any = real_dtype(x.dtype)
    params = _resolve_params(params, x.dtype)
    termination = _resolve_condition(termination, x.dtype)

    fx: Inexact[Array, " n"]
    jac: Inexact[Array, " n n"]
    fx, jac = value_and_jacobian(residual_fn, x, args, shape, jacobian)
    jac_h: Inexact[Array, " n n"] = jac.conj().T
    merit: Float[Array, " "] = merit_value(fx)

    real_x: Float[Array, " n"] = jnp.real(x)
    spread: Float[Array, " "] = jnp.max(real_x) - jnp.min(real_x)
    max_radius: Float[Array, " "] = jnp.where(
        params.max_trust_radius > 0.0,
        params.max_trust_radius,
        jnp.maximum(
            jnp.maximum(vector_norm(fx), spread), jnp.finfo(float_dtype).eps
        ),
    ).astype(float_dtype)
    radius: Float[Array, " "] = jnp.where(
        params.initial_trust_radius > 0.0,
        params.initial_trust_radius,
        max_radius / 11.0,
    )
    radius = jnp.minimum(radius, max_radius).astype(float_dtype)

    converged: Bool[Array, " "] = _starts_converged(termination, fx, x)
    retcode: Int[Array, " "] = jnp.where(
        converged, int(ReturnCode.CONVERGED), int(ReturnCode.DEFAULT)
    ).astype(jnp.int32)
    zero: Float[Array, " "] = jnp.zeros((), dtype=float_dtype)
    return TrustRegionState(
        x=x,
        residual=fx,
        x_accepted=x,
        residual_accepted=fx,
        jacobian=jac,
        hessian=jac_h @ jac,
        gradient=jac_h @ fx,
        merit=merit,
        radius=radius,
        max_radius=max_radius,
        shrink_counter=jnp.asarray(0, dtype=jnp.int32),
        iteration=jnp.asarray(0, dtype=jnp.int32),
        retcode=retcode,
        done=converged,
        trial_merit=merit,
        ratio=zero,
        accepted=jnp.asarray(False),
        step_norm=zero,
        cache=make_dogleg_cache(x.shape[0], x.dtype),
        stats=make_solve_stats(nf=1, njacs=1),
    )


@jaxtyped(typechecker=beartype)
def trust_region_step(
    state: TrustRegionState,
    residual_fn: Callable[..., Any],
    args: Any = None,
    params: Optional[TrustRegionParams] = None,
    termination: Optional[TerminationCondition] = None,
    shape: Optional[Tuple[int, ...]] = None,
    jacobian: Union[str, Callable[..., Any]] = "forward",
    linear_solver: Union[str, Callable[..., Any]] = "dense",
    verbose: bool = False,
) -> TrustRegionState:
    """Perform one trust-region iteration.

    Implementation Logic
    --------------------
    1. **Dogleg step**: δ from the model at the accepted point, trial
       point x = xₒ + δ and its residual F(x).
    2. **Reduction ratio**: r = (f(x) - f(xₒ)) / (Re⟨δ, g⟩ + Re⟨δ, Hδ⟩/2),
       or 0 when the denominator is not negative or r is not finite. A
       stalled step at a root (f = 0, or a Newton step below the
       resolution of xₒ and a trial that does not increase f) gets r = 1, so the
       termination condition is evaluated there.
    3. **Shrink**: Δ ← t1 Δ if r < η2, counting consecutive shrinks. A
       count above ``max_shrink_times`` fails the solve.
    4. **Accept**: if r > η1, x becomes the candidate accepted point and
       the termination condition is checked there.
    5. **Commit**: an accepted, non-terminal point replaces xₒ, the
       Jacobian is re-evaluated (under ``jax.lax.cond``) and Δ may grow.

    Parameters
    ----------
    state : TrustRegionState
        Current state, e.g. from :func:`trust_region_init`. Stepping a
        state whose ``done`` flag is set is the caller's responsibility.
    residual_fn : Callable
        Residual function F.
    args : Any, optional
        Extra argument forwarded to ``residual_fn``.
    params : Optional[TrustRegionParams], optional
        Parameters. Only thresholds, factors and ``max_shrink_times`` are
        read; the radii live in the state.
    termination : Optional[TerminationCondition], optional
        Termination condition.
    shape : Optional[Tuple[int, ...]], optional
        Shape in which ``residual_fn`` expects its argument. Default is
        the flat shape of ``state.x``.
    jacobian : Union[str, Callable], optional
        Jacobian backend. Default is ``"forward"``.
    linear_solver : Union[str, Callable], optional
        Newton-direction solver. Default is ``"dense"``.
    verbose : bool, optional
        Log one DEBUG record for this iteration. Default is False.

    Returns
    -------
    new_state : TrustRegionState
        Updated state. ``x`` and ``residual`` hold the trial point,
        ``x_accepted`` and ``residual_accepted`` the accepted one.
    """
    x_accepted: Inexact[Array, " n"] = state.x_accepted
    params = _resolve_params(params, x_accepted.dtype)
    termination = _resolve_condition(termination, x_accepted.dtype)
    if shape is None:
        shape = tuple(x_accepted.shape)

    step: Inexact[Array, " n"]
    cache: DoglegCache
    step, cache = dogleg_step(
        state.jacobian,
        state.residual_accepted,
        state.gradient,
        state.radius,
        linear_solver,
    )
    x: Inexact[Array, " n"] = x_accepted + step
    fx: Inexact[Array, " n"] = evaluate_residual(residual_fn, x, args, shape)
    trial_merit: Float[Array, " "] = merit_value(fx)
    step_norm: Float[Array, " "] = vector_norm(step)

    model_change: Float[Array, " "] = real_dot(
        step, state.gradient
    ) + 0.5 * real_dot(step, state.hessian @ step)
    predicts_decrease: Bool[Array, " "] = model_change < 0.0
    raw_ratio: Float[Array, " "] = (trial_merit - state.merit) / jnp.where(
        predicts_decrease, model_change, -1.0
    )
    ratio: Float[Array, " "] = jnp.where(
        predicts_decrease & jnp.isfinite(raw_ratio), raw_ratio, 0.0
    )
    # A Newton step below the resolution of xₒ cannot reduce f further
    resolution: Float[Array, " "] = jnp.finfo(state.radius.dtype).eps * (
        jnp.maximum(vector_norm(x_accepted), 1.0)
    )
    newton_norm: Float[Array, " "] = vector_norm(cache.newton_step)
    stalled: Bool[Array, " "] = (trial_merit <= state.merit) & (
        (state.merit == 0.0)
        | ((newton_norm > 0.0) & (newton_norm <= resolution))
    )
    ratio = jnp.where(stalled, 1.0, ratio).astype(state.radius.dtype)

    shrink: Bool[Array, " "] = ratio < params.shrink_threshold
    radius: Float[Array, " "] = jnp.where(
        shrink, params.shrink_factor * state.radius, state.radius
    )
    shrink_counter: Int[Array, " "] = jnp.where(
        shrink, state.shrink_counter + 1, 0
    ).astype(jnp.int32)
    failed: Bool[Array, " "] = shrink_counter > params.max_shrink_times

    accepted: Bool[Array, " "] = (ratio > params.step_threshold) & ~failed
    converged: Bool[Array, " "] = accepted & check_termination(
        termination, fx, x, x_accepted
    )
    commit: Bool[Array, " "] = accepted & ~converged
    shrink_counter = jnp.where(accepted, 0, shrink_counter).astype(jnp.int32)

    def _commit_point() -> Tuple[Inexact[Array, "..."], ...]:
        fx_new: Inexact[Array, " n"]
        jac_new: Inexact[Array, " n n"]
        fx_new, jac_new = value_and_jacobian(
            residual_fn, x, args, shape, jacobian
        )
        jac_h: Inexact[Array, " n n"] = jac_new.conj().T
        return x, fx_new, jac_new, jac_h @ jac_new, jac_h @ fx_new

    def _keep_point() -> Tuple[Inexact[Array, "..."], ...]:
        return (
            x_accepted,
            state.residual_accepted,
            state.jacobian,
            state.hessian,
            state.gradient,
        )

    new_x_accepted, new_residual_accepted, new_jac, new_hessian, new_gradient = (
        jax.lax.cond(commit, _commit_point, _keep_point)
    )

    # Growth only on a committed step that reached the boundary
    grow: Bool[Array, " "] = (
        commit
        & (ratio > params.expand_threshold)
        & approx_equal(step_norm, state.radius)
    )
    radius = jnp.where(
        grow,
        jnp.minimum(params.expand_factor * radius, state.max_radius),
        radius,
    )

    retcode: Int[Array, " "] = jnp.where(
        converged,
        int(ReturnCode.CONVERGED),
        jnp.where(failed, int(ReturnCode.CONVERGENCE_FAILURE), state.retcode),
    ).astype(jnp.int32)
    commit_count: Int[Array, " "] = commit.astype(jnp.int32)
    stats: SolveStats = SolveStats(
        nf=state.stats.nf + 1 + commit_count,
        njacs=state.stats.njacs + commit_count,
        nsolve=state.stats.nsolve + 1,
        nsteps=state.stats.nsteps + 1,
    )
    iteration: Int[Array, " "] = state.iteration + 1

    if verbose:
        jax.debug.callback(
            _log_iteration, iteration, trial_merit, radius, ratio, accepted
        )

    return TrustRegionState(
        x=x,
        residual=fx,
        x_accepted=new_x_accepted,
        residual_accepted=new_residual_accepted,
        jacobian=new_jac,
        hessian=new_hessian,
        gradient=new_gradient,
        merit=jnp.where(commit, trial_merit, state.merit),
        radius=radius,
        max_radius=state.max_radius,
        shrink_counter=shrink_counter,
        iteration=iteration,
        retcode=retcode,
        done=converged | failed,
        trial_merit=trial_merit,
        ratio=ratio,
        accepted=accepted,
        step_norm=step_norm,
        cache=cache,
        stats=stats,
    )


# =============================================================================
# Solve loop
# =============================================================================


def _record_iteration(
    trace: TrustRegionTrace, index: Int[Array, " "], state: TrustRegionState
) -> TrustRegionTrace:
    return TrustRegionTrace(
        merit=trace.merit.at[index].set(state.trial_merit),
        radius=trace.radius.at[index].set(state.radius),
        ratio=trace.ratio.at[index].set(state.ratio),
        accepted=trace.accepted.at[index].set(state.accepted),
        shrink_counter=trace.shrink_counter.at[index].set(
            state.shrink_counter
        ),
        step_norm=trace.step_norm.at[index].set(state.step_norm),
        branch=trace.branch.at[index].set(state.cache.branch),
    )


def _finalize(state: TrustRegionState) -> TrustRegionState:
    """Mark an unfinished state as MAX_ITERS at its accepted point."""
    exhausted: Bool[Array, " "] = ~state.done
    return state._replace(
        x=jnp.where(exhausted, state.x_accepted, state.x),
        residual=jnp.where(
            exhausted, state.residual_accepted, state.residual
        ),
        retcode=jnp.where(
            exhausted, int(ReturnCode.MAX_ITERS), state.retcode
        ).astype(jnp.int32),
        done=jnp.asarray(True),
    )


@partial(
    jax.jit,
    static_argnames=(
        "residual_fn",
        "max_iters",
        "jacobian",
        "linear_solver",
        "record",
        "verbose",
    ),
)
def _trust_region_loop(
    residual_fn: Callable[..., Any],
    x0: Inexact[Array, " ..."],
    args: Any,
    params: TrustRegionParams,
    termination: TerminationCondition,
    max_iters: int,
    jacobian: Union[str, Callable[..., Any]],
    linear_solver: Union[str, Callable[..., Any]],
    record: bool,
    verbose: bool,
) -> Tuple[TrustRegionState, TrustRegionTrace]:
    """Run the solve loop from ``x0`` with resolved inputs."""
    shape: Tuple[int, ...] = tuple(x0.shape)
    state: TrustRegionState = trust_region_init(
        residual_fn, x0, args, params, termination, jacobian
    )
    trace: TrustRegionTrace = make_trust_region_trace(
        max_iters if record else 0, real_dtype(state.x.dtype)
    )

    def cond_fn(carry: Tuple[TrustRegionState, TrustRegionTrace]) -> Any:
        s: TrustRegionState = carry[0]
        return (s.iteration < max_iters) & (~s.done)

    def body_fn(
        carry: Tuple[TrustRegionState, TrustRegionTrace],
    ) -> Tuple[TrustRegionState, TrustRegionTrace]:
        s: TrustRegionState
        t: TrustRegionTrace
        s, t = carry
        new_s: TrustRegionState = trust_region_step(
            s,
            residual_fn,
            args,
            params,
            termination,
            shape,
            jacobian,
            linear_solver,
            verbose,
        )
        if record:
            t = _record_iteration(t, s.iteration, new_s)
        return new_s, t

    state, trace = jax.lax.while_loop(cond_fn, body_fn, (state, trace))
    state = _finalize(state)
    jax.debug.callback(
        _log_summary,
        state.retcode,
        state.iteration,
        vector_norm(state.residual),
    )
    return state, trace


def _to_solution(
    residual_fn: Callable[..., Any],
    x0: Inexact[Array, " ..."],
    args: Any,
    state: TrustRegionState,
) -> NonlinearSolution:
    """Restore the caller's shapes on the final state."""
    return make_nonlinear_solution(
        u=restructure_vector(state.x, tuple(x0.shape)),
        resid=jnp.reshape(
            state.residual, _residual_shape(residual_fn, x0, args)
        ),
        retcode=state.retcode,
        stats=state.stats,
    )


@jaxtyped(typechecker=beartype)
def trust_region_solve(
    residual_fn: Callable[..., Any],
    x0: Any,
    args: Any = None,
    params: Optional[TrustRegionParams] = None,
    max_iters: int = 1000,
    termination: Optional[TerminationCondition] = None,
    jacobian: Union[str, Callable[..., Any]] = "forward",
    linear_solver: Union[str, Callable[..., Any]] = "dense",
    verbose: bool = False,
) -> NonlinearSolution:
    """Solve F(x) = 0 with the trust-region dogleg method.

    Parameters
    ----------
    residual_fn : Callable
        ``residual_fn(x)`` or ``residual_fn(x, args)`` returning F(x)
        with as many entries as ``x``. It must be traceable by JAX.
    x0 : array_like
        Initial guess: a Python scalar, 0-d array or array of any shape,
        real or complex. It is copied, never modified.
    args : Any, optional
        Extra PyTree argument forwarded to ``residual_fn``. Default is
        None, in which case ``residual_fn`` is called with ``x`` only.
    params : Optional[TrustRegionParams], optional
        Trust-region parameters. Default is
        ``make_trust_region_params()``.
    max_iters : int, optional
        Maximum number of iterations. Default is 1000.
    termination : Optional[TerminationCondition], optional
        Termination condition. Default is ``"abs_norm"`` with tolerance
        eps ** (4/5).
    jacobian : Union[str, Callable], optional
        ``"forward"``, ``"reverse"``, ``"finite"`` or a callable
        returning J. Default is ``"forward"``.
    linear_solver : Union[str, Callable], optional
        ``"dense"``, ``"lstsq"``, ``"gmres"`` or a callable
        ``(J, F) -> δN``. Default is ``"dense"``.
    verbose : bool, optional
        Log a DEBUG record for every iteration. Default is False.

    Returns
    -------
    solution : NonlinearSolution
        ``u`` and ``resid`` in the caller's shapes, the return code and
        the evaluation counters. ``u`` is the last trial point for
        ``CONVERGED`` and ``CONVERGENCE_FAILURE`` and the last accepted
        point for ``MAX_ITERS``.

    Raises
    ------
    ValueError
        If ``max_iters`` is below 1, a backend or solver name is unknown,
        or the residual does not match the size of ``x0``.

    Examples
    --------
    >>> def residual_fn(x):
    ...     return x**2 - 2.0
    >>> solution = trust_region_solve(residual_fn, 1.0)
    >>> # solution.u ≈ 1.41421356, solution.retcode == ReturnCode.CONVERGED
    """
    x0_arr: Inexact[Array, " ..."]
    x0_arr, params, termination = _prepare_inputs(
        x0, params, termination, max_iters, jacobian, linear_solver
    )
    state: TrustRegionState
    state, _ = _trust_region_loop(
        residual_fn,
        x0_arr,
        args,
        params,
        termination,
        max_iters,
        jacobian,
        linear_solver,
        False,
        verbose,
    )
    return _to_solution(residual_fn, x0_arr, args, state)


@jaxtyped(typechecker=beartype)
def trust_region_history(
    residual_fn: Callable[..., Any],
    x0: Any,
    args: Any = None,
    params: Optional[TrustRegionParams] = None,
    max_iters: int = 1000,
    termination: Optional[TerminationCondition] = None,
    jacobian: Union[str, Callable[..., Any]] = "forward",
    linear_solver: Union[str, Callable[..., Any]] = "dense",
    verbose: bool = False,
) -> Tuple[NonlinearSolution, TrustRegionTrace]:
    """Solve F(x) = 0 and record per-iteration diagnostics.

    Takes the same arguments as :func:`trust_region_solve`.

    Returns
    -------
    solution : NonlinearSolution
        As returned by :func:`trust_region_solve`.
    trace : TrustRegionTrace
        Arrays of length ``max_iters``. Entry k describes iteration k + 1:
        trial merit, radius after the update, ratio, acceptance, shrink
        counter, step norm and dogleg branch. Entries past
        ``solution.stats.nsteps`` hold NaN, -1 or False.
    """
    x0_arr: Inexact[Array, " ..."]
    x0_arr, params, termination = _prepare_inputs(
        x0, params, termination, max_iters, jacobian, linear_solver
    )
    state: TrustRegionState
    trace: TrustRegionTrace
    state, trace = _trust_region_loop(
        residual_fn,
        x0_arr,
        args,
        params,
        termination,
        max_iters,
        jacobian,
        linear_solver,
        True,
        verbose,
    )
    return _to_solution(residual_fn, x0_arr, args, state), trace
