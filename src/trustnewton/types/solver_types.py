"""PyTree types for trust-region nonlinear solves.

Extended Summary
----------------
This module provides the immutable PyTree data structures that flow
through a trust-region Newton solve of F(x) = 0. Every structure is a
``NamedTuple`` registered with JAX, so it can be carried through
``jax.lax.while_loop``, returned from ``jax.jit`` and batched with
``jax.vmap``.

The solver works on flat 1-D vectors internally. The caller's shape is
restored only when the final :class:`NonlinearSolution` is built.

Routine Listings
----------------
TrustRegionParams : NamedTuple
    Radius and acceptance parameters of the trust-region method.
TerminationCondition : NamedTuple
    Termination mode (static) and tolerances.
DoglegCache : NamedTuple
    Intermediate vectors of one dogleg subproblem solve.
SolveStats : NamedTuple
    Counters of residual, Jacobian and linear-solve evaluations.
TrustRegionState : NamedTuple
    Complete loop state of a trust-region solve.
TrustRegionTrace : NamedTuple
    Per-iteration diagnostics recorded by ``trust_region_history``.
NonlinearSolution : NamedTuple
    Final iterate, residual, return code and statistics.
make_trust_region_params : function
    Factory function to create validated TrustRegionParams instances.
make_termination_condition : function
    Factory function to create validated TerminationCondition instances.
make_dogleg_cache : function
    Factory function for an all-zero DoglegCache of a given size.
make_solve_stats : function
    Factory function for SolveStats counters.
make_trust_region_trace : function
    Factory function for an empty TrustRegionTrace.
make_nonlinear_solution : function
    Factory function for NonlinearSolution instances.

Notes
-----
The trust-region parameters follow the usual notation: η1 is the step
(acceptance) threshold, η2 the shrink threshold, η3 the expand threshold,
t1 the shrink factor and t2 the expand factor. A maximum or initial
radius of 0 is a sentinel meaning "derive from the starting point".
"""

import jax
import jax.numpy as jnp
from beartype import beartype
from beartype.typing import Any, Callable, NamedTuple, Optional, Tuple, Union
from jax.tree_util import register_pytree_node_class
from jaxtyping import Array, Bool, Float, Inexact, Int, Num, jaxtyped

from .common_types import ReturnCode, ScalarFloat, ScalarInteger

TERMINATION_MODES: Tuple[str, ...] = (
    "abs",
    "abs_norm",
    "rel",
    "rel_norm",
    "norm",
    "step",
)


def _require(condition: Any, message: str) -> None:
    """Raise ValueError if a concrete condition is False.

    Traced conditions cannot be inspected and are left to the caller.
    """
    try:
        satisfied: bool = bool(condition)
    except jax.errors.ConcretizationTypeError:
        return
    if not satisfied:
        raise ValueError(message)


@register_pytree_node_class
class TrustRegionParams(NamedTuple):
    """Parameters of the trust-region radius update.

    Attributes
    ----------
    max_trust_radius : Float[Array, " "]
        Upper bound Δmax of the trust radius. 0 means "derive as
        max(‖F(x0)‖, max(x0) - min(x0))".
    initial_trust_radius : Float[Array, " "]
        Starting radius Δ. 0 means "use Δmax / 11".
    step_threshold : Float[Array, " "]
        η1, the ratio above which a step is accepted.
    shrink_threshold : Float[Array, " "]
        η2, the ratio below which the radius shrinks.
    expand_threshold : Float[Array, " "]
        η3, the ratio above which the radius may grow.
    shrink_factor : Float[Array, " "]
        t1, multiplier applied to Δ on shrinking.
    expand_factor : Float[Array, " "]
        t2, multiplier applied to Δ on growth.
    max_shrink_times : Int[Array, " "]
        Number of consecutive shrinks tolerated before the solve is
        declared a convergence failure.
    """

    max_trust_radius: Float[Array, " "]
    initial_trust_radius: Float[Array, " "]
    step_threshold: Float[Array, " "]
    shrink_threshold: Float[Array, " "]
    expand_threshold: Float[Array, " "]
    shrink_factor: Float[Array, " "]
    expand_factor: Float[Array, " "]
    max_shrink_times: Int[Array, " "]

    def tree_flatten(
        self,
    ) -> Tuple[
        Tuple[
            Float[Array, " "],
            Float[Array, " "],
            Float[Array, " "],
            Float[Array, " "],
            Float[Array, " "],
            Float[Array, " "],
            Float[Array, " "],
            Int[Array, " "],
        ],
        None,
    ]:
        """Flatten the TrustRegionParams into a tuple of its components."""
        return (
            (
                self.max_trust_radius,
                self.initial_trust_radius,
                self.step_threshold,
                self.shrink_threshold,
                self.expand_threshold,
                self.shrink_factor,
                self.expand_factor,
                self.max_shrink_times,
            ),
            None,
        )

    @classmethod
    def tree_unflatten(
        cls,
        _aux_data: None,
        children: Tuple[Any, ...],
    ) -> "TrustRegionParams":
        """Unflatten the TrustRegionParams from a tuple of its components."""
        return cls(*children)


@register_pytree_node_class
class TerminationCondition(NamedTuple):
    """Termination policy evaluated after every accepted step.

    Attributes
    ----------
    mode : Union[str, Callable]
        One of ``TERMINATION_MODES`` or a callable
        ``(residual, x, x_prev) -> bool``. Stored as static auxiliary
        data, so changing the mode triggers recompilation.
    abstol : Optional[Float[Array, " "]]
        Absolute tolerance. None means the dtype default.
    reltol : Optional[Float[Array, " "]]
        Relative tolerance. None means the dtype default.
    """

    mode: Union[str, Callable[..., Any]]
    abstol: Optional[Float[Array, " "]]
    reltol: Optional[Float[Array, " "]]

    def tree_flatten(
        self,
    ) -> Tuple[
        Tuple[Optional[Float[Array, " "]], Optional[Float[Array, " "]]],
        Union[str, Callable[..., Any]],
    ]:
        """Flatten tolerances as children and the mode as aux data."""
        return ((self.abstol, self.reltol), self.mode)

    @classmethod
    def tree_unflatten(
        cls,
        aux_data: Union[str, Callable[..., Any]],
        children: Tuple[
            Optional[Float[Array, " "]], Optional[Float[Array, " "]]
        ],
    ) -> "TerminationCondition":
        """Rebuild the TerminationCondition from its components."""
        return cls(aux_data, *children)


@register_pytree_node_class
class DoglegCache(NamedTuple):
    """Intermediate vectors of one dogleg subproblem.

    Attributes
    ----------
    newton_step : Inexact[Array, " n"]
        Full Newton step δN solving J δN = -F.
    steepest_descent : Inexact[Array, " n"]
        Steepest-descent direction δsd = -g.
    newton_minus_descent : Inexact[Array, " n"]
        δN - δsd, the second leg of the dogleg path.
    branch : Int[Array, " "]
        0 if the Newton step was returned, 1 for the clipped Cauchy
        step, 2 for the point on the dogleg segment.
    """

    newton_step: Inexact[Array, " n"]
    steepest_descent: Inexact[Array, " n"]
    newton_minus_descent: Inexact[Array, " n"]
    branch: Int[Array, " "]

    def tree_flatten(
        self,
    ) -> Tuple[
        Tuple[
            Inexact[Array, " n"],
            Inexact[Array, " n"],
            Inexact[Array, " n"],
            Int[Array, " "],
        ],
        None,
    ]:
        """Flatten the DoglegCache into a tuple of its components."""
        return (
            (
                self.newton_step,
                self.steepest_descent,
                self.newton_minus_descent,
                self.branch,
            ),
            None,
        )

    @classmethod
    def tree_unflatten(
        cls,
        _aux_data: None,
        children: Tuple[
            Inexact[Array, " n"],
            Inexact[Array, " n"],
            Inexact[Array, " n"],
            Int[Array, " "],
        ],
    ) -> "DoglegCache":
        """Unflatten the DoglegCache from a tuple of its components."""
        return cls(*children)


@register_pytree_node_class
class SolveStats(NamedTuple):
    """Evaluation counters of a solve.

    Attributes
    ----------
    nf : Int[Array, " "]
        Number of residual evaluations (including those done together
        with a Jacobian).
    njacs : Int[Array, " "]
        Number of Jacobian evaluations.
    nsolve : Int[Array, " "]
        Number of linear solves for the Newton step.
    nsteps : Int[Array, " "]
        Number of trust-region iterations performed.
    """

    nf: Int[Array, " "]
    njacs: Int[Array, " "]
    nsolve: Int[Array, " "]
    nsteps: Int[Array, " "]

    def tree_flatten(
        self,
    ) -> Tuple[
        Tuple[Int[Array, " "], Int[Array, " "], Int[Array, " "], Int[Array, " "]],
        None,
    ]:
        """Flatten the SolveStats into a tuple of its components."""
        return ((self.nf, self.njacs, self.nsolve, self.nsteps), None)

    @classmethod
    def tree_unflatten(
        cls,
        _aux_data: None,
        children: Tuple[
            Int[Array, " "], Int[Array, " "], Int[Array, " "], Int[Array, " "]
        ],
    ) -> "SolveStats":
        """Unflatten the SolveStats from a tuple of its components."""
        return cls(*children)


@register_pytree_node_class
class TrustRegionState(NamedTuple):
    """Loop state of a trust-region solve.

    Attributes
    ----------
    x : Inexact[Array, " n"]
        Trial point of the latest iteration.
    residual : Inexact[Array, " n"]
        F(x) at the trial point.
    x_accepted : Inexact[Array, " n"]
        Last accepted point xₒ.
    residual_accepted : Inexact[Array, " n"]
        F(xₒ).
    jacobian : Inexact[Array, " n n"]
        Jacobian of F at xₒ.
    hessian : Inexact[Array, " n n"]
        Gauss-Newton Hessian approximation Jᴴ J at xₒ.
    gradient : Inexact[Array, " n"]
        Gradient Jᴴ F(xₒ) of the merit function.
    merit : Float[Array, " "]
        Merit fₖ = ‖F(xₒ)‖² / 2.
    radius : Float[Array, " "]
        Current trust radius Δ.
    max_radius : Float[Array, " "]
        Upper bound Δmax.
    shrink_counter : Int[Array, " "]
        Number of consecutive shrinking iterations.
    iteration : Int[Array, " "]
        Number of iterations performed.
    retcode : Int[Array, " "]
        ``ReturnCode`` value, DEFAULT while iterating.
    done : Bool[Array, " "]
        Whether the loop has terminated.
    trial_merit : Float[Array, " "]
        Merit ‖F(x)‖² / 2 of the latest trial point.
    ratio : Float[Array, " "]
        Actual-to-predicted reduction ratio of the latest iteration.
    accepted : Bool[Array, " "]
        Whether the latest trial point was accepted.
    step_norm : Float[Array, " "]
        Norm of the latest dogleg step.
    cache : DoglegCache
        Intermediate vectors of the latest dogleg solve.
    stats : SolveStats
        Evaluation counters.
    """

    x: Inexact[Array, " n"]
    residual: Inexact[Array, " n"]
    x_accepted: Inexact[Array, " n"]
    residual_accepted: Inexact[Array, " n"]
    jacobian: Inexact[Array, " n n"]
    hessian: Inexact[Array, " n n"]
    gradient: Inexact[Array, " n"]
    merit: Float[Array, " "]
    radius: Float[Array, " "]
    max_radius: Float[Array, " "]
    shrink_counter: Int[Array, " "]
    iteration: Int[Array, " "]
    retcode: Int[Array, " "]
    done: Bool[Array, " "]
    trial_merit: Float[Array, " "]
    ratio: Float[Array, " "]
    accepted: Bool[Array, " "]
    step_norm: Float[Array, " "]
    cache: DoglegCache
    stats: SolveStats

    def tree_flatten(self) -> Tuple[Tuple[Any, ...], None]:
        """Flatten the TrustRegionState into a tuple of its components."""
        return (tuple(self), None)

    @classmethod
    def tree_unflatten(
        cls,
        _aux_data: None,
        children: Tuple[Any, ...],
    ) -> "TrustRegionState":
        """Unflatten the TrustRegionState from a tuple of its components."""
        return cls(*children)


@register_pytree_node_class
class TrustRegionTrace(NamedTuple):
    """Per-iteration diagnostics of a trust-region solve.

    Every field has a leading axis of length ``max_iters``. Slots after
    the last performed iteration keep their fill values (NaN for floats,
    -1 for integers, False for flags).

    Attributes
    ----------
    merit : Float[Array, " N"]
        Merit of the trial point, ‖F(x)‖² / 2.
    radius : Float[Array, " N"]
        Trust radius at the end of the iteration.
    ratio : Float[Array, " N"]
        Actual-to-predicted reduction ratio r.
    accepted : Bool[Array, " N"]
        Whether the trial point was accepted.
    shrink_counter : Int[Array, " N"]
        Shrink counter at the end of the iteration.
    step_norm : Float[Array, " N"]
        Norm of the dogleg step.
    branch : Int[Array, " N"]
        Dogleg branch taken (see :class:`DoglegCache`).
    """

    merit: Float[Array, " N"]
    radius: Float[Array, " N"]
    ratio: Float[Array, " N"]
    accepted: Bool[Array, " N"]
    shrink_counter: Int[Array, " N"]
    step_norm: Float[Array, " N"]
    branch: Int[Array, " N"]

    def tree_flatten(self) -> Tuple[Tuple[Array, ...], None]:
        """Flatten the TrustRegionTrace into a tuple of its components."""
        return (tuple(self), None)

    @classmethod
    def tree_unflatten(
        cls,
        _aux_data: None,
        children: Tuple[Array, ...],
    ) -> "TrustRegionTrace":
        """Unflatten the TrustRegionTrace from a tuple of its components."""
        return cls(*children)


@register_pytree_node_class
class NonlinearSolution(NamedTuple):
    """Result of a nonlinear solve.

    Attributes
    ----------
    u : Num[Array, " ..."]
        Final iterate, in the shape of the initial guess.
    resid : Num[Array, " ..."]
        Residual F(u), in the shape returned by the residual function.
    retcode : Int[Array, " "]
        ``ReturnCode`` value.
    stats : SolveStats
        Evaluation counters.
    """

    u: Num[Array, " ..."]
    resid: Num[Array, " ..."]
    retcode: Int[Array, " "]
    stats: SolveStats

    def tree_flatten(
        self,
    ) -> Tuple[
        Tuple[Num[Array, " ..."], Num[Array, " ..."], Int[Array, " "], SolveStats],
        None,
    ]:
        """Flatten the NonlinearSolution into a tuple of its components."""
        return ((self.u, self.resid, self.retcode, self.stats), None)

    @classmethod
    def tree_unflatten(
        cls,
        _aux_data: None,
        children: Tuple[
            Num[Array, " ..."], Num[Array, " ..."], Int[Array, " "], SolveStats
        ],
    ) -> "NonlinearSolution":
        """Unflatten the NonlinearSolution from a tuple of its components."""
        return cls(*children)


@jaxtyped(typechecker=beartype)
def make_trust_region_params(
    max_trust_radius: ScalarFloat = 0.0,
    initial_trust_radius: ScalarFloat = 0.0,
    step_threshold: ScalarFloat = 1e-4,
    shrink_threshold: ScalarFloat = 0.25,
    expand_threshold: ScalarFloat = 0.75,
    shrink_factor: ScalarFloat = 0.25,
    expand_factor: ScalarFloat = 2.0,
    max_shrink_times: ScalarInteger = 32,
) -> TrustRegionParams:
    """Create a validated TrustRegionParams instance.

    Parameters
    ----------
    max_trust_radius : ScalarFloat, optional
        Maximum trust radius Δmax. Default is 0.0, which derives
        max(‖F(x0)‖, max(x0) - min(x0)) at the start of the solve.
    initial_trust_radius : ScalarFloat, optional
        Initial trust radius. Default is 0.0, which uses Δmax / 11.
    step_threshold : ScalarFloat, optional
        η1: a step is accepted when the reduction ratio exceeds it.
        Default is 1e-4.
    shrink_threshold : ScalarFloat, optional
        η2: the radius shrinks when the ratio is below it. Default is
        0.25.
    expand_threshold : ScalarFloat, optional
        η3: the radius may grow when the ratio exceeds it. Default is
        0.75.
    shrink_factor : ScalarFloat, optional
        t1, in (0, 1). Default is 0.25.
    expand_factor : ScalarFloat, optional
        t2, greater than 1. Default is 2.0.
    max_shrink_times : ScalarInteger, optional
        Consecutive shrinks tolerated before failure. Default is 32.

    Returns
    -------
    TrustRegionParams
        Validated parameters with float64 / int32 leaves.

    Raises
    ------
    ValueError
        If concrete parameter values are out of range: negative radii,
        thresholds not satisfying 0 <= η1 <= η3 and η2 <= η3, a shrink
        factor outside (0, 1), an expand factor not above 1, or a
        negative ``max_shrink_times``.
    """
    max_radius_arr: Float[Array, " "] = jnp.asarray(
        max_trust_radius, dtype=jnp.float64
    )
    initial_radius_arr: Float[Array, " "] = jnp.asarray(
        initial_trust_radius, dtype=jnp.float64
    )
    eta1: Float[Array, " "] = jnp.asarray(step_threshold, dtype=jnp.float64)
    eta2: Float[Array, " "] = jnp.asarray(shrink_threshold, dtype=jnp.float64)
    eta3: Float[Array, " "] = jnp.asarray(expand_threshold, dtype=jnp.float64)
    t1: Float[Array, " "] = jnp.asarray(shrink_factor, dtype=jnp.float64)
    t2: Float[Array, " "] = jnp.asarray(expand_factor, dtype=jnp.float64)
    shrink_limit: Int[Array, " "] = jnp.asarray(
        max_shrink_times, dtype=jnp.int32
    )

    _require(max_radius_arr >= 0.0, "max_trust_radius must be >= 0")
    _require(initial_radius_arr >= 0.0, "initial_trust_radius must be >= 0")
    _require(eta1 >= 0.0, "step_threshold must be >= 0")
    _require(
        jnp.logical_and(eta1 <= eta3, eta2 <= eta3),
        "expand_threshold must not be below the step or shrink threshold",
    )
    _require(
        jnp.logical_and(t1 > 0.0, t1 < 1.0), "shrink_factor must be in (0, 1)"
    )
    _require(t2 > 1.0, "expand_factor must be > 1")
    _require(shrink_limit >= 0, "max_shrink_times must be >= 0")

    return TrustRegionParams(
        max_trust_radius=max_radius_arr,
        initial_trust_radius=initial_radius_arr,
        step_threshold=eta1,
        shrink_threshold=eta2,
        expand_threshold=eta3,
        shrink_factor=t1,
        expand_factor=t2,
        max_shrink_times=shrink_limit,
    )


@jaxtyped(typechecker=beartype)
def make_termination_condition(
    mode: Union[str, Callable[..., Any]] = "abs_norm",
    abstol: Optional[ScalarFloat] = None,
    reltol: Optional[ScalarFloat] = None,
) -> TerminationCondition:
    """Create a validated TerminationCondition.

    Parameters
    ----------
    mode : Union[str, Callable], optional
        One of ``"abs"``, ``"abs_norm"``, ``"rel"``, ``"rel_norm"``,
        ``"norm"`` and ``"step"``, or a callable
        ``(residual, x, x_prev) -> bool`` on flat vectors. Default is
        ``"abs_norm"``.
    abstol : Optional[ScalarFloat], optional
        Absolute tolerance. Default is None, resolved to
        eps(dtype) ** (4/5) when the solve starts.
    reltol : Optional[ScalarFloat], optional
        Relative tolerance. Default is None, resolved like ``abstol``.

    Returns
    -------
    TerminationCondition
        Validated termination condition.

    Raises
    ------
    ValueError
        If ``mode`` is an unknown name or a tolerance is negative.
    """
    if isinstance(mode, str) and mode not in TERMINATION_MODES:
        raise ValueError(
            f"Unknown termination mode {mode!r}; "
            f"expected one of {TERMINATION_MODES} or a callable"
        )
    abstol_arr: Optional[Float[Array, " "]] = None
    reltol_arr: Optional[Float[Array, " "]] = None
    if abstol is not None:
        abstol_arr = jnp.asarray(abstol, dtype=jnp.float64)
        _require(abstol_arr >= 0.0, "abstol must be >= 0")
    if reltol is not None:
        reltol_arr = jnp.asarray(reltol, dtype=jnp.float64)
        _require(reltol_arr >= 0.0, "reltol must be >= 0")
    return TerminationCondition(mode=mode, abstol=abstol_arr, reltol=reltol_arr)


def make_dogleg_cache(
    n: int, dtype: Any = jnp.float64
) -> DoglegCache:
    """Create an all-zero DoglegCache for vectors of length ``n``."""
    zeros: Inexact[Array, " n"] = jnp.zeros((n,), dtype=dtype)
    return DoglegCache(
        newton_step=zeros,
        steepest_descent=zeros,
        newton_minus_descent=zeros,
        branch=jnp.asarray(-1, dtype=jnp.int32),
    )


@jaxtyped(typechecker=beartype)
def make_solve_stats(
    nf: ScalarInteger = 0,
    njacs: ScalarInteger = 0,
    nsolve: ScalarInteger = 0,
    nsteps: ScalarInteger = 0,
) -> SolveStats:
    """Create SolveStats counters as int32 scalars."""
    return SolveStats(
        nf=jnp.asarray(nf, dtype=jnp.int32),
        njacs=jnp.asarray(njacs, dtype=jnp.int32),
        nsolve=jnp.asarray(nsolve, dtype=jnp.int32),
        nsteps=jnp.asarray(nsteps, dtype=jnp.int32),
    )


def make_trust_region_trace(
    max_iters: int, dtype: Any = jnp.float64
) -> TrustRegionTrace:
    """Create an empty TrustRegionTrace with ``max_iters`` slots.

    Parameters
    ----------
    max_iters : int
        Number of iteration slots.
    dtype : dtype, optional
        Real floating dtype of the float fields. Default is float64.

    Returns
    -------
    TrustRegionTrace
        Trace filled with NaN, -1 and False.
    """
    nan_fill: Float[Array, " N"] = jnp.full((max_iters,), jnp.nan, dtype=dtype)
    int_fill: Int[Array, " N"] = jnp.full((max_iters,), -1, dtype=jnp.int32)
    return TrustRegionTrace(
        merit=nan_fill,
        radius=nan_fill,
        ratio=nan_fill,
        accepted=jnp.zeros((max_iters,), dtype=jnp.bool_),
        shrink_counter=int_fill,
        step_norm=nan_fill,
        branch=int_fill,
    )


@jaxtyped(typechecker=beartype)
def make_nonlinear_solution(
    u: Num[Array, " ..."],
    resid: Num[Array, " ..."],
    retcode: ScalarInteger = int(ReturnCode.DEFAULT),
    stats: Optional[SolveStats] = None,
) -> NonlinearSolution:
    """Package the final iterate of a solve.

    Parameters
    ----------
    u : Num[Array, " ..."]
        Final iterate in the caller's shape.
    resid : Num[Array, " ..."]
        Residual at ``u``.
    retcode : ScalarInteger, optional
        ``ReturnCode`` value. Default is ``ReturnCode.DEFAULT``.
    stats : Optional[SolveStats], optional
        Evaluation counters. Default is all-zero counters.

    Returns
    -------
    NonlinearSolution
        The packaged solution.
    """
    if stats is None:
        stats = make_solve_stats()
    return NonlinearSolution(
        u=u,
        resid=resid,
        retcode=jnp.asarray(retcode, dtype=jnp.int32),
        stats=stats,
    )


def is_successful(solution: NonlinearSolution) -> Union[bool, Bool[Array, " "]]:
    """Whether a solution terminated with ``ReturnCode.CONVERGED``."""
    return solution.retcode == int(ReturnCode.CONVERGED)

