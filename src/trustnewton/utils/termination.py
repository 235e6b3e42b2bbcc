"""Termination conditions for nonlinear solves.

Extended Summary
----------------
A trust-region solve stops successfully when the termination condition
holds at a freshly accepted point. The condition sees the residual at the
accepted point, the point itself and the previously accepted point, so
both residual-based and step-based tests can be expressed.

Routine Listings
----------------
default_tolerance : function
    Default absolute and relative tolerance for a dtype.
resolve_termination : function
    Replace unset tolerances by dtype defaults.
check_termination : function
    Evaluate a termination condition.

Notes
-----
Built-in modes, with F the residual, x the accepted point and xₚ the
previous accepted point:

- ``"abs"``: max |Fᵢ| <= abstol
- ``"abs_norm"``: ‖F‖ <= abstol (default)
- ``"rel"``: |Fᵢ| <= reltol |xᵢ| for every i
- ``"rel_norm"``: ‖F‖ <= reltol ‖F + x‖
- ``"norm"``: ``"abs_norm"`` or ``"rel_norm"``
- ``"step"``: ‖x - xₚ‖ <= abstol + reltol ‖x‖

The default tolerance eps ** (4/5) is about 3e-13 in float64 and 3e-6
in float32.
"""

import jax.numpy as jnp
from beartype import beartype
from beartype.typing import Any
from jaxtyping import Array, Bool, Float, Inexact, jaxtyped

from trustnewton.types import TerminationCondition

from .math import real_dtype, vector_norm

DEFAULT_TOLERANCE_EXPONENT = 0.8


def default_tolerance(dtype: Any) -> float:
    """eps(dtype) ** (4/5) for the real dtype underlying ``dtype``."""
    eps: float = float(jnp.finfo(real_dtype(dtype)).eps)
    return eps**DEFAULT_TOLERANCE_EXPONENT


def resolve_termination(
    condition: TerminationCondition, dtype: Any
) -> TerminationCondition:
    """Fill unset tolerances with defaults and cast them to ``dtype``.

    Parameters
    ----------
    condition : TerminationCondition
        Condition whose ``abstol`` or ``reltol`` may be None.
    dtype : dtype
        Dtype of the iterate; tolerances use its real counterpart.

    Returns
    -------
    TerminationCondition
        Condition with both tolerances set as real scalars.
    """
    tol_dtype: Any = real_dtype(dtype)
    fallback: float = default_tolerance(dtype)
    abstol: Float[Array, " "] = jnp.asarray(
        fallback if condition.abstol is None else condition.abstol,
        dtype=tol_dtype,
    )
    reltol: Float[Array, " "] = jnp.asarray(
        fallback if condition.reltol is None else condition.reltol,
        dtype=tol_dtype,
    )
    return TerminationCondition(
        mode=condition.mode, abstol=abstol, reltol=reltol
    )


@jaxtyped(typechecker=beartype)
def check_termination(
    condition: TerminationCondition,
    residual: Inexact[Array, " n"],
    x: Inexact[Array, " n"],
    x_prev: Inexact[Array, " n"],
) -> Bool[Array, " "]:
    """Evaluate ``condition`` at an accepted point.

    Parameters
    ----------
    condition : TerminationCondition
        Resolved condition (see :func:`resolve_termination`).
    residual : Inexact[Array, " n"]
        Residual at ``x``.
    x : Inexact[Array, " n"]
        Newly accepted point.
    x_prev : Inexact[Array, " n"]
        Previously accepted point.

    Returns
    -------
    converged : Bool[Array, " "]
        Whether the solve should stop with ``ReturnCode.CONVERGED``.
    """
    mode: Any = condition.mode
    abstol: Float[Array, " "] = condition.abstol
    reltol: Float[Array, " "] = condition.reltol
    if callable(mode):
        return jnp.asarray(mode(residual, x, x_prev), dtype=jnp.bool_)
    residual_norm: Float[Array, " "] = vector_norm(residual)
    abs_norm_ok: Bool[Array, " "] = residual_norm <= abstol
    rel_norm_ok: Bool[Array, " "] = residual_norm <= reltol * vector_norm(
        residual + x
    )
    if mode == "abs":
        return jnp.max(jnp.abs(residual)) <= abstol
    if mode == "abs_norm":
        return abs_norm_ok
    if mode == "rel":
        return jnp.all(jnp.abs(residual) <= reltol * jnp.abs(x))
    if mode == "rel_norm":
        return rel_norm_ok
    if mode == "norm":
        return abs_norm_ok | rel_norm_ok
    step_norm: Float[Array, " "] = vector_norm(x - x_prev)
    return step_norm <= abstol + reltol * vector_norm(x)
