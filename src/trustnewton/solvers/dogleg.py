"""Dogleg solution of the trust-region subproblem.

Extended Summary
----------------
Given the linearization F(x + δ) ≈ F + J δ at the last accepted point
and a trust radius Δ, the dogleg method approximately minimizes the
model ‖F + J δ‖² / 2 subject to ‖δ‖ <= Δ along the piecewise-linear path
from the steepest-descent direction δsd = -Jᴴ F to the Newton step
δN = -J⁻¹ F.

Routine Listings
----------------
dogleg_step : function
    Constrained step minimizing the local model inside the trust region.

Notes
-----
The three cases are:

1. ‖δN‖ <= Δ: the Newton step is trusted and returned unchanged.
2. ‖δsd‖ >= Δ: the steepest-descent direction is clipped to length Δ.
3. Otherwise the path δsd + τ (δN - δsd), τ ∈ [0, 1], crosses the
   boundary exactly once. With a = ‖δN - δsd‖², b = Re⟨δsd, δN - δsd⟩
   and c = ‖δsd‖² - Δ², the crossing is the positive root

       τ = (-b + sqrt(b² - a c)) / a

   which exists because c < 0 in this case.

All three candidates are computed and selected with ``jnp.where``, so
the function has no data-dependent Python control flow and is safe under
jit and vmap.

References
----------
.. [1] Nocedal & Wright, "Numerical Optimization", 2nd ed., Section 4.1
.. [2] Powell, "A hybrid method for nonlinear equations", in Numerical
   Methods for Nonlinear Algebraic Equations (1970)
"""

import jax.numpy as jnp
from beartype import beartype
from beartype.typing import Any, Callable, Tuple, Union
from jaxtyping import Array, Bool, Float, Inexact, Int, jaxtyped

from trustnewton.types import DoglegCache
from trustnewton.utils import newton_direction, real_dot, vector_norm

BRANCH_NEWTON = 0
BRANCH_CAUCHY = 1
BRANCH_DOGLEG = 2


@jaxtyped(typechecker=beartype)
def dogleg_step(
    jacobian: Inexact[Array, " n n"],
    residual: Inexact[Array, " n"],
    gradient: Inexact[Array, " n"],
    radius: Float[Array, " "],
    linear_solver: Union[str, Callable[..., Any]] = "dense",
) -> Tuple[Inexact[Array, " n"], DoglegCache]:
    """Solve the trust-region subproblem with the dogleg method.

    Implementation Logic
    --------------------
    1. **Newton step**: δN from ``newton_direction``. A non-finite δN
       (singular Jacobian under the dense solver) is treated as a Newton
       step at infinity: it is zeroed in the cache and never selected.
    2. **Steepest descent**: δsd = -g, with norm ‖δsd‖.
    3. **Clipped Cauchy step**: Δ δsd / ‖δsd‖, used when ‖δsd‖ >= Δ or
       when δN is unusable.
    4. **Boundary crossing**: τ from the quadratic in the module notes.
       For b > 0 the algebraically equal form τ = -c / (b + sqrt(b² - ac))
       avoids cancellation.
    5. **Selection**: Newton if ‖δN‖ <= Δ, else Cauchy if clipped, else
       the dogleg point.

    Parameters
    ----------
    jacobian : Inexact[Array, " n n"]
        Jacobian J at the last accepted point.
    residual : Inexact[Array, " n"]
        Residual F at the last accepted point.
    gradient : Inexact[Array, " n"]
        Merit gradient g = Jᴴ F.
    radius : Float[Array, " "]
        Trust radius Δ > 0.
    linear_solver : Union[str, Callable], optional
        Method forwarded to ``newton_direction``. Default is ``"dense"``.

    Returns
    -------
    step : Inexact[Array, " n"]
        Step δ with ‖δ‖ <= Δ (up to rounding).
    cache : DoglegCache
        δN, δsd, δN - δsd and the selected branch.

    Examples
    --------
    >>> jac = jnp.eye(2)
    >>> fx = jnp.array([3.0, 4.0])
    >>> step, cache = dogleg_step(jac, fx, jac.T @ fx, jnp.array(1.0))
    >>> # ‖δN‖ = 5 > 1 and ‖δsd‖ = 5 >= 1: clipped to the boundary
    """
    raw_newton: Inexact[Array, " n"] = newton_direction(
        jacobian, residual, linear_solver
    )
    newton_finite: Bool[Array, " "] = jnp.all(jnp.isfinite(raw_newton))
    newton: Inexact[Array, " n"] = jnp.where(
        newton_finite, raw_newton, jnp.zeros_like(raw_newton)
    )
    newton_norm: Float[Array, " "] = jnp.where(
        newton_finite, vector_norm(newton), jnp.inf
    )

    descent: Inexact[Array, " n"] = -gradient
    descent_norm: Float[Array, " "] = vector_norm(descent)
    descent_scale: Float[Array, " "] = radius / jnp.where(
        descent_norm > 0.0, descent_norm, 1.0
    )
    cauchy: Inexact[Array, " n"] = descent * descent_scale

    newton_minus_descent: Inexact[Array, " n"] = newton - descent
    a: Float[Array, " "] = real_dot(newton_minus_descent, newton_minus_descent)
    b: Float[Array, " "] = real_dot(descent, newton_minus_descent)
    c: Float[Array, " "] = real_dot(descent, descent) - radius**2
    root: Float[Array, " "] = jnp.sqrt(jnp.maximum(b * b - a * c, 0.0))
    tau: Float[Array, " "] = jnp.where(
        b > 0.0,
        -c / jnp.where(b + root > 0.0, b + root, 1.0),
        (root - b) / jnp.where(a > 0.0, a, 1.0),
    )
    boundary: Inexact[Array, " n"] = descent + tau * newton_minus_descent

    use_newton: Bool[Array, " "] = newton_norm <= radius
    use_cauchy: Bool[Array, " "] = jnp.logical_or(
        descent_norm >= radius, jnp.logical_not(newton_finite)
    )
    branch: Int[Array, " "] = jnp.where(
        use_newton,
        BRANCH_NEWTON,
        jnp.where(use_cauchy, BRANCH_CAUCHY, BRANCH_DOGLEG),
    ).astype(jnp.int32)
    step: Inexact[Array, " n"] = jnp.where(
        use_newton, newton, jnp.where(use_cauchy, cauchy, boundary)
    )
    cache: DoglegCache = DoglegCache(
        newton_step=newton,
        steepest_descent=descent,
        newton_minus_descent=newton_minus_descent,
        branch=branch,
    )
    return step, cache
