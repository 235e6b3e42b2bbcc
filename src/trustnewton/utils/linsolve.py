"""Newton-direction linear solves.

Extended Summary
----------------
The dogleg subproblem needs the full Newton step δN solving

    J δN = -F

at the last accepted point. This module provides the built-in solvers for
that system: a dense LU solve, a minimum-norm least-squares solve that
tolerates singular Jacobians, and a matrix-free GMRES solve that only
uses matrix-vector products with J.

Routine Listings
----------------
LINEAR_SOLVERS : tuple
    Names of the built-in linear solvers.
check_linear_solver : function
    Validate a solver name or callable.
newton_direction : function
    Solve J δN = -F with the selected method.

Notes
-----
A singular Jacobian makes the dense solve return non-finite entries. The
dogleg solver detects this and treats δN as lying at infinity, so the
step falls back to the steepest-descent branch. Use ``"lstsq"`` when the
Jacobian is expected to be rank deficient.
"""

import jax.numpy as jnp
import jax.scipy.sparse.linalg as sparse_linalg
from beartype.typing import Any, Callable, Tuple, Union
from jaxtyping import Array, Inexact

LINEAR_SOLVERS: Tuple[str, ...] = ("dense", "lstsq", "gmres")
GMRES_TOL = 1e-10


def check_linear_solver(method: Union[str, Callable[..., Any]]) -> None:
    """Raise ValueError unless ``method`` is a known name or a callable."""
    if callable(method):
        return
    if method not in LINEAR_SOLVERS:
        raise ValueError(
            f"Unknown linear solver {method!r}; "
            f"expected one of {LINEAR_SOLVERS} or a callable"
        )


def newton_direction(
    jacobian: Inexact[Array, " n n"],
    residual: Inexact[Array, " n"],
    method: Union[str, Callable[..., Any]] = "dense",
) -> Inexact[Array, " n"]:
    """Solve J δN = -F for the Newton step.

    Parameters
    ----------
    jacobian : Inexact[Array, " n n"]
        Jacobian J at the linearization point.
    residual : Inexact[Array, " n"]
        Residual F at the linearization point.
    method : Union[str, Callable], optional
        ``"dense"`` (``jnp.linalg.solve``), ``"lstsq"``
        (``jnp.linalg.lstsq``), ``"gmres"``
        (``jax.scipy.sparse.linalg.gmres`` on the operator v ↦ J v), or
        a callable ``(jacobian, residual) -> δN``. Default is
        ``"dense"``.

    Returns
    -------
    newton_step : Inexact[Array, " n"]
        Solution δN, in the dtype of ``residual``.

    Notes
    -----
    GMRES runs from a zero initial guess with relative tolerance
    ``GMRES_TOL`` and a restart length of n, so in exact arithmetic it
    terminates in one cycle.
    """
    check_linear_solver(method)
    rhs: Inexact[Array, " n"] = -residual
    step: Inexact[Array, " n"]
    if callable(method):
        step = jnp.asarray(method(jacobian, residual))
    elif method == "dense":
        step = jnp.linalg.solve(jacobian, rhs)
    elif method == "lstsq":
        step, _, _, _ = jnp.linalg.lstsq(jacobian, rhs)
    else:

        def _matvec(v: Inexact[Array, " n"]) -> Inexact[Array, " n"]:
            return jacobian @ v

        gmres_info: None
        step, gmres_info = sparse_linalg.gmres(
            _matvec,
            rhs,
            x0=jnp.zeros_like(rhs),
            tol=GMRES_TOL,
            restart=rhs.shape[0],
        )
    return jnp.reshape(step, residual.shape).astype(residual.dtype)
