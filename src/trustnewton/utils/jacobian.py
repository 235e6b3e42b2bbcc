"""Residual and Jacobian evaluation with selectable backends.

Extended Summary
----------------
The trust-region loop needs two kinds of evaluation: the residual alone
at every trial point, and the residual together with its Jacobian at
every accepted point. Both operate on the flat vector representation of
:mod:`trustnewton.utils.math`; the caller's residual function receives
the iterate in its original shape.

Routine Listings
----------------
JACOBIAN_BACKENDS : tuple
    Names of the built-in Jacobian backends.
check_jacobian_backend : function
    Validate a backend name or callable.
evaluate_residual : function
    Evaluate F at a flat point and return a flat residual.
value_and_jacobian : function
    Evaluate F and its Jacobian at a flat point.
finite_difference_jacobian : function
    Forward-difference Jacobian of a flat residual function.

Notes
-----
``"forward"`` uses ``jax.jacfwd`` and is the default, since residual
systems are square and forward mode costs n JVPs. ``"reverse"`` uses
``jax.jacrev``. ``"finite"`` needs no differentiable residual and uses
steps of sqrt(eps) * max(1, |xᵢ|). Complex iterates are differentiated
holomorphically.

Examples
--------
>>> import jax.numpy as jnp
>>> def residual_fn(x):
...     return x**2 - 2.0
>>> fx, jac = value_and_jacobian(residual_fn, jnp.array([1.0]), None, (1,))
"""

import jax
import jax.numpy as jnp
from beartype.typing import Any, Callable, Tuple, Union
from jaxtyping import Array, Float, Inexact

from .math import is_complex, real_dtype, restructure_vector

JACOBIAN_BACKENDS: Tuple[str, ...] = ("forward", "reverse", "finite")


def check_jacobian_backend(backend: Union[str, Callable[..., Any]]) -> None:
    """Raise ValueError unless ``backend`` is a known name or a callable."""
    if callable(backend):
        return
    if backend not in JACOBIAN_BACKENDS:
        raise ValueError(
            f"Unknown Jacobian backend {backend!r}; "
            f"expected one of {JACOBIAN_BACKENDS} or a callable"
        )


def _call(fn: Callable[..., Any], x: Any, args: Any) -> Any:
    if args is None:
        return fn(x)
    return fn(x, args)


def evaluate_residual(
    residual_fn: Callable[..., Any],
    z: Inexact[Array, " n"],
    args: Any,
    shape: Tuple[int, ...],
) -> Inexact[Array, " n"]:
    """Evaluate F at the flat point ``z``.

    Parameters
    ----------
    residual_fn : Callable
        ``residual_fn(x)`` or ``residual_fn(x, args)`` where ``x`` has
        shape ``shape``.
    z : Inexact[Array, " n"]
        Flat evaluation point.
    args : Any
        Extra PyTree argument forwarded to ``residual_fn``, or None.
    shape : Tuple[int, ...]
        Shape of the caller's iterate.

    Returns
    -------
    fx : Inexact[Array, " n"]
        Flat residual.

    Raises
    ------
    ValueError
        If the residual does not have as many entries as ``z``.
    """
    fx: Inexact[Array, " ..."] = jnp.asarray(
        _call(residual_fn, restructure_vector(z, shape), args)
    )
    flat_fx: Inexact[Array, " m"] = jnp.ravel(fx)
    if flat_fx.shape != z.shape:
        raise ValueError(
            f"Residual has {flat_fx.shape[0]} entries but the iterate has "
            f"{z.shape[0]}; the system must be square"
        )
    return flat_fx.astype(jnp.result_type(flat_fx.dtype, z.dtype))


def finite_difference_jacobian(
    flat_residual: Callable[[Inexact[Array, " n"]], Inexact[Array, " n"]],
    z: Inexact[Array, " n"],
    fx: Inexact[Array, " n"],
) -> Inexact[Array, " n n"]:
    """Forward-difference Jacobian of ``flat_residual`` at ``z``.

    Parameters
    ----------
    flat_residual : Callable
        Flat residual function.
    z : Inexact[Array, " n"]
        Evaluation point.
    fx : Inexact[Array, " n"]
        ``flat_residual(z)``, reused for every column.

    Returns
    -------
    jac : Inexact[Array, " n n"]
        Jacobian with ``jac[i, j] = dF_i / dx_j``.
    """
    n: int = z.shape[0]
    eps: Float[Array, " "] = jnp.finfo(real_dtype(z.dtype)).eps
    steps: Float[Array, " n"] = jnp.sqrt(eps) * jnp.maximum(
        1.0, jnp.abs(z)
    )
    basis: Inexact[Array, " n n"] = jnp.eye(n, dtype=z.dtype)

    def column(
        direction: Inexact[Array, " n"], h: Float[Array, " "]
    ) -> Inexact[Array, " n"]:
        return (flat_residual(z + h * direction) - fx) / h

    columns: Inexact[Array, " n n"] = jax.vmap(column)(basis, steps)
    return columns.T


def value_and_jacobian(
    residual_fn: Callable[..., Any],
    z: Inexact[Array, " n"],
    args: Any,
    shape: Tuple[int, ...],
    backend: Union[str, Callable[..., Any]] = "forward",
) -> Tuple[Inexact[Array, " n"], Inexact[Array, " n n"]]:
    """Evaluate F and its Jacobian at the flat point ``z``.

    Parameters
    ----------
    residual_fn : Callable
        ``residual_fn(x)`` or ``residual_fn(x, args)``.
    z : Inexact[Array, " n"]
        Flat evaluation point.
    args : Any
        Extra argument forwarded to ``residual_fn``, or None.
    shape : Tuple[int, ...]
        Shape of the caller's iterate.
    backend : Union[str, Callable], optional
        ``"forward"``, ``"reverse"``, ``"finite"``, or a callable
        ``jac_fn(x)`` / ``jac_fn(x, args)`` returning the Jacobian in any
        shape with n * n entries. Default is ``"forward"``.

    Returns
    -------
    fx : Inexact[Array, " n"]
        Flat residual F(z).
    jac : Inexact[Array, " n n"]
        Jacobian matrix at ``z``.
    """
    check_jacobian_backend(backend)
    n: int = z.shape[0]

    def flat_residual(v: Inexact[Array, " n"]) -> Inexact[Array, " n"]:
        return evaluate_residual(residual_fn, v, args, shape)

    def with_value(
        v: Inexact[Array, " n"],
    ) -> Tuple[Inexact[Array, " n"], Inexact[Array, " n"]]:
        fv: Inexact[Array, " n"] = flat_residual(v)
        return fv, fv

    fx: Inexact[Array, " n"]
    jac: Inexact[Array, " n n"]
    if callable(backend):
        fx = flat_residual(z)
        jac = jnp.reshape(
            jnp.asarray(_call(backend, restructure_vector(z, shape), args)),
            (n, n),
        ).astype(fx.dtype)
    elif backend == "forward":
        jac, fx = jax.jacfwd(
            with_value, has_aux=True, holomorphic=is_complex(z)
        )(z)
    elif backend == "reverse":
        jac, fx = jax.jacrev(
            with_value, has_aux=True, holomorphic=is_complex(z)
        )(z)
    else:
        fx = flat_residual(z)
        jac = finite_difference_jacobian(flat_residual, z, fx)
    return fx, jac
