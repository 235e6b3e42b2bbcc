"""Vector utilities shared by the trust-region solver.

Extended Summary
----------------
The solver treats every problem as a flat 1-D vector over a real or
complex field. This module provides that representation: flattening an
initial guess of any shape (including 0-d scalars) into a floating
vector, restoring the caller's shape, and the inner product, norm and
merit function used by the dogleg and trust-region code.

Routine Listings
----------------
flatten_vector : function
    Copy an array of any shape into a flat floating vector.
restructure_vector : function
    Reshape a flat vector back to a target shape.
real_dtype : function
    Real floating dtype underlying a real or complex dtype.
is_complex : function
    Whether an array has a complex dtype.
real_dot : function
    Real part of the conjugated inner product ⟨a, b⟩.
vector_norm : function
    Euclidean norm of a vector.
merit_value : function
    Half squared norm ‖F‖² / 2 of a residual.
approx_equal : function
    Relative floating-point comparison of two scalars.

Notes
-----
All functions are JAX-compatible and can be used under jit and vmap.
For complex vectors the inner product conjugates its first argument, so
``real_dot(v, v)`` equals ``vector_norm(v) ** 2``.
"""

import jax.numpy as jnp
from beartype import beartype
from beartype.typing import Any, Optional, Tuple
from jaxtyping import Array, Bool, Float, Inexact, Num, jaxtyped


def flatten_vector(x: Any) -> Tuple[Inexact[Array, " n"], Tuple[int, ...]]:
    """Copy an array of any shape into a flat floating vector.

    Parameters
    ----------
    x : array_like
        Initial guess. Python scalars, 0-d arrays and arrays of any rank
        are accepted. Integer and boolean inputs are promoted to the
        default floating dtype.

    Returns
    -------
    flat : Inexact[Array, " n"]
        Flat copy of ``x``.
    shape : Tuple[int, ...]
        Original shape of ``x``, for :func:`restructure_vector`.
    """
    arr: Num[Array, " ..."] = jnp.asarray(x)
    dtype: Any = (
        arr.dtype
        if jnp.issubdtype(arr.dtype, jnp.inexact)
        else jnp.result_type(float)
    )
    shape: Tuple[int, ...] = tuple(arr.shape)
    flat: Inexact[Array, " n"] = jnp.array(
        jnp.ravel(arr), dtype=dtype, copy=True
    )
    return flat, shape


def restructure_vector(
    flat: Inexact[Array, " n"], shape: Tuple[int, ...]
) -> Inexact[Array, " ..."]:
    """Reshape a flat vector back to ``shape``."""
    return jnp.reshape(flat, shape)


def real_dtype(dtype: Any) -> Any:
    """Real floating dtype underlying ``dtype``.

    ``complex128`` maps to ``float64``, ``float32`` to itself.
    """
    return jnp.finfo(dtype).dtype


def is_complex(x: Any) -> bool:
    """Whether ``x`` has a complex dtype."""
    return bool(jnp.iscomplexobj(x))


@jaxtyped(typechecker=beartype)
def real_dot(
    a: Inexact[Array, " n"], b: Inexact[Array, " n"]
) -> Float[Array, " "]:
    """Real part of ⟨a, b⟩ with ``a`` conjugated.

    Parameters
    ----------
    a : Inexact[Array, " n"]
        First vector (conjugated).
    b : Inexact[Array, " n"]
        Second vector.

    Returns
    -------
    dot : Float[Array, " "]
        Re(aᴴ b). For real vectors this is the ordinary dot product.
    """
    return jnp.real(jnp.vdot(a, b))


@jaxtyped(typechecker=beartype)
def vector_norm(v: Inexact[Array, " n"]) -> Float[Array, " "]:
    """Euclidean norm of ``v``."""
    return jnp.linalg.norm(v)


@jaxtyped(typechecker=beartype)
def merit_value(residual: Inexact[Array, " n"]) -> Float[Array, " "]:
    """Merit function f = ‖F‖² / 2."""
    return 0.5 * real_dot(residual, residual)


@jaxtyped(typechecker=beartype)
def approx_equal(
    a: Float[Array, " "],
    b: Float[Array, " "],
    rtol: Optional[float] = None,
) -> Bool[Array, " "]:
    """Relative comparison |a - b| <= rtol * max(|a|, |b|).

    Parameters
    ----------
    a : Float[Array, " "]
        First value.
    b : Float[Array, " "]
        Second value.
    rtol : Optional[float], optional
        Relative tolerance. Default is sqrt(eps) of the common dtype.

    Returns
    -------
    close : Bool[Array, " "]
        True if the values agree to ``rtol``.
    """
    dtype: Any = jnp.result_type(a, b)
    tol: Float[Array, " "] = (
        jnp.sqrt(jnp.finfo(dtype).eps)
        if rtol is None
        else jnp.asarray(rtol, dtype=dtype)
    )
    scale: Float[Array, " "] = jnp.maximum(jnp.abs(a), jnp.abs(b))
    return jnp.abs(a - b) <= tol * scale
