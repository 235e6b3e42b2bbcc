"""Batched trust-region solves.

Extended Summary
----------------
Solves many independent systems at once by vectorizing the jitted solve
loop with ``jax.vmap``. The batch runs over the leading axis of the
initial guesses and, optionally, of the residual-function arguments.
With a device mesh the batch is sharded across devices first.

Routine Listings
----------------
batch_trust_region_solve : function
    Solve a batch of systems with the trust-region dogleg method.

Notes
-----
Under ``vmap`` the loop runs until every member of the batch has
stopped; members that stop early are frozen by ``jax.lax.while_loop``'s
batching rule, so each result equals the corresponding single solve.
"""

import jax
import jax.numpy as jnp
from beartype import beartype
from beartype.typing import Any, Callable, Optional, Tuple, Union
from jax.sharding import Mesh
from jaxtyping import Array, Inexact, jaxtyped

from trustnewton.types import (
    NonlinearSolution,
    TerminationCondition,
    TrustRegionParams,
    TrustRegionState,
)
from trustnewton.utils import shard_batch

from .trust_region import (
    _prepare_inputs,
    _residual_shape,
    _trust_region_loop,
)


@jaxtyped(typechecker=beartype)
def batch_trust_region_solve(
    residual_fn: Callable[..., Any],
    x0_batch: Any,
    args: Any = None,
    params: Optional[TrustRegionParams] = None,
    max_iters: int = 1000,
    termination: Optional[TerminationCondition] = None,
    jacobian: Union[str, Callable[..., Any]] = "forward",
    linear_solver: Union[str, Callable[..., Any]] = "dense",
    batch_args: bool = False,
    mesh: Optional[Mesh] = None,
) -> NonlinearSolution:
    """Solve F(x) = 0 for a batch of initial guesses.

    Parameters
    ----------
    residual_fn : Callable
        ``residual_fn(x)`` or ``residual_fn(x, args)`` for a single
        (unbatched) iterate.
    x0_batch : array_like
        Initial guesses stacked along a leading batch axis of size B.
    args : Any, optional
        Extra PyTree argument. Shared by all members unless
        ``batch_args`` is True.
    params : Optional[TrustRegionParams], optional
        Parameters shared by all members.
    max_iters : int, optional
        Iteration budget of every member. Default is 1000.
    termination : Optional[TerminationCondition], optional
        Termination condition shared by all members.
    jacobian : Union[str, Callable], optional
        Jacobian backend. Default is ``"forward"``.
    linear_solver : Union[str, Callable], optional
        Newton-direction solver. Default is ``"dense"``.
    batch_args : bool, optional
        Map ``args`` along its leading axis as well. Default is False.
    mesh : Optional[Mesh], optional
        Device mesh with a ``"batch"`` axis. If given, the inputs are
        sharded across it before solving. Default is None.

    Returns
    -------
    solution : NonlinearSolution
        ``u`` of shape ``x0_batch.shape``, ``resid`` of shape
        (B, ...) and ``retcode`` and stats of shape (B,).

    Raises
    ------
    ValueError
        If ``x0_batch`` has no batch axis, or for the configuration errors
        of :func:`trust_region_solve`.
    """
    x0_arr: Inexact[Array, " B ..."]
    x0_arr, params, termination = _prepare_inputs(
        x0_batch, params, termination, max_iters, jacobian, linear_solver
    )
    if x0_arr.ndim < 1:
        raise ValueError("x0_batch must have a leading batch axis")
    if mesh is not None:
        x0_arr = shard_batch(x0_arr, mesh)
        if batch_args:
            args = shard_batch(args, mesh)

    def solve_one(x0: Inexact[Array, " ..."], member_args: Any) -> Any:
        state: TrustRegionState
        state, _ = _trust_region_loop(
            residual_fn,
            x0,
            member_args,
            params,
            termination,
            max_iters,
            jacobian,
            linear_solver,
            False,
            False,
        )
        return state

    states: TrustRegionState = jax.vmap(
        solve_one, in_axes=(0, 0 if batch_args else None)
    )(x0_arr, args)

    first_args: Any = (
        jax.tree_util.tree_map(lambda leaf: leaf[0], args)
        if batch_args
        else args
    )
    batch_size: int = x0_arr.shape[0]
    resid_shape: Tuple[int, ...] = _residual_shape(
        residual_fn, x0_arr[0], first_args
    )
    return NonlinearSolution(
        u=jnp.reshape(states.x, x0_arr.shape),
        resid=jnp.reshape(states.residual, (batch_size, *resid_shape)),
        retcode=states.retcode,
        stats=states.stats,
    )
