"""Multi-device utilities for batched nonlinear solves.

Extended Summary
----------------
Independent trust-region solves share no state, so a batch of initial
guesses (or of problem parameters) can be split across devices and
solved in parallel. This module creates a one-axis device mesh and
places batched arrays on it.

Routine Listings
----------------
get_device_count : function
    Counts the devices a batch mesh can span.
create_mesh : function
    Creates a device mesh with a single ``"batch"`` axis.
shard_batch : function
    Shards a PyTree of arrays across its leading batch dimension.

Examples
--------
>>> import jax.numpy as jnp
>>> from trustnewton.utils.distributed import create_mesh, shard_batch
>>> mesh = create_mesh()
>>> x0_batch = shard_batch(jnp.ones((8, 3)), mesh)
"""

import jax
import jax.numpy as jnp
from beartype import beartype
from beartype.typing import Any, Optional
from jax.experimental import mesh_utils
from jax.sharding import Mesh, NamedSharding
from jax.sharding import PartitionSpec as P
from jaxtyping import jaxtyped


@jaxtyped(typechecker=beartype)
def get_device_count() -> int:
    """Count the devices a batch mesh can span.

    Returns
    -------
    n_devices : int
        Upper bound on ``n_devices`` accepted by :func:`create_mesh`.
    """
    return int(jax.device_count())


@jaxtyped(typechecker=beartype)
def create_mesh(n_devices: Optional[int] = None) -> Mesh:
    """Create a device mesh for data parallelism.

    Parameters
    ----------
    n_devices : int, optional
        Number of devices to use in the mesh. If None, uses all available
        devices detected by JAX (default: None).

    Returns
    -------
    mesh : Mesh
        Device mesh with axis name ``"batch"``.

    Raises
    ------
    ValueError
        If ``n_devices`` is not between 1 and the number of devices.
    """
    available: int = get_device_count()
    if n_devices is None:
        n_devices = available
    if not 1 <= n_devices <= available:
        raise ValueError(
            f"n_devices must be between 1 and {available}, got {n_devices}"
        )
    selected_devices: list = jax.devices()[:n_devices]
    devices: jnp.ndarray = mesh_utils.create_device_mesh(
        (n_devices,), devices=selected_devices
    )
    return Mesh(devices, axis_names=("batch",))


def shard_batch(data: Any, mesh: Mesh) -> Any:
    """Shard every leaf of ``data`` across its leading dimension.

    Parameters
    ----------
    data : PyTree
        Arrays sharing a leading batch dimension, e.g. a batch of initial
        guesses or of residual-function parameters.
    mesh : Mesh
        Mesh with a ``"batch"`` axis, e.g. from :func:`create_mesh`.

    Returns
    -------
    sharded_data : PyTree
        ``data`` placed with ``PartitionSpec("batch")``.

    Notes
    -----
    The batch size should be divisible by the number of devices in the
    mesh; otherwise ``jax.device_put`` raises.
    """
    sharding: NamedSharding = NamedSharding(mesh, P("batch"))
    return jax.device_put(data, sharding)
