"""Tests for multi-device utilities in trustnewton.utils.distributed."""

import chex
import jax
import jax.numpy as jnp
import pytest
from jax.sharding import Mesh, NamedSharding, PartitionSpec as P

from trustnewton.utils import create_mesh, get_device_count, shard_batch


class TestGetDeviceCount(chex.TestCase):
    """Test the get_device_count function."""

    def test_matches_jax(self) -> None:
        """The count is a positive int equal to jax.device_count()."""
        n_devices = get_device_count()
        assert isinstance(n_devices, int)
        assert n_devices > 0
        assert n_devices == jax.device_count()


class TestCreateMesh(chex.TestCase):
    """Test the create_mesh function."""

    def test_default_uses_all_devices(self) -> None:
        """The default mesh spans every device on a batch axis."""
        mesh = create_mesh()
        assert isinstance(mesh, Mesh)
        assert mesh.axis_names == ("batch",)
        assert mesh.shape["batch"] == jax.device_count()

    def test_single_device(self) -> None:
        """A one-device mesh can always be created."""
        mesh = create_mesh(n_devices=1)
        assert mesh.shape["batch"] == 1
        assert len(mesh.devices.flat) == 1

    def test_invalid_count_raises(self) -> None:
        """Zero or too many devices raise ValueError."""
        bound = f"between 1 and {get_device_count()}"
        with pytest.raises(ValueError, match=bound):
            create_mesh(n_devices=0)
        with pytest.raises(ValueError, match=bound):
            create_mesh(n_devices=get_device_count() + 1)


class TestShardBatch(chex.TestCase):
    """Test the shard_batch function."""

    def setUp(self) -> None:
        """Set up a mesh over all devices."""
        super().setUp()
        self.mesh = create_mesh()

    def test_initial_guesses(self) -> None:
        """A batch of initial guesses keeps its values and layout."""
        n_devices = jax.device_count()
        x0_batch = jnp.linspace(0.5, 2.0, n_devices * 4 * 3).reshape(-1, 3)
        sharded = shard_batch(x0_batch, self.mesh)
        chex.assert_trees_all_close(sharded, x0_batch)
        assert isinstance(sharded.sharding, NamedSharding)
        assert sharded.sharding.spec == P("batch")

    def test_pytree_of_arguments(self) -> None:
        """Every leaf of a PyTree is sharded."""
        n_devices = jax.device_count()
        args = {
            "target": jnp.ones((n_devices * 2, 2)),
            "scale": jnp.arange(n_devices * 2, dtype=float),
        }
        sharded = shard_batch(args, self.mesh)
        chex.assert_trees_all_close(sharded, args)
        for leaf in jax.tree_util.tree_leaves(sharded):
            assert leaf.sharding.spec == P("batch")

    def test_complex_dtype_preserved(self) -> None:
        """Complex batches keep their dtype."""
        data = jnp.ones((jax.device_count() * 2, 4), dtype=jnp.complex128)
        sharded = shard_batch(data, self.mesh)
        assert sharded.dtype == jnp.complex128
