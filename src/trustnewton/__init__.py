"""Trust-region Newton solvers for nonlinear systems in JAX.

Extended Summary
----------------
Solves square systems of nonlinear equations F(x) = 0 with a
trust-region method whose subproblem is solved by the dogleg path.
Residual functions may take scalars or arrays of any shape, real or
complex, and Jacobians come from forward- or reverse-mode automatic
differentiation, finite differences or a user callable. Every solve is
JIT-compiled and can be batched with vmap.

Routine Listings
----------------
:mod:`solvers`
    Dogleg step, trust-region iteration and batched solves.
:mod:`types`
    PyTree data structures, factories and return codes.
:mod:`utils`
    Jacobian backends, linear solvers, termination and vector helpers.

Examples
--------
>>> import trustnewton as tn
>>> solution = tn.solvers.trust_region_solve(lambda x: x**2 - 2.0, 1.0)
>>> bool(tn.types.is_successful(solution))
True

Notes
-----
Importing the package enables 64-bit precision in JAX, so float64 is
the default floating dtype of every solve.
"""

import os
from importlib.metadata import version

# Enable multi-threaded CPU execution for JAX (before importing JAX)
os.environ.setdefault(
    "XLA_FLAGS",
    "--xla_cpu_multi_thread_eigen=true intra_op_parallelism_threads=0",
)

# Enable 64-bit precision in JAX (must be set before importing submodules)
import jax  # noqa: E402

jax.config.update("jax_enable_x64", True)

from . import solvers, types, utils  # noqa: E402, I001

__version__: str = version("trustnewton")

__all__: list[str] = [
    "__version__",
    "solvers",
    "types",
    "utils",
]
