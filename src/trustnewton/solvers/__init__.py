"""Trust-region Newton solvers for F(x) = 0.

Extended Summary
----------------
The dogleg subproblem solver, the trust-region iteration built on it and
a batched driver that vectorizes independent solves across devices.

Submodules
----------
batch
    Batched solves with vmap and optional sharding
dogleg
    Dogleg solution of the trust-region subproblem
trust_region
    Trust-region iteration, solve loop and diagnostics

Routine Listings
----------------
batch_trust_region_solve : function
    Solve a batch of systems with shared or batched arguments
dogleg_step : function
    Constrained step minimizing the local model inside the trust region
trust_region_history : function
    Solve and record per-iteration diagnostics
trust_region_init : function
    Evaluate the starting point and derive the initial radii
trust_region_solve : function
    Solve F(x) = 0 and return a NonlinearSolution
trust_region_step : function
    Perform one trust-region iteration

Notes
-----
All solvers run under ``jax.jit``; the public drivers validate their
configuration eagerly and raise ``ValueError`` before tracing.
"""

from .batch import batch_trust_region_solve
from .dogleg import BRANCH_CAUCHY, BRANCH_DOGLEG, BRANCH_NEWTON, dogleg_step
from .trust_region import (
    trust_region_history,
    trust_region_init,
    trust_region_solve,
    trust_region_step,
)

__all__: list[str] = [
    "batch_trust_region_solve",
    "BRANCH_CAUCHY",
    "BRANCH_DOGLEG",
    "BRANCH_NEWTON",
    "dogleg_step",
    "trust_region_history",
    "trust_region_init",
    "trust_region_solve",
    "trust_region_step",
]
