"""Type definitions and factory functions for trustnewton.

Extended Summary
----------------
Core type definitions for the trustnewton package including PyTree
dataclasses, scalar type aliases, return codes and factory functions for
type-safe construction.

Routine Listings
----------------
:func:`make_trust_region_params`
    Factory function for TrustRegionParams creation.
:func:`make_termination_condition`
    Factory function for TerminationCondition creation.
:func:`make_dogleg_cache`
    Factory function for an all-zero DoglegCache.
:func:`make_solve_stats`
    Factory function for SolveStats creation.
:func:`make_trust_region_trace`
    Factory function for an empty TrustRegionTrace.
:func:`make_nonlinear_solution`
    Factory function for NonlinearSolution creation.
:func:`is_successful`
    Whether a solution converged.
:func:`return_code_name`
    Name of an integer return code.
:class:`ReturnCode`
    Termination status of a solve.
:class:`TrustRegionParams`
    PyTree for trust-region radius and acceptance parameters.
:class:`TerminationCondition`
    PyTree for the termination policy.
:class:`DoglegCache`
    PyTree for intermediate dogleg vectors.
:class:`SolveStats`
    PyTree for evaluation counters.
:class:`TrustRegionState`
    PyTree for the loop state of a solve.
:class:`TrustRegionTrace`
    PyTree for per-iteration diagnostics.
:class:`NonlinearSolution`
    PyTree for the result of a solve.

Notes
-----
Always use factory functions for creating PyTree instances to ensure
proper type checking and validation. All PyTrees are registered with
JAX and can be carried through jit, vmap and lax control flow.
"""

from .common_types import (
    ReturnCode,
    ScalarFloat,
    ScalarInteger,
    return_code_name,
)
from .solver_types import (
    TERMINATION_MODES,
    DoglegCache,
    NonlinearSolution,
    SolveStats,
    TerminationCondition,
    TrustRegionParams,
    TrustRegionState,
    TrustRegionTrace,
    is_successful,
    make_dogleg_cache,
    make_nonlinear_solution,
    make_solve_stats,
    make_termination_condition,
    make_trust_region_params,
    make_trust_region_trace,
)

__all__: list[str] = [
    "DoglegCache",
    "is_successful",
    "make_dogleg_cache",
    "make_nonlinear_solution",
    "make_solve_stats",
    "make_termination_condition",
    "make_trust_region_params",
    "make_trust_region_trace",
    "NonlinearSolution",
    "return_code_name",
    "ReturnCode",
    "ScalarFloat",
    "ScalarInteger",
    "SolveStats",
    "TERMINATION_MODES",
    "TerminationCondition",
    "TrustRegionParams",
    "TrustRegionState",
    "TrustRegionTrace",
]
