"""Collaborators of the trust-region solver.

Extended Summary
----------------
Residual and Jacobian evaluation, Newton-direction linear solves,
termination conditions, vector helpers and multi-device utilities. Each
is a narrow interface the solver consumes; the strategies are selected
by name or replaced by user callables.

Submodules
----------
distributed
    Multi-device utilities for batched solves
jacobian
    Residual and Jacobian evaluation backends
linsolve
    Newton-direction linear solves
math
    Flat-vector helpers, inner products and norms
termination
    Termination conditions and default tolerances

Routine Listings
----------------
approx_equal : function
    Relative floating-point comparison of two scalars
check_jacobian_backend : function
    Validate a Jacobian backend
check_linear_solver : function
    Validate a linear solver
check_termination : function
    Evaluate a termination condition
create_mesh : function
    Creates a device mesh for data parallelism
default_tolerance : function
    Default tolerance for a dtype
evaluate_residual : function
    Evaluate F at a flat point
finite_difference_jacobian : function
    Forward-difference Jacobian
flatten_vector : function
    Copy an array into a flat floating vector
get_device_count : function
    Counts the devices a batch mesh can span
is_complex : function
    Whether an array has a complex dtype
merit_value : function
    Half squared norm of a residual
newton_direction : function
    Solve J δN = -F
real_dot : function
    Real part of the conjugated inner product
real_dtype : function
    Real dtype underlying a dtype
resolve_termination : function
    Fill unset tolerances with defaults
restructure_vector : function
    Reshape a flat vector to a target shape
shard_batch : function
    Shards a PyTree across its batch dimension
vector_norm : function
    Euclidean norm
value_and_jacobian : function
    Evaluate F and its Jacobian
"""

from .distributed import create_mesh, get_device_count, shard_batch
from .jacobian import (
    JACOBIAN_BACKENDS,
    check_jacobian_backend,
    evaluate_residual,
    finite_difference_jacobian,
    value_and_jacobian,
)
from .linsolve import LINEAR_SOLVERS, check_linear_solver, newton_direction
from .math import (
    approx_equal,
    flatten_vector,
    is_complex,
    merit_value,
    real_dot,
    real_dtype,
    restructure_vector,
    vector_norm,
)
from .termination import (
    check_termination,
    default_tolerance,
    resolve_termination,
)

__all__: list[str] = [
    "approx_equal",
    "check_jacobian_backend",
    "check_linear_solver",
    "check_termination",
    "create_mesh",
    "default_tolerance",
    "evaluate_residual",
    "finite_difference_jacobian",
    "flatten_vector",
    "get_device_count",
    "is_complex",
    "JACOBIAN_BACKENDS",
    "LINEAR_SOLVERS",
    "merit_value",
    "newton_direction",
    "real_dot",
    "real_dtype",
    "resolve_termination",
    "restructure_vector",
    "shard_batch",
    "value_and_jacobian",
    "vector_norm",
]
