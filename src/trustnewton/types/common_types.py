"""Scalar type aliases and return codes shared across trustnewton.

Extended Summary
----------------
Scalar aliases accept either Python numbers or zero-dimensional JAX
arrays, so that factory functions can be called with plain literals as
well as from inside traced code. The return codes classify how a
nonlinear solve terminated.

Routine Listings
----------------
ScalarFloat : TypeAlias
    Python float or 0-d floating array.
ScalarInteger : TypeAlias
    Python int or 0-d integer array.
ReturnCode : IntEnum
    Termination status of a solve.
return_code_name : function
    Human-readable name for an integer return code.
"""

from enum import IntEnum

from beartype.typing import TypeAlias, Union
from jaxtyping import Array, Float, Int

ScalarFloat: TypeAlias = Union[float, Float[Array, " "]]
ScalarInteger: TypeAlias = Union[int, Int[Array, " "]]


class ReturnCode(IntEnum):
    """Termination status of a trust-region solve.

    Attributes
    ----------
    DEFAULT : int
        The solve has not terminated yet.
    CONVERGED : int
        The termination condition was satisfied.
    MAX_ITERS : int
        The iteration budget was exhausted.
    CONVERGENCE_FAILURE : int
        The trust radius was shrunk more than ``max_shrink_times`` times
        in a row.
    """

    DEFAULT = 0
    CONVERGED = 1
    MAX_ITERS = 2
    CONVERGENCE_FAILURE = 3


def return_code_name(retcode: ScalarInteger) -> str:
    """Return the name of an integer return code.

    Parameters
    ----------
    retcode : ScalarInteger
        Concrete (non-traced) return code.

    Returns
    -------
    name : str
        Enum member name, e.g. ``"CONVERGED"``.
    """
    return ReturnCode(int(retcode)).name
