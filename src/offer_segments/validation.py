"""Parameter checks shared by the engines."""
import numpy as np

from .distance import count_distinct_rows
from .exceptions import DegenerateInput, InvalidParameter


def check_count(value, name: str, minimum: int = 1) -> int:
    """Validate an integer count such as max_iterations or n_bootstrap."""
    if isinstance(value, bool) or not isinstance(value, (int, np.integer)):
        raise InvalidParameter(f"{name} must be an integer, got {value!r}")
    if value < minimum:
        raise InvalidParameter(f"{name} must be >= {minimum}, got {value}")
    return int(value)


def check_k(k, n_points: int, name: str = "k") -> int:
    """k must be an integer in [1, n_points]."""
    k = check_count(k, name, minimum=1)
    if k > n_points:
        raise InvalidParameter(f"{name}={k} exceeds the number of points ({n_points})")
    return k


def check_clusterable(X: np.ndarray) -> None:
    """
    Reject inputs no partition can be built from.

    Needs at least 2 points that are not all identical. Duplicate rows are
    fine, so k may exceed the number of distinct rows; the extra clusters
    then hold copies of the same customer.
    """
    n = X.shape[0]
    if n < 2:
        raise DegenerateInput(f"clustering needs at least 2 points, got {n}")
    if count_distinct_rows(X) == 1:
        raise DegenerateInput("all points are identical")
