"""
Seed handling.

Every randomized step takes an explicit integer seed. Parallel tasks derive
their own stream from (seed, task keys) so results never depend on the order
in which tasks are scheduled.
"""
import numpy as np

from .exceptions import InvalidParameter


def check_seed(seed) -> int:
    """Validate a user-supplied seed and return it as a plain int."""
    if isinstance(seed, bool) or not isinstance(seed, (int, np.integer)):
        raise InvalidParameter(f"seed must be a non-negative integer, got {seed!r}")
    if seed < 0:
        raise InvalidParameter(f"seed must be a non-negative integer, got {seed}")
    return int(seed)


def derive_rng(seed: int, *keys: int) -> np.random.Generator:
    """Independent generator for the task identified by ``keys``."""
    sequence = np.random.SeedSequence(check_seed(seed), spawn_key=tuple(int(k) for k in keys))
    return np.random.default_rng(sequence)


def derive_seed(seed: int, *keys: int) -> int:
    """Integer seed for a sub-task, suitable for passing to another ``fit``."""
    sequence = np.random.SeedSequence(check_seed(seed), spawn_key=tuple(int(k) for k in keys))
    return int(sequence.generate_state(1, dtype=np.uint32)[0])
