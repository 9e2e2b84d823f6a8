# _utils.py
# Authors: The scikit-learn developers
# SPDX-License-Identifier: BSD-3-Clause

import numpy as np
from math import log as math_log

from sklearn.utils import check_random_state

# =============================================================================
# Helper functions
# =============================================================================

# Largest value returned by our_rand_r
RAND_R_MAX = 0x7FFFFFFF


def our_rand_r(state):
    """Draw from a 32-bit linear congruential generator.

    ``state`` is a one-element mutable container (list or numpy array) holding
    the generator state; it is updated in place so successive calls draw an
    evolving sequence. Returns a value in ``[0, RAND_R_MAX]``.

    The low bits of an LCG have short periods (the lowest one alternates),
    so the result is built from the high bits of two consecutive steps.
    """
    seed = int(state[0])
    high = 0
    for shift, width in ((15, 16), (0, 15)):
        seed = (seed * 1103515245 + 12345) & 0xFFFFFFFF
        high |= (seed >> (32 - width)) << shift
    state[0] = seed
    return high


def rand_int(low, high, random_state):
    """Generate a random integer in [low; high).

    Parameters
    ----------
    low : int
        Lower bound (inclusive)
    high : int
        Upper bound (exclusive)
    random_state : list or array with one element
        Generator state, advanced in place
    """
    if high <= low:
        return low
    return low + our_rand_r(random_state) % (high - low)


def rand_uniform(low, high, random_state):
    """Generate a random float64 in [low; high).

    Parameters
    ----------
    low : float
        Lower bound (inclusive)
    high : float
        Upper bound (exclusive)
    random_state : list or array with one element
        Generator state, advanced in place
    """
    if high == low:
        return low
    return ((high - low) * float(our_rand_r(random_state)) /
            float(RAND_R_MAX + 1)) + low


def seed_from_random_state(random_state):
    """Draw the generator seed for one build from ``random_state``.

    Accepts None, an int or a ``numpy.random.RandomState``.
    """
    return int(check_random_state(random_state).randint(0, RAND_R_MAX))


def log(x):
    """Base-2 logarithm."""
    if x <= 0:
        return -np.inf
    return math_log(x) / math_log(2.0)
