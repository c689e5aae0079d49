from __future__ import annotations

import math
from typing import Iterable

import numpy as np

_RATE_CEIL = 0.9999999
_RATE_FLOOR = 0.0000001


def log_tail_probability(n: int, k: int, p: float, divisor: float) -> float:
    """Log of a one-sided binomial tail P(X >= k), X ~ Bin(n, p), via large deviations.

    Uses the relative-entropy bound ``-n * D(k/n || p)``, scaled by
    ``1 / divisor``. The bound is tight when ``k/n >> p`` and loose near ``p``,
    but it is already a log value so it never underflows. When the observed
    rate is below ``p`` the sign of the entropy term is flipped, so fewer
    errors than expected score above zero.

    ``n == 0`` returns ``0.0``.
    """
    if n == 0:
        return 0.0
    if k < 0 or k > n:
        raise ValueError(f"k must be in [0, n]; got n={n}, k={k}")

    a = k / n
    # D(a || p) is undefined at the boundaries
    if a == 1.0:
        a = _RATE_CEIL
    if a == 0.0:
        a = _RATE_FLOOR

    rel_ent = a * math.log(a / p) + (1.0 - a) * math.log((1.0 - a) / (1.0 - p))
    if a < p:
        rel_ent = -rel_ent

    return -1.0 * n / divisor * rel_ent


def log_sum_exp(values: Iterable[float]) -> float:
    """Numerically stable ``log(sum(exp(values)))``."""
    arr = np.asarray(list(values), dtype=float)
    if arr.size == 0:
        raise ValueError("log_sum_exp of an empty sequence is undefined")
    m = float(np.max(arr))
    if math.isinf(m):
        return m
    return m + float(np.log(np.sum(np.exp(arr - m))))
