import math
import random

import pytest

from hapfrag.scoring import log_sum_exp, log_tail_probability


def test_log_tail_probability_zero_trials():
    assert log_tail_probability(0, 0, 0.05, 1.0) == 0.0


def test_log_tail_probability_finite_on_boundaries():
    for n in (1, 2, 10, 500):
        for k in (0, n // 2, n):
            for p in (0.001, 0.05, 0.5, 0.999):
                for d in (0.5, 1.0, 3.0):
                    assert math.isfinite(log_tail_probability(n, k, p, d))


def test_log_tail_probability_matches_relative_entropy():
    n, k, p = 20, 10, 0.1
    a = k / n
    rel_ent = a * math.log(a / p) + (1 - a) * math.log((1 - a) / (1 - p))
    assert log_tail_probability(n, k, p, 1.0) == pytest.approx(-n * rel_ent)
    assert log_tail_probability(n, k, p, 2.0) == pytest.approx(-n * rel_ent / 2.0)


def test_log_tail_probability_below_expected_rate_is_a_bonus():
    assert log_tail_probability(100, 1, 0.05, 1.0) > 0.0
    assert log_tail_probability(100, 5, 0.05, 1.0) == pytest.approx(0.0)
    assert log_tail_probability(100, 50, 0.05, 1.0) < 0.0


def test_log_tail_probability_monotone_in_errors():
    scores = [log_tail_probability(50, k, 0.05, 1.0) for k in range(0, 51)]
    assert all(x >= y for x, y in zip(scores, scores[1:]))


def test_log_tail_probability_rejects_bad_k():
    with pytest.raises(ValueError):
        log_tail_probability(5, 6, 0.1, 1.0)


def test_log_sum_exp_identity_and_order():
    assert log_sum_exp([-3.5]) == pytest.approx(-3.5)
    values = [-1000.0, -1001.0, -999.5, -1200.0]
    shuffled = list(values)
    random.Random(1).shuffle(shuffled)
    assert log_sum_exp(values) == pytest.approx(log_sum_exp(shuffled))


def test_log_sum_exp_stable():
    # naive exp() would underflow to 0 here
    assert log_sum_exp([-1000.0, -1000.0]) == pytest.approx(-1000.0 + math.log(2.0))
    assert log_sum_exp([0.0, math.log(3.0)]) == pytest.approx(math.log(4.0))
    assert log_sum_exp([float("-inf"), float("-inf")]) == float("-inf")
    with pytest.raises(ValueError):
        log_sum_exp([])
