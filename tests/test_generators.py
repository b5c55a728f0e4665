import random

import pytest

from bitswap.generators import (
    Delay,
    FixedRateLimitGenerator,
    InternetLatencyDelayGenerator,
    VariableRateLimitGenerator,
    fixed_delay,
)

TEST_SEED = 99


def test_internet_latency_next_wait_time_distribution():
    initial = 1.0
    deviation = 0.1
    medium = 1.0
    large = 3.0
    percent_medium = 0.2
    percent_large = 0.4
    gen = InternetLatencyDelayGenerator(
        medium, large, percent_medium, percent_large, deviation, random.Random(TEST_SEED)
    )
    samples = 10000
    values = [gen.next_wait_time(initial) for _ in range(samples)]

    fast = sum(1 for v in values if abs(v - initial) <= deviation)
    medium_count = sum(
        1
        for v in values
        if abs(v - initial) > deviation and abs(v - initial - medium) <= deviation
    )
    slow = sum(
        1
        for v in values
        if abs(v - initial) > deviation
        and abs(v - initial - medium) > deviation
        and abs(v - initial - large) <= deviation
    )
    in_one = float(fast + medium_count + slow)

    assert abs(in_one / samples - 0.6827) < 0.1
    assert abs(fast / in_one + percent_medium + percent_large - 1) < 0.1
    assert abs(medium_count / in_one - percent_medium) < 0.1
    assert abs(slow / in_one - percent_large) < 0.1
    assert max(values) > initial + large - deviation


def test_internet_latency_without_spread_returns_base():
    gen = InternetLatencyDelayGenerator(1.0, 3.0, 0.0, 0.0, 0.0, random.Random(1))
    assert gen.next_wait_time(0.25) == pytest.approx(0.25)


def test_internet_latency_always_large():
    gen = InternetLatencyDelayGenerator(1.0, 3.0, 0.0, 1.0, 0.0, random.Random(1))
    assert gen.next_wait_time(0.5) == pytest.approx(3.5)


def test_fixed_delay_returns_value():
    d = fixed_delay(0.01)
    assert d.next_wait_time() == 0.01
    assert d.get() == 0.01


def test_delay_set_returns_previous():
    d = fixed_delay(0.5)
    assert d.set(0.25) == 0.5
    assert d.get() == 0.25
    assert d.next_wait_time() == 0.25


def test_delay_with_generator():
    gen = InternetLatencyDelayGenerator(0.2, 0.7, 1.0, 0.0, 0.0, random.Random(3))
    d = Delay(0.1, gen)
    assert d.next_wait_time() == pytest.approx(0.3)


def test_fixed_rate_limit():
    assert FixedRateLimitGenerator(1250000.0).next_rate_limit() == 1250000.0


def test_variable_rate_limit_without_deviation():
    gen = VariableRateLimitGenerator(500000.0, 0.0, random.Random(5))
    assert gen.next_rate_limit() == 500000.0


def test_variable_rate_limit_is_reproducible_with_seed():
    a = VariableRateLimitGenerator(100000.0, 16500.0, random.Random(7))
    b = VariableRateLimitGenerator(100000.0, 16500.0, random.Random(7))
    assert [a.next_rate_limit() for _ in range(5)] == [
        b.next_rate_limit() for _ in range(5)
    ]


def test_variable_rate_limit_mean():
    gen = VariableRateLimitGenerator(1000.0, 100.0, random.Random(TEST_SEED))
    values = [gen.next_rate_limit() for _ in range(5000)]
    assert abs(sum(values) / len(values) - 1000.0) < 10.0