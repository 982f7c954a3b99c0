from __future__ import annotations

import random

import pytest

from app.scraper.pacing import PacingPolicy


def _policy(sleeps: list[float], seed: int = 7) -> PacingPolicy:
    return PacingPolicy(
        (2.0, 7.0),
        (5.0, 15.0),
        sleep=sleeps.append,
        rng=random.Random(seed),
        logger=lambda _msg: None,
    )


@pytest.mark.parametrize("seed", range(20))
def test_delays_stay_inside_their_ranges(seed: int) -> None:
    sleeps: list[float] = []
    policy = _policy(sleeps, seed)

    before = policy.before_attempt()
    after = policy.after_attempt()

    assert 2.0 <= before <= 7.0
    assert 5.0 <= after <= 15.0
    assert sleeps == [before, after]


def test_delays_are_randomised() -> None:
    sleeps: list[float] = []
    policy = _policy(sleeps)

    for _ in range(10):
        policy.before_attempt()

    assert len(set(sleeps)) > 1


def test_pacing_logs_each_delay() -> None:
    lines: list[str] = []
    policy = PacingPolicy(
        (1.0, 1.0), (3.0, 3.0), sleep=lambda _s: None, logger=lines.append
    )

    assert policy.before_attempt() == 1.0
    assert policy.after_attempt() == 3.0
    assert lines[0].startswith("[SCRAPER][PACING]")
    assert "kind='before_attempt'" in lines[0]
    assert "kind='after_attempt'" in lines[1]
