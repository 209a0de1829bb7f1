import pytest

from common.config import ExpansionConfig
from common.exceptions import ConfigurationError
from common.pacing import FixedDelayPacer, NoPacer, TokenBucketPacer, build_pacer


def test_fixed_delay_sleeps_configured_seconds():
    sleeps = []
    FixedDelayPacer(1.5, sleep=sleeps.append).wait()
    assert sleeps == [1.5]


def test_zero_delay_does_not_sleep():
    sleeps = []
    FixedDelayPacer(0, sleep=sleeps.append).wait()
    assert sleeps == []


def test_token_bucket_blocks_when_empty():
    now = [0.0]
    sleeps = []

    def sleep(seconds):
        sleeps.append(seconds)
        now[0] += seconds

    pacer = TokenBucketPacer(2, clock=lambda: now[0], sleep=sleep)
    pacer.wait()
    pacer.wait()
    assert sleeps == []

    pacer.wait()
    assert sleeps == [30.0]


def test_build_pacer_variants():
    assert isinstance(build_pacer(ExpansionConfig(pacing="none")), NoPacer)
    fixed = build_pacer(ExpansionConfig(pacing="fixed", delay_seconds=3))
    assert isinstance(fixed, FixedDelayPacer) and fixed.seconds == 3
    bucket = build_pacer(ExpansionConfig(pacing="token_bucket", requests_per_minute=6))
    assert isinstance(bucket, TokenBucketPacer) and bucket.capacity == 6


def test_token_bucket_requires_rate():
    with pytest.raises(ConfigurationError):
        build_pacer(ExpansionConfig(pacing="token_bucket"))
