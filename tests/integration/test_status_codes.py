"""
Tests for status code sources.
"""

from collections import Counter

import pytest

from common.schemas import StatusCode
from coordinator.status_codes import FixedStatusCodeSource, RandomStatusCodeSource


class TestRandomStatusCodeSource:
    """Random draws stay inside the enumerated set"""

    def test_draws_are_valid_codes(self):
        source = RandomStatusCodeSource()
        for _ in range(200):
            assert source.next() in StatusCode

    def test_every_code_is_reachable(self):
        source = RandomStatusCodeSource(seed=7)
        counts = Counter(source.next() for _ in range(3000))

        assert set(counts) == set(StatusCode)
        # Uniform draw: each of the six codes lands near 500
        assert all(300 < count < 700 for count in counts.values())

    def test_seeded_sources_repeat(self):
        first = RandomStatusCodeSource(seed=42)
        second = RandomStatusCodeSource(seed=42)

        assert [first.next() for _ in range(20)] == [second.next() for _ in range(20)]


class TestFixedStatusCodeSource:
    """Deterministic substitute for tests"""

    def test_single_code_repeats(self):
        source = FixedStatusCodeSource(StatusCode.ON_TIME)

        assert [source.next() for _ in range(3)] == [StatusCode.ON_TIME] * 3

    def test_sequence_cycles(self):
        source = FixedStatusCodeSource(StatusCode.ON_TIME, StatusCode.LATE_AIRLINE)

        assert [int(source.next()) for _ in range(4)] == [10, 20, 10, 20]

    def test_accepts_plain_ints(self):
        source = FixedStatusCodeSource(40)

        assert source.next() is StatusCode.LATE_TECHNICAL

    def test_requires_a_code(self):
        with pytest.raises(ValueError):
            FixedStatusCodeSource()

    def test_rejects_unknown_code(self):
        with pytest.raises(ValueError):
            FixedStatusCodeSource(15)
