"""Unit tests for the in-memory cache oracle."""

from __future__ import annotations

from cachebid.config_schema import OracleConfig
from cachebid.core.oracle import AdmissionResult, CacheOracle, InMemoryCacheOracle
from tests.testing_utils import VirtualClock, fill_cache


class TestProtocol:

    def test_in_memory_oracle_satisfies_protocol(self, oracle: InMemoryCacheOracle) -> None:
        assert isinstance(oracle, CacheOracle)

    def test_from_config(self) -> None:
        oracle = InMemoryCacheOracle.from_config(
            OracleConfig(capacity=10, decay_rate=2, default_artifact_size=3)
        )
        assert oracle.cache_capacity() == 10
        assert oracle.decay_rate() == 2
        assert oracle.size_of("anything") == 3


class TestMinBid:
    """Tests for min_bid() under different cache pressure."""

    def test_zero_when_artifact_fits(self, oracle: InMemoryCacheOracle) -> None:
        fill_cache(oracle, 99, bid=500)
        assert oracle.min_bid("0xa1") == 0

    def test_highest_bid_in_eviction_plan(self, clock: VirtualClock) -> None:
        oracle = InMemoryCacheOracle(capacity=3, clock=clock)
        oracle.occupy("low", 1, bid=5)
        oracle.occupy("mid", 1, bid=8)
        oracle.occupy("high", 1, bid=20)
        assert oracle.min_bid("new") == 5
        oracle.set_size("big", 2)
        assert oracle.min_bid("big") == 8

    def test_decay_lowers_min_bid_over_time(self, clock: VirtualClock) -> None:
        oracle = InMemoryCacheOracle(capacity=1, decay_rate=1, clock=clock)
        oracle.occupy("old", 1, bid=100)
        assert oracle.min_bid("new") == 100
        clock.advance(30)
        assert oracle.min_bid("new") == 70
        clock.advance(1_000)
        assert oracle.min_bid("new") == 0

    def test_override(self, oracle: InMemoryCacheOracle) -> None:
        oracle.set_min_bid("0xa1", 42)
        assert oracle.min_bid("0xa1") == 42
        oracle.set_min_bid("0xa1", None)
        assert oracle.min_bid("0xa1") == 0


class TestAdmit:
    """Tests for admit()."""

    def test_admit_into_free_space(self, oracle: InMemoryCacheOracle) -> None:
        result = oracle.admit("0xa1", 0)
        assert result == AdmissionResult(success=True)
        assert oracle.is_resident("0xa1")
        assert oracle.cache_occupancy() == 1

    def test_bid_below_minimum_rejected(self, oracle: InMemoryCacheOracle) -> None:
        oracle.set_min_bid("0xa1", 10)
        result = oracle.admit("0xa1", 9)
        assert not result.success
        assert "below the minimum" in result.reason
        assert not oracle.is_resident("0xa1")
        assert oracle.received == 0

    def test_admission_evicts_lowest_bidders(self, clock: VirtualClock) -> None:
        oracle = InMemoryCacheOracle(capacity=2, clock=clock)
        oracle.occupy("low", 1, bid=5)
        oracle.occupy("high", 1, bid=50)
        result = oracle.admit("new", 6)
        assert result.success
        assert result.evicted == ["low"]
        assert sorted(oracle.resident_ids()) == ["high", "new"]
        assert oracle.received == 6
        assert oracle.admissions == [("new", 6)]

    def test_already_cached_rejected(self, oracle: InMemoryCacheOracle) -> None:
        oracle.admit("0xa1", 0)
        result = oracle.admit("0xa1", 0)
        assert not result.success
        assert "already cached" in result.reason

    def test_too_large_rejected(self, oracle: InMemoryCacheOracle) -> None:
        oracle.set_size("huge", 101)
        assert not oracle.admit("huge", 10**6).success

    def test_reject_next(self, oracle: InMemoryCacheOracle) -> None:
        oracle.reject_next("outbid")
        first = oracle.admit("0xa1", 0)
        assert first == AdmissionResult(success=False, reason="outbid")
        assert oracle.admit("0xa1", 0).success

    def test_admission_clears_override(self, oracle: InMemoryCacheOracle) -> None:
        oracle.set_min_bid("0xa1", 10)
        oracle.admit("0xa1", 10)
        oracle.evict("0xa1")
        assert oracle.min_bid("0xa1") == 0


class TestControls:

    def test_evict_and_evict_all(self, oracle: InMemoryCacheOracle) -> None:
        oracle.admit("0xa1", 0)
        oracle.admit("0xa2", 0)
        assert oracle.evict("0xa1") is True
        assert oracle.evict("0xa1") is False
        oracle.evict_all()
        assert oracle.resident_ids() == []
        assert oracle.cache_occupancy() == 0
