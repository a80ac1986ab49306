"""Unit tests for the CacheBidService facade."""

from __future__ import annotations

from pathlib import Path

import pytest

from cachebid.config_schema import AppConfig
from cachebid.core.errors import (
    AlreadyExists,
    ExceedsCap,
    InvalidAmount,
    InvalidBid,
    InvalidIdentifier,
    NotFound,
    Paused,
    Unauthorized,
)
from cachebid.core.automation import BidRequest
from cachebid.core.oracle import InMemoryCacheOracle
from cachebid.core.registry import ArtifactEntry
from cachebid.core.service import CacheBidService
from tests.testing_utils import fill_cache


class TestFromConfig:

    def test_wires_config_values(self, service: CacheBidService, app_config: AppConfig) -> None:
        assert service.cycle.max_batch_size == 4
        assert service.escrow.operator_id == app_config.automation.operator_id
        assert isinstance(service.oracle, InMemoryCacheOracle)
        assert service.oracle.cache_capacity() == 100
        assert service.events.output_path is None

    def test_per_run_logging(self, tmp_path: Path) -> None:
        config = AppConfig.model_validate({"logging": {"logs_dir": str(tmp_path)}})
        service = CacheBidService.from_config(config, run_id="run_test")
        service.fund("alice", 5)
        events_file = tmp_path / "run_test" / "events.jsonl"
        assert events_file.exists()
        assert "balance_updated" in events_file.read_text()
        assert (tmp_path / "latest").is_symlink()

    def test_injected_oracle(self, app_config: AppConfig) -> None:
        oracle = InMemoryCacheOracle(capacity=7)
        service = CacheBidService.from_config(app_config, oracle=oracle)
        assert service.oracle is oracle


class TestInsertWithFunding:
    """insert(..., funding=N) registers and funds in one call."""

    def test_insert_and_fund(self, service: CacheBidService) -> None:
        entry = service.insert("alice", "0xa1", 100, funding=150)
        assert entry == ArtifactEntry("0xa1", 100, True)
        assert service.balance_of("alice") == 150

    def test_invalid_registration_does_not_fund(self, service: CacheBidService) -> None:
        with pytest.raises(InvalidIdentifier):
            service.insert("alice", "", 100, funding=150)
        assert service.balance_of("alice") == 0

    def test_invalid_funding_does_not_register(self) -> None:
        config = AppConfig.model_validate({
            "logging": {"output_file": None},
            "escrow": {"max_balance_per_owner": 100},
        })
        service = CacheBidService.from_config(config)
        with pytest.raises(ExceedsCap):
            service.insert("alice", "0xa1", 100, funding=101)
        assert service.entries_of("alice") == []
        assert service.total_owners() == 0

    def test_negative_funding_rejected(self, service: CacheBidService) -> None:
        with pytest.raises(InvalidAmount):
            service.insert("alice", "0xa1", 100, funding=-1)
        assert service.entries_of("alice") == []


class TestInsertOrUpdate:

    def test_inserts_when_missing(self, service: CacheBidService) -> None:
        entry = service.insert_or_update("alice", "0xa1", 100)
        assert entry == ArtifactEntry("0xa1", 100, True)

    def test_updates_when_present(self, service: CacheBidService) -> None:
        service.insert("alice", "0xa1", 100)
        entry = service.insert_or_update("alice", "0xa1", 40, False)
        assert entry == ArtifactEntry("0xa1", 40, False)
        assert len(service.entries_of("alice")) == 1

    def test_update_with_additional_funding(self, service: CacheBidService) -> None:
        """Raising the ceiling and topping up the escrow in one call."""
        service.insert("alice", "0xa1", 100, funding=150)
        entry = service.insert_or_update("alice", "0xa1", 200, funding=50)
        assert entry == ArtifactEntry("0xa1", 200, True)
        assert service.balance_of("alice") == 200

    def test_insert_with_funding(self, service: CacheBidService) -> None:
        entry = service.insert_or_update("bob", "0xb1", 10, funding=5)
        assert entry == service.registry.get_entry("bob", "0xb1")
        assert service.balance_of("bob") == 5

    def test_invalid_funding_changes_nothing(self) -> None:
        config = AppConfig.model_validate({
            "logging": {"output_file": None},
            "escrow": {"max_balance_per_owner": 100},
        })
        service = CacheBidService.from_config(config)
        service.insert("alice", "0xa1", 10, funding=100)
        with pytest.raises(ExceedsCap):
            service.insert_or_update("alice", "0xa1", 99, funding=1)
        assert service.entries_of("alice") == [ArtifactEntry("0xa1", 10, True)]
        assert service.balance_of("alice") == 100

    def test_invalid_ceiling_does_not_fund(self, service: CacheBidService) -> None:
        service.insert("alice", "0xa1", 10)
        with pytest.raises(InvalidBid):
            service.insert_or_update("alice", "0xa1", -1, funding=5)
        assert service.balance_of("alice") == 0
        assert service.entries_of("alice") == [ArtifactEntry("0xa1", 10, True)]


class TestPause:
    """Admin-only pause and unpause."""

    def test_only_admin_can_pause(self, service: CacheBidService) -> None:
        with pytest.raises(Unauthorized):
            service.pause("alice")
        assert not service.is_paused

    def test_pause_blocks_execution_only(self, service: CacheBidService) -> None:
        service.insert("alice", "0xa1", 100, funding=50)
        assert service.pause("admin") is True
        assert service.pause("admin") is False

        assert not service.evaluate().work_exists
        with pytest.raises(Paused):
            service.execute([BidRequest("alice", "0xa1")])

        # Registry and withdrawals stay available
        service.insert("alice", "0xa2", 10)
        assert service.withdraw("alice") == 50

        assert service.unpause("admin") is True
        assert service.unpause("admin") is False
        assert service.events.events_of_type("paused")[0]["caller"] == "admin"
        assert len(service.events.events_of_type("unpaused")) == 1


class TestCycle:

    def test_run_cycle_through_service(self, service: CacheBidService) -> None:
        oracle = service.oracle
        assert isinstance(oracle, InMemoryCacheOracle)
        service.insert("alice", "0xa1", 100, funding=150)
        fill_cache(oracle, 99)
        oracle.set_min_bid("0xa1", 10)

        report = service.run_cycle()

        assert report.successful == 1
        assert service.balance_of("alice") == 50
        summary = service.state_summary()
        assert summary["total_held"] == 50
        assert summary["cycle_number"] == 1
        assert summary["paused"] is False


class TestSnapshot:

    def test_roundtrip(self, service: CacheBidService, app_config: AppConfig) -> None:
        service.insert("alice", "0xa1", 100, funding=150)
        service.insert("bob", "0xb1", 20, enabled=False)
        snapshot = service.snapshot()

        fresh = CacheBidService.from_config(app_config)
        fresh.restore(snapshot, "admin")

        assert fresh.snapshot() == snapshot
        assert fresh.balance_of("alice") == 150
        assert fresh.entries_of("bob") == [ArtifactEntry("0xb1", 20, False)]

    def test_failed_restore_changes_nothing(self, service: CacheBidService) -> None:
        service.insert("alice", "0xa1", 100, funding=150)
        bad = {
            "entries": {"bob": [{"artifact_id": "0xb1", "ceiling": 1}] * 2},
            "balances": {"bob": 10},
        }
        with pytest.raises(AlreadyExists):
            service.restore(bad, "admin")
        assert service.balance_of("alice") == 150
        assert service.balance_of("bob") == 0
        assert service.total_owners() == 1

    def test_remove_all_unknown_owner(self, service: CacheBidService) -> None:
        with pytest.raises(NotFound):
            service.remove_all("nobody")

    def test_restore_is_admin_only(self, service: CacheBidService) -> None:
        with pytest.raises(Unauthorized):
            service.restore({"entries": {}, "balances": {"mallory": 10}}, "mallory")
        assert service.balance_of("mallory") == 0
        assert service.escrow.total_held == 0

    def test_restore_respects_balance_cap(self, service: CacheBidService) -> None:
        service.fund("alice", 5)
        with pytest.raises(ExceedsCap):
            service.restore({"entries": {}, "balances": {"mallory": 10**30}}, "admin")
        assert service.escrow.balances == {"alice": 5}
        assert service.escrow.check_invariant()
