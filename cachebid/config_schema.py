"""Typed schema for config/config.yaml.

Each section of the YAML file maps to one StrictModel below. Unknown keys
are errors, so a misspelt setting is reported at startup instead of being
silently ignored.

Usage:
    from cachebid.config_schema import load_validated_config
    config = load_validated_config("config/config.yaml")
    config.pricing.threshold_bps
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, model_validator


# =============================================================================
# BASE MODEL WITH STRICT VALIDATION
# =============================================================================

class StrictModel(BaseModel):
    """Base model that rejects unknown fields (catches typos)."""

    model_config = ConfigDict(extra="forbid")


# =============================================================================
# ESCROW MODEL
# =============================================================================

class EscrowConfig(StrictModel):
    """Escrow ledger limits."""

    min_fund_amount: int = Field(
        default=1,
        ge=0,
        description="Smallest amount accepted by a single fund call"
    )
    max_balance_per_owner: int = Field(
        default=10**18,
        gt=0,
        description="Upper bound on any owner's escrowed balance (1 ETH in wei)"
    )


# =============================================================================
# REGISTRY MODEL
# =============================================================================

class RegistryConfig(StrictModel):
    """Artifact registry limits."""

    min_ceiling: int = Field(
        default=0,
        ge=0,
        description="Smallest spending ceiling an entry may declare"
    )
    max_entries_per_owner: int = Field(
        default=100,
        gt=0,
        description="Maximum number of artifacts one owner may register"
    )
    max_page_size: int = Field(
        default=50,
        gt=0,
        description="Upper bound on owners returned by one page() call"
    )


# =============================================================================
# PRICING MODEL
# =============================================================================

class PricingConfig(StrictModel):
    """Bid pricing engine parameters.

    Utilization and threshold are expressed in basis points (10000 = 100%).
    """

    horizon_seconds: int = Field(
        default=2_592_000,
        ge=0,
        description="How far ahead to project the minimum bid decay (30 days)"
    )
    threshold_bps: int = Field(
        default=9_800,
        ge=0,
        le=10_000,
        description="Cache utilization above which bidding starts"
    )
    bid_increment: int = Field(
        default=1,
        ge=0,
        description="Per-batch-index increment that keeps bids within a batch distinct"
    )


# =============================================================================
# AUTOMATION MODEL
# =============================================================================

class AutomationConfig(StrictModel):
    """Automation cycle and scheduler configuration."""

    max_batch_size: int = Field(
        default=50,
        gt=0,
        description="Maximum bid requests evaluated or executed in one cycle"
    )
    operator_id: str = Field(
        default="cachebid_automation",
        min_length=1,
        description="Identity the automation cycle uses against the escrow ledger"
    )
    admin_id: str = Field(
        default="admin",
        min_length=1,
        description="Identity allowed to pause and unpause bidding"
    )
    interval_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Seconds between scheduled cycles"
    )

    @model_validator(mode="after")
    def operator_is_not_admin(self) -> "AutomationConfig":
        """The operator identity must not double as the admin."""
        if self.operator_id == self.admin_id:
            raise ValueError("automation.operator_id and automation.admin_id must differ")
        return self


# =============================================================================
# ORACLE MODEL
# =============================================================================

class OracleConfig(StrictModel):
    """In-memory cache oracle used for local runs and tests."""

    capacity: int = Field(
        default=100,
        ge=0,
        description="Total cache capacity in size units"
    )
    decay_rate: int = Field(
        default=0,
        ge=0,
        description="Per-second increase applied to outstanding minimum bids"
    )
    default_artifact_size: int = Field(
        default=1,
        gt=0,
        description="Size assumed for artifacts without an explicit size"
    )


# =============================================================================
# LOGGING MODEL
# =============================================================================

class LoggingConfig(StrictModel):
    """Event log and standard logger settings."""

    output_file: str | None = Field(
        default="run.jsonl",
        description="JSONL file for events (null keeps events in memory only)"
    )
    logs_dir: str = Field(
        default="logs",
        description="Parent directory of per-run log folders (logs/<run_id>/)"
    )
    default_recent: int = Field(
        default=50,
        gt=0,
        description="Events returned by /api/events when no limit is given"
    )
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Level for the standard library logger"
    )


# =============================================================================
# API MODEL
# =============================================================================

class ApiConfig(StrictModel):
    """HTTP API server configuration."""

    host: str = Field(default="127.0.0.1", description="Host to bind to")
    port: int = Field(default=8080, gt=0, lt=65536, description="Port to bind to")


# =============================================================================
# ROOT CONFIG MODEL
# =============================================================================

class AppConfig(StrictModel):
    """Whole config file.

    Every section is optional; an empty file gives the defaults below.
    """

    escrow: EscrowConfig = Field(default_factory=EscrowConfig)
    registry: RegistryConfig = Field(default_factory=RegistryConfig)
    pricing: PricingConfig = Field(default_factory=PricingConfig)
    automation: AutomationConfig = Field(default_factory=AutomationConfig)
    oracle: OracleConfig = Field(default_factory=OracleConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)


# =============================================================================
# LOADING FUNCTIONS
# =============================================================================

def load_validated_config(config_path: str | Path = "config/config.yaml") -> AppConfig:
    """Parse a YAML config file into an AppConfig.

    An empty file yields the defaults.

    Raises:
        FileNotFoundError: no file at config_path
        pydantic.ValidationError: unknown keys or out-of-range values
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path) as f:
        raw_config = yaml.safe_load(f) or {}

    return validate_config_dict(raw_config)


def validate_config_dict(config_dict: dict[str, Any]) -> AppConfig:
    """Validate an already-parsed mapping (e.g. after CLI overrides)."""
    return AppConfig.model_validate(config_dict)


# =============================================================================
# EXPORTS
# =============================================================================

__all__ = [
    # Root config
    "AppConfig",
    # Sub-configs
    "StrictModel",
    "EscrowConfig",
    "RegistryConfig",
    "PricingConfig",
    "AutomationConfig",
    "OracleConfig",
    "LoggingConfig",
    "ApiConfig",
    # Functions
    "load_validated_config",
    "validate_config_dict",
]
