"""Pydantic models for API request bodies."""

from __future__ import annotations

from pydantic import BaseModel, Field


class InsertEntryRequest(BaseModel):
    """Register an artifact, optionally funding the escrow in the same call."""
    artifact_id: str
    ceiling: int
    enabled: bool = True
    funding: int = Field(default=0, ge=0)


class UpdateEntryRequest(BaseModel):
    ceiling: int
    enabled: bool = True


class UpsertEntryRequest(BaseModel):
    """Insert, or overwrite ceiling and enabled if already registered.

    funding, if given, is added to the owner's escrow in the same call.
    """
    ceiling: int
    enabled: bool = True
    funding: int = Field(default=0, ge=0)


class FundRequest(BaseModel):
    amount: int


class BidRequestModel(BaseModel):
    owner_id: str
    artifact_id: str


class ExecuteRequest(BaseModel):
    """Worklist for /api/cycle/execute, usually the output of /api/cycle/evaluate."""
    requests: list[BidRequestModel] = Field(default_factory=list)


class AdminRequest(BaseModel):
    caller_id: str


class EntryModel(BaseModel):
    artifact_id: str
    ceiling: int
    enabled: bool = True


class SnapshotModel(BaseModel):
    """Persisted state: owner -> entries, owner -> balance."""
    entries: dict[str, list[EntryModel]] = Field(default_factory=dict)
    balances: dict[str, int] = Field(default_factory=dict)


class RestoreRequest(SnapshotModel):
    """Snapshot to restore, submitted by the admin."""
    caller_id: str
