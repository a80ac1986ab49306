"""Artifact registry - per-owner entry lists plus an enumerable owner set

Each owner keeps an ordered list of ArtifactEntry records. An owner is a
member of the EnumerableOwnerSet exactly when their list is non-empty; every
mutation below updates both in the same call.

Usage:
    registry = Registry(max_entries_per_owner=100, max_page_size=50)
    registry.insert("alice", "0xabc...", ceiling=100, enabled=True)
    page = registry.page(offset=0, limit=10)
    page.owners[0].entries  # (ArtifactEntry(...),)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Iterator, TYPE_CHECKING

from .errors import (
    AlreadyExists,
    InvalidBid,
    InvalidIdentifier,
    NotFound,
    TooManyEntries,
)

if TYPE_CHECKING:
    from .logger import EventLogger
    from ..config_schema import RegistryConfig


logger = logging.getLogger(__name__)

NULL_ARTIFACT_ID = "0x0000000000000000000000000000000000000000"


def is_null_identifier(artifact_id: object) -> bool:
    """True for the null address, empty strings and non-string ids."""
    if not isinstance(artifact_id, str):
        return True
    stripped = artifact_id.strip()
    return stripped == "" or stripped.lower() == NULL_ARTIFACT_ID


@dataclass
class ArtifactEntry:
    """One artifact an owner wants kept resident."""

    artifact_id: str
    ceiling: int
    enabled: bool = True

    def to_dict(self) -> dict[str, object]:
        return {
            "artifact_id": self.artifact_id,
            "ceiling": self.ceiling,
            "enabled": self.enabled,
        }


@dataclass(frozen=True)
class OwnerEntries:
    """An owner together with a copy of their entry list."""

    owner_id: str
    entries: tuple[ArtifactEntry, ...]


@dataclass(frozen=True)
class OwnerPage:
    """Result of Registry.page()."""

    owners: tuple[OwnerEntries, ...]
    has_more: bool


class EnumerableOwnerSet:
    """Set of owner ids with O(1) add/remove/contains and indexed access.

    Removal swaps the last member into the removed slot, so indices are
    stable only between mutations.
    """

    def __init__(self) -> None:
        self._members: list[str] = []
        self._index: dict[str, int] = {}

    def add(self, owner_id: str) -> bool:
        """Add owner_id. Returns False if it was already present."""
        if owner_id in self._index:
            return False
        self._index[owner_id] = len(self._members)
        self._members.append(owner_id)
        return True

    def remove(self, owner_id: str) -> bool:
        """Remove owner_id. Returns False if it was not present."""
        position = self._index.pop(owner_id, None)
        if position is None:
            return False
        last = self._members.pop()
        if position < len(self._members):
            self._members[position] = last
            self._index[last] = position
        return True

    def at(self, position: int) -> str:
        return self._members[position]

    def __contains__(self, owner_id: object) -> bool:
        return owner_id in self._index

    def __len__(self) -> int:
        return len(self._members)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._members))


class Registry:
    """Owner -> artifact entries, with bounded enumeration.

    Thread-safety: This class is NOT thread-safe. Every call runs to
    completion before the next one starts.
    """

    def __init__(
        self,
        min_ceiling: int = 0,
        max_entries_per_owner: int = 100,
        max_page_size: int = 50,
        event_logger: "EventLogger | None" = None,
    ) -> None:
        self._entries: dict[str, list[ArtifactEntry]] = {}
        self._owners = EnumerableOwnerSet()
        self._min_ceiling = min_ceiling
        self._max_entries = max_entries_per_owner
        self._max_page_size = max_page_size
        self._events = event_logger

    @classmethod
    def from_config(
        cls,
        config: "RegistryConfig",
        event_logger: "EventLogger | None" = None,
    ) -> "Registry":
        """Create a Registry from the validated registry config section."""
        return cls(
            min_ceiling=config.min_ceiling,
            max_entries_per_owner=config.max_entries_per_owner,
            max_page_size=config.max_page_size,
            event_logger=event_logger,
        )

    @property
    def max_page_size(self) -> int:
        return self._max_page_size

    def _log(self, event_type: str, owner_id: str, entry: ArtifactEntry) -> None:
        if self._events is not None:
            self._events.log(event_type, {"owner_id": owner_id, **entry.to_dict()})

    def _find(self, owner_id: str, artifact_id: str) -> int | None:
        for position, entry in enumerate(self._entries.get(owner_id, [])):
            if entry.artifact_id == artifact_id:
                return position
        return None

    # ========== Mutations ==========

    def validate_ceiling(self, ceiling: int) -> None:
        """Raise InvalidBid unless ceiling is an integer at or above the minimum."""
        if isinstance(ceiling, bool) or not isinstance(ceiling, int) or ceiling < self._min_ceiling:
            raise InvalidBid(
                f"Ceiling {ceiling!r} is below the minimum of {self._min_ceiling}",
                ceiling=repr(ceiling),
                minimum=self._min_ceiling,
            )

    def validate_insert(self, owner_id: str, artifact_id: str, ceiling: int) -> None:
        """Raise the error insert() would raise, without changing state."""
        if is_null_identifier(artifact_id):
            raise InvalidIdentifier(f"Invalid artifact identifier: {artifact_id!r}")
        self.validate_ceiling(ceiling)
        if len(self._entries.get(owner_id, [])) >= self._max_entries:
            raise TooManyEntries(
                f"{owner_id} already has {self._max_entries} artifacts registered",
                limit=self._max_entries,
            )
        if self._find(owner_id, artifact_id) is not None:
            raise AlreadyExists(
                f"{artifact_id} is already registered for {owner_id}",
                artifact_id=artifact_id,
            )

    def insert(self, owner_id: str, artifact_id: str, ceiling: int, enabled: bool = True) -> ArtifactEntry:
        """Register a new artifact for owner_id.

        Raises:
            InvalidIdentifier: artifact_id is the null identifier
            InvalidBid: ceiling is below the configured minimum
            TooManyEntries: owner is at the per-owner cap
            AlreadyExists: artifact_id is already registered for this owner
        """
        self.validate_insert(owner_id, artifact_id, ceiling)
        entry = ArtifactEntry(artifact_id=artifact_id, ceiling=ceiling, enabled=bool(enabled))
        self._entries.setdefault(owner_id, []).append(entry)
        self._owners.add(owner_id)
        self._log("entry_added", owner_id, entry)
        return replace(entry)

    def update(self, owner_id: str, artifact_id: str, ceiling: int, enabled: bool) -> bool:
        """Overwrite ceiling and enabled in place.

        Unknown artifacts are a successful no-op. Returns True when an entry
        was updated.
        """
        position = self._find(owner_id, artifact_id)
        if position is None:
            return False
        self.validate_ceiling(ceiling)
        entry = self._entries[owner_id][position]
        entry.ceiling = ceiling
        entry.enabled = bool(enabled)
        self._log("entry_updated", owner_id, entry)
        return True

    def remove(self, owner_id: str, artifact_id: str) -> ArtifactEntry:
        """Remove one entry (swap-with-last, order not preserved).

        Raises:
            NotFound: artifact_id is not registered for owner_id
        """
        position = self._find(owner_id, artifact_id)
        if position is None:
            raise NotFound(
                f"{artifact_id} is not registered for {owner_id}",
                artifact_id=artifact_id,
            )
        entries = self._entries[owner_id]
        removed = entries[position]
        last = entries.pop()
        if position < len(entries):
            entries[position] = last
        if not entries:
            del self._entries[owner_id]
            self._owners.remove(owner_id)
        self._log("entry_removed", owner_id, removed)
        return removed

    def remove_all(self, owner_id: str) -> list[ArtifactEntry]:
        """Remove every entry of owner_id, one entry_removed event each.

        Raises:
            NotFound: owner has no entries
        """
        entries = self._entries.pop(owner_id, None)
        if not entries:
            raise NotFound(f"{owner_id} has no registered artifacts")
        self._owners.remove(owner_id)
        for entry in entries:
            self._log("entry_removed", owner_id, entry)
        return entries

    # ========== Queries ==========

    def entries_of(self, owner_id: str) -> list[ArtifactEntry]:
        """Copy of the owner's entries in list order."""
        return [replace(entry) for entry in self._entries.get(owner_id, [])]

    def get_entry(self, owner_id: str, artifact_id: str) -> ArtifactEntry | None:
        """Copy of one entry, or None."""
        position = self._find(owner_id, artifact_id)
        if position is None:
            return None
        return replace(self._entries[owner_id][position])

    def has_owner(self, owner_id: str) -> bool:
        return owner_id in self._owners

    def total_owners(self) -> int:
        return len(self._owners)

    def total_entries(self) -> int:
        return sum(len(entries) for entries in self._entries.values())

    def page(self, offset: int, limit: int) -> OwnerPage:
        """Up to min(limit, max_page_size) owners starting at offset.

        Returns an empty page with has_more=False when offset is past the
        last owner. Negative offsets or limits are treated as zero.
        """
        total = len(self._owners)
        offset = max(offset, 0)
        size = min(max(limit, 0), self._max_page_size)
        if offset >= total:
            return OwnerPage(owners=(), has_more=False)
        if size == 0:
            return OwnerPage(owners=(), has_more=True)

        end = min(offset + size, total)
        owners = tuple(
            OwnerEntries(
                owner_id=self._owners.at(position),
                entries=tuple(self.entries_of(self._owners.at(position))),
            )
            for position in range(offset, end)
        )
        return OwnerPage(owners=owners, has_more=end < total)

    def iter_pages(self, page_size: int | None = None) -> Iterator[OwnerPage]:
        """Walk every owner with bounded page() calls."""
        size = page_size or self._max_page_size
        offset = 0
        while True:
            current = self.page(offset, size)
            if current.owners:
                yield current
            if not current.has_more:
                return
            offset += len(current.owners)

    # ========== Persistence ==========

    def snapshot(self) -> dict[str, list[dict[str, object]]]:
        """Owner -> entry dicts in owner-set order, suitable for JSON."""
        return {
            owner_id: [entry.to_dict() for entry in self._entries[owner_id]]
            for owner_id in self._owners
        }

    def restore(self, data: dict[str, list[dict[str, object]]]) -> None:
        """Replace all entries from a snapshot().

        Limits are re-checked against a scratch registry first, so an invalid
        snapshot leaves the current state untouched.
        """
        scratch = Registry(
            min_ceiling=self._min_ceiling,
            max_entries_per_owner=self._max_entries,
            max_page_size=self._max_page_size,
        )
        for owner_id, entries in data.items():
            for raw in entries:
                scratch.insert(
                    owner_id,
                    str(raw["artifact_id"]),
                    int(raw["ceiling"]),  # type: ignore[call-overload]
                    bool(raw.get("enabled", True)),
                )
        self._entries = scratch._entries
        self._owners = scratch._owners
