"""Catalog store holding cached games, keyed by their IGDB id."""

import json
from collections import OrderedDict
from collections.abc import Callable
from datetime import datetime, timezone
from itertools import islice
from pathlib import Path
from typing import Any, Protocol

import structlog

from ..models import CatalogEntry
from .errors import CatalogError

log = structlog.stdlib.get_logger()

SNAPSHOT_VERSION = 1

# Fields a write may carry besides the id
_ENTRY_FIELDS = (
    "title",
    "category",
    "aggregated_rating",
    "aggregated_rating_count",
    "hype_count",
    "first_release_date",
)
_FRANCHISE_FIELDS = ("franchise", "franchises", "franchise_names")


class CatalogStore(Protocol):
    """Operations the search subsystem needs from a catalog store."""

    def get_recent(self, limit: int) -> list[CatalogEntry]:
        """Return up to limit entries, most recently written first."""
        ...

    def upsert(self, entry_id: int, fields: dict[str, Any]) -> CatalogEntry:
        """Insert or replace the entry with this id."""
        ...

    def get_by_id(self, entry_id: int) -> CatalogEntry | None:
        """Return the entry with this id, if cached."""
        ...


def normalize_franchise_names(franchise: Any = None, franchises: Any = None) -> list[str]:
    """Flatten heterogeneous franchise payloads into a list of labels.

    Accepts a primary label (string or {"name": ...}) and a collection given
    as a list of strings, a list of {"name": ...} objects, or a JSON array
    string. Labels are deduplicated by exact string, first occurrence wins.
    """
    candidates: list[Any] = []

    if franchise is not None:
        candidates.append(franchise)

    if isinstance(franchises, str):
        try:
            franchises = json.loads(franchises)
        except json.JSONDecodeError:
            log.debug("Ignoring malformed franchises payload", payload=franchises[:100])
            franchises = None
    if isinstance(franchises, (list, tuple)):
        candidates.extend(franchises)

    names: list[str] = []
    for candidate in candidates:
        if isinstance(candidate, dict):
            candidate = candidate.get("name")
        if isinstance(candidate, str) and candidate and candidate not in names:
            names.append(candidate)
    return names


def _flattened_names(value: Any) -> list[str]:
    """Labels given as "franchise_names": a single label or a list of them."""
    if isinstance(value, str):
        return normalize_franchise_names(franchise=value)
    if isinstance(value, (list, tuple)):
        return normalize_franchise_names(franchises=list(value))
    return []


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryCatalogStore:
    """Catalog store kept in process memory with optional JSON snapshots.

    Entries are kept in write order, so reading the most recent N entries
    never touches the rest of the catalog.
    """

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self._entries: OrderedDict[int, CatalogEntry] = OrderedDict()
        self._clock = clock or _utc_now

    def __len__(self) -> int:
        return len(self._entries)

    def get_recent(self, limit: int) -> list[CatalogEntry]:
        if limit <= 0:
            return []
        return list(islice(reversed(self._entries.values()), limit))

    def get_by_id(self, entry_id: int) -> CatalogEntry | None:
        return self._entries.get(entry_id)

    def upsert(self, entry_id: int, fields: dict[str, Any]) -> CatalogEntry:
        """Insert the entry, or replace every field of an existing one.

        Args:
            entry_id: Stable external identifier
            fields: Entry fields; franchise data may be given raw as
                "franchise"/"franchises" or already flattened as "franchise_names"

        Returns:
            The stored entry with a fresh last_updated timestamp

        Raises:
            ValueError: If the title is missing or unknown fields are given
        """
        unknown = set(fields) - set(_ENTRY_FIELDS) - set(_FRANCHISE_FIELDS)
        if unknown:
            raise ValueError(f"Unknown catalog fields: {', '.join(sorted(unknown))}")

        title = fields.get("title")
        if not isinstance(title, str) or not title:
            raise ValueError(f"Catalog entry {entry_id} requires a title")

        if "franchise_names" in fields:
            franchise_names = _flattened_names(fields["franchise_names"])
        else:
            franchise_names = normalize_franchise_names(fields.get("franchise"), fields.get("franchises"))

        entry = CatalogEntry(
            id=entry_id,
            title=title,
            last_updated=self._clock(),
            category=fields.get("category"),
            aggregated_rating=fields.get("aggregated_rating"),
            aggregated_rating_count=fields.get("aggregated_rating_count"),
            hype_count=fields.get("hype_count"),
            first_release_date=fields.get("first_release_date"),
            franchise_names=franchise_names,
        )

        existed = entry_id in self._entries
        # Re-inserting moves the id to the most recent end
        self._entries.pop(entry_id, None)
        self._entries[entry_id] = entry

        log.debug("Catalog entry upserted", entry_id=entry_id, title=title, updated=existed)
        return entry

    def save(self, path: Path) -> None:
        """Write a JSON snapshot of the catalog, replacing the file atomically.

        Raises:
            CatalogError: If the snapshot cannot be written
        """
        data = {
            "version": SNAPSHOT_VERSION,
            # Oldest first so loading replays writes in order
            "entries": [_entry_to_dict(entry) for entry in self._entries.values()],
        }
        temp_path = path.with_suffix(path.suffix + ".tmp")

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            temp_path.replace(path)
        except OSError as e:
            log.error("Failed to save catalog snapshot", path=str(path), error=str(e))
            if temp_path.exists():
                temp_path.unlink(missing_ok=True)
            raise CatalogError("Could not save the game catalog", path=str(path), original_error=e) from e

        log.info("Catalog snapshot saved", path=str(path), entries=len(self._entries))

    def load(self, path: Path) -> int:
        """Replace the catalog contents with a snapshot.

        A missing file leaves the catalog empty.

        Returns:
            Number of entries loaded

        Raises:
            CatalogError: If the file cannot be read or is not a valid snapshot
        """
        self._entries.clear()

        if not path.exists():
            log.info("Catalog snapshot not found, starting empty", path=str(path))
            return 0

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            rows = data["entries"]
            for row in rows:
                entry = _entry_from_dict(row)
                self._entries[entry.id] = entry
        except OSError as e:
            log.error("Failed to read catalog snapshot", path=str(path), error=str(e))
            raise CatalogError("Could not read the game catalog", path=str(path), original_error=e) from e
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            log.error("Invalid catalog snapshot", path=str(path), error=str(e))
            self._entries.clear()
            raise CatalogError("The game catalog file is corrupted", path=str(path), original_error=e) from e

        log.info("Catalog snapshot loaded", path=str(path), entries=len(self._entries))
        return len(self._entries)


def _entry_to_dict(entry: CatalogEntry) -> dict[str, Any]:
    return {
        "id": entry.id,
        "title": entry.title,
        "last_updated": entry.last_updated.isoformat(),
        "category": entry.category,
        "aggregated_rating": entry.aggregated_rating,
        "aggregated_rating_count": entry.aggregated_rating_count,
        "hype_count": entry.hype_count,
        "first_release_date": entry.first_release_date,
        "franchise_names": list(entry.franchise_names),
    }


def _entry_from_dict(row: dict[str, Any]) -> CatalogEntry:
    return CatalogEntry(
        id=int(row["id"]),
        title=str(row["title"]),
        last_updated=datetime.fromisoformat(row["last_updated"]),
        category=row.get("category"),
        aggregated_rating=row.get("aggregated_rating"),
        aggregated_rating_count=row.get("aggregated_rating_count"),
        hype_count=row.get("hype_count"),
        first_release_date=row.get("first_release_date"),
        franchise_names=_flattened_names(row.get("franchise_names")),
    )
