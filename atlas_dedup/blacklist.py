"""
Landmark Atlas — Deleted-Duplicate Blacklist

Store row ids removed by batch reconciliation.  Loaded once at process start
and consulted on every read path, so a duplicate that the generative lookup
re-discovers (or a stale cache page) cannot bring a deleted row back.

File format: {"deleted_ids": [12, 57, ...], "updated_at": "<iso timestamp>"}
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Iterator

from .records import Record, store_row_id

logger = logging.getLogger(__name__)


def parse_row_id(value: int | str | None) -> int | None:
    """Row id from an int, a digit string or a "store-<id>" record id; None otherwise."""
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        return None
    if isinstance(value, str):
        value = value.strip()
        if value.isdigit():
            return int(value)
    return store_row_id(value)


def _parse_ids(values: Iterable[int | str]) -> Iterator[int]:
    for value in values:
        row_id = parse_row_id(value)
        if row_id is None:
            logger.warning("Ignoring unrecognised blacklist id %r", value)
            continue
        yield row_id


class Blacklist:
    """A persisted set of excluded store row ids."""

    def __init__(self, path: str | Path | None = None, ids: Iterable[int | str] = ()):
        self.path = Path(path) if path is not None else None
        self._ids: frozenset[int] = frozenset(_parse_ids(ids))

    @classmethod
    def load(cls, path: str | Path) -> "Blacklist":
        """Read the blacklist file; a missing file is an empty blacklist."""
        path = Path(path)
        if not path.exists():
            logger.info("No blacklist at %s, starting empty", path)
            return cls(path)
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
        ids = raw.get("deleted_ids", []) if isinstance(raw, dict) else raw
        blacklist = cls(path, ids)
        logger.info("Loaded %d blacklisted ids from %s", len(blacklist), path)
        return blacklist

    def save(self) -> None:
        """Write atomically: temp file in the same directory, then rename."""
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "deleted_ids": sorted(self._ids),
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }
        fd, tmp = tempfile.mkstemp(dir=str(self.path.parent), prefix=".blacklist-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2)
            os.replace(tmp, self.path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise
        logger.info("Saved %d blacklisted ids to %s", len(self._ids), self.path)

    def add(self, ids: Iterable[int | str]) -> int:
        """Add row ids (ints, digit strings or "store-<id>" record ids). Returns how many were new."""
        new = set(_parse_ids(ids)) - self._ids
        if new:
            self._ids = self._ids | new
        return len(new)

    def is_blacklisted(self, record_or_id: Record | str | int) -> bool:
        if isinstance(record_or_id, Record):
            record_or_id = record_or_id.id
        row_id = parse_row_id(record_or_id)
        return row_id is not None and row_id in self._ids

    def filter(self, records: Iterable[Record]) -> list[Record]:
        return [r for r in records if not self.is_blacklisted(r)]

    @property
    def ids(self) -> frozenset[int]:
        return self._ids

    def __contains__(self, item: Record | str | int) -> bool:
        return self.is_blacklisted(item)

    def __len__(self) -> int:
        return len(self._ids)
