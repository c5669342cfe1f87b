#!/usr/bin/env python3
"""
cache.py

CacheStore — content-hash keyed store of per-file extraction results.

A file's fingerprint is the SHA-256 of its raw bytes; an entry is reused
only when the fingerprint matches exactly.  Writes made during a build
are buffered in memory and flushed once by :meth:`CacheStore.persist`.

Record layout (JSON)::

    {"version": 1,
     "options": {"snippets": true},
     "entries": {"src/lib.rs": {"fingerprint": "...", "extraction": {...}}}}

An unreadable, foreign or malformed record, or one written with other
extraction options, means a cold start, never a failed build.
"""

from __future__ import annotations

import contextlib
import hashlib
import json
import os
import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable

from loguru import logger

from rust_kg.extract import FileExtraction

CACHE_VERSION = 1


class CacheMode(str, Enum):
    """How a build treats the persisted cache."""

    USE = "use"
    IGNORE = "ignore"
    REBUILD = "rebuild"


def fingerprint(data: bytes) -> str:
    """SHA-256 hex digest of raw file bytes."""
    return hashlib.sha256(data).hexdigest()


@dataclass(frozen=True)
class CacheEntry:
    fingerprint: str
    extraction: FileExtraction


class CacheStore:
    """
    In-memory view of the extraction cache with a single on-disk record.

    Example::

        cache = CacheStore(".rustkg/cache.json").load()
        entry = cache.lookup("src/lib.rs")
        if entry is None or entry.fingerprint != fp:
            cache.put("src/lib.rs", fp, extract_source("src/lib.rs", data))
        cache.persist()

    :param path: Location of the JSON record.
    :param options: Extraction settings the cached results depend on.
    """

    def __init__(self, path: str | Path, options: dict | None = None) -> None:
        self.path = Path(path)
        self.options = dict(options or {})
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    # ------------------------------------------------------------------
    # Record I/O
    # ------------------------------------------------------------------

    def load(self) -> CacheStore:
        """
        Read the persisted record, replacing in-memory entries.

        Any problem with the record leaves the store empty and logs a warning.

        :return: self (for chaining)
        """
        with self._lock:
            self._entries = {}
        if not self.path.exists():
            return self

        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            logger.warning("cache {} unreadable, starting cold: {}", self.path, exc)
            return self

        if not isinstance(payload, dict) or payload.get("version") != CACHE_VERSION:
            logger.warning("cache {} has an unknown format, starting cold", self.path)
            return self
        if payload.get("options", {}) != self.options:
            logger.info("cache {} was written with other extraction options, starting cold", self.path)
            return self
        raw = payload.get("entries")
        if not isinstance(raw, dict):
            logger.warning("cache {} has no entry table, starting cold", self.path)
            return self

        entries: dict[str, CacheEntry] = {}
        try:
            for path, rec in raw.items():
                entries[path] = CacheEntry(
                    fingerprint=str(rec["fingerprint"]),
                    extraction=FileExtraction.from_dict(rec["extraction"]),
                )
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("cache {} has a malformed entry, starting cold: {}", self.path, exc)
            return self

        with self._lock:
            self._entries = entries
        logger.debug("cache loaded: {} entries from {}", len(entries), self.path)
        return self

    def persist(self) -> bool:
        """
        Write all entries atomically (temp file + rename).

        :return: ``True`` on success; failures are logged, not raised.
        """
        with self._lock:
            payload = {
                "version": CACHE_VERSION,
                "options": self.options,
                "entries": {
                    path: {
                        "fingerprint": e.fingerprint,
                        "extraction": e.extraction.to_dict(),
                    }
                    for path, e in sorted(self._entries.items())
                },
            }
        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")
            os.replace(tmp, self.path)
        except OSError as exc:
            logger.warning("could not persist cache {}: {}", self.path, exc)
            with contextlib.suppress(OSError):
                tmp.unlink(missing_ok=True)
            return False
        return True

    def clear(self) -> None:
        """Drop every entry and delete the persisted record."""
        with self._lock:
            self._entries = {}
        try:
            self.path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("could not delete cache {}: {}", self.path, exc)

    # ------------------------------------------------------------------
    # Entries
    # ------------------------------------------------------------------

    def lookup(self, path: str) -> CacheEntry | None:
        with self._lock:
            return self._entries.get(path)

    def fresh(self, path: str, fp: str) -> FileExtraction | None:
        """
        Return the cached extraction for *path* if its fingerprint is *fp*.

        Counts a hit or a miss.
        """
        entry = self.lookup(path)
        with self._lock:
            if entry is not None and entry.fingerprint == fp:
                self.hits += 1
                return entry.extraction
            self.misses += 1
        return None

    def put(self, path: str, fp: str, extraction: FileExtraction) -> None:
        with self._lock:
            self._entries[path] = CacheEntry(fingerprint=fp, extraction=extraction)

    def prune(self, valid_paths: Iterable[str]) -> int:
        """
        Remove entries for files no longer present.

        :return: Number of entries removed.
        """
        keep = set(valid_paths)
        with self._lock:
            stale = [p for p in self._entries if p not in keep]
            for p in stale:
                del self._entries[p]
        return len(stale)

    def stats(self) -> dict:
        return {
            "path": str(self.path),
            "entries": len(self),
            "hits": self.hits,
            "misses": self.misses,
        }

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, path: object) -> bool:
        with self._lock:
            return path in self._entries

    def __repr__(self) -> str:
        return f"CacheStore(path={self.path!r}, entries={len(self)})"
