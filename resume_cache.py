"""
Resume cache: a JSONL append log of checked candidates.

One JSON object per line: {domain, name, tld, available, checkedAt, error}.
The log is best-effort: a line that does not parse (for example a partial
write from an interrupted run) is skipped, and a later line for the same
domain replaces an earlier one.
"""

import json
import logging
import os
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Optional, Tuple

from generator import split_domain

log = logging.getLogger("finder.cache")


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass
class CheckedRecord:
    domain: str
    name: str
    tld: str
    available: Optional[bool]
    error: Optional[str] = None
    checked_at: str = ""

    @classmethod
    def create(cls, domain: str, available: Optional[bool], error: Optional[str] = None) -> "CheckedRecord":
        name, tld = split_domain(domain)
        return cls(domain=domain, name=name, tld=tld, available=available,
                   error=error, checked_at=utc_now_iso())

    @property
    def unknown(self) -> bool:
        return self.available is None

    def to_dict(self) -> dict:
        return {
            "domain": self.domain,
            "name": self.name,
            "tld": self.tld,
            "available": self.available,
            "checkedAt": self.checked_at,
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CheckedRecord":
        domain = data.get("domain")
        if not isinstance(domain, str) or not domain:
            raise ValueError("record has no domain")
        available = data.get("available")
        if available is not None and not isinstance(available, bool):
            raise ValueError(f"bad availability for {domain}: {available!r}")
        name, tld = split_domain(domain)
        return cls(
            domain=domain,
            name=str(data.get("name") or name),
            tld=str(data.get("tld") or tld),
            available=available,
            error=data.get("error"),
            checked_at=str(data.get("checkedAt") or ""),
        )


def read_cache(path: str) -> Tuple[Dict[str, CheckedRecord], int]:
    """Return (entries, skipped_lines). A missing file is an empty cache."""
    entries: Dict[str, CheckedRecord] = {}
    skipped = 0
    if not path or not os.path.exists(path):
        return entries, skipped
    with open(path, "r", encoding="utf-8", errors="replace") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                data = json.loads(line)
                if not isinstance(data, dict):
                    raise ValueError("not an object")
                rec = CheckedRecord.from_dict(data)
            except ValueError:
                # json.JSONDecodeError is a ValueError too
                skipped += 1
                continue
            entries[rec.domain] = rec
    return entries, skipped


def load_cache(path: str) -> Dict[str, CheckedRecord]:
    entries, _ = read_cache(path)
    return entries


class ResumeCache:
    """
    In-memory view of the log plus an append handle.

    `record()` writes the line and updates the mapping under one lock, so a
    candidate is visible to `has()` as soon as `record()` returns.
    With `retry_unknown`, records whose availability is unknown stay in the
    log but do not count as checked.
    """

    def __init__(self, path: str, entries: Optional[Dict[str, CheckedRecord]] = None,
                 retry_unknown: bool = True):
        self.path = path
        self.retry_unknown = retry_unknown
        self._entries: Dict[str, CheckedRecord] = dict(entries or {})
        self._lock = threading.Lock()
        self._fh = None
        self.write_errors = 0

    @classmethod
    def open(cls, path: str, resume: bool = True, clear: bool = False,
             retry_unknown: bool = True) -> "ResumeCache":
        entries: Dict[str, CheckedRecord] = {}
        if resume and not clear:
            entries, skipped = read_cache(path)
            if skipped:
                log.warning("Cache had unreadable lines | path=%s skipped=%d", path, skipped)
        cache = cls(path, entries, retry_unknown=retry_unknown)
        if clear:
            cache.clear()
        log.info("Cache ready | path=%s entries=%d resume=%s", path, len(entries), resume)
        return cache

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, domain: str) -> bool:
        return self.has(domain)

    def __enter__(self) -> "ResumeCache":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def has(self, domain: str) -> bool:
        rec = self._entries.get(domain)
        if rec is None:
            return False
        if rec.unknown and self.retry_unknown:
            return False
        return True

    def get(self, domain: str) -> Optional[CheckedRecord]:
        return self._entries.get(domain)

    def record(self, rec: CheckedRecord) -> None:
        line = json.dumps(rec.to_dict(), ensure_ascii=False) + "\n"
        with self._lock:
            self._entries[rec.domain] = rec
            try:
                if self._fh is None:
                    parent = os.path.dirname(self.path)
                    if parent:
                        os.makedirs(parent, exist_ok=True)
                    self._fh = open(self.path, "a", encoding="utf-8")
                self._fh.write(line)
                self._fh.flush()
            except OSError as e:
                self.write_errors += 1
                log.error("Cache append failed | path=%s domain=%s error=%s", self.path, rec.domain, e)

    def clear(self) -> None:
        """Forget every entry and truncate the log."""
        with self._lock:
            self._close_locked()
            self._entries.clear()
            if os.path.exists(self.path):
                open(self.path, "w", encoding="utf-8").close()
        log.info("Cache cleared | path=%s", self.path)

    def close(self) -> None:
        with self._lock:
            self._close_locked()

    def _close_locked(self) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None
