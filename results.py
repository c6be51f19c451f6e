"""Filter rules, sort modes and output writers for checked records."""

import csv
import json
import logging
import os
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from errors import ConfigError
from generator import split_domain
from resume_cache import CheckedRecord

log = logging.getLogger("finder.results")

SORT_MODES = ("comfirst", "tld", "length", "alpha")
FORMATS = ("txt", "json", "jsonl", "csv")
CSV_HEADER = ["domain", "tld", "name", "available", "checkedAt", "error"]


# ------------------------------- Filters -------------------------------

@dataclass(frozen=True)
class FilterRule:
    kind: str
    value: object

    def matches(self, domain: str) -> bool:
        name, tld = split_domain(domain)
        if self.kind == "tld":
            return tld in self.value
        if self.kind == "length_max":
            return len(name) <= self.value
        if self.kind == "length_min":
            return len(name) >= self.value
        if self.kind == "starts":
            return name.startswith(self.value)
        if self.kind == "ends":
            return name.endswith(self.value)
        if self.kind == "regex":
            return self.value.search(domain) is not None
        raise ValueError(f"unknown filter kind: {self.kind}")


def _length_value(rule: str, prefix: str) -> int:
    raw = rule[len(prefix):].strip()
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"Filter {rule!r}: {raw!r} is not a number.")


def parse_filter_rule(rule: str) -> FilterRule:
    """
    Parse one rule:
      tld:com  tld:com,io,net  length<=3  length>=2  starts:go  ends:ai
    """
    rule = (rule or "").strip()
    low = rule.lower()
    if low.startswith("tld:"):
        tlds = tuple(t.strip().lower().lstrip(".") for t in low[4:].split(",") if t.strip())
        if not tlds:
            raise ConfigError(f"Filter {rule!r} lists no TLDs.")
        return FilterRule("tld", tlds)
    if low.startswith("length<="):
        return FilterRule("length_max", _length_value(rule, "length<="))
    if low.startswith("length>="):
        return FilterRule("length_min", _length_value(rule, "length>="))
    if low.startswith("starts:"):
        return FilterRule("starts", low[len("starts:"):])
    if low.startswith("ends:"):
        return FilterRule("ends", low[len("ends:"):])
    raise ConfigError(f"Unknown filter rule: {rule!r}")


def regex_rule(expression: str) -> FilterRule:
    try:
        return FilterRule("regex", re.compile(expression))
    except re.error as e:
        raise ConfigError(f"Invalid regex {expression!r}: {e}")


def build_filters(rules: Iterable[str]) -> List[FilterRule]:
    return [parse_filter_rule(r) for r in rules or [] if r and r.strip()]


def passes_filters(domain: str, filters: Sequence[FilterRule]) -> bool:
    return all(f.matches(domain) for f in filters)


# ------------------------------- Sorting -------------------------------

def sort_results(records: Iterable[CheckedRecord], mode: Optional[str]) -> List[CheckedRecord]:
    records = list(records)
    if not mode:
        return records
    if mode == "comfirst":
        return sorted(records, key=lambda r: (0 if r.tld == "com" else 1, r.domain))
    if mode == "tld":
        return sorted(records, key=lambda r: (r.tld, r.domain))
    if mode == "length":
        return sorted(records, key=lambda r: (len(r.name), r.domain))
    if mode == "alpha":
        return sorted(records, key=lambda r: r.domain)
    log.warning("Unknown sort mode | mode=%s | leaving order unchanged", mode)
    return records


# ------------------------------- Output -------------------------------

def csv_row(rec: CheckedRecord) -> list:
    avail = "" if rec.available is None else str(rec.available).lower()
    return [rec.domain, rec.tld, rec.name, avail, rec.checked_at, rec.error or ""]


def write_output(records: Sequence[CheckedRecord], path: str, fmt: str = "txt") -> int:
    fmt = (fmt or "txt").lower()
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)

    if fmt == "json":
        with open(path, "w", encoding="utf-8") as f:
            json.dump([r.to_dict() for r in records], f, indent=2, ensure_ascii=False)
    elif fmt == "jsonl":
        with open(path, "w", encoding="utf-8") as f:
            for r in records:
                f.write(json.dumps(r.to_dict(), ensure_ascii=False) + "\n")
    elif fmt == "csv":
        with open(path, "w", encoding="utf-8", newline="") as f:
            cw = csv.writer(f)
            cw.writerow(CSV_HEADER)
            for r in records:
                cw.writerow(csv_row(r))
    else:
        if fmt != "txt":
            log.warning("Unknown output format | format=%s | writing txt", fmt)
            fmt = "txt"
        with open(path, "w", encoding="utf-8") as f:
            for r in records:
                f.write(r.domain + "\n")

    log.info("Saved %d domains to %s (%s)", len(records), path, fmt)
    return len(records)
