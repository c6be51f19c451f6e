#!/usr/bin/env python3
"""
Wildcard domain finder with:
- Wildcard patterns (* = one character) or regex-filtered brute force
- TLD selection (explicit list, all, premium)
- Filtering (tld, length, starts, ends) and sorting (comfirst, tld, length, alpha)
- Output formats: txt, json, jsonl, csv
- JSONL resume cache (skip already checked candidates across runs)
- Streaming generation, bounded DNS concurrency with a per-check timeout
- Interactive pause/resume/quit (p/r/q) and graceful Ctrl-C
- Optional YAML config, rotating log file, JSONL event log
"""

import argparse
import json
import logging
import os
import sys
from dataclasses import dataclass, field
from logging.handlers import RotatingFileHandler
from typing import Optional, Sequence, Tuple

import yaml

from controls import ControlPlane, KeyboardControls, install_signal_handlers
from errors import ConfigError
from generator import CHARSET, CandidateStream, Pattern, normalize_alphabet, resolve_tlds
from probes import build_probe
from results import FORMATS, SORT_MODES, FilterRule, build_filters, regex_rule, sort_results, write_output
from resume_cache import ResumeCache
from scheduler import Progress, Scheduler

DEFAULTS = {
    "domain": None,
    "regex": None,
    "tlds": None,
    "max_length": 4,
    "alphabet": CHARSET,
    "filters": [],
    "sort": None,
    "format": "txt",
    "output": "available_domains.txt",
    "concurrency": 10,
    "timeout": 5000,
    "resume": True,
    "cache": "checked_domains.jsonl",
    "use_cache": True,
    "clear_cache": False,
    "retry_unknown": True,
    "include_cached": False,
    "probe": "dns",
    "nameservers": [],
    "interactive": True,
    "logging": {},
    "rdap": {},
}


# ------------------------------- Config -------------------------------

@dataclass(frozen=True)
class RunConfig:
    pattern: Optional[str]
    regex: Optional[str]
    max_length: int
    alphabet: str
    tlds: Tuple[str, ...]
    filters: Tuple[FilterRule, ...]
    sort: Optional[str]
    format: str
    output: str
    concurrency: int
    timeout_ms: int
    use_cache: bool
    cache_path: str
    resume: bool
    clear_cache: bool
    retry_unknown: bool
    include_cached: bool
    probe: str
    nameservers: Tuple[str, ...]
    interactive: bool
    logging: dict = field(default_factory=dict)
    rdap: dict = field(default_factory=dict)

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000.0

    @property
    def brute_force(self) -> bool:
        return bool(self.regex)


def load_config(path: Optional[str]) -> dict:
    """Read the `finder:` section of a YAML file (or the whole file if there is none)."""
    if not path:
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Cannot read config {path}: {e}")
    if not isinstance(data, dict):
        raise ConfigError(f"Config {path} must be a mapping.")
    section = data.get("finder", data)
    if not isinstance(section, dict):
        raise ConfigError(f"Config {path}: 'finder' must be a mapping.")
    return {str(k).replace("-", "_"): v for k, v in section.items()}


def _as_int(name: str, value) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be an integer, got {value!r}.")


def build_config(args: argparse.Namespace, file_cfg: Optional[dict] = None) -> RunConfig:
    """Merge defaults <- YAML file <- explicit CLI flags, then validate."""
    merged = dict(DEFAULTS)
    merged.update(file_cfg or {})
    for key, value in vars(args).items():
        if key in ("config", "debug") or value is None:
            continue
        if key == "filters":
            merged["filters"] = list(file_cfg.get("filters", []) if file_cfg else []) + list(value)
            continue
        merged[key] = value

    pattern = merged.get("domain")
    regex = merged.get("regex")
    if not pattern and not regex:
        raise ConfigError("Either a wildcard pattern (-d) or a regex (-r) is required.")
    if pattern and not regex:
        Pattern.parse(pattern)

    concurrency = _as_int("concurrency", merged["concurrency"])
    timeout_ms = _as_int("timeout", merged["timeout"])
    max_length = _as_int("max_length", merged["max_length"])
    if concurrency < 1:
        raise ConfigError("concurrency must be a positive integer.")
    if timeout_ms < 1:
        raise ConfigError("timeout must be a positive number of milliseconds.")
    if max_length < 1:
        raise ConfigError("max_length must be >= 1.")

    filters = build_filters(merged.get("filters") or [])
    if regex:
        filters.append(regex_rule(regex))

    sort = merged.get("sort") or None
    if sort is not None and sort not in SORT_MODES:
        raise ConfigError(f"Unknown sort mode {sort!r}; choose one of {', '.join(SORT_MODES)}.")
    fmt = str(merged.get("format") or "txt").lower()
    if fmt not in FORMATS:
        raise ConfigError(f"Unknown format {fmt!r}; choose one of {', '.join(FORMATS)}.")
    probe = str(merged.get("probe") or "dns").lower()
    if probe not in ("dns", "rdap"):
        raise ConfigError(f"Unknown probe {probe!r}; choose dns or rdap.")

    nameservers = merged.get("nameservers") or []
    if isinstance(nameservers, str):
        nameservers = [ns.strip() for ns in nameservers.split(",")]

    return RunConfig(
        pattern=pattern,
        regex=regex,
        max_length=max_length,
        alphabet=normalize_alphabet(str(merged.get("alphabet") or CHARSET)),
        tlds=tuple(resolve_tlds(merged.get("tlds"))),
        filters=tuple(filters),
        sort=sort,
        format=fmt,
        output=str(merged.get("output")),
        concurrency=concurrency,
        timeout_ms=timeout_ms,
        use_cache=bool(merged.get("use_cache", True)),
        cache_path=str(merged.get("cache")),
        resume=bool(merged.get("resume", True)),
        clear_cache=bool(merged.get("clear_cache", False)),
        retry_unknown=bool(merged.get("retry_unknown", True)),
        include_cached=bool(merged.get("include_cached", False)),
        probe=probe,
        nameservers=tuple(ns for ns in nameservers if ns),
        interactive=bool(merged.get("interactive", True)),
        logging=dict(merged.get("logging") or {}),
        rdap=dict(merged.get("rdap") or {}),
    )


def build_stream(cfg: RunConfig) -> CandidateStream:
    if cfg.brute_force:
        return CandidateStream.brute_force(cfg.max_length, cfg.tlds, cfg.alphabet)
    return CandidateStream.from_pattern(cfg.pattern, cfg.tlds, cfg.alphabet)


# ------------------------------- Logging -------------------------------

def setup_logging(cfg_logging: dict, debug: bool = False) -> logging.Logger:
    logger = logging.getLogger("finder")
    if logger.handlers:
        return logger
    level_name = (cfg_logging or {}).get("level", "DEBUG" if debug else "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    logger.setLevel(level)

    log_file = (cfg_logging or {}).get("file", "logs/finder.log")
    if log_file:
        if os.path.dirname(log_file):
            os.makedirs(os.path.dirname(log_file), exist_ok=True)
        handler = RotatingFileHandler(log_file, maxBytes=int((cfg_logging or {}).get("rotate_max_mb", 5)) * 1024 * 1024,
                                      backupCount=int((cfg_logging or {}).get("rotate_backups", 3)))
        handler.setFormatter(logging.Formatter(fmt="%(asctime)s [%(levelname)s] %(message)s", datefmt="%Y-%m-%d %H:%M:%S"))
        logger.addHandler(handler)

    sh = logging.StreamHandler(sys.stdout)
    sh.setFormatter(logging.Formatter(fmt="%(asctime)s [%(levelname)s] %(message)s", datefmt="%H:%M:%S"))
    logger.addHandler(sh)
    return logger


def jsonl_emit(cfg_logging: dict, event: str, payload: dict):
    path = (cfg_logging or {}).get("jsonl_file")
    if not path:
        return
    try:
        if os.path.dirname(path):
            os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "a", encoding="utf-8") as f:
            rec = {"event": event, **payload}
            f.write(json.dumps(rec, ensure_ascii=False) + "\n")
    except OSError:
        logging.getLogger("finder").debug("Event log write failed | event=%s", event)


def print_progress(p: Progress) -> None:
    sys.stdout.write(f"\rChecked: {p.checked:,} | Available: {p.available:,}   ")
    sys.stdout.flush()


# ------------------------------- Main -------------------------------

def build_parser() -> argparse.ArgumentParser:
    # Defaults are None so YAML values are only overridden by flags actually given.
    parser = argparse.ArgumentParser(
        prog="wildcard-domain-finder",
        description="Find unregistered domains from a wildcard pattern or a regex brute force.",
        epilog="Interactive controls: p = pause, r = resume, q = quit gracefully.",
    )
    g = parser.add_argument_group("domain input")
    g.add_argument("-d", "--domain", help="Wildcard pattern (* = single char), e.g. go*.com or go**.*")
    g.add_argument("-r", "--regex", help="Regex for the full domain; enables brute force up to --max-length")
    g.add_argument("-t", "--tlds", help="Comma-separated TLDs, or 'all', or 'premium' (default: com)")
    g.add_argument("--max-length", dest="max_length", type=int, help="Max label length for regex mode (default: 4)")
    g.add_argument("--alphabet", help="Characters a wildcard can take (default: a-z0-9)")

    g = parser.add_argument_group("filtering and output")
    g.add_argument("-f", "--filter", dest="filters", action="append",
                   help="tld:com[,io]  length<=N  length>=N  starts:go  ends:ai (repeatable)")
    g.add_argument("-s", "--sort", help="comfirst | tld | length | alpha")
    g.add_argument("-F", "--format", help="txt | json | jsonl | csv (default: txt)")
    g.add_argument("-o", "--output", help="Output file path (default: available_domains.txt)")

    g = parser.add_argument_group("performance")
    g.add_argument("-c", "--concurrency", type=int, help="DNS concurrency (default: 10)")
    g.add_argument("-T", "--timeout", type=int, help="Per-check timeout in ms (default: 5000)")
    g.add_argument("--probe", choices=["dns", "rdap"], help="Presence check to use (default: dns)")
    g.add_argument("--nameserver", dest="nameservers", action="append", help="Resolver IP (repeatable)")

    g = parser.add_argument_group("resume / cache")
    g.add_argument("-R", "--resume", dest="resume", action="store_true", default=None,
                   help="Skip candidates already in the cache (default)")
    g.add_argument("--no-resume", dest="resume", action="store_false", default=None,
                   help="Ignore existing cache entries")
    g.add_argument("-C", "--cache", help="Cache file (default: checked_domains.jsonl)")
    g.add_argument("--no-cache", dest="use_cache", action="store_false", default=None, help="Disable caching")
    g.add_argument("--clear-cache", dest="clear_cache", action="store_true", default=None,
                   help="Truncate the cache file before starting")
    g.add_argument("--no-retry-unknown", dest="retry_unknown", action="store_false", default=None,
                   help="Treat cached timeouts/errors as checked too")
    g.add_argument("--include-cached", dest="include_cached", action="store_true", default=None,
                   help="Also report available domains found in earlier runs")

    g = parser.add_argument_group("misc")
    g.add_argument("--config", help="Optional YAML config (flags override it)")
    g.add_argument("--no-interactive", dest="interactive", action="store_false", default=None,
                   help="Do not read p/r/q key presses")
    g.add_argument("--debug", action="store_true", default=None, help="Verbose logging")
    return parser


def run(cfg: RunConfig, controls: Optional[ControlPlane] = None, probe=None, debug: bool = False):
    logger = setup_logging(cfg.logging, debug=debug)
    stream = build_stream(cfg)
    logger.info("Starting domain search | mode=%s space=%s", stream.mode, f"{stream.search_space_size():,}")
    if cfg.pattern and not cfg.brute_force:
        logger.info("  Pattern: %s", cfg.pattern)
    if cfg.regex:
        logger.info("  Regex:   %s (max length %d)", cfg.regex, cfg.max_length)
    logger.info("  TLDs:    %s", ", ".join(cfg.tlds))
    logger.info("  Concurrency: %d, Timeout: %dms, Probe: %s", cfg.concurrency, cfg.timeout_ms, cfg.probe)
    logger.info("  Output:  %s (%s)", cfg.output, cfg.format)
    jsonl_emit(cfg.logging, "start", {"pattern": cfg.pattern, "regex": cfg.regex, "tlds": list(cfg.tlds),
                                      "concurrency": cfg.concurrency, "timeout_ms": cfg.timeout_ms})

    cache = None
    if cfg.use_cache:
        cache = ResumeCache.open(cfg.cache_path, resume=cfg.resume, clear=cfg.clear_cache,
                                 retry_unknown=cfg.retry_unknown)
    if probe is None:
        probe = build_probe(cfg.probe, nameservers=cfg.nameservers, rdap_cfg=cfg.rdap)
    controls = controls or ControlPlane()

    scheduler = Scheduler(stream, probe, concurrency=cfg.concurrency, timeout=cfg.timeout_seconds,
                          filters=cfg.filters, cache=cache, controls=controls,
                          on_progress=print_progress, include_cached=cfg.include_cached)
    keyboard = KeyboardControls(controls)
    restore_signals = install_signal_handlers(controls)
    try:
        if cfg.interactive:
            keyboard.start()
        stats = scheduler.run()
    finally:
        keyboard.stop()
        restore_signals()
        if cache is not None:
            cache.close()

    sys.stdout.write("\n")
    logger.info("Done in %.1fs | generated=%s checked=%s unknown=%s cached=%s invalid=%s",
                stats.duration, f"{stats.generated:,}", f"{stats.checked:,}", f"{stats.unknown:,}",
                f"{stats.cached:,}", f"{stats.invalid:,}")
    logger.info("Available: %s", f"{len(scheduler.sink):,}")
    jsonl_emit(cfg.logging, "summary", stats.as_dict())

    write_output(sort_results(scheduler.sink, cfg.sort), cfg.output, cfg.format)
    jsonl_emit(cfg.logging, "stop", {"reason": "quit" if controls.quitting else "depleted"})
    return stats, scheduler.sink


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    debug = bool(args.debug)
    if not args.domain and not args.regex and not args.config:
        parser.print_help()
        return 1
    try:
        cfg = build_config(args, load_config(args.config))
    except ConfigError as e:
        sys.stderr.write(f"Configuration error: {e}\n")
        return 2
    try:
        run(cfg, debug=debug)
    except KeyboardInterrupt:
        logging.getLogger("finder").info("Stop | interrupted by user (KeyboardInterrupt)")
        return 130
    except OSError as e:
        logging.getLogger("finder").error("Run failed | path=%s error=%s", getattr(e, "filename", None) or "-", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
