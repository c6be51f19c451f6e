"""
Probe capabilities: probe(domain, timeout_seconds).

A probe either returns (the name resolved, or an explicit ProbeOutcome) or
raises: DomainNotFound means available, ProbeTimeout / dns timeouts mean
the deadline passed, anything else is an unknown outcome with a reason.
"""

import json
import logging
import os
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Optional

import dns.exception
import dns.resolver
import requests

from errors import DomainNotFound, ProbeError, ProbeTimeout

log = logging.getLogger("finder.probes")

Probe = Callable[[str, float], object]


@dataclass(frozen=True)
class ProbeOutcome:
    available: Optional[bool]
    error: Optional[str] = None


TAKEN = ProbeOutcome(available=False)
AVAILABLE = ProbeOutcome(available=True)


def run_probe(probe: Probe, domain: str, timeout: float,
              on_start: Optional[Callable[[float], None]] = None) -> ProbeOutcome:
    """
    Call the probe and classify the result. Never raises for probe failures.

    A probe with a `throttle()` method is throttled first; the deadline only
    starts once the throttle lets the call through. `on_start` receives that
    start time (time.monotonic()).
    """
    throttle = getattr(probe, "throttle", None)
    if throttle is not None:
        throttle()
    t0 = time.monotonic()
    if on_start is not None:
        on_start(t0)
    try:
        result = probe(domain, timeout)
    except DomainNotFound:
        outcome = AVAILABLE
    except (ProbeTimeout, dns.exception.Timeout):
        return ProbeOutcome(None, "timeout")
    except ProbeError as e:
        return ProbeOutcome(None, e.reason)
    except Exception as e:
        log.debug("Probe error | %s -> %r", domain, e)
        return ProbeOutcome(None, type(e).__name__)
    else:
        outcome = result if isinstance(result, ProbeOutcome) else TAKEN
    # the timer fired first even though the probe came back
    if time.monotonic() - t0 > timeout:
        return ProbeOutcome(None, "timeout")
    return outcome


# ------------------------------- DNS -------------------------------

class DNSProbe:
    """
    dnspython-backed presence check.

    Queries each record type in turn; the first answer means taken.
    NXDOMAIN, or no data for every type, means available. The timeout is
    one lifetime shared by all queries for the name.
    """

    def __init__(self, nameservers: Optional[Iterable[str]] = None, record_types=("NS", "A")):
        nameservers = [ns for ns in (nameservers or []) if ns]
        self.resolver = dns.resolver.Resolver(configure=not nameservers)
        if nameservers:
            self.resolver.nameservers = nameservers
        self.resolver.retry_servfail = False
        self.record_types = tuple(record_types)

    def __call__(self, domain: str, timeout: float) -> ProbeOutcome:
        deadline = time.monotonic() + timeout
        for rdtype in self.record_types:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise ProbeTimeout()
            try:
                self.resolver.resolve(domain, rdtype, lifetime=remaining)
                return TAKEN
            except dns.resolver.NXDOMAIN:
                raise DomainNotFound(domain)
            except dns.resolver.NoAnswer:
                continue
        raise DomainNotFound(domain)


# ------------------------------- RDAP -------------------------------

def session_with_proxies(proxies: Optional[dict]) -> requests.Session:
    s = requests.Session()
    s.trust_env = False
    px = {}
    if proxies:
        if proxies.get("http"):
            px["http"] = proxies["http"]
        if proxies.get("https"):
            px["https"] = proxies["https"]
    if px:
        s.proxies.update(px)
    return s


class RDAPProbe:
    """
    RDAP lookup using the IANA bootstrap (dns.json).
    - Per-TLD `overrides` force a base URL.
    - The bootstrap is cached on disk and refreshed after `refresh_hours`.
    - 404 means available, 200 means registered, anything else is unknown.
    - Rate limiting lives in `throttle()`, which run_probe calls before the
      per-check deadline starts; calling the probe directly does not throttle.
    """

    def __init__(self, rpm: int = 0, proxies: Optional[dict] = None, bootstrap_cfg: Optional[dict] = None,
                 overrides: Optional[dict] = None, session: Optional[requests.Session] = None):
        self.session = session or session_with_proxies(proxies)
        self.interval = 60.0 / rpm if rpm and rpm > 0 else 0.0
        self._last_call = 0.0
        self._throttle_lock = threading.Lock()
        self.bootstrap_cfg = bootstrap_cfg or {}
        self.overrides = {k.lower().lstrip("."): v for k, v in (overrides or {}).items()}
        self.bootstrap_map: Dict[str, str] = {}
        self._load_bootstrap()

    def _load_bootstrap(self) -> None:
        url = self.bootstrap_cfg.get("url", "https://data.iana.org/rdap/dns.json")
        cache_path = self.bootstrap_cfg.get("cache_path", "rdap_bootstrap_cache.json")
        refresh_hours = float(self.bootstrap_cfg.get("refresh_hours", 24))

        if cache_path and os.path.exists(cache_path):
            if (time.time() - os.path.getmtime(cache_path)) < refresh_hours * 3600:
                try:
                    with open(cache_path, "r", encoding="utf-8") as f:
                        self.bootstrap_map = json.load(f).get("_map", {})
                    log.info("RDAP bootstrap loaded from cache | tlds=%d", len(self.bootstrap_map))
                    return
                except (OSError, ValueError) as e:
                    log.warning("RDAP bootstrap cache unreadable | path=%s error=%s", cache_path, e)

        try:
            r = self.session.get(url, timeout=20)
            r.raise_for_status()
            data = r.json()
        except (requests.RequestException, ValueError) as e:
            log.warning("RDAP bootstrap fetch failed | error=%s", e)
            return

        # data["services"] is a list of [[tlds...], [urls...]]
        mapping = {}
        for service in data.get("services", []):
            tlds = [t.strip().lower() for t in (service[0] or [])]
            urls = [u.strip().rstrip("/") for u in (service[1] or [])]
            if not tlds or not urls:
                continue
            for tld in tlds:
                mapping[tld] = urls[0]
        self.bootstrap_map = mapping
        log.info("RDAP bootstrap fetched | tlds=%d", len(mapping))
        if cache_path:
            try:
                with open(cache_path, "w", encoding="utf-8") as f:
                    json.dump({"_map": mapping}, f)
            except OSError as e:
                log.warning("RDAP bootstrap cache not written | path=%s error=%s", cache_path, e)

    def base_for_tld(self, tld: str) -> Optional[str]:
        tld = (tld or "").lower().lstrip(".")
        if self.overrides.get(tld):
            return self.overrides[tld].rstrip("/")
        return self.bootstrap_map.get(tld)

    @staticmethod
    def domain_url(base: str, domain: str) -> str:
        base = base.rstrip("/")
        if base.endswith("/domain"):
            return f"{base}/{domain}"
        return f"{base}/domain/{domain}"

    def throttle(self) -> None:
        """Block until the next request is allowed under `requests_per_minute`."""
        if not self.interval:
            return
        with self._throttle_lock:
            since = time.monotonic() - self._last_call
            if since < self.interval:
                time.sleep(self.interval - since)
            self._last_call = time.monotonic()

    def __call__(self, domain: str, timeout: float) -> ProbeOutcome:
        base = self.base_for_tld(domain.rsplit(".", 1)[-1])
        if not base:
            raise ProbeError("no rdap service")
        try:
            r = self.session.get(self.domain_url(base, domain), timeout=timeout)
        except requests.Timeout:
            raise ProbeTimeout()
        except requests.RequestException as e:
            raise ProbeError(type(e).__name__)
        if r.status_code == 404:
            raise DomainNotFound(domain)
        if r.status_code == 200:
            return TAKEN
        raise ProbeError(f"http {r.status_code}")


def build_probe(kind: str, nameservers: Optional[Iterable[str]] = None, rdap_cfg: Optional[dict] = None) -> Probe:
    kind = (kind or "dns").lower()
    if kind == "dns":
        return DNSProbe(nameservers=nameservers)
    if kind == "rdap":
        rdap_cfg = rdap_cfg or {}
        return RDAPProbe(rpm=int(rdap_cfg.get("requests_per_minute", 0)),
                         proxies=rdap_cfg.get("proxies"),
                         bootstrap_cfg=rdap_cfg.get("bootstrap", {}),
                         overrides=rdap_cfg.get("overrides", {}))
    raise ValueError(f"unknown probe kind: {kind}")
