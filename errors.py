class FinderError(Exception):
    pass


class ConfigError(FinderError):
    """Bad run configuration; fatal before any probe is dispatched."""


class ProbeError(FinderError):
    """A probe could not decide; `reason` ends up in the checked record."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class ProbeTimeout(ProbeError):
    def __init__(self, reason: str = "timeout"):
        super().__init__(reason)


class DomainNotFound(FinderError):
    """The name does not exist (NXDOMAIN) or has no data: treated as available."""
