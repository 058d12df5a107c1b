from __future__ import annotations


class TorrentSearchError(RuntimeError):
    pass


class TransportError(TorrentSearchError):
    """Endpoint unreachable or answered with a non-success status."""


class ParseError(TorrentSearchError):
    """Endpoint body is not a JSON array."""


class ValidationError(TorrentSearchError):
    """A single source record cannot be indexed."""


class StoreError(TorrentSearchError):
    pass


class StoreReadError(StoreError):
    pass


class StoreWriteError(StoreError):
    pass


class StoreQueryError(StoreError):
    pass


class DiscoveryError(TorrentSearchError):
    pass


class NoEndpointsError(DiscoveryError):
    def __init__(self, errors: list[str] | None = None) -> None:
        self.errors = list(errors or [])
        message = "no source endpoints resolved"
        if self.errors:
            message = f"{message}: {'; '.join(self.errors)}"
        super().__init__(message)


class SweepInProgressError(TorrentSearchError):
    pass
