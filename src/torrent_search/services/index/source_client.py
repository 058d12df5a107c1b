from __future__ import annotations

import json
from typing import Any, Protocol

import httpx

from torrent_search.services.index.errors import ParseError, TransportError, ValidationError
from torrent_search.services.index.types import Record


class SourceClient(Protocol):
    def fetch_items(self, url: str) -> list[Any]: ...


class HttpSourceClient:
    def __init__(self, *, timeout_seconds: float = 30.0) -> None:
        self._timeout_seconds = timeout_seconds

    def fetch_items(self, url: str) -> list[Any]:
        try:
            response = httpx.get(url, timeout=self._timeout_seconds, follow_redirects=True)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise TransportError(str(exc)) from exc

        try:
            payload = json.loads(response.content)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise ParseError(f"Invalid torrents payload from {url}: {exc}") from exc

        if not isinstance(payload, list):
            raise ParseError(
                f"Invalid torrents payload from {url}: expected a JSON array, "
                f"got {type(payload).__name__}"
            )
        return payload


def parse_record(item: Any) -> Record:
    """Map one source object ``{name, hash, size}`` onto a Record."""
    if not isinstance(item, dict):
        raise ValidationError(f"torrent entry must be an object, got {type(item).__name__}")

    name = item.get("name", "")
    content_id = item.get("hash", "")
    size = item.get("size", 0)

    if not isinstance(name, str):
        raise ValidationError("torrent name must be a string")
    if not isinstance(content_id, str):
        raise ValidationError("torrent hash must be a string")
    if not content_id:
        raise ValidationError(f"torrent {name!r} has an empty hash")
    if isinstance(size, bool) or not isinstance(size, int) or size < 0:
        raise ValidationError(f"torrent {content_id} has an invalid size: {size!r}")

    return Record(title=name, content_id=content_id, size=size)
