from __future__ import annotations

from torrent_search.services.index.sqlite_store import DEFAULT_SEARCH_LIMIT, TorrentStore
from torrent_search.services.index.types import SearchResult


def search_torrents(
    store: TorrentStore,
    query_text: str,
    *,
    limit: int = DEFAULT_SEARCH_LIMIT,
) -> list[SearchResult]:
    if not query_text.strip():
        return []
    return store.search(query_text, limit=limit)


def to_wire(results: list[SearchResult]) -> list[dict[str, object]]:
    return [
        {
            "raw_title": result.title,
            "info_hash": result.content_id,
            "size": result.size,
        }
        for result in results
    ]
