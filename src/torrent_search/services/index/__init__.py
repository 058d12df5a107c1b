from torrent_search.services.index.ingest import ingest_endpoint, run_sweep
from torrent_search.services.index.query import search_torrents
from torrent_search.services.index.service import TorrentIndexService
from torrent_search.services.index.sqlite_store import TorrentStore
from torrent_search.services.index.types import EndpointReport, Record, SearchResult, SweepReport

__all__ = [
    "EndpointReport",
    "Record",
    "SearchResult",
    "SweepReport",
    "TorrentIndexService",
    "TorrentStore",
    "ingest_endpoint",
    "run_sweep",
    "search_torrents",
]
