from __future__ import annotations

from datetime import datetime, timezone
import logging
import threading
from typing import Protocol

from torrent_search.services.index.errors import NoEndpointsError, SweepInProgressError
from torrent_search.services.index.ingest import Resolver, run_sweep
from torrent_search.services.index.query import search_torrents
from torrent_search.services.index.source_client import SourceClient
from torrent_search.services.index.sqlite_store import DEFAULT_SEARCH_LIMIT, TorrentStore
from torrent_search.services.index.types import SearchResult, SweepReport

logger = logging.getLogger(__name__)


class SweepRecorder(Protocol):
    def record(self, report: SweepReport, *, error: str | None = None) -> int: ...


class TorrentIndexService:
    """Wires the store, endpoint resolver and source client together.

    Only one sweep runs at a time; searches never wait for a sweep.
    """

    def __init__(
        self,
        *,
        store: TorrentStore,
        resolver: Resolver,
        client: SourceClient,
        recorder: SweepRecorder | None = None,
        search_limit: int = DEFAULT_SEARCH_LIMIT,
    ) -> None:
        self.store = store
        self._resolver = resolver
        self._client = client
        self._recorder = recorder
        self._search_limit = search_limit
        self._sweep_lock = threading.Lock()

    def sweep(self) -> SweepReport:
        if not self._sweep_lock.acquire(blocking=False):
            raise SweepInProgressError("a sweep is already running")

        started_at = datetime.now(timezone.utc)
        try:
            try:
                report = run_sweep(resolver=self._resolver, client=self._client, store=self.store)
            except NoEndpointsError as exc:
                logger.critical("sweep aborted: %s", exc)
                failed = SweepReport(
                    started_at=started_at,
                    finished_at=datetime.now(timezone.utc),
                    resolution_errors=list(exc.errors),
                )
                self._record(failed, error=str(exc))
                raise

            report.sweep_id = self._record(report)
            return report
        finally:
            self._sweep_lock.release()

    def _record(self, report: SweepReport, *, error: str | None = None) -> int | None:
        if self._recorder is None:
            return None
        try:
            return self._recorder.record(report, error=error)
        except Exception:
            logger.exception("failed to record sweep started_at=%s", report.started_at.isoformat())
            return None

    def search(self, query_text: str) -> list[SearchResult]:
        return search_torrents(self.store, query_text, limit=self._search_limit)
