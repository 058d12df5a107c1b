from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Protocol

from torrent_search.services.index.errors import (
    NoEndpointsError,
    ParseError,
    StoreReadError,
    StoreWriteError,
    TransportError,
    ValidationError,
)
from torrent_search.services.index.source_client import SourceClient, parse_record
from torrent_search.services.index.sqlite_store import TorrentStore
from torrent_search.services.index.types import EndpointReport, Resolution, SweepReport

logger = logging.getLogger(__name__)


class Resolver(Protocol):
    def resolve(self) -> Resolution: ...


def ingest_endpoint(url: str, *, client: SourceClient, store: TorrentStore) -> EndpointReport:
    report = EndpointReport(url=url)

    try:
        items = client.fetch_items(url)
    except (TransportError, ParseError) as exc:
        report.error = str(exc)
        logger.error("failed to fetch torrents url=%s error=%s", url, exc)
        return report

    logger.info("fetched torrents url=%s count=%d", url, len(items))

    for item in items:
        report.seen += 1

        try:
            record = parse_record(item)
        except ValidationError as exc:
            report.skipped_invalid += 1
            logger.warning("skipping torrent url=%s reason=%s", url, exc)
            continue

        try:
            exists = store.exists(record.content_id)
        except StoreReadError as exc:
            report.failed += 1
            logger.error("failed to check existence url=%s hash=%s error=%s", url, record.content_id, exc)
            continue

        if exists:
            report.skipped_duplicate += 1
            continue

        try:
            store.put(record)
        except StoreWriteError as exc:
            report.failed += 1
            logger.error(
                "failed to index torrent url=%s name=%r hash=%s error=%s",
                url,
                record.title,
                record.content_id,
                exc,
            )
        else:
            report.indexed += 1

    logger.info(
        "torrent indexing completed url=%s total=%d indexed=%d duplicate=%d invalid=%d failed=%d",
        url,
        report.seen,
        report.indexed,
        report.skipped_duplicate,
        report.skipped_invalid,
        report.failed,
    )
    return report


def run_sweep(*, resolver: Resolver, client: SourceClient, store: TorrentStore) -> SweepReport:
    """Fetch every resolved endpoint once and index the torrents not seen before.

    Failures of single endpoints or records are counted in the report. Only
    an empty endpoint list aborts the sweep.
    """
    report = SweepReport(started_at=datetime.now(timezone.utc))

    resolution = resolver.resolve()
    report.resolution_errors = list(resolution.errors)
    if not resolution.endpoints:
        raise NoEndpointsError(resolution.errors)

    for url in resolution.endpoints:
        report.endpoints.append(ingest_endpoint(url, client=client, store=store))

    report.finished_at = datetime.now(timezone.utc)
    totals = report.totals
    logger.info(
        "sweep completed endpoints=%d failed_endpoints=%d total=%d indexed=%d duplicate=%d invalid=%d failed=%d",
        len(report.endpoints),
        report.failed_endpoints,
        totals["seen"],
        totals["indexed"],
        totals["skipped_duplicate"],
        totals["skipped_invalid"],
        totals["failed"],
    )
    return report
