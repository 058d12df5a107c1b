from __future__ import annotations

import argparse
import json
from pathlib import Path
import sys

from torrent_search.config import get_settings
from torrent_search.db import Base, get_engine
from torrent_search.logging_config import configure_logging
from torrent_search.services.index import TorrentIndexService, TorrentStore
from torrent_search.services.index.endpoints import build_resolver, load_core_api
from torrent_search.services.index.errors import NoEndpointsError, StoreError
from torrent_search.services.index.source_client import HttpSourceClient
from torrent_search.sweep_history import SqlSweepRecorder


def _build_parser() -> argparse.ArgumentParser:
    settings = get_settings()

    parser = argparse.ArgumentParser(
        prog="torrent-sweep",
        description="Fetch all configured torrent sources once and index new torrents",
    )
    parser.add_argument(
        "--index-path",
        default=settings.index_path,
        help="SQLite file holding the torrent index",
    )
    parser.add_argument(
        "--endpoint",
        action="append",
        default=[],
        help="Extra source URL to sweep (repeatable)",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)
    settings = get_settings()
    configure_logging(settings.log_level)

    engine = get_engine()
    Base.metadata.create_all(bind=engine)

    try:
        store = TorrentStore.open(Path(args.index_path))
    except StoreError as exc:
        print(f"[torrent-sweep] failed: {exc}", file=sys.stderr, flush=True)
        raise SystemExit(1) from exc

    service = TorrentIndexService(
        store=store,
        resolver=build_resolver(
            core_api=load_core_api(settings.kubeconfig_path),
            label_selector=settings.zurg_label,
            url_template=settings.zurg_url_template,
            external_endpoints=[*settings.external_endpoints, *args.endpoint],
        ),
        client=HttpSourceClient(timeout_seconds=settings.fetch_timeout_seconds),
        recorder=SqlSweepRecorder(engine),
    )

    try:
        report = service.sweep()
        document_count = store.count()
    except (NoEndpointsError, StoreError) as exc:
        print(f"[torrent-sweep] failed: {exc}", file=sys.stderr, flush=True)
        raise SystemExit(1) from exc
    finally:
        store.close()
        engine.dispose()

    summary = {
        "sweep_id": report.sweep_id,
        "endpoints": len(report.endpoints),
        "failed_endpoints": report.failed_endpoints,
        **report.totals,
        "documents": document_count,
        "index_path": str(store.path),
    }
    print(json.dumps(summary), flush=True)


if __name__ == "__main__":
    main()
