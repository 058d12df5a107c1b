from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
import logging
from pathlib import Path
from typing import Annotated, Any

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from torrent_search.config import get_settings
from torrent_search.db import Base, get_engine
from torrent_search.logging_config import configure_logging
from torrent_search.models import SweepRecord
from torrent_search.services.index import TorrentIndexService, TorrentStore
from torrent_search.services.index.endpoints import build_resolver, load_core_api
from torrent_search.services.index.errors import (
    NoEndpointsError,
    StoreQueryError,
    SweepInProgressError,
)
from torrent_search.services.index.query import to_wire
from torrent_search.services.index.source_client import HttpSourceClient
from torrent_search.sweep_history import SqlSweepRecorder, get_sweep, list_sweeps

logger = logging.getLogger(__name__)


class SearchRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    query_text: str = Field(default="", alias="queryText")


def get_index_service(request: Request) -> TorrentIndexService:
    return request.app.state.index_service


def _to_iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.isoformat()


def _sweep_summary(sweep: SweepRecord) -> dict[str, Any]:
    return {
        "id": sweep.id,
        "status": sweep.status,
        "started_at": _to_iso(sweep.started_at),
        "finished_at": _to_iso(sweep.finished_at),
        "endpoint_count": sweep.endpoint_count,
        "failed_endpoints": sweep.failed_endpoints,
        "indexed": sweep.indexed,
        "error": sweep.error,
    }


def _sweep_detail(sweep: SweepRecord) -> dict[str, Any]:
    report = dict(sweep.report_json or {})
    report["sweep_id"] = sweep.id
    return {
        **_sweep_summary(sweep),
        "totals": {
            "seen": sweep.seen,
            "indexed": sweep.indexed,
            "skipped_duplicate": sweep.skipped_duplicate,
            "skipped_invalid": sweep.skipped_invalid,
            "failed": sweep.failed,
        },
        "report": report,
    }


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    configure_logging(settings.log_level)
    logger.info(
        "starting torrent search host=%s port=%d search_endpoint=%s external_endpoints=%d",
        settings.server_host,
        settings.server_port,
        settings.search_endpoint,
        len(settings.external_endpoints),
    )

    engine = get_engine()
    Base.metadata.create_all(bind=engine)

    store = TorrentStore.open(Path(settings.index_path))
    resolver = build_resolver(
        core_api=load_core_api(settings.kubeconfig_path),
        label_selector=settings.zurg_label,
        url_template=settings.zurg_url_template,
        external_endpoints=settings.external_endpoints,
    )
    service = TorrentIndexService(
        store=store,
        resolver=resolver,
        client=HttpSourceClient(timeout_seconds=settings.fetch_timeout_seconds),
        recorder=SqlSweepRecorder(engine),
        search_limit=settings.search_limit,
    )
    app.state.index_service = service

    try:
        if settings.sweep_on_startup:
            await run_in_threadpool(service.sweep)
        yield
    finally:
        store.close()
        engine.dispose()


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title="Torrent Search API", version="0.1.0", lifespan=lifespan)

    @app.exception_handler(RequestValidationError)
    async def invalid_request(request: Request, exc: RequestValidationError) -> JSONResponse:
        if request.url.path != settings.search_endpoint:
            return await request_validation_exception_handler(request, exc)
        logger.warning("invalid request body path=%s errors=%d", request.url.path, len(exc.errors()))
        return JSONResponse(status_code=400, content={"detail": "Invalid request body"})

    @app.get(settings.health_endpoint)
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post(settings.search_endpoint)
    def search(
        request: SearchRequest,
        service: Annotated[TorrentIndexService, Depends(get_index_service)],
    ) -> list[dict[str, object]]:
        logger.info("processing search request query=%r", request.query_text)
        try:
            results = service.search(request.query_text)
        except StoreQueryError as exc:
            logger.error("search failed query=%r error=%s", request.query_text, exc)
            raise HTTPException(status_code=500, detail=str(exc)) from exc

        logger.info("search completed query=%r results=%d", request.query_text, len(results))
        return to_wire(results)

    @app.post("/sweeps")
    def trigger_sweep(
        service: Annotated[TorrentIndexService, Depends(get_index_service)],
    ) -> dict[str, object]:
        try:
            report = service.sweep()
        except SweepInProgressError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        except NoEndpointsError as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc
        return report.to_dict()

    @app.get("/sweeps")
    def sweeps(status: str | None = Query(default=None)) -> list[dict[str, Any]]:
        return [_sweep_summary(sweep) for sweep in list_sweeps(get_engine(), status=status)]

    @app.get("/sweeps/{sweep_id}")
    def sweep_detail(sweep_id: int) -> dict[str, Any]:
        sweep = get_sweep(get_engine(), sweep_id)
        if sweep is None:
            raise HTTPException(status_code=404, detail="sweep not found")
        return _sweep_detail(sweep)

    return app


def run() -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "torrent_search.main:create_app",
        factory=True,
        host=settings.server_host,
        port=settings.server_port,
        reload=False,
    )


if __name__ == "__main__":
    run()
