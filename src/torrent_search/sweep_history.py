from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from torrent_search.models import SweepRecord
from torrent_search.services.index.types import SweepReport


class SqlSweepRecorder:
    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def record(self, report: SweepReport, *, error: str | None = None) -> int:
        totals = report.totals
        with Session(self._engine) as session:
            sweep = SweepRecord(
                status="failed" if error is not None else "succeeded",
                started_at=report.started_at,
                finished_at=report.finished_at,
                endpoint_count=len(report.endpoints),
                failed_endpoints=report.failed_endpoints,
                seen=totals["seen"],
                indexed=totals["indexed"],
                skipped_duplicate=totals["skipped_duplicate"],
                skipped_invalid=totals["skipped_invalid"],
                failed=totals["failed"],
                error=error,
                report_json=report.to_dict(),
            )
            session.add(sweep)
            session.commit()
            return sweep.id


def list_sweeps(engine: Engine, *, status: str | None = None) -> list[SweepRecord]:
    with Session(engine) as session:
        stmt = select(SweepRecord)
        if status is not None:
            stmt = stmt.where(SweepRecord.status == status)
        return list(
            session.scalars(
                stmt.order_by(SweepRecord.started_at.asc(), SweepRecord.id.asc())
            ).all()
        )


def get_sweep(engine: Engine, sweep_id: int) -> SweepRecord | None:
    with Session(engine) as session:
        return session.get(SweepRecord, sweep_id)
