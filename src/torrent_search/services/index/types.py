from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class Record:
    title: str
    content_id: str
    size: int


@dataclass(frozen=True)
class SearchResult:
    title: str
    content_id: str
    size: int


@dataclass(frozen=True)
class ServiceDescriptor:
    name: str = ""
    namespace: str = ""
    cluster_ip: str = ""
    external_ip: str = ""
    port: str = ""
    target_port: str = ""
    node_port: str = ""
    load_balancer: str = ""
    service_type: str = ""


@dataclass(frozen=True)
class Resolution:
    endpoints: list[str]
    errors: list[str]


@dataclass
class EndpointReport:
    url: str
    seen: int = 0
    indexed: int = 0
    skipped_duplicate: int = 0
    skipped_invalid: int = 0
    failed: int = 0
    error: str | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "url": self.url,
            "seen": self.seen,
            "indexed": self.indexed,
            "skipped_duplicate": self.skipped_duplicate,
            "skipped_invalid": self.skipped_invalid,
            "failed": self.failed,
            "error": self.error,
        }


COUNTER_FIELDS = ("seen", "indexed", "skipped_duplicate", "skipped_invalid", "failed")


@dataclass
class SweepReport:
    started_at: datetime
    finished_at: datetime | None = None
    endpoints: list[EndpointReport] = field(default_factory=list)
    resolution_errors: list[str] = field(default_factory=list)
    sweep_id: int | None = None

    @property
    def totals(self) -> dict[str, int]:
        return {
            name: sum(getattr(report, name) for report in self.endpoints)
            for name in COUNTER_FIELDS
        }

    @property
    def failed_endpoints(self) -> int:
        return sum(1 for report in self.endpoints if report.error is not None)

    def to_dict(self) -> dict[str, object]:
        return {
            "sweep_id": self.sweep_id,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "endpoint_count": len(self.endpoints),
            "failed_endpoints": self.failed_endpoints,
            "totals": self.totals,
            "resolution_errors": list(self.resolution_errors),
            "endpoints": [report.to_dict() for report in self.endpoints],
        }
