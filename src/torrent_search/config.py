from dataclasses import dataclass
from functools import lru_cache
import os
from pathlib import Path

DEFAULT_ZURG_LABEL = "app.elfhosted.com/name=zurg"
DEFAULT_URL_TEMPLATE = "http://zurg.{namespace}:9999/debug/torrents"


def _to_bool(value: str | None, *, default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _to_int(value: str | None, *, default: int, minimum: int) -> int:
    if value is None or not value.strip():
        return default
    parsed = int(value)
    return max(minimum, parsed)


def _non_empty(value: str | None, *, default: str) -> str:
    if value is None or not value.strip():
        return default
    return value.strip()


def _split_endpoints(value: str | None) -> tuple[str, ...]:
    if not value:
        return ()
    return tuple(item.strip() for item in value.split(",") if item.strip())


def _resolve_kubeconfig(value: str | None) -> str | None:
    path = Path(value) if value else Path.home() / ".kube" / "config"
    if path.is_file():
        return str(path)
    return None


@dataclass(frozen=True)
class Settings:
    index_path: str
    server_host: str
    server_port: int
    search_endpoint: str
    health_endpoint: str
    zurg_label: str
    zurg_url_template: str
    external_endpoints: tuple[str, ...]
    kubeconfig_path: str | None
    fetch_timeout_seconds: float
    search_limit: int
    sweep_on_startup: bool
    sweep_database_url: str
    log_level: str


@lru_cache
def get_settings() -> Settings:
    index_path = _non_empty(os.getenv("INDEX_PATH"), default="torrents.db")
    default_sweep_db = Path(index_path).resolve().parent / "sweeps.db"

    return Settings(
        index_path=index_path,
        server_host=_non_empty(os.getenv("SERVER_HOST"), default="0.0.0.0"),
        server_port=_to_int(os.getenv("SERVER_PORT"), default=8080, minimum=1),
        search_endpoint=_non_empty(os.getenv("SEARCH_ENDPOINT"), default="/dmm/search"),
        health_endpoint=_non_empty(os.getenv("HEALTH_ENDPOINT"), default="/health"),
        zurg_label=_non_empty(os.getenv("ZURG_LABEL"), default=DEFAULT_ZURG_LABEL),
        zurg_url_template=_non_empty(
            os.getenv("ZURG_URL_TEMPLATE"), default=DEFAULT_URL_TEMPLATE
        ),
        external_endpoints=_split_endpoints(os.getenv("EXTERNAL_ENDPOINTS")),
        kubeconfig_path=_resolve_kubeconfig(os.getenv("KUBECONFIG")),
        fetch_timeout_seconds=float(os.getenv("FETCH_TIMEOUT_SECONDS", "30")),
        search_limit=_to_int(os.getenv("SEARCH_LIMIT"), default=10, minimum=1),
        sweep_on_startup=_to_bool(os.getenv("SWEEP_ON_STARTUP"), default=True),
        sweep_database_url=_non_empty(
            os.getenv("SWEEP_DATABASE_URL"),
            default=f"sqlite+pysqlite:///{default_sweep_db}",
        ),
        log_level=_non_empty(os.getenv("LOG_LEVEL"), default="INFO").upper(),
    )
