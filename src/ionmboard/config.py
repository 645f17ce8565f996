"""Configuration helpers for the IONM assignment board."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse
import os

from dotenv import load_dotenv

_ENV_LOADED = False

_TRUE_VALUES = {"1", "true", "t", "yes", "y", "on"}
_FALSE_VALUES = {"0", "false", "f", "no", "n", "off"}
_LOCAL_HOST_SENTINELS = {"", "0.0.0.0", "127.0.0.1", "localhost"}
_STORE_KINDS = {"sqlite", "memory"}


def _load_env_files() -> None:
    global _ENV_LOADED
    if _ENV_LOADED:
        return
    env_paths = [Path.cwd() / ".env", Path(__file__).resolve().parents[2] / ".env"]
    for path in env_paths:
        if path.exists():
            load_dotenv(path)
    _ENV_LOADED = True


@dataclass(frozen=True)
class BoardConfig:
    api_host: str = "0.0.0.0"
    api_port: int = 8090
    server_threads: int = 4
    client_host: str = "127.0.0.1"
    client_port: int = 8090
    client_timeout: float = 6.0
    client_base_url: str = "http://127.0.0.1:8090"
    poll_interval_ms: int = 1000
    store_kind: str = "sqlite"
    data_dir: Path = Path("data")
    db_name: str = "ionm_staff.db"
    change_log_size: int = 2000
    request_timeout: float = 6.0
    request_retries: int = 3
    request_backoff: float = 0.35
    log_dir: Path = Path("logs")
    log_level: str = "INFO"

    @property
    def api_base_url(self) -> str:
        return f"http://{self.api_host}:{self.api_port}"

    @property
    def db_path(self) -> Path:
        return self.data_dir / self.db_name


def _parse_bool(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    text = value.strip().lower()
    if not text:
        return default
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    return default


def _parse_int(value: Optional[str], default: int) -> int:
    if value is None or not value.strip():
        return default
    try:
        return int(value.strip())
    except ValueError:
        return default


def _parse_float(value: Optional[str], default: float) -> float:
    if value is None or not value.strip():
        return default
    try:
        return float(value.strip())
    except ValueError:
        return default


def _clean_host(value: str) -> str:
    text = value.strip()
    if text.startswith("http://") or text.startswith("https://"):
        parsed = urlparse(text)
        host = parsed.hostname or ""
        return host or text
    return text


def load_config(create_dirs: bool = True) -> BoardConfig:
    _load_env_files()
    env = os.environ.get
    api_host = _clean_host(env("IONMBOARD_API_HOST") or BoardConfig.api_host)
    api_port = _parse_int(env("IONMBOARD_API_PORT"), BoardConfig.api_port)
    server_threads = max(1, _parse_int(env("IONMBOARD_SERVER_THREADS"), BoardConfig.server_threads))

    raw_client_host = env("IONMBOARD_CLIENT_HOST")
    if raw_client_host is not None and raw_client_host.strip():
        client_host = _clean_host(raw_client_host)
    else:
        client_host = api_host if api_host not in _LOCAL_HOST_SENTINELS else BoardConfig.client_host
    client_port = _parse_int(env("IONMBOARD_CLIENT_PORT"), api_port or BoardConfig.client_port)
    client_timeout = _parse_float(env("IONMBOARD_CLIENT_TIMEOUT"), BoardConfig.client_timeout)
    raw_client_base = env("IONMBOARD_CLIENT_BASE")
    if raw_client_base and raw_client_base.strip():
        client_base = raw_client_base.strip().rstrip("/")
        if "://" not in client_base:
            client_base = f"http://{client_base}"
    else:
        client_base = f"http://{client_host}:{client_port}"
    poll_ms = max(50, _parse_int(env("IONMBOARD_POLL_MS"), BoardConfig.poll_interval_ms))

    store_kind = (env("IONMBOARD_STORE") or BoardConfig.store_kind).strip().lower()
    if store_kind not in _STORE_KINDS:
        store_kind = BoardConfig.store_kind
    data_dir = Path(env("IONMBOARD_DATA_DIR", str(BoardConfig.data_dir)))
    db_name = (env("IONMBOARD_DB_NAME") or BoardConfig.db_name).strip() or BoardConfig.db_name
    change_log_size = max(1, _parse_int(env("IONMBOARD_CHANGE_LOG_SIZE"), BoardConfig.change_log_size))

    request_timeout = _parse_float(env("IONMBOARD_REQUEST_TIMEOUT"), BoardConfig.request_timeout)
    request_retries = _parse_int(env("IONMBOARD_REQUEST_RETRIES"), BoardConfig.request_retries)
    request_backoff = _parse_float(env("IONMBOARD_REQUEST_BACKOFF"), BoardConfig.request_backoff)
    log_dir = Path(env("IONMBOARD_LOG_DIR", str(BoardConfig.log_dir)))
    log_level = (env("IONMBOARD_LOG_LEVEL") or BoardConfig.log_level).strip().upper()
    if _parse_bool(env("IONMBOARD_DEBUG")):
        log_level = "DEBUG"

    cfg = BoardConfig(
        api_host=api_host,
        api_port=api_port,
        server_threads=server_threads,
        client_host=client_host,
        client_port=client_port,
        client_timeout=client_timeout,
        client_base_url=client_base,
        poll_interval_ms=poll_ms,
        store_kind=store_kind,
        data_dir=data_dir,
        db_name=db_name,
        change_log_size=change_log_size,
        request_timeout=request_timeout,
        request_retries=request_retries,
        request_backoff=request_backoff,
        log_dir=log_dir,
        log_level=log_level,
    )
    if create_dirs:
        cfg.log_dir.mkdir(parents=True, exist_ok=True)
        cfg.data_dir.mkdir(parents=True, exist_ok=True)
    return cfg


CONFIG = load_config()

__all__ = ["CONFIG", "BoardConfig", "load_config"]
