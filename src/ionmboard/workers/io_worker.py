"""Network/background worker utilities for the assignment board."""
from __future__ import annotations

import queue
import threading
from typing import Any, Callable, Optional

import requests
from requests.adapters import HTTPAdapter, Retry

from ..config import CONFIG
from ..logging_setup import get_logger

logger = get_logger(__name__)

_STOP = object()


class SessionManager:
    """Maintain a shared requests.Session with retries.

    Only GET is retried; writes are surfaced once and never replayed.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._session: Optional[requests.Session] = None

    def get(self) -> requests.Session:
        with self._lock:
            if self._session is None:
                self._session = requests.Session()
                retries = Retry(
                    total=CONFIG.request_retries,
                    connect=CONFIG.request_retries,
                    read=CONFIG.request_retries,
                    backoff_factor=CONFIG.request_backoff,
                    status_forcelist=(429, 500, 502, 503, 504),
                    allowed_methods=frozenset(["GET"]),
                )
                adapter = HTTPAdapter(max_retries=retries)
                self._session.mount("http://", adapter)
                self._session.mount("https://", adapter)
                self._session.headers.update({"Accept": "application/json"})
            return self._session

    def close(self) -> None:
        with self._lock:
            if self._session is not None:
                self._session.close()
                self._session = None


SESSION_MANAGER = SessionManager()


class RequestExecutor:
    """Execute blocking store calls in one background thread, in submit order."""

    def __init__(self, name: str = "ionmboard-writer") -> None:
        self._queue: "queue.Queue[Any]" = queue.Queue()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._thread.start()

    def submit(
        self,
        fn: Callable[[], Any],
        on_success: Callable[[Any], None],
        on_error: Callable[[BaseException], None],
    ) -> None:
        self._queue.put((fn, on_success, on_error))

    def join(self) -> None:
        """Block until every submitted call has finished."""
        self._queue.join()

    def stop(self, timeout: float = 1.5) -> None:
        self._queue.put(_STOP)
        if self._thread.is_alive():
            self._thread.join(timeout=timeout)

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                fn, on_success, on_error = item
                try:
                    result = fn()
                except Exception as exc:
                    logger.error("Request worker exception: %s", exc)
                    on_error(exc)
                else:
                    on_success(result)
            except Exception as exc:  # pragma: no cover - worker thread
                logger.error("Unexpected worker loop error: %s", exc)
            finally:
                self._queue.task_done()


__all__ = ["SESSION_MANAGER", "RequestExecutor", "SessionManager"]
