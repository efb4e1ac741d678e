"""
The single exclusion domain for users.json, the roster in config.json and
backup/restore. It is a file lock so that the API, the bot and the Celery
worker (separate processes) serialise on the same thing. Reentrant within a
thread.
"""
from __future__ import annotations

import logging
from pathlib import Path

from filelock import FileLock, Timeout

from vpnpass.core.config import settings
from vpnpass.core.errors import PersistenceError

logger = logging.getLogger(__name__)


class StoreLock:
    def __init__(self, path: Path | None = None, timeout: float | None = None) -> None:
        self.path = Path(path or settings.lock_path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = FileLock(
            str(self.path),
            timeout=settings.store_lock_timeout if timeout is None else timeout,
        )

    @property
    def is_locked(self) -> bool:
        return self._lock.is_locked

    def __enter__(self) -> "StoreLock":
        try:
            self._lock.acquire()
        except Timeout as exc:
            logger.error("store_lock_timeout", extra={"path": str(self.path)})
            raise PersistenceError("Store is busy, please retry") from exc
        return self

    def __exit__(self, *exc_info) -> None:
        self._lock.release()
