"""
Atomic file helpers (temp + fsync + replace) for the JSON state files.
A crash mid-write leaves either the old or the new file, never a truncated one.
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from vpnpass.core.errors import PersistenceError

logger = logging.getLogger(__name__)


def _fsync_dir(path: Path) -> None:
    try:
        fd = os.open(str(path), os.O_RDONLY)
    except OSError:
        return
    try:
        os.fsync(fd)
    except OSError:
        pass
    finally:
        os.close(fd)


def atomic_write_bytes(path: Path, payload: bytes, mode: int = 0o644) -> None:
    """Write `payload` to a temp file next to `path`, then os.replace it in."""
    path = Path(path)
    tmp_path: Path | None = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
        tmp_path = Path(tmp_name)
        with os.fdopen(fd, "wb") as handle:
            handle.write(payload)
            handle.flush()
            os.fsync(handle.fileno())
        os.chmod(tmp_path, mode)
        os.replace(tmp_path, path)
        tmp_path = None
        _fsync_dir(path.parent)
    except OSError as e:
        logger.error("atomic_write_failed", extra={"path": str(path), "error": str(e)})
        raise PersistenceError(f"Failed to write {path.name}") from e
    finally:
        if tmp_path is not None and tmp_path.exists():
            tmp_path.unlink()


def atomic_write_json(path: Path, payload: Any) -> None:
    data = json.dumps(payload, indent=2, ensure_ascii=False).encode("utf-8")
    atomic_write_bytes(path, data)


def read_json(path: Path, default: Any) -> Any:
    """Read a JSON file; a missing file yields `default`."""
    try:
        raw = Path(path).read_bytes()
    except FileNotFoundError:
        return default
    except OSError as e:
        raise PersistenceError(f"Failed to read {Path(path).name}") from e
    if not raw.strip():
        return default
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise PersistenceError(f"{Path(path).name} is not valid JSON") from e


def read_text(path: Path, default: str = "") -> str:
    try:
        return Path(path).read_text(encoding="utf-8").strip()
    except OSError:
        return default
