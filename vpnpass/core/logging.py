import json
import logging
import re
from logging.handlers import RotatingFileHandler
from datetime import datetime, timezone

from vpnpass.core.config import settings

# Telegram bot tokens end up in aiogram/httpx URLs on errors
_BOT_TOKEN_RE = re.compile(r"(?<!\d)\d{6,}:[A-Za-z0-9_-]{30,}")
_QUIET_LOGGERS = ("httpx", "httpcore", "aiogram.event", "filelock")


class JsonFormatter(logging.Formatter):
    """One JSON object per record; whitelisted `extra=` fields are copied over."""

    EXTRA_FIELDS = (
        "credential", "actor_id", "chat_id", "order_id", "step", "flow",
        "status", "days", "price", "expires_on", "unit", "error", "count",
        "revoked", "added", "removed", "entries", "path", "method",
        "status_code", "breaker_name", "old_state", "new_state",
    )

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for field in self.EXTRA_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                payload[field] = value

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return _BOT_TOKEN_RE.sub("<bot-token>", json.dumps(payload, ensure_ascii=False, default=str))


def configure_logging(level: str | None = None) -> None:
    """Root logger -> stderr (+ rotating file when LOG_FILE is set). Idempotent."""
    formatter = JsonFormatter()
    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    handlers: list[logging.Handler] = [handler]
    if settings.log_file:
        file_handler = RotatingFileHandler(
            settings.log_file,
            maxBytes=settings.log_max_bytes,
            backupCount=settings.log_backup_count,
        )
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    root = logging.getLogger()
    root.setLevel(getattr(logging, (level or settings.log_level).upper(), logging.INFO))
    root.handlers = handlers
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
