"""
Reload side effect: make the protected service pick up a changed config.json.

Invoked by callers only after the store lock is released. Best-effort: a
failure is logged and raised as ExternalServiceError, never retried here.
"""
import logging
import subprocess
import threading
from typing import Sequence

from vpnpass.core.config import settings
from vpnpass.core.errors import ExternalServiceError
from vpnpass.utils.metrics import reloads_total

logger = logging.getLogger(__name__)


class ServiceReloader:
    def __init__(
        self,
        units: Sequence[str] | None = None,
        systemctl_bin: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self.units = tuple(units or (settings.service_unit,))
        self.systemctl_bin = systemctl_bin or settings.systemctl_bin
        self.timeout = settings.reload_timeout if timeout is None else timeout

    def _restart(self, unit: str) -> None:
        cmd = [self.systemctl_bin, "restart", unit]
        try:
            subprocess.run(cmd, check=True, capture_output=True, timeout=self.timeout)
        except subprocess.TimeoutExpired as e:
            reloads_total.labels(unit=unit, status="timeout").inc()
            logger.error("reload_timeout", extra={"unit": unit})
            raise ExternalServiceError(f"Restart of {unit} timed out") from e
        except (subprocess.CalledProcessError, OSError) as e:
            reloads_total.labels(unit=unit, status="error").inc()
            stderr = getattr(e, "stderr", None)
            logger.error(
                "reload_failed",
                extra={"unit": unit, "error": (stderr or b"").decode(errors="replace").strip() or str(e)},
            )
            raise ExternalServiceError(f"Failed to restart {unit}") from e
        reloads_total.labels(unit=unit, status="success").inc()
        logger.info("reload_done", extra={"unit": unit})

    def reload(self) -> None:
        """Restart every configured unit; the first failure is raised after trying all."""
        first_error: ExternalServiceError | None = None
        for unit in self.units:
            try:
                self._restart(unit)
            except ExternalServiceError as e:
                first_error = first_error or e
        if first_error is not None:
            raise first_error

    def restart_later(self, unit: str, delay: float | None = None) -> threading.Timer:
        """Restart `unit` after a delay, off the calling thread (used for the bot itself)."""
        wait = settings.bot_restart_delay if delay is None else delay

        def _run() -> None:
            try:
                self._restart(unit)
            except ExternalServiceError:
                pass  # already logged in _restart

        timer = threading.Timer(wait, _run)
        timer.daemon = True
        timer.start()
        logger.info("restart_scheduled", extra={"unit": unit})
        return timer
