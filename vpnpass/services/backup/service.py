"""
BackupRestoreManager — zip export/import of the persisted state files.

Restore bypasses CredentialStore: it replaces files directly, so it runs
under the same StoreLock as every store mutator. Only a fixed allow-list of
entry names is honoured; anything else in the archive is ignored.
"""
from __future__ import annotations

import io
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from zipfile import BadZipFile, ZIP_DEFLATED, ZipFile, ZipInfo

from vpnpass.core.config import settings
from vpnpass.core.errors import ExternalServiceError, ValidationError, VpnPassError
from vpnpass.services.credentials.service import CredentialService
from vpnpass.services.reload.service import ServiceReloader
from vpnpass.storage.files import atomic_write_bytes
from vpnpass.storage.lock import StoreLock

logger = logging.getLogger(__name__)

_ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)  # stable entry timestamps
MAX_ENTRY_BYTES = 5 * 1024 * 1024

BACKUP_FILES = ("config.json", "users.json", "bot-config.json", "domain")
RESTORE_ALLOWLIST = frozenset(BACKUP_FILES + ("apikey",))
JSON_FILES = frozenset({"config.json", "users.json", "bot-config.json"})
SECRET_FILES = frozenset({"bot-config.json", "apikey"})


@dataclass
class RestoreResult:
    restored: list[str] = field(default_factory=list)
    ignored: list[str] = field(default_factory=list)
    reloaded: bool = False
    reload_error: str | None = None
    roster_error: str | None = None
    restart_scheduled: bool = False


class BackupRestoreManager:
    def __init__(
        self,
        data_dir: Path | None = None,
        lock: StoreLock | None = None,
        reloader: ServiceReloader | None = None,
        frontend_unit: str | None = None,
        credentials: CredentialService | None = None,
    ) -> None:
        self.data_dir = Path(data_dir or settings.data_path)
        self.mutex = lock or StoreLock(self.data_dir / settings.lock_file_name)
        self.reloader = reloader or ServiceReloader(units=(settings.service_unit, settings.api_unit))
        self.frontend_unit = frontend_unit or settings.bot_unit
        self.credentials = credentials or CredentialService.from_paths(
            self.data_dir, reloader=self.reloader, lock=self.mutex
        )

    @staticmethod
    def backup_filename(now: datetime | None = None) -> str:
        return f"vpnpass-backup-{(now or datetime.now()).strftime('%Y%m%d-%H%M%S')}.zip"

    def backup(self) -> bytes:
        """Zip every backed-up file that exists; absent ones are skipped."""
        buf = io.BytesIO()
        included: list[str] = []
        with self.mutex, ZipFile(buf, "w") as zf:
            for name in BACKUP_FILES:
                path = self.data_dir / name
                if not path.is_file():
                    continue
                info = ZipInfo(name)
                info.date_time = _ZIP_EPOCH
                info.compress_type = ZIP_DEFLATED
                zf.writestr(info, path.read_bytes())
                included.append(name)
        logger.info("backup_created", extra={"entries": included})
        return buf.getvalue()

    def _read_entries(self, archive: bytes) -> tuple[dict[str, bytes], list[str]]:
        accepted: dict[str, bytes] = {}
        ignored: list[str] = []
        try:
            with ZipFile(io.BytesIO(archive)) as zf:
                for info in zf.infolist():
                    if info.is_dir():
                        continue
                    name = info.filename
                    if name not in RESTORE_ALLOWLIST or info.file_size > MAX_ENTRY_BYTES:
                        ignored.append(name)
                        continue
                    accepted[name] = zf.read(info)
        except (BadZipFile, OSError) as e:
            raise ValidationError("File is not a valid ZIP archive") from e
        for name in JSON_FILES & accepted.keys():
            try:
                json.loads(accepted[name])
            except ValueError as e:
                raise ValidationError(f"{name} in the archive is not valid JSON") from e
        return accepted, ignored

    def restore(self, archive: bytes, restart_frontend: bool = True) -> RestoreResult:
        entries, ignored = self._read_entries(archive)
        if ignored:
            logger.warning("restore_entries_ignored", extra={"entries": ignored})
        result = RestoreResult(ignored=ignored)

        with self.mutex:
            for name, data in entries.items():
                mode = 0o600 if name in SECRET_FILES else 0o644
                atomic_write_bytes(self.data_dir / name, data, mode=mode)
                result.restored.append(name)
            if result.restored:
                # restored roster may disagree with restored records
                try:
                    self.credentials.sync_roster()
                except VpnPassError as e:
                    result.roster_error = e.message
                    logger.warning("restore_roster_sync_failed", extra={"error": e.message})
        logger.info("restore_applied", extra={"entries": result.restored})

        if not result.restored:
            return result
        try:
            self.reloader.reload()
            result.reloaded = True
        except ExternalServiceError as e:
            result.reload_error = e.message
        if restart_frontend:
            self.reloader.restart_later(self.frontend_unit)
            result.restart_scheduled = True
        return result
