"""
CredentialStore — persisted collection of subscription records (users.json).

Owns uniqueness (exact, case-sensitive) and expiry arithmetic. Every public
operation runs under the shared StoreLock and every mutation rewrites the whole
file through an atomic replace.
"""
from __future__ import annotations

import logging
from datetime import date, timedelta
from pathlib import Path
from typing import Callable

from pydantic import ValidationError as PydanticValidationError

from vpnpass.core.config import settings
from vpnpass.core.errors import DuplicateCredential, NotFound, PersistenceError, ValidationError
from vpnpass.models.subscription import Subscription, SubscriptionStatus, SubscriptionView
from vpnpass.storage.files import atomic_write_json, read_json
from vpnpass.storage.lock import StoreLock

logger = logging.getLogger(__name__)


class CredentialStore:
    def __init__(
        self,
        path: Path | None = None,
        lock: StoreLock | None = None,
        today: Callable[[], date] | None = None,
    ) -> None:
        self.path = Path(path or settings.users_path)
        self.mutex = lock or StoreLock()
        self._today = today or date.today

    def today(self) -> date:
        return self._today()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _load(self) -> list[Subscription]:
        raw = read_json(self.path, [])
        if not isinstance(raw, list):
            raise PersistenceError(f"{self.path.name} must contain a list")
        try:
            return [Subscription.from_record(item) for item in raw]
        except (KeyError, TypeError, PydanticValidationError) as e:
            raise PersistenceError(f"{self.path.name} contains a malformed record") from e

    def _save(self, records: list[Subscription]) -> None:
        atomic_write_json(self.path, [r.to_record() for r in records])

    @staticmethod
    def _index(records: list[Subscription], credential: str) -> int:
        for i, record in enumerate(records):
            if record.credential == credential:
                return i
        return -1

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def snapshot(self) -> list[Subscription]:
        with self.mutex:
            return self._load()

    def get(self, credential: str) -> Subscription | None:
        with self.mutex:
            records = self._load()
        i = self._index(records, credential)
        return records[i] if i >= 0 else None

    def exists(self, credential: str) -> bool:
        return self.get(credential) is not None

    def list(self) -> list[SubscriptionView]:
        """All records with derived status, in file order."""
        today = self.today()
        return [SubscriptionView.of(r, today) for r in self.snapshot()]

    def active_credentials(self) -> set[str]:
        today = self.today()
        return {r.credential for r in self.snapshot() if r.status(today) == SubscriptionStatus.ACTIVE}

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create(self, credential: str, days: int) -> Subscription:
        if days <= 0:
            raise ValidationError("Duration must be a positive number of days")
        with self.mutex:
            records = self._load()
            if self._index(records, credential) >= 0:
                raise DuplicateCredential(credential)
            record = Subscription(
                credential=credential,
                expires_on=self.today() + timedelta(days=days),
                locked=False,
            )
            records.append(record)
            self._save(records)
        logger.info("credential_created", extra={"credential": credential, "expires_on": record.expires_on})
        return record

    def renew(self, credential: str, extra_days: int) -> Subscription:
        """Extend from max(today, expires_on); a lapsed record never gets backdated time."""
        if extra_days <= 0:
            raise ValidationError("Duration must be a positive number of days")
        with self.mutex:
            records = self._load()
            i = self._index(records, credential)
            if i < 0:
                raise NotFound(credential)
            current = records[i]
            base = max(self.today(), current.expires_on)
            updated = current.model_copy(
                update={"expires_on": base + timedelta(days=extra_days), "locked": False}
            )
            records[i] = updated
            self._save(records)
        logger.info(
            "credential_renewed",
            extra={"credential": credential, "expires_on": updated.expires_on, "days": extra_days},
        )
        return updated

    def delete(self, credential: str) -> Subscription:
        with self.mutex:
            records = self._load()
            i = self._index(records, credential)
            if i < 0:
                raise NotFound(credential)
            removed = records.pop(i)
            self._save(records)
        logger.info("credential_deleted", extra={"credential": credential})
        return removed

    def set_locked(self, credential: str, locked: bool) -> Subscription:
        with self.mutex:
            records = self._load()
            i = self._index(records, credential)
            if i < 0:
                raise NotFound(credential)
            updated = records[i].model_copy(update={"locked": locked})
            if updated != records[i]:
                records[i] = updated
                self._save(records)
        logger.info("credential_lock_changed", extra={"credential": credential, "status": "locked" if locked else "unlocked"})
        return updated

    def lock(self, credential: str) -> Subscription:
        return self.set_locked(credential, True)

    def unlock(self, credential: str) -> Subscription:
        return self.set_locked(credential, False)
