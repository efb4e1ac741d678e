"""
CredentialService — the only write path for users.json + roster used by the
API, the bot, the payment poller and the sweeper.

Each operation does its read-modify-write of both files inside one StoreLock
section, then (lock released) reloads the protected service once if the
roster changed. A failed reload is reported on the result, not rolled back.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from vpnpass.core.config import settings
from vpnpass.core.errors import VpnPassError
from vpnpass.models.subscription import Subscription, SubscriptionStatus, SubscriptionView
from vpnpass.services.credentials.roster import AccessRoster, ReconcileResult, RosterDiff
from vpnpass.services.credentials.store import CredentialStore
from vpnpass.services.reload.service import ServiceReloader
from vpnpass.storage.lock import StoreLock
from vpnpass.utils.metrics import credential_operations_total

logger = logging.getLogger(__name__)


@dataclass
class CredentialResult:
    subscription: Subscription | None
    reconcile: ReconcileResult

    @property
    def reload_error(self) -> str | None:
        return self.reconcile.reload_error


class CredentialService:
    def __init__(self, store: CredentialStore, roster: AccessRoster) -> None:
        if store.mutex is not roster.mutex:
            raise ValueError("store and roster must share one StoreLock")
        self.store = store
        self.roster = roster
        self.mutex = store.mutex

    @classmethod
    def from_paths(
        cls,
        data_dir: Path | None = None,
        reloader: ServiceReloader | None = None,
        lock: StoreLock | None = None,
    ) -> "CredentialService":
        base = Path(data_dir) if data_dir else settings.data_path
        lock = lock or StoreLock(base / settings.lock_file_name)
        store = CredentialStore(base / settings.users_file_name, lock=lock)
        roster = AccessRoster(base / settings.service_config_file_name, lock=lock, reloader=reloader)
        return cls(store, roster)

    def _run(self, operation: str, mutate: Callable[[], tuple[Subscription | None, RosterDiff]]) -> CredentialResult:
        try:
            with self.mutex:
                subscription, diff = mutate()
        except VpnPassError as e:
            credential_operations_total.labels(operation=operation, status=e.code).inc()
            raise
        credential_operations_total.labels(
            operation=operation, status="success" if subscription is not None else "skipped"
        ).inc()
        return CredentialResult(subscription=subscription, reconcile=self.roster.after_commit(diff))

    def _roster_for(self, sub: Subscription) -> RosterDiff:
        if sub.status(self.store.today()) == SubscriptionStatus.ACTIVE:
            return self.roster.apply(add=[sub.credential])
        return self.roster.apply(remove=[sub.credential])

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list(self) -> list[SubscriptionView]:
        return self.store.list()

    def get(self, credential: str) -> Subscription | None:
        return self.store.get(credential)

    def exists(self, credential: str) -> bool:
        return self.store.exists(credential)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create(
        self,
        credential: str,
        days: int,
        precondition: Callable[[], bool] | None = None,
    ) -> CredentialResult:
        """
        `precondition` is evaluated inside the lock; if it returns False nothing
        is written and the result carries no subscription.
        """
        def mutate():
            if precondition is not None and not precondition():
                return None, RosterDiff()
            sub = self.store.create(credential, days)
            return sub, self._roster_for(sub)

        return self._run("create", mutate)

    def renew(self, credential: str, days: int) -> CredentialResult:
        def mutate():
            sub = self.store.renew(credential, days)
            return sub, self._roster_for(sub)

        return self._run("renew", mutate)

    def delete(self, credential: str) -> CredentialResult:
        def mutate():
            sub = self.store.delete(credential)
            return sub, self.roster.apply(remove=[credential])

        return self._run("delete", mutate)

    def lock(self, credential: str) -> CredentialResult:
        def mutate():
            sub = self.store.lock(credential)
            return sub, self.roster.apply(remove=[credential])

        return self._run("lock", mutate)

    def unlock(self, credential: str) -> CredentialResult:
        def mutate():
            sub = self.store.unlock(credential)
            return sub, self._roster_for(sub)

        return self._run("unlock", mutate)

    def sync_roster(self) -> RosterDiff:
        """Make the roster exactly the set of active credentials, without reloading."""
        with self.mutex:
            desired = self.store.active_credentials()
            to_add, to_remove = self.roster.diff_to(desired)
            return self.roster.apply(add=sorted(to_add), remove=to_remove)

    def reconcile(self) -> ReconcileResult:
        """sync_roster plus one reload at most."""
        return self.roster.after_commit(self.sync_roster())


def get_credential_service() -> CredentialService:
    return CredentialService.from_paths()
