"""
AccessRoster — credentials the protected service currently accepts.

The roster is the `auth.config` list of the service's config.json; the rest
of that file (listen, cert, obfs, ...) is preserved as-is. Changes are applied
under the shared StoreLock; the reload happens after the lock is released and
at most once per call.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from vpnpass.core.config import settings
from vpnpass.core.errors import ExternalServiceError, PersistenceError
from vpnpass.services.reload.service import ServiceReloader
from vpnpass.storage.files import atomic_write_json, read_json
from vpnpass.storage.lock import StoreLock
from vpnpass.utils.metrics import roster_changes_total

logger = logging.getLogger(__name__)

DEFAULT_AUTH_MODE = "passwords"


@dataclass(frozen=True)
class RosterDiff:
    added: tuple[str, ...] = ()
    removed: tuple[str, ...] = ()

    def __bool__(self) -> bool:
        return bool(self.added or self.removed)


@dataclass
class ReconcileResult:
    diff: RosterDiff = field(default_factory=RosterDiff)
    reloaded: bool = False
    reload_error: str | None = None


class AccessRoster:
    def __init__(
        self,
        path: Path | None = None,
        lock: StoreLock | None = None,
        reloader: ServiceReloader | None = None,
    ) -> None:
        self.path = Path(path or settings.service_config_path)
        self.mutex = lock or StoreLock()
        self.reloader = reloader or ServiceReloader()

    # ------------------------------------------------------------------
    # File access (caller holds the lock)
    # ------------------------------------------------------------------

    def _load_config(self) -> dict:
        config = read_json(self.path, {})
        if not isinstance(config, dict):
            raise PersistenceError(f"{self.path.name} must contain an object")
        auth = config.setdefault("auth", {})
        if not isinstance(auth, dict):
            raise PersistenceError(f"{self.path.name}: auth must be an object")
        auth.setdefault("mode", DEFAULT_AUTH_MODE)
        auth.setdefault("config", [])
        return config

    def _members(self, config: dict) -> list[str]:
        return [str(c) for c in config["auth"]["config"]]

    def apply(self, add: Iterable[str] = (), remove: Iterable[str] = ()) -> RosterDiff:
        """Apply the minimal change set and persist it. Must run under the lock."""
        config = self._load_config()
        current = self._members(config)
        present = set(current)
        to_remove = {c for c in remove if c in present}
        to_add: list[str] = []
        for c in add:
            if c not in present and c not in to_add and c not in to_remove:
                to_add.append(c)
        if not to_add and not to_remove:
            return RosterDiff()
        config["auth"]["config"] = [c for c in current if c not in to_remove] + to_add
        atomic_write_json(self.path, config)
        diff = RosterDiff(added=tuple(to_add), removed=tuple(sorted(to_remove)))
        if diff.added:
            roster_changes_total.labels(direction="add").inc(len(diff.added))
        if diff.removed:
            roster_changes_total.labels(direction="remove").inc(len(diff.removed))
        logger.info("roster_changed", extra={"added": list(diff.added), "removed": list(diff.removed)})
        return diff

    def diff_to(self, desired: set[str]) -> tuple[set[str], set[str]]:
        """(to_add, to_remove) that turn the current roster into `desired`. Caller holds the lock."""
        present = set(self._members(self._load_config()))
        return desired - present, present - desired

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def members(self) -> set[str]:
        with self.mutex:
            return set(self._members(self._load_config()))

    def after_commit(self, diff: RosterDiff) -> ReconcileResult:
        """Reload once if the roster changed. Call with the lock released."""
        result = ReconcileResult(diff=diff)
        if not diff:
            return result
        try:
            self.reloader.reload()
            result.reloaded = True
        except ExternalServiceError as e:
            # roster stays applied; the service catches up on the next reload
            result.reload_error = e.message
            logger.warning("roster_reload_failed", extra={"error": result.reload_error})
        return result

    def grant(self, credential: str) -> ReconcileResult:
        with self.mutex:
            diff = self.apply(add=[credential])
        return self.after_commit(diff)

    def revoke(self, credential: str) -> ReconcileResult:
        with self.mutex:
            diff = self.apply(remove=[credential])
        return self.after_commit(diff)

    def reconcile(self, desired: Iterable[str]) -> ReconcileResult:
        desired_set = set(desired)
        with self.mutex:
            to_add, to_remove = self.diff_to(desired_set)
            diff = self.apply(add=sorted(to_add), remove=to_remove)
        return self.after_commit(diff)
