"""
ExpirySweeper — demotes every non-active credential out of the access roster
(expired, locked, or with no record left in users.json).

Only roster membership changes: the record (and its lock flag) stays in
users.json so a later renew reactivates the same credential. Idempotent:
already-revoked credentials are no longer in the roster, so a second sweep
finds nothing to do.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field

from vpnpass.services.credentials.service import CredentialService
from vpnpass.utils.metrics import expiry_revoked_total

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    revoked: list[str] = field(default_factory=list)
    reloaded: bool = False
    reload_error: str | None = None

    def as_dict(self) -> dict:
        return {
            "revoked": len(self.revoked),
            "credentials": self.revoked,
            "reloaded": self.reloaded,
            "reload_error": self.reload_error,
        }


class ExpirySweeper:
    def __init__(self, credentials: CredentialService) -> None:
        self.credentials = credentials

    def sweep(self) -> SweepResult:
        store = self.credentials.store
        roster = self.credentials.roster
        with self.credentials.mutex:
            stale = roster.members() - store.active_credentials()
            diff = roster.apply(remove=stale)

        for credential in diff.removed:
            logger.info("credential_revoked", extra={"credential": credential})
        if diff.removed:
            expiry_revoked_total.inc(len(diff.removed))

        outcome = roster.after_commit(diff)
        logger.info("expiry_sweep_done", extra={"revoked": len(diff.removed)})
        return SweepResult(
            revoked=list(diff.removed),
            reloaded=outcome.reloaded,
            reload_error=outcome.reload_error,
        )
