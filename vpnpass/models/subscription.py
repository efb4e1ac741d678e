"""
Subscription record and its derived status.
Status is never stored: it is computed from `expires_on`, `locked` and today.
"""
from __future__ import annotations

from datetime import date
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

DATE_FORMAT = "%Y-%m-%d"


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    LOCKED = "locked"


def derive_status(expires_on: date, locked: bool, today: date) -> SubscriptionStatus:
    if locked:
        return SubscriptionStatus.LOCKED
    if expires_on >= today:
        return SubscriptionStatus.ACTIVE
    return SubscriptionStatus.EXPIRED


class Subscription(BaseModel):
    """One provisioned credential as persisted in users.json."""

    credential: str = Field(..., alias="password")
    expires_on: date = Field(..., alias="expired")
    locked: bool = False

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    @classmethod
    def from_record(cls, raw: dict) -> "Subscription":
        """Parse a users.json entry; older files mark a lock as status="locked"."""
        locked = bool(raw.get("locked", False)) or raw.get("status") == SubscriptionStatus.LOCKED.value
        return cls(password=raw["password"], expired=raw["expired"], locked=locked)

    def to_record(self) -> dict:
        return {
            "password": self.credential,
            "expired": self.expires_on.strftime(DATE_FORMAT),
            "locked": self.locked,
        }

    def status(self, today: date) -> SubscriptionStatus:
        return derive_status(self.expires_on, self.locked, today)


class SubscriptionView(BaseModel):
    """Record plus derived status, as returned by list()."""

    credential: str
    expires_on: date
    locked: bool
    status: SubscriptionStatus

    model_config = ConfigDict(frozen=True)

    @classmethod
    def of(cls, sub: Subscription, today: date) -> "SubscriptionView":
        return cls(
            credential=sub.credential,
            expires_on=sub.expires_on,
            locked=sub.locked,
            status=sub.status(today),
        )

    def as_api_dict(self) -> dict:
        return {
            "password": self.credential,
            "expired": self.expires_on.strftime(DATE_FORMAT),
            "status": self.status.value,
        }
