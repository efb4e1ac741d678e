"""Shared fixtures: a throw-away data dir, fake reloader/provider/notifier."""
import json
from datetime import date

import pytest

from vpnpass.core.config import settings
from vpnpass.core.errors import ExternalServiceError
from vpnpass.services.access_config.settings_service import AccessConfigService
from vpnpass.services.credentials.roster import AccessRoster
from vpnpass.services.credentials.service import CredentialService
from vpnpass.services.credentials.store import CredentialStore
from vpnpass.services.payments.provider import PaymentStatus, ProviderInvoice
from vpnpass.storage.lock import StoreLock

TODAY = date(2025, 1, 10)
ADMIN_ID = 1001
USER_ID = 2002


class FakeReloader:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.calls = 0
        self.later: list[str] = []

    def reload(self) -> None:
        self.calls += 1
        if self.fail:
            raise ExternalServiceError("Failed to restart zivpn.service")

    def restart_later(self, unit, delay=None):
        self.later.append(unit)


class FakeProvider:
    def __init__(self) -> None:
        self.created: list[tuple[str, int]] = []
        self.statuses: dict[str, PaymentStatus] = {}
        self.fail_status = False
        self.closed = False

    def create_transaction(self, order_id: str, amount: int) -> ProviderInvoice:
        self.created.append((order_id, amount))
        return ProviderInvoice(payment_number=f"QRIS-{order_id}", expired_at="2025-01-10 12:00")

    def transaction_status(self, order_id: str) -> PaymentStatus:
        if self.fail_status:
            raise ExternalServiceError("Payment provider unreachable")
        return self.statuses.get(order_id, PaymentStatus.PENDING)

    def close(self) -> None:
        self.closed = True


class FakeNotifier:
    def __init__(self) -> None:
        self.sent = []

    async def __call__(self, chat_id, reply) -> None:
        self.sent.append((chat_id, reply))


@pytest.fixture
def data_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "data_dir", str(tmp_path))
    monkeypatch.setattr(settings, "api_key", "test-key")
    return tmp_path


@pytest.fixture
def lock(data_dir):
    return StoreLock(data_dir / ".store.lock", timeout=5)


@pytest.fixture
def reloader():
    return FakeReloader()


@pytest.fixture
def store(data_dir, lock):
    return CredentialStore(data_dir / "users.json", lock=lock, today=lambda: TODAY)


@pytest.fixture
def roster(data_dir, lock, reloader):
    return AccessRoster(data_dir / "config.json", lock=lock, reloader=reloader)


@pytest.fixture
def credentials(store, roster):
    return CredentialService(store, roster)


@pytest.fixture
def write_users(data_dir):
    def _write(records):
        (data_dir / "users.json").write_text(json.dumps(records))
    return _write


@pytest.fixture
def write_service_config(data_dir):
    def _write(members, **extra):
        config = {"listen": ":5667", "auth": {"mode": "passwords", "config": list(members)}, **extra}
        (data_dir / "config.json").write_text(json.dumps(config))
    return _write


@pytest.fixture
def write_access_config(data_dir):
    def _write(**values):
        config = {"bot_token": "123:abc", "admin_id": ADMIN_ID, "mode": "private", "domain": "vpn.example.com"}
        config.update(values)
        (data_dir / "bot-config.json").write_text(json.dumps(config))
    return _write


@pytest.fixture
def access_config(data_dir, lock, write_access_config):
    write_access_config()
    return AccessConfigService(data_dir / "bot-config.json", data_dir / "domain", lock=lock)


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def failing_reloader():
    return FakeReloader(fail=True)
