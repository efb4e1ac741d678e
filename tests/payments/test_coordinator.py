"""PaymentCoordinator: pricing, polling outcomes, exactly-once provisioning."""
import asyncio
import threading

import pytest

from vpnpass.conversation.sessions import SessionTable
from vpnpass.conversation.steps import Step
from vpnpass.core.config import settings
from vpnpass.core.errors import BelowMinimum
from vpnpass.services.payments.provider import PaymentStatus
from vpnpass.services.payments.service import PaymentCoordinator

USER_ID = 2002
CHAT_ID = 2002


class Clock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def sessions():
    return SessionTable()


@pytest.fixture
def coordinator(credentials, provider, sessions, notifier, clock):
    return PaymentCoordinator(
        credentials=credentials,
        provider=provider,
        sessions=sessions,
        notifier=notifier,
        min_price=500,
        max_age=3600,
        clock=clock,
    )


def _open_intent(coordinator, sessions, credential="alice", days=3, daily_price=1000):
    session = sessions.begin(USER_ID, CHAT_ID, Step.CREATE_DURATION, credential=credential)
    intent, _ = asyncio.run(coordinator.create_intent(session, days, daily_price))
    return intent


class TestCreateIntent:
    def test_prices_and_parks_session(self, coordinator, sessions, provider):
        intent = _open_intent(coordinator, sessions, days=3, daily_price=1000)

        assert intent.price == 3000
        assert intent.order_id.startswith(f"{settings.order_id_prefix}-{USER_ID}-")
        assert provider.created == [(intent.order_id, 3000)]
        session = sessions.get(USER_ID)
        assert session.step == Step.CREATE_PAYMENT
        assert session.data["order_id"] == intent.order_id
        assert coordinator.outstanding() == [intent]

    def test_below_minimum_never_reaches_provider(self, coordinator, sessions, provider):
        session = sessions.begin(USER_ID, CHAT_ID, Step.CREATE_DURATION, credential="alice")

        with pytest.raises(BelowMinimum) as exc:
            asyncio.run(coordinator.create_intent(session, 1, 100))

        assert exc.value.minimum == 500
        assert provider.created == []
        assert sessions.get(USER_ID).step == Step.CREATE_DURATION

    def test_order_ids_are_unique(self, coordinator, sessions):
        first = _open_intent(coordinator, sessions)
        second = _open_intent(coordinator, sessions)

        assert first.order_id != second.order_id


class TestPolling:
    def test_paid_provisions_once_and_notifies(self, coordinator, sessions, provider, notifier, credentials, roster):
        intent = _open_intent(coordinator, sessions)
        provider.statuses[intent.order_id] = PaymentStatus.PAID

        outcomes = asyncio.run(coordinator.poll_once())
        again = asyncio.run(coordinator.poll_once())

        assert outcomes["paid"] == 1
        assert sum(again.values()) == 0
        assert [v.credential for v in credentials.list()] == ["alice"]
        assert roster.members() == {"alice"}
        assert sessions.get(USER_ID) is None
        assert len(notifier.sent) == 1
        assert notifier.sent[0][0] == CHAT_ID
        assert "alice" in notifier.sent[0][1].text

    def test_pending_waits_for_next_tick(self, coordinator, sessions, credentials):
        _open_intent(coordinator, sessions)

        outcomes = asyncio.run(coordinator.poll_once())

        assert outcomes["pending"] == 1
        assert len(coordinator.outstanding()) == 1
        assert credentials.list() == []

    def test_failed_is_discarded(self, coordinator, sessions, provider, notifier, credentials):
        intent = _open_intent(coordinator, sessions)
        provider.statuses[intent.order_id] = PaymentStatus.FAILED

        outcomes = asyncio.run(coordinator.poll_once())

        assert outcomes["failed"] == 1
        assert coordinator.outstanding() == []
        assert credentials.list() == []
        assert sessions.get(USER_ID) is None
        assert intent.order_id in notifier.sent[0][1].text

    def test_stale_intent_expires(self, coordinator, sessions, clock, credentials):
        _open_intent(coordinator, sessions)
        clock.now += 3601

        outcomes = asyncio.run(coordinator.poll_once())

        assert outcomes["expired"] == 1
        assert coordinator.outstanding() == []

    def test_provider_error_is_retried(self, coordinator, sessions, provider):
        _open_intent(coordinator, sessions)
        provider.fail_status = True

        outcomes = asyncio.run(coordinator.poll_once())

        assert outcomes["error"] == 1
        assert len(coordinator.outstanding()) == 1

    def test_taken_credential_is_reported(self, coordinator, sessions, provider, notifier, credentials):
        intent = _open_intent(coordinator, sessions)
        credentials.create("alice", 1)
        provider.statuses[intent.order_id] = PaymentStatus.PAID

        outcomes = asyncio.run(coordinator.poll_once())

        assert outcomes["unprovisioned"] == 1
        assert coordinator.outstanding() == []
        assert len(credentials.list()) == 1
        assert "administrator" in notifier.sent[0][1].text

    def test_session_restarted_by_actor_is_left_alone(self, coordinator, sessions, provider):
        intent = _open_intent(coordinator, sessions)
        sessions.begin(USER_ID, CHAT_ID, Step.CREATE_CREDENTIAL)
        provider.statuses[intent.order_id] = PaymentStatus.PAID

        asyncio.run(coordinator.poll_once())

        assert sessions.get(USER_ID).step == Step.CREATE_CREDENTIAL


class TestExclusivity:
    def test_concurrent_settle_creates_one_record(self, coordinator, sessions, credentials):
        intent = _open_intent(coordinator, sessions)
        barrier = threading.Barrier(6)
        results = []

        def worker():
            barrier.wait()
            results.append(coordinator.settle(intent.order_id))

        threads = [threading.Thread(target=worker) for _ in range(6)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len([r for r in results if r is not None]) == 1
        assert [v.credential for v in credentials.list()] == ["alice"]

    def test_cancel_after_settle_keeps_single_record(self, coordinator, sessions, credentials):
        intent = _open_intent(coordinator, sessions)

        assert coordinator.settle(intent.order_id) is not None
        assert coordinator.abandon(intent.order_id) is False
        assert coordinator.settle(intent.order_id) is None
        assert len(credentials.list()) == 1

    def test_paid_after_cancel_provisions_nothing(self, coordinator, sessions, provider, credentials):
        intent = _open_intent(coordinator, sessions)
        assert coordinator.abandon(intent.order_id) is True
        provider.statuses[intent.order_id] = PaymentStatus.PAID

        asyncio.run(coordinator.poll_once())

        assert credentials.list() == []


def test_run_loop_stops(coordinator):
    async def scenario():
        task = asyncio.create_task(coordinator.run(interval=0.01))
        await asyncio.sleep(0.05)
        coordinator.stop()
        await asyncio.wait_for(task, timeout=1)

    asyncio.run(scenario())
