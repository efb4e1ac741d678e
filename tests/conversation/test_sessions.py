"""SessionTable: per-actor state, lock lifetime, last-message bookkeeping."""
import asyncio

from vpnpass.conversation import sessions as sessions_module
from vpnpass.conversation.sessions import SessionTable
from vpnpass.conversation.steps import Step


def test_lock_is_dropped_after_the_flow_ends():
    table = SessionTable()

    async def flow():
        async with table.locked(7):
            table.begin(7, 7, Step.CREATE_CREDENTIAL)
        assert table.tracked_locks() == 1
        async with table.locked(7):
            table.reset(7)

    asyncio.run(flow())

    assert table.tracked_locks() == 0


def test_lock_survives_while_another_update_waits():
    table = SessionTable()
    order = []

    async def first():
        async with table.locked(7):
            await asyncio.sleep(0)
            order.append("first")

    async def second():
        async with table.locked(7):
            order.append("second")

    async def both():
        await asyncio.gather(first(), second())

    asyncio.run(both())

    assert order == ["first", "second"]
    assert table.tracked_locks() == 0


def test_reset_if_checks_step_and_data():
    table = SessionTable()
    table.begin(7, 7, Step.CREATE_PAYMENT, order_id="A")

    assert table.reset_if(7, Step.CREATE_PAYMENT, order_id="B") is False
    assert table.reset_if(7, Step.CREATE_DURATION) is False
    assert table.reset_if(7, Step.CREATE_PAYMENT, order_id="A") is True
    assert table.get(7) is None


def test_remember_message_returns_previous_and_is_bounded(monkeypatch):
    monkeypatch.setattr(sessions_module, "MAX_TRACKED_CHATS", 2)
    table = SessionTable()

    assert table.remember_message(1, 10) is None
    assert table.remember_message(1, 11) == 10
    table.remember_message(2, 20)
    table.remember_message(3, 30)

    # chat 1 was the least recently used one
    assert table.remember_message(1, 12) is None
    assert table.remember_message(3, 31) == 30
