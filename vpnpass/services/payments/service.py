"""
PaymentCoordinator — pay-to-provision flow.

Intents live in memory of the bot process (a restart drops unpaid intents).
Provider calls run in a worker thread with no lock held. Provisioning is the
only locked step: the intent is popped and the credential created inside one
StoreLock section, so a paid intent yields at most one record no matter how
many poll ticks or cancels race on it.
"""
from __future__ import annotations

import asyncio
import logging
import secrets
import threading
import time
from collections import Counter
from dataclasses import dataclass
from typing import Awaitable, Callable, Protocol

from vpnpass.conversation import messages
from vpnpass.conversation.replies import Reply, back_keyboard
from vpnpass.conversation.sessions import Session, SessionTable
from vpnpass.conversation.steps import Step
from vpnpass.core.config import settings
from vpnpass.core.errors import BelowMinimum, ExternalServiceError, VpnPassError
from vpnpass.services.access_config.settings_service import AccessConfigService
from vpnpass.services.credentials.service import CredentialResult, CredentialService
from vpnpass.services.payments.provider import PaymentStatus, ProviderInvoice
from vpnpass.utils.metrics import outstanding_payment_intents, payment_intents_total

logger = logging.getLogger(__name__)

Notifier = Callable[[int, Reply], Awaitable[None]]


class PaymentProvider(Protocol):
    def create_transaction(self, order_id: str, amount: int) -> ProviderInvoice: ...

    def transaction_status(self, order_id: str) -> PaymentStatus: ...


@dataclass(frozen=True)
class PaymentIntent:
    order_id: str
    actor_id: int
    chat_id: int
    credential: str
    days: int
    price: int
    reference: str
    expired_at: str
    created_at: float


class PaymentCoordinator:
    def __init__(
        self,
        credentials: CredentialService,
        provider: PaymentProvider,
        sessions: SessionTable,
        notifier: Notifier | None = None,
        access_config: AccessConfigService | None = None,
        min_price: int | None = None,
        max_age: float | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.credentials = credentials
        self.provider = provider
        self.sessions = sessions
        self.notifier = notifier
        self.access_config = access_config
        self.min_price = settings.payment_min_price if min_price is None else min_price
        self.max_age = settings.payment_intent_max_age if max_age is None else max_age
        self.clock = clock
        self._intents: dict[str, PaymentIntent] = {}
        self._intents_lock = threading.Lock()
        self._stopped = asyncio.Event()

    # ------------------------------------------------------------------
    # Intent table
    # ------------------------------------------------------------------

    def _new_order_id(self, actor_id: int) -> str:
        return f"{settings.order_id_prefix}-{actor_id}-{int(self.clock())}-{secrets.token_hex(3)}"

    def _pop(self, order_id: str) -> PaymentIntent | None:
        with self._intents_lock:
            intent = self._intents.pop(order_id, None)
            outstanding_payment_intents.set(len(self._intents))
        return intent

    def get(self, order_id: str) -> PaymentIntent | None:
        with self._intents_lock:
            return self._intents.get(order_id)

    def outstanding(self) -> list[PaymentIntent]:
        with self._intents_lock:
            return list(self._intents.values())

    # ------------------------------------------------------------------
    # Flow operations
    # ------------------------------------------------------------------

    async def create_intent(self, session: Session, days: int, daily_price: int) -> tuple[PaymentIntent, ProviderInvoice]:
        """Price the order, register it with the provider and park the session."""
        price = days * daily_price
        if price < self.min_price:
            raise BelowMinimum(price, self.min_price)
        credential = session.data["credential"]
        order_id = self._new_order_id(session.actor_id)

        invoice = await asyncio.to_thread(self.provider.create_transaction, order_id, price)

        intent = PaymentIntent(
            order_id=order_id,
            actor_id=session.actor_id,
            chat_id=session.chat_id,
            credential=credential,
            days=days,
            price=price,
            reference=invoice.payment_number,
            expired_at=invoice.expired_at,
            created_at=self.clock(),
        )
        with self._intents_lock:
            self._intents[order_id] = intent
            outstanding_payment_intents.set(len(self._intents))
        self.sessions.advance(session.actor_id, Step.CREATE_PAYMENT, days=days, order_id=order_id)
        payment_intents_total.labels(outcome="created").inc()
        logger.info(
            "payment_intent_created",
            extra={"order_id": order_id, "actor_id": session.actor_id, "credential": credential, "price": price},
        )
        return intent, invoice

    def settle(self, order_id: str) -> CredentialResult | None:
        """
        Provision a paid intent. Returns None when the intent is already gone
        (settled earlier or abandoned). Thread-safe.
        """
        claimed: list[PaymentIntent] = []

        def claim() -> bool:
            intent = self._pop(order_id)
            if intent is None:
                return False
            claimed.append(intent)
            return True

        intent = self.get(order_id)
        if intent is None:
            return None
        result = self.credentials.create(intent.credential, intent.days, precondition=claim)
        if result.subscription is None:
            return None
        payment_intents_total.labels(outcome="paid").inc()
        logger.info(
            "payment_provisioned",
            extra={"order_id": order_id, "actor_id": intent.actor_id, "credential": intent.credential},
        )
        return result

    def abandon(self, order_id: str) -> bool:
        """Drop an intent (cancel). False if it was already settled or discarded."""
        intent = self._pop(order_id)
        if intent is None:
            return False
        payment_intents_total.labels(outcome="abandoned").inc()
        logger.info("payment_intent_abandoned", extra={"order_id": order_id, "actor_id": intent.actor_id})
        return True

    # ------------------------------------------------------------------
    # Poll loop
    # ------------------------------------------------------------------

    async def _finish_session(self, intent: PaymentIntent, reply: Reply) -> None:
        async with self.sessions.locked(intent.actor_id):
            self.sessions.reset_if(intent.actor_id, Step.CREATE_PAYMENT, order_id=intent.order_id)
        if self.notifier is not None:
            try:
                await self.notifier(intent.chat_id, reply)
            except Exception:
                logger.exception("payment_notify_failed", extra={"order_id": intent.order_id})

    def _domain(self) -> str:
        if self.access_config is None:
            return "(Not Configured)"
        return self.access_config.display_domain()

    async def _provision(self, intent: PaymentIntent) -> str:
        try:
            result = await asyncio.to_thread(self.settle, intent.order_id)
        except VpnPassError as e:
            if self.get(intent.order_id) is not None:
                # not claimed yet (store busy): retried next tick
                logger.warning("payment_settle_retry", extra={"order_id": intent.order_id, "error": e.message})
                return "retry"
            payment_intents_total.labels(outcome="unprovisioned").inc()
            logger.error(
                "payment_unprovisioned",
                extra={"order_id": intent.order_id, "credential": intent.credential, "error": e.message},
            )
            await self._finish_session(
                intent,
                Reply(messages.payment_unprovisioned(intent.order_id, e.message), keyboard=back_keyboard()),
            )
            return "unprovisioned"
        if result is None:
            return "gone"
        text = messages.account_details("✅ Payment received, account created", result.subscription, self._domain())
        await self._finish_session(intent, Reply(text, keyboard=back_keyboard()))
        return "paid"

    async def _discard(self, intent: PaymentIntent, outcome: str) -> str:
        if self._pop(intent.order_id) is None:
            return "gone"
        payment_intents_total.labels(outcome=outcome).inc()
        logger.info("payment_intent_discarded", extra={"order_id": intent.order_id, "status": outcome})
        await self._finish_session(intent, Reply(messages.payment_failed(intent.order_id), keyboard=back_keyboard()))
        return outcome

    def _too_old(self, intent: PaymentIntent) -> bool:
        return self.clock() - intent.created_at > self.max_age

    async def poll_once(self) -> Counter:
        """One tick: query every outstanding intent and act on its status."""
        outcomes: Counter = Counter()
        for intent in self.outstanding():
            try:
                status = await asyncio.to_thread(self.provider.transaction_status, intent.order_id)
            except ExternalServiceError as e:
                logger.warning("payment_status_failed", extra={"order_id": intent.order_id, "error": e.message})
                status = None

            if status == PaymentStatus.PAID:
                outcomes[await self._provision(intent)] += 1
            elif status == PaymentStatus.FAILED:
                outcomes[await self._discard(intent, "failed")] += 1
            elif self._too_old(intent):
                outcomes[await self._discard(intent, "expired")] += 1
            else:
                outcomes["pending" if status is not None else "error"] += 1
        return outcomes

    async def run(self, interval: float | None = None) -> None:
        every = settings.payment_poll_interval if interval is None else interval
        logger.info("payment_poller_started")
        while not self._stopped.is_set():
            try:
                await self.poll_once()
            except Exception:
                logger.exception("payment_poll_failed")
            try:
                await asyncio.wait_for(self._stopped.wait(), timeout=every)
            except asyncio.TimeoutError:
                pass
        logger.info("payment_poller_stopped")

    def stop(self) -> None:
        self._stopped.set()
