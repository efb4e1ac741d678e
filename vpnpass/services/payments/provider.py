"""
Pakasir QRIS client (httpx sync client).
Sync on purpose: the bot runs it through asyncio.to_thread so a slow provider
never blocks the event loop, and pybreaker only wraps sync callables.
"""
import logging
import time
from dataclasses import dataclass
from enum import Enum
from urllib.parse import quote

import httpx
import pybreaker

from vpnpass.core.config import settings
from vpnpass.core.errors import ExternalServiceError
from vpnpass.services.circuit_breaker import payment_provider_breaker
from vpnpass.utils.metrics import provider_requests_total, provider_request_duration_seconds

logger = logging.getLogger(__name__)

PAID_STATUSES = frozenset({"completed", "paid", "success"})
FAILED_STATUSES = frozenset({"failed", "expired", "canceled", "cancelled"})


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


def normalize_status(raw: str | None) -> PaymentStatus:
    value = (raw or "").strip().lower()
    if value in PAID_STATUSES:
        return PaymentStatus.PAID
    if value in FAILED_STATUSES:
        return PaymentStatus.FAILED
    return PaymentStatus.PENDING


@dataclass(frozen=True)
class ProviderInvoice:
    payment_number: str
    expired_at: str = ""

    @property
    def qr_url(self) -> str:
        return settings.qr_image_url.format(data=quote(self.payment_number, safe=""))


class PakasirClient:
    def __init__(
        self,
        slug: str,
        api_key: str,
        base_url: str | None = None,
        timeout: float | None = None,
        breaker: pybreaker.CircuitBreaker | None = None,
    ) -> None:
        self.slug = slug
        self._api_key = api_key
        self._base_url = (base_url or settings.pakasir_api_base).rstrip("/")
        self._timeout = settings.http_client_timeout if timeout is None else timeout
        self._breaker = breaker or payment_provider_breaker
        self._client: httpx.Client | None = None

    @property
    def client(self) -> httpx.Client:
        """Lazy initialization of httpx client."""
        if self._client is None:
            self._client = httpx.Client(timeout=self._timeout)
        return self._client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def _post(self, method: str, form: dict) -> dict:
        url = f"{self._base_url}/transaction/{method}/{self.slug}"
        resp = self.client.post(url, data={"api_key": self._api_key, **form})
        try:
            result = resp.json()
        except ValueError as e:
            raise ExternalServiceError(f"Provider returned non-JSON ({resp.status_code})") from e
        if not isinstance(result, dict) or result.get("success") is not True:
            message = result.get("message") if isinstance(result, dict) else None
            raise ExternalServiceError(f"Provider error: {message or resp.status_code}")
        data = result.get("data")
        if not isinstance(data, dict):
            raise ExternalServiceError("Provider response has no data")
        return data

    def _call(self, method: str, form: dict) -> dict:
        start = time.time()
        try:
            data = self._breaker.call(self._post, method, form)
        except pybreaker.CircuitBreakerError as e:
            provider_requests_total.labels(method=method, status="circuit_open").inc()
            raise ExternalServiceError("Payment provider temporarily unavailable") from e
        except httpx.HTTPError as e:
            provider_requests_total.labels(method=method, status="error").inc()
            logger.warning("provider_http_error", extra={"method": method, "error": str(e)})
            raise ExternalServiceError("Payment provider unreachable") from e
        except ExternalServiceError:
            provider_requests_total.labels(method=method, status="error").inc()
            raise
        finally:
            provider_request_duration_seconds.labels(method=method).observe(time.time() - start)
        provider_requests_total.labels(method=method, status="success").inc()
        return data

    def create_transaction(self, order_id: str, amount: int) -> ProviderInvoice:
        data = self._call(
            "create",
            {"order_id": order_id, "amount": str(amount), "payment_method": settings.payment_method},
        )
        number = data.get("payment_number")
        if not number:
            raise ExternalServiceError("Provider did not return a payment number")
        return ProviderInvoice(payment_number=str(number), expired_at=str(data.get("expired_at") or ""))

    def transaction_status(self, order_id: str) -> PaymentStatus:
        data = self._call("status", {"order_id": order_id})
        return normalize_status(data.get("status"))
