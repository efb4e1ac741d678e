"""PakasirClient against a mocked transport."""
from urllib.parse import parse_qs

import httpx
import pybreaker
import pytest

from vpnpass.core.errors import ExternalServiceError
from vpnpass.services.payments.provider import PakasirClient, PaymentStatus, ProviderInvoice, normalize_status


def _client(handler, breaker=None):
    client = PakasirClient(
        "my-shop",
        "secret",
        base_url="https://pakasir.test/api/v1",
        breaker=breaker or pybreaker.CircuitBreaker(fail_max=100, name="test"),
    )
    client._client = httpx.Client(transport=httpx.MockTransport(handler))
    return client


def test_create_transaction_posts_form():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["form"] = parse_qs(request.content.decode())
        return httpx.Response(200, json={
            "success": True,
            "data": {"payment_number": "000201010212", "expired_at": "2025-01-10T12:00:00Z"},
        })

    invoice = _client(handler).create_transaction("ORDER-1", 3000)

    assert seen["url"] == "https://pakasir.test/api/v1/transaction/create/my-shop"
    assert seen["form"] == {
        "api_key": ["secret"],
        "order_id": ["ORDER-1"],
        "amount": ["3000"],
        "payment_method": ["qris"],
    }
    assert invoice.payment_number == "000201010212"
    assert invoice.expired_at == "2025-01-10T12:00:00Z"


@pytest.mark.parametrize("raw, expected", [
    ("completed", PaymentStatus.PAID),
    ("PAID", PaymentStatus.PAID),
    ("pending", PaymentStatus.PENDING),
    ("", PaymentStatus.PENDING),
    ("expired", PaymentStatus.FAILED),
    ("failed", PaymentStatus.FAILED),
])
def test_normalize_status(raw, expected):
    assert normalize_status(raw) == expected


def test_transaction_status():
    def handler(request):
        assert request.url.path.endswith("/transaction/status/my-shop")
        return httpx.Response(200, json={"success": True, "data": {"status": "completed"}})

    assert _client(handler).transaction_status("ORDER-1") == PaymentStatus.PAID


def test_unsuccessful_response_is_external_error():
    def handler(request):
        return httpx.Response(400, json={"success": False, "message": "invalid api key"})

    with pytest.raises(ExternalServiceError) as exc:
        _client(handler).transaction_status("ORDER-1")
    assert "invalid api key" in exc.value.message


def test_transport_error_is_external_error():
    def handler(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    with pytest.raises(ExternalServiceError):
        _client(handler).create_transaction("ORDER-1", 1000)


def test_open_breaker_short_circuits():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(502, text="bad gateway")

    client = _client(handler, breaker=pybreaker.CircuitBreaker(fail_max=2, reset_timeout=60, name="t2"))
    for _ in range(3):
        with pytest.raises(ExternalServiceError):
            client.transaction_status("ORDER-1")

    assert len(calls) == 2


def test_qr_url_encodes_payment_number():
    invoice = ProviderInvoice(payment_number="00 02&x")

    assert invoice.qr_url.endswith("data=00%2002%26x")
