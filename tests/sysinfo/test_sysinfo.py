"""SystemInfoService lookups fall back to "unknown" instead of raising."""
import httpx

from vpnpass.core.config import settings
from vpnpass.services.sysinfo.service import UNKNOWN, SystemInfoService


def _service(handler):
    return SystemInfoService(client=httpx.Client(transport=httpx.MockTransport(handler)))


def test_collect_reports_lookups(data_dir, monkeypatch):
    monkeypatch.setattr(SystemInfoService, "private_ip", staticmethod(lambda: "10.0.0.2"))
    (data_dir / settings.domain_file_name).write_text("vpn.example.com\n")

    def handler(request: httpx.Request) -> httpx.Response:
        if str(request.url) == settings.public_ip_url:
            return httpx.Response(200, text="203.0.113.7\n")
        return httpx.Response(200, json={"city": "Jakarta", "isp": "ExampleNet"})

    info = _service(handler).collect()

    assert info == {
        "domain": "vpn.example.com",
        "public_ip": "203.0.113.7",
        "private_ip": "10.0.0.2",
        "port": settings.service_port,
        "service": settings.service_name,
        "city": "Jakarta",
        "isp": "ExampleNet",
    }


def test_failed_lookups_fall_back(data_dir):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("down", request=request)

    service = _service(handler)

    assert service.public_ip() == UNKNOWN
    assert service.ip_info() == {"city": UNKNOWN, "isp": UNKNOWN}
    assert service.domain() == "(Not Configured)"


def test_ip_info_ignores_non_json(data_dir):
    service = _service(lambda request: httpx.Response(200, text="<html>"))

    assert service.ip_info() == {"city": UNKNOWN, "isp": UNKNOWN}
