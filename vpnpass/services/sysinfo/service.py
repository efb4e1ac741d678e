"""
Host information for /api/info and the bot's info screen.
Every lookup is bounded by the HTTP timeout and falls back to "unknown".
"""
import logging
import socket

import httpx

from vpnpass.core.config import settings
from vpnpass.storage.files import read_text

logger = logging.getLogger(__name__)

UNKNOWN = "unknown"


class SystemInfoService:
    def __init__(self, client: httpx.Client | None = None, timeout: float | None = None) -> None:
        self._timeout = settings.http_client_timeout if timeout is None else timeout
        self._client = client

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=self._timeout)
        return self._client

    def public_ip(self) -> str:
        try:
            resp = self.client.get(settings.public_ip_url)
            resp.raise_for_status()
            return resp.text.strip() or UNKNOWN
        except httpx.HTTPError as e:
            logger.warning("public_ip_lookup_failed", extra={"error": str(e)})
            return UNKNOWN

    def ip_info(self) -> dict[str, str]:
        """City / ISP of this host (ip-api.com)."""
        try:
            resp = self.client.get(settings.ip_info_url)
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("ip_info_lookup_failed", extra={"error": str(e)})
            data = {}
        if not isinstance(data, dict):
            data = {}
        return {
            "city": str(data.get("city") or UNKNOWN),
            "isp": str(data.get("isp") or UNKNOWN),
        }

    @staticmethod
    def private_ip() -> str:
        # UDP connect sends nothing; it only picks the outbound interface
        try:
            with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
                s.connect(("10.255.255.255", 1))
                return s.getsockname()[0]
        except OSError:
            return UNKNOWN

    @staticmethod
    def domain() -> str:
        return read_text(settings.domain_path) or "(Not Configured)"

    def collect(self) -> dict[str, str]:
        info = {
            "domain": self.domain(),
            "public_ip": self.public_ip(),
            "private_ip": self.private_ip(),
            "port": settings.service_port,
            "service": settings.service_name,
        }
        info.update(self.ip_info())
        return info
