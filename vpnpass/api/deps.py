"""
Shared FastAPI dependencies.
"""
import logging
import secrets

from fastapi import Header, HTTPException, status

from vpnpass.core.config import settings
from vpnpass.services.credentials.service import CredentialService, get_credential_service
from vpnpass.services.expiry.service import ExpirySweeper
from vpnpass.services.sysinfo.service import SystemInfoService
from vpnpass.storage.files import read_text

logger = logging.getLogger(__name__)


def expected_api_key() -> str:
    """Env/.env value first, then the key file written by the installer."""
    return settings.api_key or read_text(settings.api_key_path)


def require_api_key(x_api_key: str | None = Header(default=None)) -> None:
    expected = expected_api_key()
    if not expected or not x_api_key or not secrets.compare_digest(x_api_key, expected):
        logger.warning("api_unauthorized", extra={"status_code": 401})
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


def get_credentials() -> CredentialService:
    return get_credential_service()


def get_sweeper() -> ExpirySweeper:
    return ExpirySweeper(get_credential_service())


def get_sysinfo() -> SystemInfoService:
    return SystemInfoService()
