"""
Credential endpoints: /api/user/* and /api/users.
Envelope: {"success", "message", "data"}; errors go through the app-level handler.
"""
from fastapi import APIRouter, Depends

from vpnpass.api.deps import get_credentials, require_api_key
from vpnpass.conversation.validators import validate_credential
from vpnpass.core.config import settings
from vpnpass.core.errors import ValidationError
from vpnpass.models.subscription import DATE_FORMAT
from vpnpass.schemas.credentials import CredentialDays, CredentialRef, Envelope
from vpnpass.services.credentials.service import CredentialResult, CredentialService


router = APIRouter(prefix="/api", tags=["credentials"], dependencies=[Depends(require_api_key)])


def _check_days(days: int) -> int:
    if days < settings.admin_min_days or days > settings.admin_max_days:
        raise ValidationError(f"days must be between {settings.admin_min_days} and {settings.admin_max_days}")
    return days


def _payload(result: CredentialResult) -> dict:
    sub = result.subscription
    data = {"password": sub.credential, "expired": sub.expires_on.strftime(DATE_FORMAT)}
    if result.reload_error:
        data["reload_error"] = result.reload_error
    return data


@router.post("/user/create", response_model=Envelope)
def create_user(body: CredentialDays, service: CredentialService = Depends(get_credentials)) -> Envelope:
    result = service.create(validate_credential(body.password), _check_days(body.days))
    return Envelope(success=True, message="User created", data=_payload(result))


@router.post("/user/renew", response_model=Envelope)
def renew_user(body: CredentialDays, service: CredentialService = Depends(get_credentials)) -> Envelope:
    result = service.renew(body.password, _check_days(body.days))
    return Envelope(success=True, message="User renewed", data=_payload(result))


@router.post("/user/delete", response_model=Envelope)
def delete_user(body: CredentialRef, service: CredentialService = Depends(get_credentials)) -> Envelope:
    result = service.delete(body.password)
    data = {"password": body.password}
    if result.reload_error:
        data["reload_error"] = result.reload_error
    return Envelope(success=True, message="User deleted", data=data)


@router.post("/user/lock", response_model=Envelope)
def lock_user(body: CredentialRef, service: CredentialService = Depends(get_credentials)) -> Envelope:
    result = service.lock(body.password)
    return Envelope(success=True, message="User locked", data=_payload(result))


@router.post("/user/unlock", response_model=Envelope)
def unlock_user(body: CredentialRef, service: CredentialService = Depends(get_credentials)) -> Envelope:
    result = service.unlock(body.password)
    return Envelope(success=True, message="User unlocked", data=_payload(result))


@router.get("/users", response_model=Envelope)
def list_users(service: CredentialService = Depends(get_credentials)) -> Envelope:
    return Envelope(
        success=True,
        message="Users",
        data=[view.as_api_dict() for view in service.list()],
    )
