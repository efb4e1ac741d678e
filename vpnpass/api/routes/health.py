from fastapi import APIRouter, Response

from vpnpass.core.config import settings
from vpnpass.core.errors import PersistenceError
from vpnpass.storage.files import read_json


router = APIRouter()


@router.get("/health")
def health() -> dict:
    """Liveness probe - always returns 200 if app is running."""
    return {"status": "ok"}


@router.get("/ready")
def readiness(response: Response) -> dict:
    """Readiness probe - returns 503 if the data files are unreadable."""
    try:
        read_json(settings.users_path, [])
        read_json(settings.service_config_path, {})
        return {"status": "ready"}
    except PersistenceError as e:
        response.status_code = 503
        return {"status": "not_ready", "error": e.message}
