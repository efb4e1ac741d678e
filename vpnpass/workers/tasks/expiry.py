"""
Celery beat task: revoke roster access of expired credentials.
"""
import logging

from vpnpass.core.celery_app import SWEEP_TASK, celery_app
from vpnpass.core.errors import VpnPassError
from vpnpass.services.credentials.service import get_credential_service
from vpnpass.services.expiry.service import ExpirySweeper

logger = logging.getLogger(__name__)


@celery_app.task(name=SWEEP_TASK, time_limit=120, soft_time_limit=110)
def sweep_expired() -> dict:
    """One sweep; failures are logged and the next beat tick tries again."""
    try:
        result = ExpirySweeper(get_credential_service()).sweep()
    except VpnPassError as e:
        logger.exception("expiry_sweep_error", extra={"error": e.message})
        return {"ok": False, "error": e.code}
    return {"ok": True, **result.as_dict()}
