from fastapi import APIRouter, Depends

from vpnpass.api.deps import get_sweeper, get_sysinfo, require_api_key
from vpnpass.schemas.credentials import Envelope
from vpnpass.services.expiry.service import ExpirySweeper
from vpnpass.services.sysinfo.service import SystemInfoService


router = APIRouter(prefix="/api", tags=["system"], dependencies=[Depends(require_api_key)])


@router.get("/info", response_model=Envelope)
def system_info(sysinfo: SystemInfoService = Depends(get_sysinfo)) -> Envelope:
    return Envelope(success=True, message="System Info", data=sysinfo.collect())


@router.post("/cron/expire", response_model=Envelope)
def expire_now(sweeper: ExpirySweeper = Depends(get_sweeper)) -> Envelope:
    """Run the expiry sweep now (same job as the Celery beat schedule)."""
    result = sweeper.sweep()
    return Envelope(
        success=True,
        message=f"Expiration check complete, {len(result.revoked)} revoked",
        data=result.as_dict(),
    )
