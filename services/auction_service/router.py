from fastapi import APIRouter, Depends

from shared.security import verify_internal_api_key
from .concluder import run_once
from .schemas import ConclusionSummary

# Triggered by an external scheduler (cron, k8s CronJob), not by API clients
router = APIRouter(
    prefix="/auctions",
    tags=["Auctions"],
    dependencies=[Depends(verify_internal_api_key)],
)


@router.post("/conclude", response_model=ConclusionSummary)
async def conclude_auctions():
    return await run_once()
