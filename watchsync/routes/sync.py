# watchsync/routes/sync.py
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException

from watchsync.core.exceptions import ChannelNotFoundError
from watchsync.core.security import get_current_username
from watchsync.integrations.setup import get_orchestrator
from watchsync.schemas.sync import ChannelOut, CycleSummaryOut
from watchsync.scheduler import get_scheduler_status
from watchsync.services.reconciliation.orchestrator import ReconciliationOrchestrator

logger = logging.getLogger(__name__)
router = APIRouter(
    prefix="/api/sync",
    tags=["Synchronization Actions"],
    dependencies=[Depends(get_current_username)],
)


@router.get("/channels", response_model=List[ChannelOut])
async def list_channels(orchestrator: ReconciliationOrchestrator = Depends(get_orchestrator)):
    """Registered channels and whether a cycle is in flight"""
    channels = []
    for channel_id in orchestrator.channels:
        adapter = orchestrator.get_channel(channel_id).adapter
        channels.append(ChannelOut(
            channel=channel_id,
            retention=adapter.retention.value,
            supports_listing=adapter.supports_listing,
            running=orchestrator.is_running(channel_id),
        ))
    return channels


@router.get("/scheduler")
async def scheduler_status():
    return get_scheduler_status()


@router.post("/{channel}", response_model=CycleSummaryOut)
async def run_cycle(channel: str, orchestrator: ReconciliationOrchestrator = Depends(get_orchestrator)):
    """
    Run one reconciliation cycle for a channel and return its summary.

    Aborted and feed-down cycles still return 200; the outcome field says
    what happened.
    """
    logger.info(f"Manual cycle requested for {channel}")
    try:
        summary = await orchestrator.run_cycle(channel)
    except ChannelNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return CycleSummaryOut.from_summary(summary)


@router.post("/{channel}/sku/{sku}", response_model=CycleSummaryOut)
async def run_single_sku(
    channel: str,
    sku: str,
    orchestrator: ReconciliationOrchestrator = Depends(get_orchestrator),
):
    """Reconcile one SKU on a channel. The safety guard does not apply."""
    logger.info(f"Manual single-SKU run requested for {channel}/{sku}")
    try:
        summary = await orchestrator.run_single_sku(channel, sku)
    except ChannelNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return CycleSummaryOut.from_summary(summary)
