"""
System endpoints - daemon health and the lock table
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status

from tukitd.api.status.dependencies import StatusContext, get_status_context
from tukitd.api.status.schemas import HealthResponse, TransactionListResponse, TransactionResponse
from tukitd.models.enums import DaemonState
from tukitd.models.errors import ShuttingDownError
from tukitd.models.transaction import TransactionRecord
from tukitd.utils.logger import get_logger, LogCategory

log = get_logger().for_category(LogCategory.API)

router = APIRouter(prefix="/system", tags=["System"])


async def _records(ctx: StatusContext) -> Optional[List[TransactionRecord]]:
    # read through the serializer like every other registry access
    try:
        return await ctx.serializer.snapshot()
    except ShuttingDownError:
        return None


@router.get("/health", response_model=HealthResponse, summary="Daemon health")
async def health(ctx: StatusContext = Depends(get_status_context)) -> HealthResponse:
    records = await _records(ctx)
    state = ctx.shutdown.state
    return HealthResponse(
        status="ok" if state is DaemonState.RUNNING else state.name.lower(),
        state=state.name.lower(),
        engine=ctx.engine.name,
        active_transactions=len(records) if records is not None else 0,
        active_workers=ctx.execution.active_workers,
    )


@router.get("/transactions", response_model=TransactionListResponse, summary="Locked transactions")
async def list_transactions(ctx: StatusContext = Depends(get_status_context)) -> TransactionListResponse:
    records = await _records(ctx)
    if records is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=ShuttingDownError().message
        )

    items = [
        TransactionResponse(
            id=r.id,
            state=r.state.name.lower(),
            locked_at=r.locked_at,
            running_since=r.running_since,
        )
        for r in sorted(records, key=lambda r: r.locked_at)
    ]
    log.debug("Transactions listed", count=len(items))
    return TransactionListResponse(transactions=items, count=len(items))
