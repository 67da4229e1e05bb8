"""
Status API dependencies - access to daemon components from endpoints

main_asyncio.py builds a StatusContext once the daemon is wired and calls
set_status_context(); endpoints receive it via Depends(get_status_context).
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import HTTPException, status

from tukitd.engine.engine_interface import ITransactionEngine
from tukitd.lifecycle.shutdown_coordinator import ShutdownCoordinator
from tukitd.services.control_serializer import ControlSerializer
from tukitd.services.execution_coordinator import ExecutionCoordinator


@dataclass
class StatusContext:
    serializer: ControlSerializer
    shutdown: ShutdownCoordinator
    execution: ExecutionCoordinator
    engine: ITransactionEngine


_status_context: Optional[StatusContext] = None


def set_status_context(context: Optional[StatusContext]) -> None:
    global _status_context
    _status_context = context


async def get_status_context() -> StatusContext:
    """
    Raises:
        HTTPException: 503 if the daemon is not wired yet
    """
    if _status_context is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Daemon not initialized."
        )
    return _status_context
