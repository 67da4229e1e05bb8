"""
System schemas - Pydantic models for the status API
"""

from typing import List, Optional

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    status: str = Field(description="'ok' while the daemon accepts work, otherwise 'draining' or 'terminated'")
    state: str = Field(description="Daemon state: running, draining or terminated")
    engine: str = Field(description="Active transaction engine backend")
    active_transactions: int = Field(description="Number of locked transactions")
    active_workers: int = Field(description="Worker threads currently executing commands")


class TransactionResponse(BaseModel):
    id: str = Field(description="Transaction (snapshot) id")
    state: str = Field(description="queued or running")
    locked_at: float = Field(description="Lock time (epoch seconds)")
    running_since: Optional[float] = Field(None, description="Worker start time (epoch seconds)")


class TransactionListResponse(BaseModel):
    transactions: List[TransactionResponse]
    count: int

    class Config:
        json_schema_extra = {
            "example": {
                "transactions": [
                    {"id": "42", "state": "running", "locked_at": 1760000000.0, "running_since": 1760000000.1}
                ],
                "count": 1
            }
        }
