"""
Pydantic schemas for HTTP responses.
"""
from pydantic import BaseModel
from typing import List, Optional


class SchedulerStats(BaseModel):
    """Scheduler state reported by the health endpoint"""
    targets: int
    scheduled: int
    in_flight: int
    runs_completed: int
    runs_failed: int
    running: bool


class HealthResponse(BaseModel):
    """Response schema for the health endpoint"""
    status: str
    version: str
    scheduler: SchedulerStats


class TargetStatus(BaseModel):
    """Latest cached outcome for a scheduled target"""
    identity: str
    host: str
    port: int
    protocol: str
    reverse_mode: bool
    interval_seconds: float
    last_success: Optional[bool] = None
    last_run: Optional[str] = None
    last_error: Optional[str] = None


class TargetsResponse(BaseModel):
    """Response schema for the targets listing"""
    count: int
    targets: List[TargetStatus]


class ProbeErrorResponse(BaseModel):
    """Body returned for an invalid probe request"""
    ok: bool = False
    error: str
    field: Optional[str] = None
