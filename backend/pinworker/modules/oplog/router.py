"""Operation log API router.

Read-only views over the operation recorder used by the monitor script.
"""

from fastapi import APIRouter, Depends, Query

from pinworker.modules.oplog.dependencies import get_recorder
from pinworker.modules.oplog.models import OperationStats
from pinworker.modules.oplog.recorder import OperationRecorder
from pinworker.modules.oplog.schemas import DashboardLogResponse, OperationLogResponse

router = APIRouter(tags=["oplog"])


@router.get("/logs", response_model=OperationLogResponse, response_model_exclude_none=True)
async def get_recent_logs(
    limit: int = Query(10, ge=1, le=100),
    recorder: OperationRecorder = Depends(get_recorder),
) -> OperationLogResponse:
    """Get the most recent operation records, newest first."""
    return OperationLogResponse(logs=recorder.recent(limit))


@router.get("/logs/dashboard", response_model=DashboardLogResponse)
async def get_dashboard_logs(
    limit: int = Query(5, ge=1, le=100),
    recorder: OperationRecorder = Depends(get_recorder),
) -> DashboardLogResponse:
    return DashboardLogResponse(logs=recorder.dashboard(limit))


@router.get("/stats", response_model=OperationStats)
async def get_stats(
    recorder: OperationRecorder = Depends(get_recorder),
) -> OperationStats:
    """Aggregate success/failure statistics over the current window."""
    return recorder.stats()
