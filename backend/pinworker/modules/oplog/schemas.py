"""Pydantic schemas for the operation log endpoints."""

from typing import Any

from pydantic import BaseModel

from pinworker.modules.oplog.models import OperationRecord


class OperationLogResponse(BaseModel):
    """Most recent operation records, newest first."""
    logs: list[OperationRecord]


class DashboardLogResponse(BaseModel):
    """Trimmed records for the live dashboard."""
    logs: list[dict[str, Any]]
