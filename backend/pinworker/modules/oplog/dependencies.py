"""FastAPI dependency for the process-wide operation recorder."""

from fastapi import Request

from pinworker.modules.oplog.recorder import OperationRecorder


def get_recorder(request: Request) -> OperationRecorder:
    """The recorder instance installed on the application at startup."""
    return request.app.state.recorder
