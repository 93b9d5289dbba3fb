"""Operation log: bounded record of recent transcode requests."""

from pinworker.modules.oplog.recorder import (
    InMemoryOperationRecorder,
    JsonlOperationRecorder,
    OperationRecorder,
    create_recorder,
)
from pinworker.modules.oplog.router import router as oplog_router

__all__ = [
    "InMemoryOperationRecorder",
    "JsonlOperationRecorder",
    "OperationRecorder",
    "create_recorder",
    "oplog_router",
]
