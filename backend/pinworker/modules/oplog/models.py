"""Operation log records.

One record per lifecycle event of a transcode request. Records are
immutable once appended; terminal records copy the request context
from their Started record.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class OperationStatus(str, Enum):
    STARTED = "started"
    COMPLETED = "completed"
    FAILED = "failed"


# Request context a terminal record inherits from its Started record
CONTEXT_FIELDS = (
    "user",
    "filename",
    "file_size",
    "client_ip",
    "user_agent",
    "origin",
    "platform",
    "device_info",
    "browser_info",
    "session_id",
    "correlation_id",
    "user_hp",
    "connection_type",
)

MAX_USER_AGENT_CHARS = 100


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class OperationRecord(BaseModel):
    """A single entry of the operation log."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        use_enum_values=False,
    )

    id: str = "unknown"
    status: OperationStatus
    timestamp: str = Field(default_factory=utc_timestamp)
    user: Optional[str] = None
    filename: Optional[str] = None
    file_size: Optional[int] = None
    client_ip: Optional[str] = Field(default=None, alias="clientIP")
    user_agent: Optional[str] = None
    origin: Optional[str] = None
    platform: Optional[str] = None
    device_info: Optional[str] = None
    browser_info: Optional[str] = None
    session_id: Optional[str] = None
    correlation_id: Optional[str] = None
    user_hp: Optional[int] = Field(default=None, alias="userHP")
    connection_type: Optional[str] = None
    start_time: Optional[int] = None
    cid: Optional[str] = None
    gateway_url: Optional[str] = None
    duration: Optional[int] = None
    error: Optional[str] = None
    success: Optional[bool] = None

    @property
    def is_terminal(self) -> bool:
        return self.status is not OperationStatus.STARTED


def inherit_context(start: OperationRecord, terminal: OperationRecord) -> OperationRecord:
    """Copy request context from a Started record into a terminal one.

    Fields the terminal record already sets are kept.
    """
    updates = {}
    for name in CONTEXT_FIELDS:
        if getattr(terminal, name) is None:
            value = getattr(start, name)
            if value is not None:
                updates[name] = value
    if not updates:
        return terminal
    return terminal.model_copy(update=updates)


class OperationStats(BaseModel):
    """Aggregate view over the records currently in the window."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    total: int = 0
    successful: int = 0
    failed: int = 0
    in_progress: int = 0
    success_rate: int = 0
    avg_duration: int = 0
