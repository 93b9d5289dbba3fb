"""Operation recorder: a bounded, append-only log of recent transcodes.

Appends are serialised behind a lock so concurrent requests can never
interleave writes to the persisted log. Progress notifications are only
logged, never stored.
"""

import logging
import math
import os
import threading
from abc import ABC, abstractmethod
from collections import deque
from typing import Any, Iterable, Optional

from pydantic import ValidationError

from pinworker.modules.oplog.models import (
    MAX_USER_AGENT_CHARS,
    OperationRecord,
    OperationStats,
    OperationStatus,
    inherit_context,
)

logger = logging.getLogger(__name__)

DASHBOARD_FIELDS = (
    "id",
    "timestamp",
    "user",
    "filename",
    "status",
    "duration",
    "error",
    "cid",
    "file_size",
    "client_ip",
    "platform",
    "device_info",
    "user_hp",
    "session_id",
)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def compute_stats(records: Iterable[OperationRecord], in_progress: int = 0) -> OperationStats:
    """Aggregate the records in the window.

    ``total`` counts every entry, Started records included. The average
    duration is taken over successful records that have one.
    """
    total = 0
    successful = 0
    failed = 0
    durations = []
    for record in records:
        total += 1
        if record.success is True:
            successful += 1
            if record.duration is not None:
                durations.append(record.duration)
        elif record.success is False:
            failed += 1

    return OperationStats(
        total=total,
        successful=successful,
        failed=failed,
        in_progress=in_progress,
        success_rate=round_half_up(successful / total * 100) if total > 0 else 0,
        avg_duration=round_half_up(sum(durations) / len(durations)) if durations else 0,
    )


class OperationRecorder(ABC):
    """Bounded record store with start/terminal correlation.

    Subclasses decide where the window is persisted.
    """

    def __init__(self, max_entries: int = 100):
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self.max_entries = max_entries
        self._entries: deque[OperationRecord] = deque(maxlen=max_entries)
        self._in_flight: dict[str, OperationRecord] = {}
        self._lock = threading.Lock()

    @abstractmethod
    def _persist(self, entries: list[OperationRecord]) -> None:
        """Write the current window. Called with the append lock held."""

    def record(self, record: OperationRecord) -> OperationRecord:
        """Append one record, returning it as stored.

        A Started record opens an in-flight entry for its request; the
        matching terminal record closes it and inherits its context.
        """
        with self._lock:
            if record.status is OperationStatus.STARTED:
                self._in_flight[record.id] = record
            else:
                start = self._in_flight.pop(record.id, None)
                if start is not None:
                    record = inherit_context(start, record)
            self._entries.append(record)
            self._persist(list(self._entries))

        logger.info(
            "Operation %s",
            record.status.value,
            extra={"operation": record.model_dump(mode="json", by_alias=True, exclude_none=True)},
        )
        return record

    def record_started(self, request_id: str, **context: Any) -> OperationRecord:
        user_agent = context.get("user_agent")
        if user_agent:
            context["user_agent"] = user_agent[:MAX_USER_AGENT_CHARS]
        context.setdefault("user", "anonymous")
        return self.record(OperationRecord(id=request_id, status=OperationStatus.STARTED, **context))

    def record_completed(
        self,
        request_id: str,
        cid: str,
        gateway_url: str,
        duration: int,
        **context: Any,
    ) -> OperationRecord:
        return self.record(OperationRecord(
            id=request_id,
            status=OperationStatus.COMPLETED,
            cid=cid,
            gateway_url=gateway_url,
            duration=duration,
            success=True,
            **context,
        ))

    def record_failed(
        self,
        request_id: str,
        error: str,
        duration: Optional[int],
        **context: Any,
    ) -> OperationRecord:
        return self.record(OperationRecord(
            id=request_id,
            status=OperationStatus.FAILED,
            error=error or "Unknown error",
            duration=duration,
            success=False,
            **context,
        ))

    def progress(self, request_id: str, timestamp: str, elapsed_seconds: float) -> None:
        """Surface a live encoder progress marker. Not persisted."""
        logger.info(
            "ffmpeg progress",
            extra={
                "request_id": request_id,
                "progress": timestamp,
                "elapsed_seconds": elapsed_seconds,
            },
        )

    def recent(self, limit: int = 10) -> list[OperationRecord]:
        """Most recent records first."""
        with self._lock:
            entries = list(self._entries)
        if limit <= 0:
            return []
        return entries[-limit:][::-1]

    def dashboard(self, limit: int = 5) -> list[dict[str, Any]]:
        """Trimmed view of the most recent records for the dashboard."""
        return [
            record.model_dump(mode="json", by_alias=True, include=set(DASHBOARD_FIELDS))
            for record in self.recent(limit)
        ]

    def stats(self) -> OperationStats:
        with self._lock:
            entries = list(self._entries)
            in_progress = len(self._in_flight)
        return compute_stats(entries, in_progress=in_progress)

    @property
    def in_flight_count(self) -> int:
        with self._lock:
            return len(self._in_flight)


class InMemoryOperationRecorder(OperationRecorder):
    """Keeps the window in memory only."""

    def _persist(self, entries: list[OperationRecord]) -> None:
        return None


class JsonlOperationRecorder(OperationRecorder):
    """Persists the window as JSON lines, rewritten atomically on each append."""

    def __init__(self, path: str, max_entries: int = 100):
        super().__init__(max_entries=max_entries)
        self.path = path
        self._load()

    def _load(self) -> None:
        directory = os.path.dirname(self.path)
        try:
            if directory:
                os.makedirs(directory, exist_ok=True)
            if not os.path.exists(self.path):
                return
            with open(self.path, "r", encoding="utf-8") as fh:
                lines = [line for line in fh if line.strip()]
        except OSError as e:
            logger.warning("Could not load existing operation log %s: %s", self.path, e)
            return

        for line_number, line in enumerate(lines, start=1):
            try:
                self._entries.append(OperationRecord.model_validate_json(line))
            except ValidationError as e:
                logger.warning(
                    "Skipping unreadable operation log line %d: %s",
                    line_number,
                    e.errors()[0].get("msg") if e.errors() else e,
                )

    def _persist(self, entries: list[OperationRecord]) -> None:
        tmp_path = f"{self.path}.tmp"
        payload = "".join(
            record.model_dump_json(by_alias=True, exclude_none=True) + "\n"
            for record in entries
        )
        try:
            with open(tmp_path, "w", encoding="utf-8") as fh:
                fh.write(payload)
            os.replace(tmp_path, self.path)
        except OSError as e:
            logger.error("Could not save operation log %s: %s", self.path, e)


def create_recorder(path: Optional[str], max_entries: int = 100) -> OperationRecorder:
    """JSONL-backed recorder when a path is configured, in-memory otherwise."""
    if path:
        return JsonlOperationRecorder(path, max_entries=max_entries)
    return InMemoryOperationRecorder(max_entries=max_entries)
