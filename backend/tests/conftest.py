"""Shared test setup.

Keeps the module-level application from persisting an operation log
into the working tree and from needing pinning credentials.
"""

import os

os.environ.setdefault("OPLOG_PATH", "")
os.environ.setdefault("LOG_JSON", "false")

import pytest

from pinworker.modules.oplog.recorder import InMemoryOperationRecorder


@pytest.fixture
def recorder() -> InMemoryOperationRecorder:
    return InMemoryOperationRecorder(max_entries=100)
