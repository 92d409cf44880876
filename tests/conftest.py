from __future__ import annotations

import asyncio
import sys
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

import numpy as np
import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from learning_agent.errors import DeviceAccessError
from learning_agent.models import Alert, LectureSession, new_id
from learning_agent.recording.controller import RecordingController
from learning_agent.services.notifications import NotificationHub
from learning_agent.services.report import CorrectionReportBuilder
from learning_agent.services.store import MemoryStore


class FakeCaptureDevice:
    """In-memory stand-in for the microphone."""

    sample_rate = 16_000

    def __init__(self, *, deny: bool = False, gate: threading.Event | None = None) -> None:
        self.deny = deny
        self.gate = gate
        self.opened = 0
        self.released = 0
        self.close_calls = 0
        self.on_fault: Callable[[str], None] | None = None
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    def open(self, on_fault: Callable[[str], None]) -> None:
        if self.gate is not None:
            self.gate.wait(timeout=5)
        if self.deny:
            raise DeviceAccessError("Permission denied by user")
        self.on_fault = on_fault
        self.opened += 1
        self._open = True

    def close(self) -> np.ndarray:
        self.close_calls += 1
        if self._open:
            self._open = False
            self.released += 1
            return np.full(self.sample_rate, 0.1, dtype=np.float32)
        return np.zeros(0, dtype=np.float32)


class ScriptedAlertSource:
    """Returns queued alerts in order, then nothing."""

    def __init__(self, alerts: list[Alert] | None = None) -> None:
        self.queue = list(alerts or [])
        self.calls = 0

    async def detect(self, session: LectureSession) -> Alert | None:
        self.calls += 1
        return self.queue.pop(0) if self.queue else None


class SlowStore(MemoryStore):
    """MemoryStore whose writes yield to the event loop for a while."""

    def __init__(self, delay: float = 0.02) -> None:
        super().__init__()
        self.delay = delay

    async def set(self, key, value) -> None:
        await asyncio.sleep(self.delay)
        await super().set(key, value)


class FailingReportBuilder:
    async def build(self, session_id, alerts):
        raise RuntimeError("analysis backend unavailable")


class SlowReportBuilder(CorrectionReportBuilder):
    def __init__(self, delay: float = 60.0) -> None:
        super().__init__(delay=delay)


def make_alert(
    type: str = "misinformation",
    severity: str = "medium",
    *,
    confidence: float = 0.9,
    timestamp: datetime | None = None,
) -> Alert:
    return Alert(
        id=new_id(),
        timestamp=timestamp or datetime.now(timezone.utc),
        type=type,
        severity=severity,
        content="Historical date mentioned may be inaccurate",
        suggested_correction="Please verify with latest peer-reviewed sources",
        confidence=confidence,
    )


async def wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


@pytest.fixture()
def device() -> FakeCaptureDevice:
    return FakeCaptureDevice()


@pytest.fixture()
def make_controller(device: FakeCaptureDevice):
    def _make(**overrides) -> RecordingController:
        options = {
            "store": MemoryStore(),
            "notifier": NotificationHub(),
            "device": device,
            "alert_source": ScriptedAlertSource(),
            "report_builder": CorrectionReportBuilder(delay=0),
            # Long interval: tests drive ticks explicitly.
            "alert_interval": 3600.0,
            "permission_timeout": 5.0,
            "save_recordings": False,
        }
        options.update(overrides)
        return RecordingController(**options)

    return _make
