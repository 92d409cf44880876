import asyncio
import logging
import random
from typing import Awaitable, Callable, Protocol

from learning_agent.config import settings
from learning_agent.models import ALERT_TYPES, Alert, LectureSession, new_id, utcnow

LOGGER = logging.getLogger(__name__)

SEVERITIES = ("low", "medium", "high")

PLACEHOLDER_CONTENT = (
    "Claim about scientific discovery needs verification",
    "Historical date mentioned may be inaccurate",
    "Statistical information requires recent data",
    "Technical explanation missing important context",
    "Cultural reference may need sensitivity check",
)

PLACEHOLDER_CORRECTIONS = (
    "Please verify with latest peer-reviewed sources",
    "Consider citing the most recent research findings",
    "Add context about limitations and assumptions",
    "Include multiple perspectives on this topic",
    "Ensure cultural sensitivity in explanations",
)


class AlertSource(Protocol):
    """Something that inspects a recording session and may flag an issue."""

    async def detect(self, session: LectureSession) -> Alert | None: ...


class RandomAlertSource:
    """Stand-in detector: each call fires with a fixed probability."""

    def __init__(self, probability: float | None = None, rng: random.Random | None = None) -> None:
        self.probability = settings.alert_probability if probability is None else probability
        self.rng = rng or random.Random()

    async def detect(self, session: LectureSession) -> Alert | None:
        if self.rng.random() >= self.probability:
            return None
        return Alert(
            id=new_id(),
            timestamp=utcnow(),
            type=self.rng.choice(ALERT_TYPES),
            severity=self.rng.choice(SEVERITIES),
            content=self.rng.choice(PLACEHOLDER_CONTENT),
            suggested_correction=self.rng.choice(PLACEHOLDER_CORRECTIONS),
            confidence=self.rng.uniform(0.7, 1.0),
        )


class AlertGenerator:
    """Polls an :class:`AlertSource` on a fixed interval.

    The polling loop is a single asyncio task.  ``cancel()`` is synchronous so
    the owner can stop it before any other step of a state transition.
    """

    def __init__(
        self,
        source: AlertSource,
        session: LectureSession,
        on_alert: Callable[[Alert], Awaitable[None]],
        *,
        interval: float | None = None,
    ) -> None:
        self.source = source
        self.session = session
        self.on_alert = on_alert
        self.interval = settings.alert_interval_seconds if interval is None else interval
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._loop())

    def cancel(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def tick(self) -> Alert | None:
        """Run one detection round and hand any alert to ``on_alert``."""
        alert = await self.source.detect(self.session)
        if alert is not None:
            await self.on_alert(alert)
        return alert

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception:
                LOGGER.exception("Alert source failed for session %s", self.session.id)
