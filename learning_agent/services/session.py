import asyncio
import dataclasses
import logging
from datetime import timedelta
from typing import Callable

from learning_agent.config import settings
from learning_agent.errors import ReportGenerationError
from learning_agent.models import Alert, LectureSession, SessionStatus, utcnow
from learning_agent.recording.alerts import AlertGenerator, AlertSource
from learning_agent.services.notifications import NotificationHub
from learning_agent.services.report import CorrectionReportBuilder
from learning_agent.services.store import LIVE_ALERTS_KEY, KeyValueStore, session_key

LOGGER = logging.getLogger(__name__)


class SessionStateMachine:
    """Owns one :class:`LectureSession` from ``recording`` to a terminal state.

    ::

        recording ──stop──▶ processing ──report──▶ completed
            │                   │
            └──────fault────────┴──────fault─────▶ error

    All mutation happens on the event loop.  The alert task is cancelled
    before the ``processing`` transition, and :meth:`record_alert` rejects
    anything that arrives after it, so the alert list seen by the report
    builder is never appended to again.  The report task is created at most
    once.  After :meth:`abandon` the session never transitions again.
    """

    def __init__(
        self,
        session: LectureSession,
        *,
        store: KeyValueStore,
        notifier: NotificationHub,
        report_builder: CorrectionReportBuilder | None = None,
        alert_source: AlertSource | None = None,
        alert_interval: float | None = None,
        report_timeout: float | None = None,
        on_settled: Callable[[LectureSession], None] | None = None,
    ) -> None:
        self.session = session
        self.store = store
        self.notifier = notifier
        self.report_builder = report_builder or CorrectionReportBuilder()
        self.report_timeout = (
            settings.report_timeout_seconds if report_timeout is None else report_timeout
        )
        self.on_settled = on_settled

        self.generator: AlertGenerator | None = None
        if alert_source is not None and session.real_time_monitoring:
            self.generator = AlertGenerator(
                alert_source, session, self.record_alert, interval=alert_interval
            )

        self._report_task: asyncio.Task | None = None
        self._frozen_alerts: tuple[Alert, ...] | None = None
        self._abandoned = False

    @property
    def status(self) -> SessionStatus:
        return self.session.status

    @property
    def abandoned(self) -> bool:
        return self._abandoned

    @property
    def frozen_alerts(self) -> tuple[Alert, ...] | None:
        """The alert sequence captured when ``processing`` was entered."""
        return self._frozen_alerts

    # ------------------------------------------------------------------
    # recording
    # ------------------------------------------------------------------

    async def begin(self) -> None:
        await self._persist()
        await self._persist_live_alerts()
        if self._abandoned:
            LOGGER.info("Session %s abandoned before recording began", self.session.id)
            return
        if self.generator is not None:
            self.generator.start()
        LOGGER.info(
            "Session %s recording: title=%r subject=%r language=%s monitoring=%s",
            self.session.id,
            self.session.title,
            self.session.subject,
            self.session.language,
            self.generator is not None,
        )

    async def tick(self) -> Alert | None:
        """Force one alert-generator round outside the timer."""
        if self.generator is None or self.status != "recording":
            return None
        return await self.generator.tick()

    def cancel_alerts(self) -> None:
        if self.generator is not None:
            self.generator.cancel()

    async def record_alert(self, alert: Alert) -> bool:
        """Append *alert* if the session is still recording."""
        if self.status != "recording" or self._abandoned:
            LOGGER.debug(
                "Dropping alert %s for session %s in state %s",
                alert.id,
                self.session.id,
                self.status,
            )
            return False

        alerts = self.session.alerts
        if alerts and alert.timestamp <= alerts[-1].timestamp:
            alert = dataclasses.replace(
                alert, timestamp=alerts[-1].timestamp + timedelta(microseconds=1)
            )
        alerts.append(alert)

        self.notifier.publish({"type": "alert", "sessionId": self.session.id, "alert": alert.to_dict()})
        if alert.severity != "low":
            label = alert.type.replace("-", " ").upper()
            self.notifier.notify(
                "warning",
                f"{label}: {alert.suggested_correction[:50]}...",
                alertId=alert.id,
            )
            alert.notified = True

        await self._persist_live_alerts()
        await self._persist()
        return True

    # ------------------------------------------------------------------
    # recording -> processing -> completed
    # ------------------------------------------------------------------

    async def finish_recording(self) -> bool:
        """``recording -> processing``; schedules report generation once."""
        if self.status != "recording" or self._abandoned:
            return False

        self.cancel_alerts()
        self.session.status = "processing"
        self.session.end_time = utcnow()
        self._frozen_alerts = tuple(self.session.alerts)
        self._report_task = asyncio.get_running_loop().create_task(
            self._generate_report(self._frozen_alerts)
        )
        LOGGER.info(
            "Session %s processing with %d alert(s)",
            self.session.id,
            len(self._frozen_alerts),
        )
        await self._persist()
        return True

    async def _generate_report(self, alerts: tuple[Alert, ...]) -> None:
        try:
            report = await asyncio.wait_for(
                self.report_builder.build(self.session.id, alerts),
                timeout=self.report_timeout,
            )
        except asyncio.CancelledError:
            LOGGER.info("Report generation for session %s abandoned", self.session.id)
            raise
        except asyncio.TimeoutError:
            await self.fail(
                ReportGenerationError(f"Report generation timed out after {self.report_timeout}s")
            )
            return
        except ReportGenerationError as e:
            await self.fail(e)
            return
        except Exception as e:
            LOGGER.exception("Report generation failed for session %s", self.session.id)
            await self.fail(ReportGenerationError(str(e)))
            return

        if report.session_id != self.session.id or not report.is_consistent():
            await self.fail(
                ReportGenerationError(
                    f"Malformed report: {report.total_issues} issues vs {report.issues_by_type}"
                )
            )
            return
        if self._abandoned or self.status != "processing":
            return

        self.session.report = report
        self.session.status = "completed"
        LOGGER.info(
            "Session %s completed: %d issue(s), quality=%s",
            self.session.id,
            report.total_issues,
            report.overall_quality,
        )
        await self._persist()
        self.notifier.notify(
            "success",
            self.notifier.pick(
                "Correction report generated successfully!",
                "Correction report generated successfully. It is ready to review.",
            ),
            sessionId=self.session.id,
        )
        self._settle()

    async def wait_until_settled(self) -> LectureSession:
        """Wait for any in-flight report generation and return the session."""
        if self._report_task is not None:
            await asyncio.wait({self._report_task})
        return self.session

    # ------------------------------------------------------------------
    # Failure and teardown
    # ------------------------------------------------------------------

    async def fail(self, error: Exception) -> bool:
        """Move a non-terminal session to ``error``. Alerts are kept."""
        if self.session.is_terminal or self._abandoned:
            return False

        self.cancel_alerts()
        task = self._report_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

        self.session.status = "error"
        self.session.report = None
        if self.session.end_time is None:
            self.session.end_time = utcnow()
        self.session.error = getattr(error, "user_message", None) or str(error)
        LOGGER.warning("Session %s failed: %s", self.session.id, error)

        await self._persist()
        self.notifier.notify("error", self.session.error, sessionId=self.session.id)
        self._settle()
        return True

    def abandon(self) -> None:
        """Stop everything without transitioning. Safe to call repeatedly."""
        self._abandoned = True
        self.cancel_alerts()
        if self._report_task is not None and not self._report_task.done():
            self._report_task.cancel()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _settle(self) -> None:
        if self.on_settled is None:
            return
        try:
            self.on_settled(self.session)
        except Exception:
            LOGGER.exception("Session consumer failed for session %s", self.session.id)

    async def _persist(self) -> None:
        try:
            await self.store.set(session_key(self.session.id), self.session.to_dict())
        except Exception:
            LOGGER.exception("Could not persist session %s", self.session.id)

    async def _persist_live_alerts(self) -> None:
        try:
            await self.store.set(LIVE_ALERTS_KEY, [a.to_dict() for a in self.session.alerts])
        except Exception:
            LOGGER.exception("Could not persist live alerts for session %s", self.session.id)
