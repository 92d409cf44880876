import asyncio
import logging
import os
from typing import Callable

from learning_agent.config import settings
from learning_agent.errors import AlreadyRecordingError, DeviceAccessError
from learning_agent.models import LectureSession, SessionConfig
from learning_agent.recording.alerts import AlertSource, RandomAlertSource
from learning_agent.recording.audio_utils import samples_to_wav
from learning_agent.recording.capture import CaptureDevice, SoundDeviceCapture
from learning_agent.services.notifications import NotificationHub
from learning_agent.services.report import CorrectionReportBuilder
from learning_agent.services.session import SessionStateMachine
from learning_agent.services.store import KeyValueStore, MemoryStore

LOGGER = logging.getLogger(__name__)


class RecordingController:
    """Brackets one live lecture recording around exclusive microphone access.

    Execution contexts:

    1. **Event loop** runs ``start``/``stop``/``teardown`` and every session
       transition.
    2. **Worker threads** (``asyncio.to_thread``) run the blocking device
       ``open``/``close`` calls and the WAV export.
    3. **Audio thread** may report a device fault; it is bridged to the loop
       with ``call_soon_threadsafe``.
    """

    def __init__(
        self,
        *,
        store: KeyValueStore | None = None,
        notifier: NotificationHub | None = None,
        device: CaptureDevice | None = None,
        alert_source: AlertSource | None = None,
        report_builder: CorrectionReportBuilder | None = None,
        alert_interval: float | None = None,
        report_timeout: float | None = None,
        permission_timeout: float | None = None,
        save_recordings: bool | None = None,
        recordings_root: str | None = None,
        on_settled: Callable[[LectureSession], None] | None = None,
    ) -> None:
        self.store = store or MemoryStore()
        self.notifier = notifier or NotificationHub()
        self.device = device or SoundDeviceCapture()
        self.alert_source = alert_source or RandomAlertSource()
        self.report_builder = report_builder or CorrectionReportBuilder()
        self.alert_interval = alert_interval
        self.report_timeout = report_timeout
        self.permission_timeout = (
            settings.permission_timeout_seconds if permission_timeout is None else permission_timeout
        )
        self.save_recordings = settings.save_recordings if save_recordings is None else save_recordings
        self.recordings_root = recordings_root or settings.recordings_root
        self.on_settled = on_settled

        self.machine: SessionStateMachine | None = None
        self._acquisition: asyncio.Future | None = None
        self._stale_acquisition: asyncio.Future | None = None
        self._late_release: asyncio.Future | None = None
        self._dismissed: asyncio.Event | None = None
        self._fault_tasks: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def session(self) -> LectureSession | None:
        return self.machine.session if self.machine is not None else None

    @property
    def is_recording(self) -> bool:
        return self.machine is not None and self.machine.status == "recording"

    @property
    def is_acquiring(self) -> bool:
        return self._acquisition is not None

    # ------------------------------------------------------------------
    # start
    # ------------------------------------------------------------------

    async def start(self, config: SessionConfig) -> LectureSession:
        """Acquire the microphone and open a new session in ``recording``."""
        if self.is_recording or self.is_acquiring:
            raise AlreadyRecordingError("A recording is already active or being set up")

        try:
            await self._drain_stale_acquisition()
            await self._acquire_device()
        except DeviceAccessError as e:
            LOGGER.warning("Microphone access failed: %s", e)
            self.notifier.notify("error", e.user_message)
            raise

        session = config.new_session()
        self.machine = SessionStateMachine(
            session,
            store=self.store,
            notifier=self.notifier,
            report_builder=self.report_builder,
            alert_source=self.alert_source,
            alert_interval=self.alert_interval,
            report_timeout=self.report_timeout,
            on_settled=self.on_settled,
        )
        await self.machine.begin()
        if self.machine.abandoned:
            return session

        self.notifier.notify(
            "success",
            self.notifier.pick(
                "Recording started with AI monitoring"
                if session.real_time_monitoring
                else "Recording started",
                "Live lecture recording started with real-time fact-checking enabled"
                if session.real_time_monitoring
                else "Live lecture recording started",
            ),
            sessionId=session.id,
        )
        return session

    def dismiss_permission(self) -> bool:
        """Abandon a pending microphone request, as if the prompt was closed."""
        if self._dismissed is None:
            return False
        self._dismissed.set()
        return True

    async def _acquire_device(self) -> None:
        loop = asyncio.get_running_loop()

        def on_fault(reason: str) -> None:
            # Audio thread -> event loop
            loop.call_soon_threadsafe(self._on_device_fault, reason)

        acquisition = asyncio.ensure_future(asyncio.to_thread(self.device.open, on_fault))
        dismissed = asyncio.Event()
        self._acquisition = acquisition
        self._dismissed = dismissed
        waiter = loop.create_task(dismissed.wait())
        try:
            done, _ = await asyncio.wait(
                {acquisition, waiter},
                timeout=self.permission_timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            waiter.cancel()
            self._dismissed = None
            self._acquisition = None
            if not acquisition.done():
                # The blocking open cannot be interrupted; release whatever it
                # acquires once it returns.
                self._stale_acquisition = acquisition
                acquisition.add_done_callback(self._release_late_acquisition)

        if acquisition not in done:
            reason = "was dismissed" if dismissed.is_set() else "timed out"
            raise DeviceAccessError(f"Microphone permission request {reason}")

        error = acquisition.exception()
        if isinstance(error, DeviceAccessError):
            raise error
        if error is not None:
            raise DeviceAccessError(f"Microphone unavailable: {error}") from error

    def _release_late_acquisition(self, acquisition: asyncio.Future) -> None:
        if self._stale_acquisition is acquisition:
            self._stale_acquisition = None
        if acquisition.cancelled() or acquisition.exception() is not None:
            return
        LOGGER.info("Releasing microphone acquired after the request was abandoned")
        release = asyncio.get_running_loop().run_in_executor(None, self.device.close)
        release.add_done_callback(self._log_late_release)
        self._late_release = release

    def _log_late_release(self, release: asyncio.Future) -> None:
        if self._late_release is release:
            self._late_release = None
        if release.cancelled():
            return
        error = release.exception()
        if error is not None:
            LOGGER.error("Failed to release late microphone grant", exc_info=error)

    async def _drain_stale_acquisition(self) -> None:
        """Wait out an abandoned permission request before asking again."""
        stale = self._stale_acquisition
        if stale is not None:
            LOGGER.info("Waiting for the previous microphone request to finish")
            done, _ = await asyncio.wait({stale}, timeout=self.permission_timeout)
            if stale not in done:
                raise DeviceAccessError("Previous microphone request is still pending")
        release = self._late_release
        if release is not None:
            await asyncio.wait({release})

    # ------------------------------------------------------------------
    # stop / teardown
    # ------------------------------------------------------------------

    async def stop(self) -> LectureSession | None:
        """Release the device and move a recording session to ``processing``.

        Calling this when nothing is recording only releases the device.
        """
        machine = self.machine
        if machine is not None:
            machine.cancel_alerts()

        await self._release_device()

        if machine is None or machine.status != "recording" or machine.abandoned:
            return self.session

        self.notifier.notify(
            "info",
            self.notifier.pick(
                "Processing lecture for fact-checking...",
                "Recording stopped. Processing correction report.",
            ),
            sessionId=machine.session.id,
        )
        await machine.finish_recording()
        return machine.session

    async def teardown(self) -> None:
        """Release everything; the current session never transitions again."""
        if self._dismissed is not None:
            self._dismissed.set()
        if self.machine is not None:
            self.machine.abandon()
        for task in list(self._fault_tasks):
            task.cancel()
        await self._release_device()
        LOGGER.info("Recording controller torn down")

    async def _release_device(self) -> None:
        try:
            samples = await asyncio.to_thread(self.device.close)
        except Exception:
            LOGGER.exception("Failed to release capture device")
            return
        if not self.save_recordings or samples is None or not len(samples) or self.session is None:
            return
        path = os.path.join(self.recordings_root, f"{self.session.id}.wav")
        try:
            await asyncio.to_thread(samples_to_wav, samples, self.device.sample_rate, path)
            LOGGER.info("Saved lecture audio to %s", path)
        except Exception:
            LOGGER.exception("Failed to save lecture audio to %s", path)

    # ------------------------------------------------------------------
    # Device faults
    # ------------------------------------------------------------------

    def _on_device_fault(self, reason: str) -> None:
        task = asyncio.get_running_loop().create_task(self._handle_device_fault(reason))
        self._fault_tasks.add(task)
        task.add_done_callback(self._fault_tasks.discard)

    async def _handle_device_fault(self, reason: str) -> None:
        machine = self.machine
        if machine is None or machine.status != "recording":
            return
        machine.cancel_alerts()
        await self._release_device()
        await machine.fail(DeviceAccessError(reason, user_message="The microphone stopped unexpectedly."))
