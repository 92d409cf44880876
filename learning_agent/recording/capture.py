import threading
from typing import Callable, Protocol

import numpy as np

from learning_agent.config import settings
from learning_agent.errors import DeviceAccessError
from learning_agent.recording.audio_utils import join_blocks


class CaptureDevice(Protocol):
    """Exclusive handle on an audio input device.

    ``open`` blocks until access is granted and raises
    :class:`DeviceAccessError` when it is not.  ``close`` must be safe to call
    repeatedly and when nothing is open.
    """

    sample_rate: int

    def open(self, on_fault: Callable[[str], None]) -> None: ...

    def close(self) -> np.ndarray: ...

    @property
    def is_open(self) -> bool: ...


class SoundDeviceCapture:
    """Microphone capture through ``sounddevice``.

    Threading model:

    1. **Audio callback** runs in PortAudio's thread and only appends to the
       buffer under ``_lock``.
    2. **open / close** are blocking and are called from a worker thread via
       ``asyncio.to_thread``.
    3. ``on_fault`` is called from the audio thread when the stream ends
       without ``close`` having been requested; the caller bridges it to the
       event loop.
    """

    def __init__(self, sample_rate: int | None = None, device: int | str | None = None) -> None:
        self.sample_rate = sample_rate or settings.sample_rate
        self.device = device

        self._buffer: list[np.ndarray] = []
        self._lock = threading.Lock()

        self._stream = None  # sounddevice.InputStream while open
        self._closing = False
        self._on_fault: Callable[[str], None] | None = None

    @property
    def is_open(self) -> bool:
        return self._stream is not None

    def open(self, on_fault: Callable[[str], None]) -> None:
        self._closing = False
        self._on_fault = on_fault
        with self._lock:
            self._buffer = []
        try:
            # PortAudio is loaded on first use; hosts without it have no microphone.
            import sounddevice as sd
        except OSError as e:
            raise DeviceAccessError(f"Audio backend unavailable: {e}") from e
        try:
            stream = sd.InputStream(
                samplerate=self.sample_rate,
                device=self.device,
                channels=1,
                dtype="float32",
                callback=self._audio_callback,
                finished_callback=self._finished_callback,
                blocksize=1024,
            )
            stream.start()
        except (sd.PortAudioError, OSError, ValueError) as e:
            raise DeviceAccessError(f"Microphone unavailable: {e}") from e
        self._stream = stream

    def close(self) -> np.ndarray:
        """Stop and release the stream; return everything captured so far."""
        self._closing = True
        stream, self._stream = self._stream, None
        if stream is not None:
            try:
                stream.stop()
            finally:
                stream.close()
        with self._lock:
            samples = join_blocks(self._buffer)
            self._buffer = []
        return samples

    # ------------------------------------------------------------------
    # PortAudio thread
    # ------------------------------------------------------------------

    def _audio_callback(self, indata: np.ndarray, frames: int, timeinfo, status) -> None:  # noqa: ANN001
        with self._lock:
            self._buffer.append(indata.copy())

    def _finished_callback(self) -> None:
        if not self._closing and self._on_fault is not None:
            self._on_fault("Audio input stream ended unexpectedly")
