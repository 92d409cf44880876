from learning_agent.recording.alerts import AlertGenerator, AlertSource, RandomAlertSource
from learning_agent.recording.capture import CaptureDevice, SoundDeviceCapture

__all__ = [
    "AlertGenerator",
    "AlertSource",
    "CaptureDevice",
    "RandomAlertSource",
    "SoundDeviceCapture",
]
