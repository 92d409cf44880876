"""Error taxonomy for live lecture capture and content analysis.

Every error carries a plain-language ``user_message`` that routes and the
notification hub surface to the user verbatim.
"""


class LearningAgentError(Exception):
    user_message = "Something went wrong. Please try again."

    def __init__(self, detail: str | None = None, *, user_message: str | None = None) -> None:
        super().__init__(detail or user_message or self.user_message)
        if user_message is not None:
            self.user_message = user_message


class DeviceAccessError(LearningAgentError):
    """Microphone permission denied, dismissed, or device unavailable."""

    user_message = "Failed to access microphone. Please check permissions."


class AlreadyRecordingError(LearningAgentError):
    """A second ``start()`` while a session is recording or acquiring."""

    user_message = "A lecture is already being recorded. Stop it before starting a new one."


class ReportGenerationError(LearningAgentError):
    user_message = "The correction report could not be generated. Recorded alerts are still available."


class ExternalServiceError(LearningAgentError):
    """The content analysis service failed; no partial result is kept."""

    user_message = "Failed to process content. Please try again or check your content format."
