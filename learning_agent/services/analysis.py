import logging
import uuid

from learning_agent.clients import GroqClient
from learning_agent.errors import ExternalServiceError
from learning_agent.models import (
    AccessibilityMode,
    ContentUpload,
    FactCheckResult,
    Quiz,
    QuizQuestion,
    utcnow,
)
from learning_agent.services.notifications import NotificationHub

LOGGER = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# JSON Schemas (Groq strict mode: additionalProperties false, all required)
# ---------------------------------------------------------------------------

QUIZ_SCHEMA = {
    "type": "object",
    "properties": {
        "title": {"type": "string"},
        "description": {"type": "string"},
        "questions": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "question": {"type": "string"},
                    "options": {
                        "type": "array",
                        "items": {"type": "string"},
                        "minItems": 4,
                        "maxItems": 4,
                    },
                    "correct_answer": {"type": "integer"},
                    "explanation": {"type": "string"},
                    "difficulty": {"type": "string", "enum": ["easy", "medium", "hard"]},
                },
                "required": ["question", "options", "correct_answer", "explanation", "difficulty"],
                "additionalProperties": False,
            },
        },
    },
    "required": ["title", "description", "questions"],
    "additionalProperties": False,
}

FACT_CHECK_SCHEMA = {
    "type": "object",
    "properties": {
        "results": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "original_text": {"type": "string"},
                    "status": {"type": "string", "enum": ["verified", "questionable", "false"]},
                    "correction": {"type": "string"},
                    "sources": {"type": "array", "items": {"type": "string"}},
                    "confidence": {"type": "number"},
                },
                "required": ["original_text", "status", "correction", "sources", "confidence"],
                "additionalProperties": False,
            },
        },
    },
    "required": ["results"],
    "additionalProperties": False,
}

PROCESSING_STEPS = (
    "Analyzing content...",
    "Fact-checking information...",
    "Generating quiz questions...",
    "Optimizing for accessibility...",
    "Ready!",
)

_LEARNING_STYLE = {
    "visual-impaired": "audio learning",
    "hearing-impaired": "visual learning",
    "standard": "standard learning",
}


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class ContentAnalysisService:
    """Turn study content into a quiz and a fact-check report via the Groq API."""

    def __init__(self, groq: GroqClient | None = None, notifier: NotificationHub | None = None) -> None:
        self.groq = groq or GroqClient()
        self.notifier = notifier

    async def generate_quiz(
        self,
        content: str,
        *,
        title: str | None = None,
        subject: str | None = None,
        language: str = "en",
        accessibility_mode: AccessibilityMode = "standard",
    ) -> Quiz:
        """Generate 5-7 multiple-choice questions of varying difficulty."""
        messages = [
            {
                "role": "system",
                "content": (
                    "You are an expert educator writing quizzes. Given study content, "
                    "generate 5-7 questions of varying difficulty (easy, medium, hard). "
                    "Each question has 4 options, the index of the correct option, and a "
                    "clear explanation. Make the quiz suitable for "
                    f"{_LEARNING_STYLE[accessibility_mode]}. Write in language '{language}'."
                ),
            },
            {
                "role": "user",
                "content": (
                    f"Subject: {subject or 'General'}\n"
                    f"Create an educational quiz from this content:\n{content}"
                ),
            },
        ]
        data = await self.groq.chat_json(messages, QUIZ_SCHEMA, schema_name="quiz")
        try:
            questions = [
                QuizQuestion(
                    id=f"q-{index}",
                    question=q["question"],
                    options=q["options"],
                    correct_answer=q["correct_answer"],
                    explanation=q["explanation"],
                    difficulty=q["difficulty"],
                )
                for index, q in enumerate(data["questions"])
            ]
        except (KeyError, TypeError, ValueError) as e:
            raise ExternalServiceError(f"Malformed quiz response: {e}") from e
        if not questions:
            raise ExternalServiceError("Quiz response contained no questions")

        return Quiz(
            id=f"quiz-{uuid.uuid4().hex[:12]}",
            title=data.get("title") or title or "Generated Quiz",
            description=data.get("description") or "AI-generated quiz from your content",
            questions=questions,
            source_content=content,
            created_at=utcnow(),
        )

    async def fact_check(self, content: str, *, language: str = "en") -> list[FactCheckResult]:
        """Flag statements that may be inaccurate, outdated, or unverified."""
        messages = [
            {
                "role": "system",
                "content": (
                    "You are a meticulous fact-checker for educational material. Identify "
                    "statements that might be inaccurate, outdated, or require verification. "
                    "Provide corrections (empty string when none is needed), reliable sources, "
                    f"and a confidence between 0 and 1. Write in language '{language}'."
                ),
            },
            {"role": "user", "content": f"Fact-check this educational content:\n{content}"},
        ]
        data = await self.groq.chat_json(messages, FACT_CHECK_SCHEMA, schema_name="fact_check")
        try:
            return [
                FactCheckResult(
                    id=f"fact-{index}",
                    original_text=r["original_text"],
                    status=r["status"],
                    correction=r["correction"] or None,
                    sources=r["sources"],
                    confidence=r["confidence"],
                )
                for index, r in enumerate(data["results"])
            ]
        except (KeyError, TypeError, ValueError) as e:
            raise ExternalServiceError(f"Malformed fact-check response: {e}") from e

    async def process(self, upload: ContentUpload) -> tuple[Quiz, list[FactCheckResult]]:
        """Quiz plus fact-check for one upload. All or nothing."""
        content = upload.content.strip()
        if upload.type == "url":
            content = f"Content from URL: {content}"

        self._progress(0)
        self._progress(1)
        fact_checks = await self.fact_check(content, language=upload.language)
        self._progress(2)
        quiz = await self.generate_quiz(
            content,
            title=upload.title,
            subject=upload.subject,
            language=upload.language,
            accessibility_mode=upload.accessibility_mode,
        )
        self._progress(3)
        self._progress(4)
        LOGGER.info(
            "Processed %s content: %d question(s), %d fact-check result(s)",
            upload.type,
            len(quiz.questions),
            len(fact_checks),
        )
        return quiz, fact_checks

    def _progress(self, step: int) -> None:
        if self.notifier is None:
            return
        percent = round((step + 1) / len(PROCESSING_STEPS) * 100)
        self.notifier.publish(
            {"type": "progress", "step": step, "message": PROCESSING_STEPS[step], "percent": percent}
        )
