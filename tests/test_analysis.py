from __future__ import annotations

import asyncio
from types import SimpleNamespace

import pytest

from learning_agent.clients import GroqClient
from learning_agent.errors import ExternalServiceError
from learning_agent.models import ContentUpload
from learning_agent.services.analysis import ContentAnalysisService
from learning_agent.services.notifications import NotificationHub

QUIZ_RESPONSE = {
    "title": "Newton's Laws",
    "description": "Forces and motion",
    "questions": [
        {
            "question": "What does F = ma relate?",
            "options": ["Force, mass, acceleration", "Energy", "Momentum", "Power"],
            "correct_answer": 0,
            "explanation": "Newton's second law.",
            "difficulty": "easy",
        },
        {
            "question": "Which law describes action and reaction?",
            "options": ["First", "Second", "Third", "Zeroth"],
            "correct_answer": 2,
            "explanation": "Newton's third law.",
            "difficulty": "medium",
        },
    ],
}

FACT_CHECK_RESPONSE = {
    "results": [
        {
            "original_text": "Newton published the Principia in 1687.",
            "status": "verified",
            "correction": "",
            "sources": ["Encyclopaedia Britannica"],
            "confidence": 0.95,
        },
        {
            "original_text": "Gravity was discovered in 1900.",
            "status": "false",
            "correction": "Newton described universal gravitation in 1687.",
            "sources": [],
            "confidence": 0.9,
        },
    ]
}


class FakeGroq:
    default_model = "fake-model"
    configured = True

    def __init__(self, responses: dict | None = None, error: Exception | None = None) -> None:
        self.responses = responses if responses is not None else {
            "quiz": QUIZ_RESPONSE,
            "fact_check": FACT_CHECK_RESPONSE,
        }
        self.error = error
        self.calls: list[tuple[str, list[dict]]] = []

    async def chat_json(self, messages, response_schema, *, schema_name="response", **kwargs):
        self.calls.append((schema_name, messages))
        if self.error is not None:
            raise self.error
        return self.responses[schema_name]


def test_process_shapes_quiz_and_fact_checks() -> None:
    groq = FakeGroq()
    service = ContentAnalysisService(groq=groq)
    upload = ContentUpload(content="Newton's laws of motion...", title="Physics 101", subject="Physics")

    quiz, facts = asyncio.run(service.process(upload))

    assert quiz.id.startswith("quiz-")
    assert quiz.title == "Newton's Laws"
    assert [q.id for q in quiz.questions] == ["q-0", "q-1"]
    assert quiz.questions[1].correct_answer == 2
    assert quiz.source_content == "Newton's laws of motion..."
    assert [f.id for f in facts] == ["fact-0", "fact-1"]
    assert facts[0].correction is None
    assert facts[1].status == "false"
    assert [name for name, _ in groq.calls] == ["fact_check", "quiz"]


def test_quiz_title_falls_back_to_upload_title() -> None:
    groq = FakeGroq({"quiz": {**QUIZ_RESPONSE, "title": ""}, "fact_check": {"results": []}})
    service = ContentAnalysisService(groq=groq)

    quiz, facts = asyncio.run(service.process(ContentUpload(content="text", title="My Notes")))

    assert quiz.title == "My Notes"
    assert facts == []


def test_quiz_title_defaults_when_nothing_supplied() -> None:
    groq = FakeGroq({"quiz": {**QUIZ_RESPONSE, "title": ""}, "fact_check": {"results": []}})
    quiz, _ = asyncio.run(ContentAnalysisService(groq=groq).process(ContentUpload(content="text")))
    assert quiz.title == "Generated Quiz"


def test_url_upload_is_described_not_fetched() -> None:
    groq = FakeGroq()
    service = ContentAnalysisService(groq=groq)

    quiz, _ = asyncio.run(service.process(ContentUpload(content="https://example.org/lecture", type="url")))

    assert quiz.source_content == "Content from URL: https://example.org/lecture"


def test_accessibility_mode_shapes_the_quiz_prompt() -> None:
    groq = FakeGroq()
    service = ContentAnalysisService(groq=groq)

    asyncio.run(service.generate_quiz("text", accessibility_mode="visual-impaired"))

    system_prompt = groq.calls[0][1][0]["content"]
    assert "audio learning" in system_prompt


def test_service_failure_propagates_without_partial_result() -> None:
    service = ContentAnalysisService(groq=FakeGroq(error=ExternalServiceError("down")))

    with pytest.raises(ExternalServiceError):
        asyncio.run(service.process(ContentUpload(content="text")))


def test_malformed_quiz_is_an_external_service_error() -> None:
    groq = FakeGroq({"quiz": {"title": "x", "description": "y", "questions": [{"question": "?"}]}})

    with pytest.raises(ExternalServiceError):
        asyncio.run(ContentAnalysisService(groq=groq).generate_quiz("text"))


def test_out_of_range_confidence_is_an_external_service_error() -> None:
    bad = {"results": [{**FACT_CHECK_RESPONSE["results"][0], "confidence": 85}]}

    with pytest.raises(ExternalServiceError):
        asyncio.run(ContentAnalysisService(groq=FakeGroq({"fact_check": bad})).fact_check("text"))


def test_progress_events_reach_the_hub() -> None:
    hub = NotificationHub()
    published = []
    hub.publish = published.append
    service = ContentAnalysisService(groq=FakeGroq(), notifier=hub)

    asyncio.run(service.process(ContentUpload(content="text")))

    assert [e["step"] for e in published] == [0, 1, 2, 3, 4]
    assert published[-1]["message"] == "Ready!"
    assert published[-1]["percent"] == 100


def _fake_completions(content):
    async def create(**kwargs):
        message = SimpleNamespace(content=content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])

    return SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))


def test_groq_client_parses_structured_output() -> None:
    client = GroqClient(api_key="test-key")
    client._client = _fake_completions('{"results": []}')

    assert asyncio.run(client.chat_json([], {}, schema_name="fact_check")) == {"results": []}
    assert client.configured


def test_groq_client_wraps_unparsable_output() -> None:
    client = GroqClient(api_key="test-key")
    client._client = _fake_completions("not json")

    with pytest.raises(ExternalServiceError):
        asyncio.run(client.chat_json([], {}, schema_name="quiz"))
