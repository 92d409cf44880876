from fastapi import APIRouter, HTTPException, Request

from learning_agent.errors import ExternalServiceError
from learning_agent.models import ContentUpload, Preferences
from learning_agent.services.analysis import ContentAnalysisService
from learning_agent.services.store import (
    ACCESSIBILITY_MODE_KEY,
    PREFERRED_DIALECT_KEY,
    PREFERRED_LANGUAGE_KEY,
)

router = APIRouter(prefix="/api", tags=["content"])


@router.post("/content/process")
async def process_content(body: ContentUpload, request: Request) -> dict:
    """Generate a quiz and a fact-check report from text or a URL."""
    hub = request.app.state.controller.notifier
    if not body.content.strip():
        message = "Please enter a URL" if body.type == "url" else "Please enter some content to process"
        hub.notify("error", message)
        raise HTTPException(status_code=400, detail=message)

    service: ContentAnalysisService = request.app.state.analysis
    try:
        quiz, fact_checks = await service.process(body)
    except ExternalServiceError as e:
        hub.notify("error", e.user_message)
        raise HTTPException(status_code=502, detail=e.user_message)

    hub.notify(
        "success",
        "Content processed successfully!",
        description=f"Generated {len(quiz.questions)} quiz questions",
    )
    return {
        "quiz": quiz.model_dump(mode="json", by_alias=True),
        "factChecks": [f.model_dump(mode="json", by_alias=True) for f in fact_checks],
    }


# ------------------------------------------------------------------
# Preferences
# ------------------------------------------------------------------


@router.get("/preferences")
async def get_preferences(request: Request) -> dict:
    store = request.app.state.controller.store
    defaults = Preferences()
    return Preferences(
        accessibility_mode=await store.get(ACCESSIBILITY_MODE_KEY, defaults.accessibility_mode),
        preferred_language=await store.get(PREFERRED_LANGUAGE_KEY, defaults.preferred_language),
        preferred_dialect=await store.get(PREFERRED_DIALECT_KEY, defaults.preferred_dialect),
    ).model_dump()


@router.put("/preferences")
async def update_preferences(body: Preferences, request: Request) -> dict:
    controller = request.app.state.controller
    await controller.store.set(ACCESSIBILITY_MODE_KEY, body.accessibility_mode)
    await controller.store.set(PREFERRED_LANGUAGE_KEY, body.preferred_language)
    await controller.store.set(PREFERRED_DIALECT_KEY, body.preferred_dialect)
    controller.notifier.accessibility_mode = body.accessibility_mode
    return body.model_dump()
