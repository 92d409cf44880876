import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from learning_agent.config import settings
from learning_agent.logging_utils import configure_logging
from learning_agent.recording.controller import RecordingController
from learning_agent.routes import content, lecture
from learning_agent.services.analysis import ContentAnalysisService
from learning_agent.services.store import ACCESSIBILITY_MODE_KEY, SQLiteStore, create_store

LOGGER = logging.getLogger(__name__)


def create_app(
    controller: RecordingController | None = None,
    analysis: ContentAnalysisService | None = None,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Wire the controller and store on startup; release the microphone
        and abandon any in-flight report on shutdown."""
        configure_logging(settings.log_level.upper())
        ctrl = controller or RecordingController(store=create_store())
        if isinstance(ctrl.store, SQLiteStore):
            await ctrl.store.open()
        ctrl.notifier.accessibility_mode = await ctrl.store.get(ACCESSIBILITY_MODE_KEY, "standard")

        service = analysis or ContentAnalysisService()
        if service.notifier is None:
            service.notifier = ctrl.notifier

        app.state.controller = ctrl
        app.state.analysis = service
        LOGGER.info("learning-agent ready (store=%s)", type(ctrl.store).__name__)
        try:
            yield
        finally:
            await ctrl.teardown()
            await ctrl.store.close()

    app = FastAPI(
        title="learning-agent",
        description="Live lecture capture with real-time alerts, correction reports, quizzes and fact-checks",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.include_router(lecture.router)
    app.include_router(content.router)

    @app.get("/api/health")
    async def health() -> dict:
        groq = app.state.analysis.groq
        return {
            "status": "ok",
            "model": groq.default_model,
            "llm_configured": groq.configured,
            "recording": app.state.controller.is_recording,
        }

    return app


app = create_app()
