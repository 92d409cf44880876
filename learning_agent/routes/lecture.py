from fastapi import APIRouter, HTTPException, Request, WebSocket, WebSocketDisconnect

from learning_agent.errors import AlreadyRecordingError, DeviceAccessError
from learning_agent.models import SessionConfig
from learning_agent.recording.controller import RecordingController
from learning_agent.services.store import session_key

router = APIRouter(tags=["lecture"])


def _controller(request: Request) -> RecordingController:
    return request.app.state.controller


# ==================================================================
# REST endpoints
# ==================================================================


@router.post("/api/lecture/start")
async def start_recording(body: SessionConfig, request: Request) -> dict:
    """Acquire the microphone and start a live lecture session."""
    controller = _controller(request)
    try:
        session = await controller.start(body)
    except AlreadyRecordingError as e:
        controller.notifier.notify("error", e.user_message)
        raise HTTPException(status_code=409, detail=e.user_message)
    except DeviceAccessError as e:
        raise HTTPException(status_code=503, detail=e.user_message)
    return session.to_dict()


@router.post("/api/lecture/stop")
async def stop_recording(request: Request) -> dict:
    """Stop recording; the correction report is generated in the background."""
    controller = _controller(request)
    was_recording = controller.is_recording
    session = await controller.stop()
    if not was_recording or session is None:
        return {"status": "idle", "session": session.to_dict() if session else None}
    return session.to_dict()


@router.post("/api/lecture/dismiss")
async def dismiss_permission(request: Request) -> dict:
    """Dismiss a pending microphone permission request."""
    return {"dismissed": _controller(request).dismiss_permission()}


@router.get("/api/lecture/current")
async def get_current_session(request: Request) -> dict:
    session = _controller(request).session
    if session is None:
        raise HTTPException(status_code=404, detail="No lecture session yet.")
    return session.to_dict()


@router.get("/api/lecture/sessions/{session_id}")
async def get_session(session_id: str, request: Request) -> dict:
    snapshot = await _controller(request).store.get(session_key(session_id))
    if snapshot is None:
        raise HTTPException(status_code=404, detail=f"Session {session_id} not found")
    return snapshot


# ==================================================================
# WebSocket endpoint
# ==================================================================


@router.websocket("/ws/lecture")
async def websocket_endpoint(websocket: WebSocket) -> None:
    """Live stream of alerts, notifications and progress events."""
    await websocket.accept()
    controller: RecordingController = websocket.app.state.controller
    hub = controller.notifier
    hub.subscribe(websocket)

    try:
        # Send current status immediately
        session = controller.session
        await websocket.send_json({
            "type": "recording_status",
            "status": session.status if session else "idle",
            "sessionId": session.id if session else None,
        })
        while True:
            await websocket.receive_text()  # keep-alive; client sends pings
    except WebSocketDisconnect:
        pass
    finally:
        hub.unsubscribe(websocket)
