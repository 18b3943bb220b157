"""
Session Routes — The onboarding chat served to the UI.
Handles: start, text turns, document uploads, face captures, finalization, close.
"""
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Header, HTTPException, Request, UploadFile

from onboardx.schemas.schemas import MessageRequest, SessionStartResponse, TurnResponse
from onboardx.services.session_registry import SessionRegistry
from onboardx.utils.rate_limiter import rate_limit

router = APIRouter(prefix="/api/session", tags=["Session"])


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.sessions


async def _read_image(file: UploadFile) -> bytes:
    contents = await file.read()
    if not contents:
        raise HTTPException(status_code=400, detail="Empty file uploaded")
    if not (file.content_type or "").startswith("image/"):
        raise HTTPException(status_code=400, detail="Only image uploads are supported")
    return contents


@router.post("/start", response_model=SessionStartResponse)
async def start_session(
    registry: SessionRegistry = Depends(get_registry),
    _throttle: bool = Depends(rate_limit()),
):
    """Open a chat and return the assistant's greeting."""
    session = registry.create()
    try:
        turn = await session.start()
    except Exception:
        registry.close(session.id)
        raise
    return SessionStartResponse(session_id=session.id, **turn.model_dump())


@router.get("/state", response_model=TurnResponse)
def get_session_state(
    session_id: str = Header(..., alias="session-id"),
    registry: SessionRegistry = Depends(get_registry),
):
    """Full transcript and current onboarding state."""
    return registry.get(session_id).snapshot()


@router.post("/message", response_model=TurnResponse)
async def send_message(
    payload: MessageRequest,
    session_id: str = Header(..., alias="session-id"),
    registry: SessionRegistry = Depends(get_registry),
    _throttle: bool = Depends(rate_limit()),
):
    return await registry.get(session_id).send_text(payload.text)


@router.post("/document", response_model=TurnResponse)
async def upload_document(
    session_id: str = Header(..., alias="session-id"),
    file: UploadFile = File(...),
    qr_data: Optional[str] = Form(None),
    pan_number: Optional[str] = Form(None),
    registry: SessionRegistry = Depends(get_registry),
    _throttle: bool = Depends(rate_limit(requests=10, window=60)),
):
    """Upload a PAN / Aadhaar image for AI verification."""
    session = registry.get(session_id)
    contents = await _read_image(file)
    return await session.upload_document(
        contents, file.content_type, file.filename or "document",
        qr_payload=qr_data, pan_number=pan_number,
    )


@router.post("/face", response_model=TurnResponse)
async def submit_face(
    session_id: str = Header(..., alias="session-id"),
    file: UploadFile = File(...),
    registry: SessionRegistry = Depends(get_registry),
    _throttle: bool = Depends(rate_limit(requests=10, window=60)),
):
    """Submit a live capture for liveness and face-match checks."""
    session = registry.get(session_id)
    contents = await _read_image(file)
    return await session.submit_face_capture(contents, file.content_type)


@router.post("/finalize", response_model=TurnResponse)
async def finalize_account(
    session_id: str = Header(..., alias="session-id"),
    registry: SessionRegistry = Depends(get_registry),
):
    return await registry.get(session_id).finalize()


@router.delete("")
def close_session(
    session_id: str = Header(..., alias="session-id"),
    registry: SessionRegistry = Depends(get_registry),
):
    """Close the chat; its state is discarded."""
    registry.close(session_id)
    return {"success": True}
