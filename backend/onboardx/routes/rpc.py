"""
RPC Route — The single multiplexed onboarding endpoint.

Which handler runs depends on which key the JSON body carries:
validateEmailReq, validatePhoneReq, riskData, documentVerifyMode,
faceVerifyMode, sendEmail; otherwise it is a chat turn proxied to the
completion capability as an event stream.
"""
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse

from onboardx.config import get_settings
from onboardx.schemas.schemas import OnboardRequest
from onboardx.services.ai_gateway import CompletionClient, get_completion_client, image_message
from onboardx.services.deliverability_service import DeliverabilityService
from onboardx.services.notification_service import NotificationService
from onboardx.services.onboarding_script import ONBOARDING_SYSTEM_PROMPT
from onboardx.services.risk_engine import RiskEngine
from onboardx.services.verification_service import VerificationService
from onboardx.utils.rate_limiter import rate_limit

router = APIRouter(prefix="/api", tags=["Onboarding RPC"])


def _dump(model) -> Dict[str, Any]:
    return model.model_dump(by_alias=True, mode="json")


def build_chat_messages(payload: OnboardRequest) -> List[Dict[str, Any]]:
    """System prompt + prior turns + the last user turn (with the optional image)."""
    history = payload.messages[:-1]
    last = payload.messages[-1]
    text = last.get("content") if isinstance(last.get("content"), str) else ""
    if payload.file_data:
        user = image_message("user", text, [(payload.file_data.base64, payload.file_data.mime_type)])
    else:
        user = {"role": "user", "content": last.get("content", "")}
    return [{"role": "system", "content": ONBOARDING_SYSTEM_PROMPT}, *history, user]


@router.post("/onboardx-chat")
async def onboardx_chat(
    payload: OnboardRequest,
    client: CompletionClient = Depends(get_completion_client),
    _throttle: bool = Depends(rate_limit()),
):
    """Multiplexed onboarding RPC."""
    if payload.validate_email_req:
        return _dump(await DeliverabilityService().validate_email(payload.validate_email_req))

    if payload.validate_phone_req:
        return _dump(await DeliverabilityService().validate_phone(payload.validate_phone_req))

    if payload.risk_data:
        return _dump(RiskEngine.score(payload.risk_data))

    if payload.document_verify_mode:
        if not payload.file_data:
            raise HTTPException(status_code=400, detail="fileData is required for document verification")
        result = await VerificationService(client).verify_document(
            payload.file_data.base64,
            payload.file_data.mime_type,
            qr_payload=payload.qr_data,
            pan_number=payload.pan_number,
        )
        return {"result": _dump(result) if result else None}

    if payload.face_verify_mode:
        if not payload.file_data:
            raise HTTPException(status_code=400, detail="fileData is required for face verification")
        reference = payload.reference_data
        result = await VerificationService(client).verify_face(
            payload.file_data.base64,
            payload.file_data.mime_type,
            reference.base64 if reference else None,
            reference.mime_type if reference else "image/jpeg",
        )
        return {"result": _dump(result) if result else None}

    if payload.send_email:
        return await NotificationService.send_account_email(payload.send_email.to, payload.send_email.account)

    if not payload.messages:
        raise HTTPException(status_code=400, detail="messages are required")

    stream = await client.open_event_stream(build_chat_messages(payload), model=get_settings().CHAT_MODEL)
    return StreamingResponse(stream, media_type="text/event-stream")
