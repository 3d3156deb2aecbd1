from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from property_agent.logging.flight_recorder import get_recorder
from property_agent.models.api import InitiateCallRequest
from property_agent.routes.deps import get_conversation
from property_agent.services.conversation import ConversationService, InvalidTurnError
from property_agent.services.telephony import hangup_response, voice_response

logger = logging.getLogger(__name__)

router = APIRouter()

TECHNICAL_DIFFICULTIES = "Sorry, I'm having technical difficulties. Please try again later."
PROCESSING_ERROR = "I'm sorry, I'm having trouble processing your request. Please try again."


def _twiml(content: str) -> Response:
    return Response(content=content, media_type="application/xml")


@router.post("/initiate-call")
async def initiate_call(
    body: InitiateCallRequest,
    request: Request,
    service: ConversationService = Depends(get_conversation),
) -> Any:
    try:
        result = await service.initiate_call(body, get_recorder(request))
    except InvalidTurnError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if not result.success:
        return JSONResponse(status_code=400, content={"success": False, "error": result.error})
    return {
        "success": True,
        "callSid": result.call_sid,
        "status": result.status,
        "message": "Twilio voice call initiated successfully",
    }


@router.post("/voice-webhook/{session_id}")
async def voice_webhook(session_id: str, service: ConversationService = Depends(get_conversation)) -> Response:
    try:
        greeting = service.voice_greeting(session_id)
    except Exception as exc:  # noqa: BLE001
        logger.exception("twilio.voice_webhook_error session=%s err=%s", session_id, exc)
        return _twiml(voice_response(session_id, TECHNICAL_DIFFICULTIES))
    return _twiml(voice_response(session_id, greeting))


@router.post("/gather-webhook/{session_id}")
async def gather_webhook(
    session_id: str,
    request: Request,
    service: ConversationService = Depends(get_conversation),
) -> Response:
    form = await request.form()
    speech = str(form.get("SpeechResult") or form.get("Digits") or "")
    try:
        reply, ended = await service.handle_call_speech(session_id, speech, get_recorder(request))
    except Exception as exc:  # noqa: BLE001
        logger.exception("twilio.gather_webhook_error session=%s err=%s", session_id, exc)
        return _twiml(voice_response(session_id, PROCESSING_ERROR))
    if ended:
        return _twiml(hangup_response(reply))
    return _twiml(voice_response(session_id, reply))


@router.post("/status-webhook/{session_id}")
async def status_webhook(
    session_id: str,
    request: Request,
    service: ConversationService = Depends(get_conversation),
) -> PlainTextResponse:
    form = await request.form()
    try:
        service.record_call_status(
            session_id,
            form.get("CallStatus"),
            call_sid=form.get("CallSid"),
            duration=form.get("CallDuration"),
        )
    except Exception as exc:  # noqa: BLE001
        logger.exception("twilio.status_webhook_error session=%s err=%s", session_id, exc)
    return PlainTextResponse("OK")


@router.post("/recording-webhook/{session_id}")
async def recording_webhook(
    session_id: str,
    request: Request,
    service: ConversationService = Depends(get_conversation),
) -> PlainTextResponse:
    form = await request.form()
    try:
        service.record_recording(session_id, form.get("RecordingUrl"), form.get("RecordingSid"))
    except Exception as exc:  # noqa: BLE001
        logger.exception("twilio.recording_webhook_error session=%s err=%s", session_id, exc)
    return PlainTextResponse("OK")


@router.get("/call-status/{session_id}")
def call_status(session_id: str, service: ConversationService = Depends(get_conversation)) -> Any:
    status = service.call_status(session_id)
    if status is None:
        return JSONResponse(status_code=404, content={"success": False, "error": "Call data not found"})
    return status


@router.post("/end-call/{session_id}")
async def end_call(
    session_id: str,
    request: Request,
    service: ConversationService = Depends(get_conversation),
) -> Dict[str, Any]:
    call_info = await service.end_call(session_id, get_recorder(request))
    return {
        "success": True,
        "message": "Call ended successfully",
        "callData": call_info.model_dump(mode="json", by_alias=True) if call_info else None,
    }
