from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Request

from property_agent.logging.flight_recorder import get_recorder
from property_agent.models.api import (
    ChatRequest,
    ChatResponse,
    FeedbackRequest,
    FeedbackResponse,
    ParsePropertyRequest,
    SalesChatRequest,
    SalesChatResponse,
)
from property_agent.routes.deps import get_conversation
from property_agent.services.conversation import ConversationService, InvalidTurnError

router = APIRouter()


@router.post("/chat", response_model=ChatResponse)
async def chat(
    body: ChatRequest,
    request: Request,
    service: ConversationService = Depends(get_conversation),
) -> ChatResponse:
    try:
        return await service.handle_chat_turn(body.session_id, body.text, get_recorder(request))
    except InvalidTurnError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.post("/feedback", response_model=FeedbackResponse)
async def feedback(
    body: FeedbackRequest,
    request: Request,
    service: ConversationService = Depends(get_conversation),
) -> FeedbackResponse:
    try:
        return await service.handle_feedback(body, get_recorder(request))
    except InvalidTurnError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.post("/sales-chat", response_model=SalesChatResponse)
async def sales_chat(
    body: SalesChatRequest,
    request: Request,
    service: ConversationService = Depends(get_conversation),
) -> SalesChatResponse:
    try:
        return await service.handle_sales_turn(body, get_recorder(request))
    except InvalidTurnError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.post("/parse-property")
async def parse_property(
    body: ParsePropertyRequest,
    request: Request,
    service: ConversationService = Depends(get_conversation),
) -> Dict[str, Any]:
    try:
        info = await service.parse_property(body.url, get_recorder(request))
    except InvalidTurnError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"success": True, "property": info.model_dump(exclude_none=True)}


@router.get("/session/{session_id}")
def get_session(session_id: str, service: ConversationService = Depends(get_conversation)) -> Dict[str, Any]:
    return {"session": service.get_session(session_id)}


@router.delete("/session/{session_id}")
def clear_session(session_id: str, service: ConversationService = Depends(get_conversation)) -> Dict[str, str]:
    service.clear_session(session_id)
    return {"message": "Session cleared successfully"}
