from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from property_agent.models.session import (
    CustomerInfo,
    PropertyInfo,
    Requirements,
    SearchResult,
    Sentiment,
)


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class AudioDescriptor(BaseModel):
    type: str
    text: Optional[str] = None
    content_type: Optional[str] = Field(default=None, alias="contentType")
    audio_b64: Optional[str] = Field(default=None, alias="audioBase64")

    model_config = ConfigDict(populate_by_name=True)


class ChatRequest(_CamelModel):
    session_id: Optional[str] = Field(default=None, alias="sessionId")
    text: Optional[str] = None


class ChatResponse(_CamelModel):
    reply_text: str = Field(alias="replyText")
    links: List[SearchResult] = Field(default_factory=list)
    audio: Optional[AudioDescriptor] = None
    requirements: Requirements
    conversation_state: str = Field(alias="conversationState")
    search_performed: bool = Field(default=False, alias="searchPerformed")
    call_ended: bool = Field(default=False, alias="callEnded")
    summary: Optional[str] = None


class FeedbackRequest(_CamelModel):
    session_id: Optional[str] = Field(default=None, alias="sessionId")
    property_id: Optional[str] = Field(default=None, alias="propertyId")
    feedback: Optional[Sentiment] = None
    reason: Optional[str] = None


class FeedbackResponse(_CamelModel):
    reply_text: str = Field(alias="replyText")
    links: List[SearchResult] = Field(default_factory=list)
    audio: Optional[AudioDescriptor] = None
    feedback_processed: bool = Field(default=True, alias="feedbackProcessed")


class SalesChatRequest(_CamelModel):
    session_id: Optional[str] = Field(default=None, alias="sessionId")
    text: Optional[str] = None
    property_info: Optional[PropertyInfo] = Field(default=None, alias="propertyInfo")
    customer_phone: Optional[str] = Field(default=None, alias="customerPhone")
    customer_name: Optional[str] = Field(default=None, alias="customerName")


class CustomerFeedback(BaseModel):
    interested: bool = False
    concerns: List[str] = Field(default_factory=list)
    timeline: Optional[str] = None


class CallOutcome(_CamelModel):
    ended: bool
    outcome: str
    next_steps: str = Field(alias="nextSteps")
    duration_minutes: int = Field(alias="durationMinutes")
    summary: str


class SalesChatResponse(_CamelModel):
    reply_text: str = Field(alias="replyText")
    audio: Optional[AudioDescriptor] = None
    call_ended: bool = Field(default=False, alias="callEnded")
    summary: Optional[str] = None
    outcome: Optional[CallOutcome] = None
    customer_feedback: Optional[CustomerFeedback] = Field(default=None, alias="customerFeedback")


class ParsePropertyRequest(BaseModel):
    url: Optional[str] = None


class InitiateCallRequest(_CamelModel):
    session_id: Optional[str] = Field(default=None, alias="sessionId")
    customer_phone: Optional[str] = Field(default=None, alias="customerPhone")
    customer_name: Optional[str] = Field(default=None, alias="customerName")
    property_info: Optional[PropertyInfo] = Field(default=None, alias="propertyInfo")

    def customer(self) -> CustomerInfo:
        return CustomerInfo(name=self.customer_name, phone=self.customer_phone)


class CallResult(_CamelModel):
    success: bool
    call_sid: Optional[str] = Field(default=None, alias="callSid")
    status: Optional[str] = None
    error: Optional[str] = None
    raw: Dict[str, Any] = Field(default_factory=dict, exclude=True)
