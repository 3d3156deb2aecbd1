from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

PropertyType = Literal["buy", "rent"]
Role = Literal["user", "assistant"]
Sentiment = Literal["like", "dislike", "interested", "not_interested"]
ConversationState = Literal[
    "introduction",
    "gathering_requirements",
    "searching",
    "presenting_results",
    "collecting_feedback",
    "voice_call_active",
    "call_ended",
    "initiating_voice_call",
]

NEGATIVE_SENTIMENTS = frozenset({"dislike", "not_interested"})


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Requirements(BaseModel):
    """Structured user intent gathered over a conversation.

    Instances are immutable snapshots; stages produce new ones with
    ``model_copy(update=...)``.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    property_type: Optional[PropertyType] = Field(default=None, alias="propertyType")
    budget: Optional[str] = None
    city: Optional[str] = None
    locality: Optional[str] = None
    bhk: Optional[str] = None
    confirmed: bool = False
    waiting_for_confirmation: bool = Field(default=False, alias="waitingForConfirmation")
    conversation_started: bool = Field(default=False, alias="conversationStarted")

    def slot_values(self) -> Dict[str, Optional[str]]:
        return {
            "property_type": self.property_type,
            "city": self.city,
            "bhk": self.bhk,
            "budget": self.budget,
            "locality": self.locality,
        }


class ConversationTurn(BaseModel):
    role: Role
    content: str
    timestamp: datetime = Field(default_factory=utcnow)


class SearchResult(BaseModel):
    title: str
    link: str
    snippet: Optional[str] = None


class SearchRecord(BaseModel):
    query: str
    results: List[SearchResult] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=utcnow)


class FeedbackRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    subject_id: str = Field(alias="subjectId")
    sentiment: Sentiment
    reason: Optional[str] = None
    timestamp: datetime = Field(default_factory=utcnow)


class CallInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    call_sid: str = Field(alias="callSid")
    status: str = "initiated"
    customer_phone: Optional[str] = Field(default=None, alias="customerPhone")
    provider: str = "twilio"
    initiated_at: datetime = Field(default_factory=utcnow, alias="initiatedAt")
    last_update: Optional[datetime] = Field(default=None, alias="lastUpdate")
    duration: Optional[str] = None
    recording_url: Optional[str] = Field(default=None, alias="recordingUrl")
    recording_sid: Optional[str] = Field(default=None, alias="recordingSid")


class PropertyInfo(BaseModel):
    model_config = ConfigDict(extra="ignore")

    url: Optional[str] = None
    title: Optional[str] = None
    price: Optional[str] = None
    location: Optional[str] = None
    bhk: Optional[str] = None
    area: Optional[str] = None
    type: Optional[Literal["Sale", "Rent"]] = None
    amenities: Optional[str] = None


class CustomerInfo(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None


class Session(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    requirements: Requirements = Field(default_factory=Requirements)
    conversation_history: List[ConversationTurn] = Field(default_factory=list, alias="conversationHistory")
    current_state: ConversationState = Field(default="introduction", alias="currentState")
    property_search_history: List[SearchRecord] = Field(default_factory=list, alias="propertySearchHistory")
    user_feedback: List[FeedbackRecord] = Field(default_factory=list, alias="userFeedback")
    call_info: Optional[CallInfo] = Field(default=None, alias="callInfo")
    property_info: Optional[PropertyInfo] = Field(default=None, alias="propertyInfo")
    customer_info: Optional[CustomerInfo] = Field(default=None, alias="customerInfo")
    updated_at: Optional[datetime] = Field(default=None, alias="updatedAt")

    def history_messages(self) -> List[Dict[str, Any]]:
        return [{"role": turn.role, "content": turn.content} for turn in self.conversation_history]
