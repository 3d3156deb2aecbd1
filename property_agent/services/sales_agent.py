"""Outbound sales-call script: a follow-up call to a customer who enquired about a listing."""

from __future__ import annotations

import json
import logging
import re
from typing import Optional, Protocol, Sequence

from property_agent.logging.flight_recorder import FlightRecorder
from property_agent.models.session import ConversationTurn, CustomerInfo, PropertyInfo
from property_agent.services.llm import CompletionClient, trailing_window
from property_agent.services.responder import is_first_turn

logger = logging.getLogger(__name__)

SALES_SYSTEM_PROMPT = """You are a polite and professional real estate sales agent making a follow-up call to a buyer who showed interest in a property.

Your conversation flow:

1. INTRODUCTION: Start by introducing yourself and asking if it's a good time to talk.
   - If yes, continue.
   - If no, politely ask if you can take just 2 minutes.
   - If still no, ask for a convenient time to follow up and confirm it.

2. ENGAGEMENT: Once engaged, ask if they are interested in discussing the property they enquired about.

3. IF INTERESTED: Guide them towards a site visit: ask for a preferred day and time, confirm availability, note special requirements and share property highlights.

4. IF NOT INTERESTED: Politely ask for the reason (budget, location, timing, already bought elsewhere), then thank them for their time.

Be concise, polite and natural. Keep responses under 2-3 sentences, confirm details and next steps clearly, and end with gratitude.
Use the property information you are given naturally in conversation."""

_NOT_INTERESTED = re.compile(r"\bnot interested\b|\balready bought\b|\bfound\b|\bdon'?t need\b")
_BUSY = re.compile(r"\bno\b|\bbusy\b|\bnot a good time\b")
_CONFIRM = re.compile(r"\bconfirm\w*|\bsounds good\b|\bperfect\b")
_VISIT = re.compile(r"\bvisit\b|\bsee\b|\bweekend\b|\bsaturday\b|\bsunday\b")
_INTEREST = re.compile(r"\binterested\b|\btell me more\b|\bdetails\b")
_POSITIVE = re.compile(r"\byes\b|\bsure\b|\bok\b|\bokay\b|\bgood time\b")

_TWO_MINUTES = "2 minutes"
_CALLBACK_QUESTION = "reach you again"


class SalesStrategy(Protocol):
    async def respond(
        self,
        utterance: str,
        history: Sequence[ConversationTurn],
        property_info: PropertyInfo,
        customer: CustomerInfo,
        recorder: Optional[FlightRecorder] = None,
    ) -> str: ...


def introduction(property_info: PropertyInfo, customer: CustomerInfo) -> str:
    return (
        f"Hello {customer.name or 'there'}! This is Sarah from Housing.com. I hope you're doing well. "
        f"I'm calling regarding the {property_info.title or 'property'} you recently enquired about. "
        "Is this a good time to talk?"
    )


def _last_assistant_turn(history: Sequence[ConversationTurn]) -> str:
    for turn in reversed(history):
        if turn.role == "assistant":
            return turn.content
    return ""


class RuleBasedSalesAgent:
    def reply(
        self,
        utterance: str,
        history: Sequence[ConversationTurn],
        property_info: PropertyInfo,
        customer: CustomerInfo,
    ) -> str:
        lower = (utterance or "").lower()
        title = property_info.title or "property"

        if is_first_turn(history):
            return introduction(property_info, customer)

        if _NOT_INTERESTED.search(lower):
            return (
                "I completely understand. Thank you for taking the time to speak with me today. If your "
                "situation changes, please don't hesitate to reach out. Have a wonderful day!"
            )

        if _CALLBACK_QUESTION in _last_assistant_turn(history):
            return "Noted, I'll call back at that time. Thank you for your time, and have a great day!"

        if _BUSY.search(lower):
            if any(_TWO_MINUTES in turn.content for turn in history if turn.role == "assistant"):
                return (
                    "I completely understand. When would be a convenient time for me to reach you again? "
                    "Would tomorrow evening around 6 PM work for you?"
                )
            return (
                f"I understand you're busy. Could I take just {_TWO_MINUTES} of your time to share some "
                "exciting updates about this property?"
            )

        if _CONFIRM.search(lower):
            return (
                "Wonderful! I'll send you a confirmation message with all the details shortly. Thank you for "
                "your time today, and I look forward to showing you this beautiful property. Have a great day!"
            )

        if _VISIT.search(lower):
            return (
                "Perfect! I can arrange a site visit for you. Would Saturday afternoon around 3 PM work for you, "
                "or would you prefer Sunday morning? I'll also share the exact location and my contact details."
            )

        if _INTEREST.search(lower):
            price = property_info.price or "a competitive price"
            pricing = f"priced at {price}" if property_info.type != "Rent" else f"available for rent at {price}"
            return (
                f"Excellent! This {property_info.bhk or 'beautiful'} property offers "
                f"{property_info.amenities or 'great amenities'} and is {pricing}. "
                "Would you be interested in scheduling a site visit this weekend?"
            )

        if _POSITIVE.search(lower):
            if any("good time" in turn.content for turn in history if turn.role == "assistant"):
                return (
                    f"Great! I wanted to discuss the {title} in {property_info.location or 'a prime location'}. "
                    f"Are you still interested in learning more about this {property_info.price or 'well-priced'} property?"
                )
            return (
                "Wonderful, thanks! I'm calling about the property you showed interest in. "
                "Are you still looking for a property in this area?"
            )

        return (
            "I understand. Could you please share what specific aspect you'd like to know more about? I'm here "
            "to help with any questions about the property, pricing, or scheduling a visit."
        )

    async def respond(
        self,
        utterance: str,
        history: Sequence[ConversationTurn],
        property_info: PropertyInfo,
        customer: CustomerInfo,
        recorder: Optional[FlightRecorder] = None,
    ) -> str:
        text = self.reply(utterance, history, property_info, customer)
        if recorder:
            recorder.log("RESPOND", "rule_based_sales_reply")
        return text


class GenerativeSalesAgent:
    def __init__(self, client: CompletionClient, fallback: Optional[RuleBasedSalesAgent] = None) -> None:
        self.client = client
        self.fallback = fallback or RuleBasedSalesAgent()

    async def respond(
        self,
        utterance: str,
        history: Sequence[ConversationTurn],
        property_info: PropertyInfo,
        customer: CustomerInfo,
        recorder: Optional[FlightRecorder] = None,
    ) -> str:
        context = [
            SALES_SYSTEM_PROMPT,
            f"Property Details: {json.dumps(property_info.model_dump(exclude_none=True), indent=2)}",
            f"Customer Info: {json.dumps(customer.model_dump(exclude_none=True), indent=2)}",
        ]
        try:
            return await self.client.complete_text(context, trailing_window(history, utterance), utterance)
        except Exception as exc:  # noqa: BLE001
            logger.warning("sales_agent.completion_error %s", exc, exc_info=True)
            if recorder:
                recorder.log("RESPOND", "completion_error", error=str(exc))
            return await self.fallback.respond(utterance, history, property_info, customer, recorder)


def build_sales_strategy(client: Optional[CompletionClient] = None) -> SalesStrategy:
    client = client or CompletionClient()
    if client.is_available():
        return GenerativeSalesAgent(client)
    return RuleBasedSalesAgent()
