"""Reply strategies for the property search chat.

Both strategies share one contract, ``respond(utterance, history,
requirements, event)``. The generative strategy wraps the rule-based one and
falls back to it on any completion failure, so callers cannot tell which
strategy produced a reply.
"""

from __future__ import annotations

import json
import logging
from typing import Optional, Protocol, Sequence

from property_agent.logging.flight_recorder import FlightRecorder
from property_agent.models.session import ConversationTurn, Requirements
from property_agent.services.confirmation_gate import GateEvent
from property_agent.services.llm import CompletionClient, trailing_window

logger = logging.getLogger(__name__)

INTRODUCTION = (
    "Hello! I'm Sarah from Housing.com, your personal property assistant. I'm here to help you "
    "find the perfect home. To get started, could you tell me what type of property you're "
    "looking for - are you planning to buy or rent?"
)

SYSTEM_PROMPT = """You are an AI sales agent from Housing.com. You have initiated a call with the user to help them in their property search.

Act like a professional, friendly property consultant:
1. Introduce yourself as their personal property assistant from Housing.com
2. Ask relevant questions to understand their requirements: budget (in lakhs or crores), city and locality, property type (buy/rent), BHK configuration
3. Keep responses concise and conversational (max 2-3 sentences)
4. Summarize requirements back to confirm understanding before searching
5. Remember what the user has already told you

When the user has confirmed their requirements, say "Let me search for properties matching your criteria."

Keep your tone warm, professional, and genuinely helpful. Avoid being too salesy or pushy."""

_PROMPTS = {
    "confirmed": "Perfect! Let me search for properties matching your criteria. I'll find the best options for you.",
    "revision": "No problem! What would you like to change in your requirements? Please tell me your updated preferences.",
    "property_type": "I'd be happy to help! Are you looking to buy or rent a property?",
    "city": "Which city are you looking in? And do you have any specific locality preferences?",
    "bhk": "What type of configuration are you looking for - 1BHK, 2BHK, 3BHK, or something else?",
    "budget": "Could you share your budget range? That helps me narrow things down to what fits your financial comfort zone.",
    "clarify": "I understand. Could you tell me more about your specific requirements so I can help you better?",
}


def requirements_summary(requirements: Requirements) -> str:
    """Human-readable summary, e.g. "buying a 2BHK in Wakad, Pune with budget 65 Lakh"."""
    parts = []
    if requirements.property_type:
        parts.append("buying" if requirements.property_type == "buy" else "renting")
    if requirements.bhk:
        parts.append(f"a {requirements.bhk}")
    if requirements.locality and requirements.city:
        parts.append(f"in {requirements.locality}, {requirements.city}")
    elif requirements.city:
        parts.append(f"in {requirements.city}")
    if requirements.budget:
        parts.append(f"with budget {requirements.budget}")
    return " ".join(parts)


def confirmation_prompt(requirements: Requirements) -> str:
    return (
        f"Let me confirm your requirements: {requirements_summary(requirements)}. "
        "Should I search for properties matching these criteria?"
    )


def is_first_turn(history: Sequence[ConversationTurn]) -> bool:
    return len(history) <= 1


class ReplyStrategy(Protocol):
    async def respond(
        self,
        utterance: str,
        history: Sequence[ConversationTurn],
        requirements: Requirements,
        event: GateEvent = GateEvent.GATHERING,
        recorder: Optional[FlightRecorder] = None,
    ) -> str: ...


class RuleBasedResponder:
    """Deterministic decision list keyed on conversation position and slots."""

    def reply(
        self,
        utterance: str,
        history: Sequence[ConversationTurn],
        requirements: Requirements,
        event: GateEvent = GateEvent.GATHERING,
    ) -> str:
        if is_first_turn(history):
            if requirements.waiting_for_confirmation:
                return f"{INTRODUCTION.split(' To get started')[0]} {confirmation_prompt(requirements)}"
            return INTRODUCTION
        if event is GateEvent.CONFIRMED:
            return _PROMPTS["confirmed"]
        if event is GateEvent.REVISION_REQUESTED:
            return _PROMPTS["revision"]
        if not requirements.property_type:
            return _PROMPTS["property_type"]
        if not requirements.city:
            return _PROMPTS["city"]
        if not requirements.bhk:
            return _PROMPTS["bhk"]
        if requirements.waiting_for_confirmation:
            prefix = "Got it, I've updated your requirements. " if event is GateEvent.REVISED else ""
            return prefix + confirmation_prompt(requirements)
        if not requirements.budget:
            return _PROMPTS["budget"]
        return _PROMPTS["clarify"]

    async def respond(
        self,
        utterance: str,
        history: Sequence[ConversationTurn],
        requirements: Requirements,
        event: GateEvent = GateEvent.GATHERING,
        recorder: Optional[FlightRecorder] = None,
    ) -> str:
        text = self.reply(utterance, history, requirements, event)
        if recorder:
            recorder.log("RESPOND", "rule_based_reply", event=event.value)
        return text


class GenerativeResponder:
    def __init__(self, client: CompletionClient, fallback: Optional[RuleBasedResponder] = None) -> None:
        self.client = client
        self.fallback = fallback or RuleBasedResponder()

    async def respond(
        self,
        utterance: str,
        history: Sequence[ConversationTurn],
        requirements: Requirements,
        event: GateEvent = GateEvent.GATHERING,
        recorder: Optional[FlightRecorder] = None,
    ) -> str:
        snapshot = json.dumps(requirements.model_dump(by_alias=True), indent=2)
        context = [SYSTEM_PROMPT, f"Current user requirements gathered: {snapshot}"]
        try:
            if recorder:
                with recorder.stage("RESPOND", provider="openai", model=self.client.model):
                    return await self.client.complete_text(context, trailing_window(history, utterance), utterance)
            return await self.client.complete_text(context, trailing_window(history, utterance), utterance)
        except Exception as exc:  # noqa: BLE001
            logger.warning("responder.completion_error %s", exc, exc_info=True)
            if recorder:
                recorder.log("RESPOND", "completion_error", error=str(exc))
            return await self.fallback.respond(utterance, history, requirements, event, recorder)


def build_reply_strategy(client: Optional[CompletionClient] = None) -> ReplyStrategy:
    client = client or CompletionClient()
    if client.is_available():
        logger.info("responder.strategy generative model=%s", client.model)
        return GenerativeResponder(client)
    logger.info("responder.strategy rule_based")
    return RuleBasedResponder()
