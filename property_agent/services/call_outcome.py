"""Heuristics for ending a sales call and summarising how it went."""

from __future__ import annotations

from typing import List, Optional, Sequence

from property_agent.models.api import CallOutcome, CustomerFeedback
from property_agent.models.session import ConversationTurn, PropertyInfo

TERMINAL_PHRASES = (
    "thank you for your time",
    "have a wonderful day",
    "have a great day",
    "call you back",
    "send you confirmation",
    "not interested",
    "already bought",
)

_NEXT_STEPS = {
    "Site visit scheduled": "Send visit confirmation and location details",
    "Customer not interested": "Update lead status as closed",
    "Follow-up call requested": "Schedule callback as per customer preference",
}
DEFAULT_OUTCOME = "Discussed property details"
DEFAULT_NEXT_STEPS = "Follow up later"

OUTCOME_WINDOW = 4


def should_end_call(reply: str) -> bool:
    lower = (reply or "").lower()
    return any(phrase in lower for phrase in TERMINAL_PHRASES)


def classify_outcome(history: Sequence[ConversationTurn]) -> str:
    """First matching rule over the last few turns wins."""
    recent = " ".join(turn.content.lower() for turn in list(history)[-OUTCOME_WINDOW:])
    if "visit" in recent or "schedule" in recent:
        return "Site visit scheduled"
    if "not interested" in recent or "already bought" in recent:
        return "Customer not interested"
    if "call back" in recent or "later" in recent:
        return "Follow-up call requested"
    return DEFAULT_OUTCOME


def estimate_duration_minutes(history: Sequence[ConversationTurn]) -> int:
    return max(1, len(history) // 2)


def classify(
    history: Sequence[ConversationTurn],
    property_info: Optional[PropertyInfo] = None,
    *,
    ended: bool = True,
) -> CallOutcome:
    outcome = classify_outcome(history)
    next_steps = _NEXT_STEPS.get(outcome, DEFAULT_NEXT_STEPS)
    duration = estimate_duration_minutes(history)
    title = property_info.title if property_info and property_info.title else "Property discussed"
    summary = f"{outcome}. Property: {title}. Duration: ~{duration} minutes. Next steps: {next_steps}"
    return CallOutcome(
        ended=ended,
        outcome=outcome,
        next_steps=next_steps,
        duration_minutes=duration,
        summary=summary,
    )


def extract_customer_feedback(history: Sequence[ConversationTurn]) -> CustomerFeedback:
    text = " ".join(turn.content.lower() for turn in history)

    interested = any(word in text for word in ("interested", "like", "good"))

    concerns: List[str] = []
    if "budget" in text or "expensive" in text:
        concerns.append("Budget")
    if "location" in text or "far" in text:
        concerns.append("Location")
    if "small" in text or "space" in text:
        concerns.append("Size/Space")

    timeline: Optional[str] = None
    if "immediate" in text or "urgent" in text:
        timeline = "Immediate"
    elif "month" in text or "soon" in text:
        timeline = "Within a month"
    elif "year" in text or "later" in text:
        timeline = "Later this year"

    return CustomerFeedback(interested=interested, concerns=concerns, timeline=timeline)
