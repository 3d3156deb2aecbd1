"""Completion and confirmation rules guarding the paid property search."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum

from property_agent.models.session import Requirements

logger = logging.getLogger(__name__)

_AFFIRMATIVE_CUE = re.compile(r"\b(?:yes|yeah|yep|ok|okay|sure|proceed|search|find)\b")
_REVISION_CUE = re.compile(r"\b(?:no|nope|change|modify|different|wrong)\b")


class GateEvent(str, Enum):
    GATHERING = "gathering"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    CONFIRMED = "confirmed"
    REVISION_REQUESTED = "revision_requested"
    REVISED = "revised"


@dataclass(frozen=True)
class GateResult:
    requirements: Requirements
    event: GateEvent


def has_affirmative_cue(utterance: str) -> bool:
    return bool(_AFFIRMATIVE_CUE.search((utterance or "").lower()))


def has_revision_cue(utterance: str) -> bool:
    return bool(_REVISION_CUE.search((utterance or "").lower()))


def has_complete_requirements(requirements: Requirements) -> bool:
    return bool(requirements.property_type and requirements.city and requirements.bhk)


def should_search_properties(requirements: Requirements) -> bool:
    """Sole gate in front of the paid search API."""
    return has_complete_requirements(requirements) and requirements.confirmed is True


def await_confirmation(requirements: Requirements) -> Requirements:
    if (
        has_complete_requirements(requirements)
        and not requirements.confirmed
        and not requirements.waiting_for_confirmation
    ):
        return requirements.model_copy(update={"waiting_for_confirmation": True})
    return requirements


def changed_slots(before: Requirements, after: Requirements) -> list[str]:
    previous = before.slot_values()
    return [slot for slot, value in after.slot_values().items() if previous[slot] != value]


def reset_on_revision(before: Requirements, after: Requirements) -> Requirements:
    """Clear both confirmation flags when a slot moved while awaiting confirmation."""
    if after.waiting_for_confirmation and changed_slots(before, after):
        return after.model_copy(update={"confirmed": False, "waiting_for_confirmation": False})
    return after


def apply_turn(before: Requirements, extracted: Requirements, utterance: str) -> GateResult:
    """Run the per-turn confirmation protocol.

    ``before`` is the snapshot taken ahead of this turn's extraction and
    ``extracted`` is the extractor's output. The affirmative/revision checks
    read the flags from ``before``; change detection compares against it.
    """
    requirements = extracted
    event = GateEvent.GATHERING

    if before.waiting_for_confirmation and has_affirmative_cue(utterance):
        requirements = requirements.model_copy(update={"confirmed": True, "waiting_for_confirmation": False})
        event = GateEvent.CONFIRMED
    elif before.waiting_for_confirmation and has_revision_cue(utterance):
        requirements = requirements.model_copy(update={"confirmed": False, "waiting_for_confirmation": False})
        event = GateEvent.REVISION_REQUESTED

    requirements = await_confirmation(requirements)

    if requirements.waiting_for_confirmation:
        changed = changed_slots(before, requirements)
        if changed:
            logger.info("gate.requirements_changed slots=%s", changed)
            requirements = await_confirmation(reset_on_revision(before, requirements))
            if before.waiting_for_confirmation:
                event = GateEvent.REVISED

    if event is GateEvent.GATHERING and requirements.waiting_for_confirmation:
        event = GateEvent.AWAITING_CONFIRMATION

    return GateResult(requirements=requirements, event=event)
