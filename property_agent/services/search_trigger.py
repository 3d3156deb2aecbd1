"""Decides when a paid listing search runs and what it asks for.

The query is built from confirmed requirements; negative feedback on earlier
results appends refinement terms to it.
"""

from __future__ import annotations

import re
from typing import Iterable

from property_agent.models.session import NEGATIVE_SENTIMENTS, FeedbackRecord, Requirements
from property_agent.services.confirmation_gate import should_search_properties

SEARCH_SITE_SUFFIX = "site:housing.com"

_SEARCH_INTENT = re.compile(r"search|find|looking|properties")

# (cue words in a complaint, tokens appended to the query)
_REFINEMENTS = (
    (("price", "expensive"), "affordable budget"),
    (("location", "area"), "prime location central"),
    (("small", "space"), "spacious large"),
)


def build_search_query(requirements: Requirements) -> str:
    parts = [
        requirements.property_type,
        requirements.bhk,
        requirements.locality,
        requirements.city,
        requirements.budget,
    ]
    return " ".join([part for part in parts if part] + [SEARCH_SITE_SUFFIX])


def has_search_intent(reply: str) -> bool:
    return bool(_SEARCH_INTENT.search((reply or "").lower()))


def should_trigger_search(requirements: Requirements, reply: str) -> bool:
    """Paid search runs only for confirmed requirements and a reply that announces it."""
    return should_search_properties(requirements) and has_search_intent(reply)


def refine_query_from_feedback(requirements: Requirements, feedback: Iterable[FeedbackRecord]) -> str:
    query = build_search_query(requirements)
    reasons = [
        record.reason.lower()
        for record in feedback
        if record.sentiment in NEGATIVE_SENTIMENTS and record.reason
    ]
    for cues, tokens in _REFINEMENTS:
        if any(cue in reason for reason in reasons for cue in cues):
            query += f" {tokens}"
    return query
