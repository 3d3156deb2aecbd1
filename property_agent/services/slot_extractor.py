"""Deterministic slot extraction for property requirements.

``extract`` is a pure function over immutable ``Requirements`` snapshots: it
never performs I/O and never fails. Slots are first-write-wins unless the
caller explicitly asks for ``overwrite`` (used while the user is revising a
requirements summary).
"""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional, Tuple

from word2number import w2n

from property_agent.models.session import Requirements

logger = logging.getLogger(__name__)

INDIAN_CITIES: List[str] = [
    "mumbai", "delhi", "bangalore", "chennai", "hyderabad", "pune", "kolkata", "ahmedabad",
    "jaipur", "lucknow", "kanpur", "nagpur", "indore", "thane", "bhopal", "visakhapatnam",
    "pimpri", "patna", "vadodara", "ghaziabad", "ludhiana", "agra", "nashik", "faridabad",
    "meerut", "rajkot", "kalyan", "vasai", "varanasi", "srinagar", "aurangabad", "dhanbad",
    "amritsar", "navi mumbai", "allahabad", "ranchi", "howrah", "coimbatore", "jabalpur",
    "gwalior", "vijayawada", "jodhpur", "madurai", "raipur", "kota", "guwahati", "chandigarh",
    "solapur", "hubballi", "tiruchirappalli", "bareilly", "mysore", "tiruppur", "gurgaon",
    "aligarh", "jalandhar", "bhubaneswar", "salem", "warangal", "mira", "bhiwandi",
    "saharanpur", "gorakhpur", "bikaner", "amravati", "noida", "jamshedpur", "bhilai",
    "cuttack", "firozabad", "kochi", "nellore", "bhavnagar", "dehradun", "durgapur",
    "asansol", "rourkela", "nanded", "kolhapur", "ajmer", "akola", "gulbarga", "jamnagar",
    "ujjain", "loni", "siliguri", "jhansi", "ulhasnagar", "jammu", "sangli", "mangalore",
    "erode", "belgaum", "ambattur", "tirunelveli", "malegaon", "gaya", "jalgaon", "udaipur",
    "maheshtala",
]

# Longest names first so "navi mumbai" wins over "mumbai".
_CITY_ALTERNATION = "|".join(re.escape(city) for city in sorted(INDIAN_CITIES, key=len, reverse=True))
_CITY_SET = frozenset(INDIAN_CITIES)

_BUY_PATTERN = re.compile(r"\b(?:buy|buying|purchase|purchasing)\b")
_RENT_PATTERN = re.compile(r"\b(?:rent|rental|renting)\b")

# Order is significant: the first matching pattern decides the unit.
_BUDGET_PATTERNS: List[Tuple[re.Pattern, str]] = [
    (re.compile(r"\b(\d{1,6})(?:\.\d+)?\s?(?:crores?|cr)\b"), "Crore"),
    (re.compile(r"\b(\d{1,6})(?:\.\d+)?\s?(?:lakhs?|lacs?|l)\b"), "Lakh"),
    (re.compile(r"\b(\d{1,6})(?:\.\d+)?\s?(?:thousand|k)\b"), "K"),
    (re.compile(r"budget\D{0,20}?(\d{1,6})"), "Lakh"),
    (re.compile(r"around\s?(\d{1,6})"), "Lakh"),
]

_IN_CITY = re.compile(rf"\bin\s+({_CITY_ALTERNATION})\b", re.IGNORECASE)
_LOCALITY_IN_CITY = re.compile(rf"\bin\s+([a-z]+(?:\s+[a-z]+){{0,2}}),?\s+({_CITY_ALTERNATION})\b", re.IGNORECASE)
_LOCALITY_CITY = re.compile(rf"\b([a-z]+(?:\s+[a-z]+){{0,2}}),?\s+({_CITY_ALTERNATION})\b", re.IGNORECASE)
_CITY_ANYWHERE = re.compile(rf"\b({_CITY_ALTERNATION})\b")

_LOCALITY_CUE = re.compile(r"\b(?:locality|area|near)\b(?:\s*(?:is|of|:|-))?\s*([a-z][a-z\s]*)", re.IGNORECASE)

_BHK_PATTERN = re.compile(r"\b(\d+)\s?(?:bhk|bedroom)")

_FILLER_WORDS = frozenset(
    {
        "a", "an", "the", "i", "im", "me", "my", "we", "our", "is", "of", "and", "with", "to",
        "in", "at", "near", "around", "area", "locality", "city", "for", "or", "be", "should",
        "want", "need", "like", "would", "prefer", "please", "show", "find", "search", "get",
        "looking", "look", "buy", "buying", "purchase", "rent", "renting", "rental",
        "flat", "flats", "apartment", "apartments", "house", "home", "property", "properties",
        "place", "somewhere", "something", "anywhere", "interested", "bhk", "budget", "lakh",
        "crore", "change", "make", "it", "instead", "actually", "no", "yes", "ok", "okay",
        "new", "good", "nice", "some", "any", "one", "there", "here", "that", "this",
        "hi", "hello", "hey", "hii", "namaste", "thanks", "thank", "you", "think", "guess", "maybe",
        "probably", "perhaps", "hmm", "um", "uh", "so", "well", "just", "also", "then", "sure",
        "great", "fine", "alright", "right", "yeah", "yep", "let", "lets", "go", "only",
    }
)

_NUMBER_WORDS = [
    "zero", "one", "two", "three", "four", "five", "six", "seven", "eight", "nine", "ten",
    "eleven", "twelve", "thirteen", "fourteen", "fifteen", "sixteen", "seventeen", "eighteen",
    "nineteen", "twenty", "thirty", "forty", "fifty", "sixty", "seventy", "eighty", "ninety",
    "hundred",
]
_NUMBER_ALTERNATION = "|".join(_NUMBER_WORDS)
_NUMBER_RUN = re.compile(rf"\b(?:{_NUMBER_ALTERNATION})(?:[\s-]+(?:{_NUMBER_ALTERNATION}))*\b")


def normalize_number_words(text: str) -> str:
    """Replace spelled-out numbers with digits ("two bhk" -> "2 bhk")."""

    def _replace(match: re.Match) -> str:
        phrase = match.group(0).replace("-", " ")
        try:
            return str(w2n.word_to_num(phrase))
        except ValueError:
            return match.group(0)

    return _NUMBER_RUN.sub(_replace, text)


def proper_case(value: str) -> str:
    return " ".join(part.capitalize() for part in value.split())


def extract(utterance: str, current: Requirements, *, overwrite: bool = False) -> Requirements:
    """Return ``current`` updated with any slots found in ``utterance``.

    Unmatched text leaves slots untouched. With ``overwrite=False`` (the
    default) a slot that already holds a value is never replaced.
    """
    text = utterance or ""
    lower = normalize_number_words(text.lower())

    found: Dict[str, Optional[str]] = {
        "property_type": _extract_property_type(lower),
        "budget": _extract_budget(lower),
        "bhk": _extract_bhk(lower),
    }
    city, locality = _extract_city_and_locality(text, lower)
    found["city"] = city
    found["locality"] = locality or _extract_locality_cue(text)

    updates: Dict[str, object] = {"conversation_started": True}
    for slot, value in found.items():
        if value is None:
            continue
        existing = getattr(current, slot)
        if existing is None or (overwrite and existing != value):
            updates[slot] = value

    if overwrite and "city" in updates and current.city is not None and found["locality"] is None:
        # A locality belongs to the city it was given with.
        updates["locality"] = None

    updated = current.model_copy(update=updates)
    if updated != current:
        logger.debug("extractor.updated slots=%s", {k: v for k, v in updates.items() if k != "conversation_started"})
    return updated


def _extract_property_type(lower: str) -> Optional[str]:
    if _BUY_PATTERN.search(lower):
        return "buy"
    if _RENT_PATTERN.search(lower):
        return "rent"
    return None


def _extract_budget(lower: str) -> Optional[str]:
    for pattern, unit in _BUDGET_PATTERNS:
        match = pattern.search(lower)
        if not match:
            continue
        amount = int(match.group(1))
        if unit == "K":
            return f"{amount}K"
        return f"{amount} {unit}"
    return None


def _extract_bhk(lower: str) -> Optional[str]:
    match = _BHK_PATTERN.search(lower)
    if match:
        return f"{match.group(1)}BHK"
    return None


def _extract_city_and_locality(text: str, lower: str) -> Tuple[Optional[str], Optional[str]]:
    match = _IN_CITY.search(text)
    if match:
        return proper_case(match.group(1)), None

    for pattern in (_LOCALITY_IN_CITY, _LOCALITY_CITY):
        match = pattern.search(text)
        if match:
            city = match.group(2).lower()
            if city in _CITY_SET:
                return proper_case(city), _clean_locality(match.group(1))

    match = _CITY_ANYWHERE.search(lower)
    if match:
        return proper_case(match.group(1)), None
    return None, None


def _extract_locality_cue(text: str) -> Optional[str]:
    match = _LOCALITY_CUE.search(text)
    if not match:
        return None
    return _clean_locality(match.group(1), stop_at_filler=True)


def _clean_locality(raw: str, *, stop_at_filler: bool = False) -> Optional[str]:
    words = raw.split()
    while words and words[0].lower() in _FILLER_WORDS:
        words.pop(0)

    kept: List[str] = []
    for word in words:
        key = word.lower()
        if key in _CITY_SET or (stop_at_filler and key in _FILLER_WORDS):
            break
        kept.append(word)
    while kept and kept[-1].lower() in _FILLER_WORDS:
        kept.pop()

    kept = kept[-3:]
    if not kept:
        return None
    return " ".join(word.capitalize() if word.islower() else word for word in kept)
