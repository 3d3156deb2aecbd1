import time

from property_agent.models.session import Requirements
from property_agent.services.slot_extractor import extract, normalize_number_words


def test_property_type_and_started_flag():
    result = extract("I want to buy a flat", Requirements())
    assert result.property_type == "buy"
    assert result.conversation_started is True

    assert extract("Looking for a rental", Requirements()).property_type == "rent"


def test_budget_units():
    assert extract("around 85 lakh", Requirements()).budget == "85 Lakh"
    assert extract("my budget is 1.2 crore", Requirements()).budget == "1 Crore"

    rent = extract("60k rent", Requirements())
    assert rent.budget == "60K"
    assert rent.property_type == "rent"


def test_budget_without_unit_defaults_to_lakh():
    assert extract("budget of 70", Requirements()).budget == "70 Lakh"


def test_locality_and_city_after_in():
    result = extract("Looking for 2BHK in Lajpat Nagar Delhi", Requirements())
    assert result.city == "Delhi"
    assert result.locality == "Lajpat Nagar"
    assert result.bhk == "2BHK"


def test_multi_word_city_is_not_split_into_locality():
    result = extract("I need a flat in Navi Mumbai", Requirements())
    assert result.city == "Navi Mumbai"
    assert result.locality is None


def test_bare_city_uses_gazetteer():
    result = extract("Mumbai", Requirements(property_type="buy"))
    assert result.city == "Mumbai"
    assert result.property_type == "buy"


def test_locality_cue():
    result = extract("somewhere near Baner please", Requirements(city="Pune"))
    assert result.locality == "Baner"


def test_number_words_are_normalised():
    assert normalize_number_words("two bhk") == "2 bhk"
    assert extract("three bedroom house", Requirements()).bhk == "3BHK"


def test_filled_slots_are_not_overwritten():
    current = Requirements(property_type="buy", city="Pune", bhk="2BHK")
    result = extract("show me something in Mumbai, 3bhk", current)
    assert result.city == "Pune"
    assert result.bhk == "2BHK"


def test_overwrite_replaces_city_and_drops_stale_locality():
    current = Requirements(property_type="buy", city="Pune", locality="Wakad", bhk="2BHK")
    result = extract("no, change it to Mumbai", current, overwrite=True)
    assert result.city == "Mumbai"
    assert result.locality is None
    assert result.bhk == "2BHK"


def test_unmatched_text_leaves_slots_alone():
    current = Requirements(property_type="rent", city="Chennai")
    result = extract("hmm, let me think", current)
    assert result.slot_values() == current.slot_values()
    assert result.conversation_started is True


def test_extraction_is_idempotent():
    first = extract("buy 2bhk in Wakad Pune around 65 lakh", Requirements())
    assert extract("buy 2bhk in Wakad Pune around 65 lakh", first) == first
    assert first.locality == "Wakad"
    assert first.city == "Pune"
    assert first.budget == "65 Lakh"


def test_greetings_and_hedges_are_not_localities():
    greeting = extract("Hi, Mumbai please", Requirements())
    assert greeting.city == "Mumbai"
    assert greeting.locality is None

    hedge = extract("I think Mumbai", Requirements())
    assert hedge.city == "Mumbai"
    assert hedge.locality is None

    assert extract("hello, Baner Pune", Requirements()).locality == "Baner"


def test_long_utterances_are_extracted_quickly():
    started = time.perf_counter()
    result = extract("in " * 4000 + "x", Requirements())
    assert time.perf_counter() - started < 1.0
    assert result.city is None

    started = time.perf_counter()
    extract("near" + " " * 5000 + "1", Requirements())
    assert extract("1" * 12000 + " lakh in Pune", Requirements()).budget is None
    assert time.perf_counter() - started < 1.0
