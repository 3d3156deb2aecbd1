import asyncio

from property_agent.models.session import ConversationTurn, Requirements
from property_agent.services.confirmation_gate import GateEvent
from property_agent.services.responder import (
    INTRODUCTION,
    GenerativeResponder,
    RuleBasedResponder,
    build_reply_strategy,
    requirements_summary,
)
from property_agent.services.search_trigger import has_search_intent


def _history(*contents):
    roles = ["user", "assistant"]
    return [ConversationTurn(role=roles[i % 2], content=text) for i, text in enumerate(contents)]


def test_first_turn_gets_introduction():
    reply = RuleBasedResponder().reply("hi", _history("hi"), Requirements())
    assert reply == INTRODUCTION


def test_asks_for_missing_slots_in_order():
    responder = RuleBasedResponder()
    history = _history("hi", "hello", "buy")
    assert "buy or rent" in responder.reply("hmm", history, Requirements())
    assert "Which city" in responder.reply("buy", history, Requirements(property_type="buy"))
    assert "1BHK, 2BHK" in responder.reply("Pune", history, Requirements(property_type="buy", city="Pune"))


def test_summary_wording():
    requirements = Requirements(property_type="buy", city="Pune", locality="Wakad", bhk="2BHK", budget="65 Lakh")
    assert requirements_summary(requirements) == "buying a 2BHK in Wakad, Pune with budget 65 Lakh"


def test_confirmation_question_while_awaiting():
    requirements = Requirements(property_type="rent", city="Chennai", bhk="1BHK", waiting_for_confirmation=True)
    reply = RuleBasedResponder().reply("1bhk", _history("a", "b", "1bhk"), requirements, GateEvent.AWAITING_CONFIRMATION)
    assert reply == (
        "Let me confirm your requirements: renting a 1BHK in Chennai. "
        "Should I search for properties matching these criteria?"
    )


def test_confirmed_reply_announces_search():
    requirements = Requirements(property_type="buy", city="Pune", bhk="2BHK", confirmed=True)
    reply = RuleBasedResponder().reply("yes", _history("a", "b", "yes"), requirements, GateEvent.CONFIRMED)
    assert has_search_intent(reply)


def test_followup_prompts_do_not_announce_search():
    responder = RuleBasedResponder()
    history = _history("a", "b", "c")
    confirmed = Requirements(property_type="buy", city="Pune", bhk="2BHK", confirmed=True)
    assert not has_search_intent(responder.reply("thanks", history, confirmed))
    with_budget = confirmed.model_copy(update={"budget": "80 Lakh"})
    assert not has_search_intent(responder.reply("thanks", history, with_budget))


class _FailingClient:
    model = "test-model"

    async def complete_text(self, system_context, history, turn, **kwargs):
        raise RuntimeError("upstream unavailable")


class _EchoClient:
    model = "test-model"

    def __init__(self):
        self.calls = []

    async def complete_text(self, system_context, history, turn, **kwargs):
        self.calls.append((list(system_context), list(history), turn))
        return "Generated reply"


def test_generative_failure_falls_back_to_rules():
    responder = GenerativeResponder(_FailingClient())
    reply = asyncio.run(responder.respond("hi", _history("hi"), Requirements()))
    assert reply == INTRODUCTION


def test_generative_sends_history_without_current_turn():
    client = _EchoClient()
    history = _history("I want to rent", "Which city?", "Chennai")
    reply = asyncio.run(GenerativeResponder(client).respond("Chennai", history, Requirements(property_type="rent")))
    assert reply == "Generated reply"
    context, sent_history, turn = client.calls[0]
    assert turn == "Chennai"
    assert [item.content for item in sent_history] == ["I want to rent", "Which city?"]
    assert '"propertyType": "rent"' in context[1]


def test_rule_based_strategy_without_credentials():
    assert isinstance(build_reply_strategy(), RuleBasedResponder)
