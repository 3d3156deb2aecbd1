import asyncio

from property_agent.services.responder import INTRODUCTION
from property_agent.services.session_store import CHAT_HISTORY_LIMIT


def _say(client, text, session_id="s1"):
    response = client.post("/chat", json={"sessionId": session_id, "text": text})
    assert response.status_code == 200
    return response.json()


def test_four_turn_scenario_searches_exactly_once(client, fake_search, store):
    first = _say(client, "I want to buy")
    assert first["replyText"] == INTRODUCTION
    assert first["requirements"]["propertyType"] == "buy"
    assert first["conversationState"] == "introduction"

    second = _say(client, "Mumbai")
    assert second["requirements"]["city"] == "Mumbai"
    assert second["searchPerformed"] is False

    third = _say(client, "2BHK")
    assert third["requirements"]["waitingForConfirmation"] is True
    assert third["replyText"] == (
        "Let me confirm your requirements: buying a 2BHK in Mumbai. "
        "Should I search for properties matching these criteria?"
    )
    assert third["searchPerformed"] is False
    assert fake_search.queries == []

    fourth = _say(client, "yes")
    assert fourth["requirements"]["confirmed"] is True
    assert fourth["requirements"]["waitingForConfirmation"] is False
    assert fourth["searchPerformed"] is True
    assert fourth["conversationState"] == "presenting_results"
    assert len(fourth["links"]) == 5
    assert fourth["audio"]["type"] == "ssml_fallback"

    fifth = _say(client, "thanks")
    assert fifth["searchPerformed"] is False

    assert fake_search.queries == ["buy 2BHK Mumbai site:housing.com"]
    session = store.get("s1")
    assert [record.query for record in session.property_search_history] == ["buy 2BHK Mumbai site:housing.com"]


def test_complete_first_message_is_confirmed_next_turn(client, fake_search):
    opening = _say(client, "I want to rent a 1bhk in Pune")
    assert opening["requirements"]["waitingForConfirmation"] is True
    assert opening["replyText"].endswith("renting a 1BHK in Pune. Should I search for properties matching these criteria?")

    accepted = _say(client, "ok, what next")
    assert accepted["requirements"]["confirmed"] is True
    assert accepted["searchPerformed"] is True
    assert fake_search.queries == ["rent 1BHK Pune site:housing.com"]


def test_changing_city_while_awaiting_confirmation(client, fake_search):
    _say(client, "hello")
    _say(client, "buy a 2bhk in Pune")
    revised = _say(client, "no, change it to Mumbai")
    assert revised["requirements"]["city"] == "Mumbai"
    assert revised["requirements"]["waitingForConfirmation"] is True
    assert revised["replyText"].endswith("buying a 2BHK in Mumbai. Should I search for properties matching these criteria?")
    assert fake_search.queries == []

    _say(client, "yes go ahead")
    assert fake_search.queries == ["buy 2BHK Mumbai site:housing.com"]


def test_history_stays_bounded(service, store):
    for index in range(15):
        asyncio.run(service.handle_chat_turn("long", f"message {index}"))
    assert len(store.get("long").conversation_history) == CHAT_HISTORY_LIMIT


def test_missing_fields_are_rejected_before_touching_state(client, store):
    assert client.post("/chat", json={"sessionId": "s1"}).status_code == 400
    assert client.post("/chat", json={"text": "hello"}).status_code == 400
    assert len(store) == 0


def test_negative_feedback_refines_search(client, fake_search):
    for text in ("I want to buy", "Mumbai", "2BHK", "yes"):
        _say(client, text)

    response = client.post(
        "/feedback",
        json={"sessionId": "s1", "propertyId": "listing-1", "feedback": "dislike", "reason": "too expensive"},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["feedbackProcessed"] is True
    assert "I noted your concern: too expensive." in body["replyText"]
    assert fake_search.queries[-1] == "buy 2BHK Mumbai site:housing.com affordable budget"
    assert len(body["links"]) == 5


def test_feedback_before_confirmation_does_not_search(client, fake_search, store):
    response = client.post(
        "/feedback",
        json={"sessionId": "s2", "propertyId": "listing-9", "feedback": "not_interested", "reason": "small rooms"},
    )
    assert response.status_code == 200
    assert response.json()["links"] == []
    assert fake_search.queries == []
    assert store.get("s2").user_feedback[0].subject_id == "listing-9"


def test_positive_feedback(client):
    response = client.post("/feedback", json={"sessionId": "s3", "propertyId": "p", "feedback": "like"})
    assert response.json()["replyText"].startswith("I'm glad you liked that property!")


def test_feedback_requires_property(client):
    assert client.post("/feedback", json={"sessionId": "s1", "feedback": "like"}).status_code == 400


def test_session_endpoints(client):
    _say(client, "rent in Chennai", session_id="abc")
    body = client.get("/session/abc").json()["session"]
    assert body["requirements"]["city"] == "Chennai"
    assert len(body["conversationHistory"]) == 2

    assert client.delete("/session/abc").json() == {"message": "Session cleared successfully"}
    assert client.get("/session/abc").json()["session"]["conversationHistory"] == []


def test_health(client):
    assert client.get("/health/").json() == {"status": "ok", "sessionStore": "InMemorySessionStore"}
