from __future__ import annotations

from typing import List, Optional

import pytest
from fastapi.testclient import TestClient

from property_agent.main import create_app
from property_agent.models.api import CallResult
from property_agent.models.session import SearchResult
from property_agent.services.conversation import ConversationService
from property_agent.services.property_parser import PropertyParser
from property_agent.services.responder import RuleBasedResponder
from property_agent.services.sales_agent import RuleBasedSalesAgent
from property_agent.services.session_store import InMemorySessionStore
from property_agent.services.telephony import TelephonyError, TwilioClient
from property_agent.services.tts import SpeechSynthesizer

CREDENTIAL_VARS = [
    "OPENAI_API_KEY",
    "OPENAI_BASE_URL",
    "SERPAPI_API_KEY",
    "ELEVENLABS_API_KEY",
    "TWILIO_ACCOUNT_SID",
    "TWILIO_AUTH_TOKEN",
    "TWILIO_PHONE_NUMBER",
    "REDIS_URL",
    "BASE_URL",
]


@pytest.fixture(autouse=True)
def offline_env(monkeypatch):
    for name in CREDENTIAL_VARS:
        monkeypatch.delenv(name, raising=False)


class FakeSearch:
    def __init__(self) -> None:
        self.queries: List[str] = []

    async def search(self, query: str, recorder=None) -> List[SearchResult]:
        self.queries.append(query)
        return [
            SearchResult(title=f"Listing {i}", link=f"https://housing.com/listing/{i}", snippet=query)
            for i in range(7)
        ]


class FakeTelephony:
    def __init__(self, configured: bool = True) -> None:
        self.configured = configured
        self.calls: List[str] = []
        self.ended: List[str] = []

    def is_configured(self) -> bool:
        return self.configured

    async def initiate_call(self, customer_phone: str, session_id: str) -> CallResult:
        if not self.configured:
            raise TelephonyError("Twilio not configured - missing credentials")
        self.calls.append(customer_phone)
        return CallResult(success=True, call_sid="CA123", status="queued")

    async def end_call(self, call_sid: str) -> CallResult:
        self.ended.append(call_sid)
        return CallResult(success=True, call_sid=call_sid, status="completed")


@pytest.fixture
def store() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture
def fake_search() -> FakeSearch:
    return FakeSearch()


@pytest.fixture
def fake_telephony() -> FakeTelephony:
    return FakeTelephony()


def build_service(store, search, telephony: Optional[object] = None) -> ConversationService:
    return ConversationService(
        store=store,
        responder=RuleBasedResponder(),
        sales_agent=RuleBasedSalesAgent(),
        search=search,
        tts=SpeechSynthesizer(),
        telephony=telephony or TwilioClient(),
        parser=PropertyParser(),
    )


@pytest.fixture
def service(store, fake_search, fake_telephony) -> ConversationService:
    return build_service(store, fake_search, fake_telephony)


@pytest.fixture
def client(service) -> TestClient:
    return TestClient(create_app(service))


@pytest.fixture
def unconfigured_client(store, fake_search) -> TestClient:
    return TestClient(create_app(build_service(store, fake_search, FakeTelephony(configured=False))))
