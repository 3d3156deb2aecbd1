from __future__ import annotations

import logging
import os
from typing import List, Optional

import httpx

from property_agent.logging.flight_recorder import FlightRecorder
from property_agent.models.session import SearchResult

logger = logging.getLogger(__name__)

SERPAPI_URL = "https://serpapi.com/search"

_DEMO_RESULTS = [
    SearchResult(title="Mock Property 1 - Housing.com", link="https://housing.com/example/1", snippet="Mocked listing 1"),
    SearchResult(title="Mock Property 2 - Housing.com", link="https://housing.com/example/2", snippet="Mocked listing 2"),
    SearchResult(title="Mock Property 3 - Housing.com", link="https://housing.com/example/3", snippet="Mocked listing 3"),
]

_FALLBACK_RESULTS = [
    SearchResult(
        title="Spacious 3BHK in Lajpat Nagar - Housing.com",
        link="https://housing.com/in/buy/searches/R5251-lajpat-nagar",
        snippet="3 BHK Apartment for Sale in Lajpat Nagar, New Delhi. Well-ventilated rooms with modern amenities.",
    ),
    SearchResult(
        title="3BHK Builder Floor in Lajpat Nagar - Housing.com",
        link="https://housing.com/in/buy/lajpat-nagar-delhi",
        snippet="Beautiful 3 BHK builder floor in prime location of Lajpat Nagar. Ready to move property.",
    ),
    SearchResult(
        title="Premium 3BHK Apartment Lajpat Nagar - Housing.com",
        link="https://housing.com/property/lajpat-nagar-3bhk",
        snippet="Premium 3 BHK apartment with parking and modern facilities in Lajpat Nagar, Delhi.",
    ),
]


class PropertySearchClient:
    """Google results for ``site:housing.com`` queries via SerpAPI.

    Without an API key the client returns demo listings; on transport or
    response errors it returns a fixed fallback set. It never raises.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_key = api_key or os.getenv("SERPAPI_API_KEY")
        self.timeout = timeout
        self.transport = transport

    async def search(self, query: str, recorder: Optional[FlightRecorder] = None) -> List[SearchResult]:
        if not self.api_key:
            logger.info("search.stub query=%s", query)
            if recorder:
                recorder.log("SEARCH", "search_stubbed", query=query)
            return list(_DEMO_RESULTS)

        params = {
            "api_key": self.api_key,
            "engine": "google",
            "q": query,
            "location": "India",
            "google_domain": "google.com",
            "gl": "in",
            "hl": "en",
            "num": 5,
        }
        try:
            timeout = httpx.Timeout(self.timeout, connect=5.0)
            async with httpx.AsyncClient(timeout=timeout, transport=self.transport) as client:
                response = await client.get(SERPAPI_URL, params=params)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("search.error query=%s err=%s", query, exc, exc_info=True)
            if recorder:
                recorder.log("SEARCH", "search_error", error=str(exc))
            return list(_FALLBACK_RESULTS)

        results = [
            SearchResult(title=item.get("title", ""), link=item.get("link", ""), snippet=item.get("snippet"))
            for item in payload.get("organic_results") or []
            if item.get("link")
        ]
        logger.info("search.performed query=%s results=%d", query, len(results))
        return results
