"""Best-effort extraction of listing details from housing.com URLs.

The URL itself carries location, BHK and sale/rent hints; the page HTML is
scraped for title, price, area and amenities when it can be fetched.
"""

from __future__ import annotations

import hashlib
import logging
import re
from typing import Dict, List, Optional

import httpx
from bs4 import BeautifulSoup

from property_agent.logging.flight_recorder import FlightRecorder
from property_agent.models.session import PropertyInfo

logger = logging.getLogger(__name__)

_REQUEST_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/91.0.4472.124 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
}

_URL_LOCATION = re.compile(r"(?:buy|rent)-(?:flats?|houses?|property)-in-([^-/]+)", re.IGNORECASE)
_URL_BHK = re.compile(r"(\d+)bhk", re.IGNORECASE)

_PRICE_CLASS = re.compile(r"price", re.IGNORECASE)
_PRICE_PATTERN = re.compile(r"(?:₹|rs\.?\s*|inr\s*)\s*(\d[\d,.]{0,12})\s*(lakh|lac|crore|cr|l)\b", re.IGNORECASE)
_AREA_PATTERN = re.compile(r"(?<![\d,])(\d[\d,]{0,8})\s*(?:sq\.?\s*ft|sqft|square\s*feet)", re.IGNORECASE)
_AMENITY_CUES: Dict[str, tuple] = {
    "Swimming Pool": ("swimming pool",),
    "Parking": ("parking",),
    "Gym": ("gym", "fitness"),
    "Security": ("security",),
}

_DEFAULT_AREAS = {"1": "650 sq ft", "2": "950 sq ft", "3": "1200 sq ft"}

SAMPLE_PROPERTIES: List[PropertyInfo] = [
    PropertyInfo(
        title="3 BHK Luxury Apartment for Sale in Lajpat Nagar",
        price="₹85 Lakh",
        location="Lajpat Nagar, Delhi",
        bhk="3 BHK",
        area="1200 sq ft",
        type="Sale",
        amenities="Parking, Security, Power Backup",
    ),
    PropertyInfo(
        title="2 BHK Ready to Move Flat in Pune",
        price="₹65 Lakh",
        location="Wakad, Pune",
        bhk="2 BHK",
        area="950 sq ft",
        type="Sale",
        amenities="Swimming Pool, Gym, Club House",
    ),
    PropertyInfo(
        title="1 BHK Premium Apartment for Rent",
        price="₹25,000/month",
        location="Koramangala, Bangalore",
        bhk="1 BHK",
        area="650 sq ft",
        type="Rent",
        amenities="Furnished, AC, WiFi Ready",
    ),
]


class PropertyParseError(ValueError):
    pass


def info_from_url(url: str) -> PropertyInfo:
    location = None
    match = _URL_LOCATION.search(url)
    if match:
        location = " ".join(word.capitalize() for word in match.group(1).replace("-", " ").split())

    bhk = None
    match = _URL_BHK.search(url)
    if match:
        bhk = f"{match.group(1)} BHK"

    listing_type = None
    if "/buy/" in url or "for-sale" in url:
        listing_type = "Sale"
    elif "/rent/" in url or "for-rent" in url:
        listing_type = "Rent"

    title_parts = [bhk or "Property"]
    if listing_type:
        title_parts.append(f"for {listing_type}")
    title_parts.append(f"in {location or 'Prime Location'}")
    return PropertyInfo(url=url, title=" ".join(title_parts), location=location, bhk=bhk, type=listing_type)


def clean_text(text: str) -> str:
    stripped = re.sub(r"[^\w\s\-₹]", " ", text)
    return re.sub(r"\s+", " ", stripped).strip()[:100]


def _page_title(soup: BeautifulSoup) -> Optional[str]:
    candidates = [
        soup.find("meta", attrs={"property": "og:title"}),
        soup.title,
        soup.find("h1"),
    ]
    for node in candidates:
        if node is None:
            continue
        raw = node.get("content", "") if node.name == "meta" else node.get_text(" ", strip=True)
        title = clean_text(raw)
        if len(title) > 10:
            return title
    return None


def parse_html(html: str, base: PropertyInfo) -> PropertyInfo:
    soup = BeautifulSoup(html, "html.parser")
    for node in soup(["script", "style", "noscript"]):
        node.decompose()
    page_text = soup.get_text(" ", strip=True)
    updates: Dict[str, str] = {}

    title = _page_title(soup)
    if title:
        updates["title"] = title

    # A dedicated price element beats the first rupee amount anywhere on the page.
    price_nodes = soup.find_all(["span", "div", "p"], class_=_PRICE_CLASS)
    for text in [node.get_text(" ", strip=True) for node in price_nodes] + [page_text]:
        match = _PRICE_PATTERN.search(text)
        if match:
            unit = match.group(2).lower()
            amount = match.group(1).replace(",", "").rstrip(".")
            updates["price"] = f"₹{amount} {'Crore' if unit.startswith('c') else 'Lakh'}"
            break

    match = _AREA_PATTERN.search(page_text)
    if match:
        updates["area"] = f"{match.group(1)} sq ft"

    lower = page_text.lower()
    amenities = [name for name, cues in _AMENITY_CUES.items() if any(cue in lower for cue in cues)]
    if amenities:
        updates["amenities"] = ", ".join(amenities)

    return base.model_copy(update=updates)


def enrich(info: PropertyInfo) -> PropertyInfo:
    """Fill price, area and amenities with typical values when missing."""
    updates: Dict[str, str] = {}
    if not info.price:
        updates["price"] = "₹25,000/month" if info.type == "Rent" else "₹65 Lakh"
    if not info.area:
        digit = next((char for char in info.bhk or "" if char.isdigit()), None)
        updates["area"] = _DEFAULT_AREAS.get(digit, "850 sq ft")
    if not info.amenities:
        updates["amenities"] = "Parking, Security, Power Backup"
    return info.model_copy(update=updates)


def sample_property(url: Optional[str]) -> PropertyInfo:
    """Demo listing, stable for a given URL."""
    digest = hashlib.sha256((url or "").encode("utf-8")).digest()
    sample = SAMPLE_PROPERTIES[digest[0] % len(SAMPLE_PROPERTIES)]
    return sample.model_copy(update={"url": url})


class PropertyParser:
    def __init__(self, timeout: float = 15.0, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self.timeout = timeout
        self.transport = transport

    async def parse(self, url: str, recorder: Optional[FlightRecorder] = None) -> PropertyInfo:
        if not url or "housing.com" not in url:
            raise PropertyParseError("Invalid Housing.com URL")

        base = info_from_url(url)
        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout, connect=5.0),
                follow_redirects=True,
                max_redirects=5,
                headers=_REQUEST_HEADERS,
                transport=self.transport,
            ) as client:
                response = await client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("parser.fetch_error url=%s err=%s", url, exc)
            if recorder:
                recorder.log("PARSE", "fetch_error", error=str(exc))
            return enrich(base)

        logger.info("parser.parsed url=%s", url)
        return enrich(parse_html(response.text, base))

    async def parse_or_sample(self, url: str, recorder: Optional[FlightRecorder] = None) -> PropertyInfo:
        try:
            return await self.parse(url, recorder)
        except PropertyParseError as exc:
            logger.warning("parser.sample_fallback url=%s err=%s", url, exc)
            return sample_property(url)
