import asyncio

import httpx

from property_agent.models.session import PropertyInfo
from property_agent.services.property_parser import (
    PropertyParser,
    enrich,
    info_from_url,
    parse_html,
    sample_property,
)
from property_agent.services.property_search import PropertySearchClient
from property_agent.services.telephony import hangup_response, voice_response
from property_agent.services.tts import SpeechSynthesizer

LISTING_URL = "https://housing.com/in/buy/2bhk-buy-flats-in-wakad/project-42"

LISTING_HTML = """
<html><head><title>2 BHK Apartment in Wakad, Pune | Housing</title></head>
<body><span class="price">₹ 72 Lakh</span><div>1,050 sq ft</div>
<ul><li>Covered parking</li><li>24x7 security</li><li>Gym</li></ul></body></html>
"""


def test_url_hints():
    info = info_from_url(LISTING_URL)
    assert info.location == "Wakad"
    assert info.bhk == "2 BHK"
    assert info.type == "Sale"
    assert info.title == "2 BHK for Sale in Wakad"


def test_html_fields():
    info = parse_html(LISTING_HTML, info_from_url(LISTING_URL))
    assert info.title == "2 BHK Apartment in Wakad Pune Housing"
    assert info.price == "₹72 Lakh"
    assert info.area == "1,050 sq ft"
    assert info.amenities == "Parking, Gym, Security"


def test_html_prefers_price_element_and_heading_title():
    html = """
    <html><head><title>Housing</title><script>var ad = "₹ 5 Lakh";</script></head>
    <body><p>EMI from ₹ 40 Lakh loans</p><h1>3 BHK Builder Floor, Lajpat Nagar</h1>
    <div class="css-price-tag">₹ 1.45 Cr</div><p>Carpet area 1400 sqft with swimming pool</p></body></html>
    """
    info = parse_html(html, info_from_url("https://housing.com/in/buy/3bhk-buy-flats-in-lajpat-nagar"))
    assert info.title == "3 BHK Builder Floor Lajpat Nagar"
    assert info.price == "₹1.45 Crore"
    assert info.area == "1400 sq ft"
    assert info.amenities == "Swimming Pool"


def test_enrich_fills_defaults_by_type_and_size():
    rent = enrich(PropertyInfo(type="Rent", bhk="1 BHK"))
    assert rent.price == "₹25,000/month"
    assert rent.area == "650 sq ft"
    assert enrich(PropertyInfo()).area == "850 sq ft"


def test_parse_uses_page_when_reachable():
    transport = httpx.MockTransport(lambda request: httpx.Response(200, text=LISTING_HTML))
    info = asyncio.run(PropertyParser(transport=transport).parse(LISTING_URL))
    assert info.price == "₹72 Lakh"
    assert info.url == LISTING_URL


def test_parse_falls_back_to_url_hints_on_fetch_error():
    transport = httpx.MockTransport(lambda request: httpx.Response(503))
    info = asyncio.run(PropertyParser(transport=transport).parse(LISTING_URL))
    assert info.title == "2 BHK for Sale in Wakad"
    assert info.price == "₹65 Lakh"
    assert info.area == "950 sq ft"


def test_foreign_url_gets_stable_sample():
    parser = PropertyParser()
    first = asyncio.run(parser.parse_or_sample("https://example.com/flat"))
    assert first == sample_property("https://example.com/flat")
    assert first.url == "https://example.com/flat"


def test_parse_property_endpoint(client):
    assert client.post("/parse-property", json={}).status_code == 400
    body = client.post("/parse-property", json={"url": "https://example.com/flat"}).json()
    assert body["success"] is True
    assert body["property"]["title"]


def test_search_without_key_returns_demo_listings():
    results = asyncio.run(PropertySearchClient().search("buy 2BHK Pune site:housing.com"))
    assert [result.link for result in results] == [f"https://housing.com/example/{i}" for i in (1, 2, 3)]


def test_search_parses_organic_results():
    seen = {}

    def handler(request):
        seen.update(request.url.params)
        return httpx.Response(
            200,
            json={"organic_results": [{"title": "Flat", "link": "https://housing.com/a", "snippet": "nice"}]},
        )

    client = PropertySearchClient(api_key="key", transport=httpx.MockTransport(handler))
    results = asyncio.run(client.search("rent 1BHK Baner Pune site:housing.com"))
    assert results[0].link == "https://housing.com/a"
    assert seen["q"] == "rent 1BHK Baner Pune site:housing.com"
    assert seen["gl"] == "in"


def test_search_error_returns_fallback():
    client = PropertySearchClient(api_key="key", transport=httpx.MockTransport(lambda request: httpx.Response(500)))
    results = asyncio.run(client.search("anything"))
    assert "Lajpat Nagar" in results[0].title


def test_tts_without_key_returns_text_descriptor():
    audio = asyncio.run(SpeechSynthesizer().synthesize("Hello there"))
    assert audio.type == "ssml_fallback"
    assert audio.text == "Hello there"
    assert asyncio.run(SpeechSynthesizer().synthesize("")) is None


def test_twiml_escapes_text(monkeypatch):
    monkeypatch.setenv("BASE_URL", "https://agent.example.com/")
    twiml = voice_response("s-1", "Rent & deposit < 2 months")
    assert "Rent &amp; deposit &lt; 2 months" in twiml
    assert 'action="https://agent.example.com/twilio/gather-webhook/s-1"' in twiml
    assert "<Redirect method=\"POST\">https://agent.example.com/twilio/voice-webhook/s-1</Redirect>" in twiml
    assert hangup_response("Bye").endswith("<Hangup/>\n</Response>")
