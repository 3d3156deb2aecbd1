from __future__ import annotations

import logging
import os
from typing import Optional
from xml.sax.saxutils import escape, quoteattr

import httpx

from property_agent.models.api import CallResult

logger = logging.getLogger(__name__)

TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"
DEFAULT_BASE_URL = "http://localhost:8000"
VOICE = "Polly.Aditi"
LANGUAGE = "en-IN"
NO_INPUT_PROMPT = "I didn't catch that. Could you please repeat?"


class TelephonyError(RuntimeError):
    pass


def webhook_base_url() -> str:
    return (os.getenv("BASE_URL") or DEFAULT_BASE_URL).rstrip("/")


def _say(text: str) -> str:
    return f'    <Say voice="{VOICE}" language="{LANGUAGE}">{escape(text)}</Say>'


def voice_response(session_id: str, message: Optional[str] = None) -> str:
    """TwiML that speaks ``message`` and listens for the caller's next utterance."""
    base = webhook_base_url()
    gather_url = quoteattr(f"{base}/twilio/gather-webhook/{session_id}")
    lines = ['<?xml version="1.0" encoding="UTF-8"?>', "<Response>"]
    if message:
        lines.append(_say(message))
    lines.append(
        f'    <Gather input="speech" timeout="5" speechTimeout="auto" action={gather_url} '
        f'method="POST" language="{LANGUAGE}"/>'
    )
    lines.append(_say(NO_INPUT_PROMPT))
    lines.append(f'    <Redirect method="POST">{escape(f"{base}/twilio/voice-webhook/{session_id}")}</Redirect>')
    lines.append("</Response>")
    return "\n".join(lines)


def hangup_response(message: Optional[str] = None) -> str:
    lines = ['<?xml version="1.0" encoding="UTF-8"?>', "<Response>"]
    if message:
        lines.append(_say(message))
    lines.append("    <Hangup/>")
    lines.append("</Response>")
    return "\n".join(lines)


class TwilioClient:
    def __init__(
        self,
        account_sid: Optional[str] = None,
        auth_token: Optional[str] = None,
        from_phone: Optional[str] = None,
    ) -> None:
        self.account_sid = account_sid or os.getenv("TWILIO_ACCOUNT_SID")
        self.auth_token = auth_token or os.getenv("TWILIO_AUTH_TOKEN")
        self.from_phone = from_phone or os.getenv("TWILIO_PHONE_NUMBER")

    def is_configured(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.from_phone)

    def _calls_url(self, call_sid: Optional[str] = None) -> str:
        suffix = f"Calls/{call_sid}.json" if call_sid else "Calls.json"
        return f"{TWILIO_API_BASE}/Accounts/{self.account_sid}/{suffix}"

    async def _post(self, url: str, payload: dict) -> dict:
        auth = (self.account_sid, self.auth_token)
        try:
            async with httpx.AsyncClient(timeout=httpx.Timeout(10.0, connect=5.0), auth=auth) as client:
                response = await client.post(url, data=payload)
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise TelephonyError(f"Twilio request failed: {exc}") from exc

    async def initiate_call(self, customer_phone: str, session_id: str) -> CallResult:
        if not self.is_configured():
            raise TelephonyError("Twilio not configured - missing credentials")

        base = webhook_base_url()
        payload = {
            "To": customer_phone,
            "From": self.from_phone,
            "Url": f"{base}/twilio/voice-webhook/{session_id}",
            "Method": "POST",
            "StatusCallback": f"{base}/twilio/status-webhook/{session_id}",
            "StatusCallbackMethod": "POST",
            "StatusCallbackEvent": ["initiated", "ringing", "answered", "completed"],
            "Record": "true",
            "RecordingStatusCallback": f"{base}/twilio/recording-webhook/{session_id}",
        }
        data = await self._post(self._calls_url(), payload)
        logger.info("call.initiated to=%s sid=%s", _redact(customer_phone), data.get("sid"))
        return CallResult(success=True, call_sid=data.get("sid"), status=data.get("status", "queued"), raw=data)

    async def end_call(self, call_sid: str) -> CallResult:
        if not self.is_configured():
            raise TelephonyError("Twilio not configured - missing credentials")
        data = await self._post(self._calls_url(call_sid), {"Status": "completed"})
        logger.info("call.ended sid=%s", call_sid)
        return CallResult(success=True, call_sid=call_sid, status=data.get("status", "completed"), raw=data)


def _redact(phone: str) -> str:
    if len(phone) <= 4:
        return "***"
    return f"***{phone[-4:]}"
