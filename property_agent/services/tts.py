from __future__ import annotations

import asyncio
import base64
import logging
import os
from typing import List, Optional

from elevenlabs import VoiceSettings
from elevenlabs.client import ElevenLabs

from property_agent.logging.flight_recorder import FlightRecorder
from property_agent.models.api import AudioDescriptor

logger = logging.getLogger(__name__)

DEFAULT_VOICE_ID = "21m00Tcm4TlvDq8ikWAM"


def text_fallback(text: str) -> AudioDescriptor:
    """Descriptor the client renders with its own speech synthesis."""
    return AudioDescriptor(type="ssml_fallback", text=text)


class SpeechSynthesizer:
    def __init__(self, api_key: Optional[str] = None, voice_id: Optional[str] = None) -> None:
        self.api_key = api_key or os.getenv("ELEVENLABS_API_KEY")
        self.voice_id = voice_id or os.getenv("ELEVENLABS_VOICE_ID", DEFAULT_VOICE_ID)
        self._client: Optional[ElevenLabs] = None
        if self.api_key:
            self._client = ElevenLabs(api_key=self.api_key)

    async def synthesize(self, text: str, recorder: Optional[FlightRecorder] = None) -> Optional[AudioDescriptor]:
        if not text:
            return None
        if not self._client:
            return text_fallback(text)

        def _collect_audio() -> bytes:
            chunks: List[bytes] = []
            for part in self._client.text_to_speech.convert(
                self.voice_id,
                text=text,
                model_id="eleven_turbo_v2_5",
                output_format="mp3_44100_128",
                voice_settings=VoiceSettings(
                    stability=0.5,
                    similarity_boost=0.75,
                ),
            ):
                if isinstance(part, (bytes, bytearray)):
                    chunks.append(bytes(part))
            return b"".join(chunks)

        try:
            if recorder:
                with recorder.stage("TTS", provider="elevenlabs"):
                    audio_bytes = await asyncio.to_thread(_collect_audio)
            else:
                audio_bytes = await asyncio.to_thread(_collect_audio)
        except Exception as exc:  # noqa: BLE001
            logger.warning("elevenlabs.tts_error %s", exc, exc_info=True)
            if recorder:
                recorder.log("TTS", "tts_error", provider="elevenlabs", error=str(exc))
            return text_fallback(text)

        if not audio_bytes:
            return text_fallback(text)
        if recorder:
            recorder.log("TTS", "tts_generated", provider="elevenlabs", bytes=len(audio_bytes))
        return AudioDescriptor(
            type="audio",
            text=text,
            content_type="audio/mpeg",
            audio_b64=base64.b64encode(audio_bytes).decode("ascii"),
        )
