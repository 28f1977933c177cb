"""
CETI — Transcription Gateway.

Narrow adapter in front of the speech-to-text and summary vendors:
    - transcribe(path, filename)  → full transcript text
    - open_summary_stream(text)   → iterator of summary text chunks

``open_summary_stream`` connects eagerly: a vendor that cannot be reached
raises before the first chunk, so callers can fail the request cleanly
instead of failing half-way through a streamed response.

Providers:
    - OpenAIProvider: any OpenAI-compatible API (Whisper + chat completions)
      through the ``openai`` SDK; base URLs are configurable per capability.
    - LocalStubProvider: deterministic, offline (dev/testing).

Usage:
    from ceti.ai.transcription_gateway import get_provider
    provider = get_provider()
    text = provider.transcribe("/path/audio.mp3", "audio.mp3")
"""

import logging
from abc import ABC, abstractmethod
from typing import Iterator

from flask import current_app

logger = logging.getLogger(__name__)

SUMMARY_PROMPT = (
    "Por favor, genera un resumen claro y conciso del siguiente texto transcrito. "
    "El resumen debe capturar los puntos principales y la información más importante:\n\n"
    "{text}\n\n"
    "Proporciona únicamente el resumen, sin comentarios adicionales."
)


class TranscriptionProviderError(RuntimeError):
    """Vendor call failed (network, auth, bad response)."""


# ── Provider Abstract Base ────────────────────────────────────────────────────

class TranscriptionProvider(ABC):
    """Abstract interface for transcription / summary vendors."""

    @abstractmethod
    def transcribe(self, path: str, filename: str) -> str:
        """Return the transcript of the audio file at ``path``."""
        ...

    @abstractmethod
    def open_summary_stream(self, text: str) -> Iterator[str]:
        """Connect to the summary endpoint and return an iterator of text chunks."""
        ...


# ── OpenAI-compatible Provider ───────────────────────────────────────────────

class OpenAIProvider(TranscriptionProvider):
    """Whisper transcription + streamed chat-completion summary."""

    def __init__(self, config):
        self.transcription_model = config.get("TRANSCRIPTION_MODEL", "whisper-1")
        self.summary_model = config.get("SUMMARY_MODEL", "mistral-large-latest")
        self.summary_max_tokens = config.get("SUMMARY_MAX_TOKENS", 2000)
        self._settings = {
            "transcription": (config.get("TRANSCRIPTION_API_KEY"), config.get("TRANSCRIPTION_BASE_URL")),
            "summary": (config.get("SUMMARY_API_KEY"), config.get("SUMMARY_BASE_URL")),
        }
        self._clients = {}

    def _get_client(self, purpose: str):
        if purpose not in self._clients:
            try:
                import openai
            except ImportError:
                raise RuntimeError("openai package not installed. Run: pip install openai")
            api_key, base_url = self._settings[purpose]
            self._clients[purpose] = openai.OpenAI(api_key=api_key or None, base_url=base_url or None)
        return self._clients[purpose]

    def transcribe(self, path: str, filename: str) -> str:
        client = self._get_client("transcription")
        try:
            with open(path, "rb") as fh:
                response = client.audio.transcriptions.create(
                    model=self.transcription_model,
                    file=(filename, fh),
                )
        except Exception as exc:
            raise TranscriptionProviderError(f"Transcription request failed: {exc}") from exc
        text = getattr(response, "text", None)
        if not text:
            raise TranscriptionProviderError("Transcription response contained no text")
        return text

    def open_summary_stream(self, text: str) -> Iterator[str]:
        client = self._get_client("summary")
        try:
            stream = client.chat.completions.create(
                model=self.summary_model,
                messages=[{"role": "user", "content": SUMMARY_PROMPT.format(text=text)}],
                max_tokens=self.summary_max_tokens,
                stream=True,
            )
        except Exception as exc:
            raise TranscriptionProviderError(f"Summary request failed: {exc}") from exc
        return self._iter_chunks(stream)

    @staticmethod
    def _iter_chunks(stream) -> Iterator[str]:
        try:
            for chunk in stream:
                if not chunk.choices:
                    continue
                content = chunk.choices[0].delta.content
                if content:
                    yield content
        finally:
            close = getattr(stream, "close", None)
            if close is not None:
                close()


# ── Local Stub Provider ──────────────────────────────────────────────────────

class LocalStubProvider(TranscriptionProvider):
    """
    Deterministic offline provider for dev/testing.
    No API key required.
    """

    def transcribe(self, path: str, filename: str) -> str:
        with open(path, "rb") as fh:
            size = len(fh.read())
        return f"Transcripción simulada de {filename} ({size} bytes)."

    def open_summary_stream(self, text: str) -> Iterator[str]:
        words = text.split()
        parts = ("Resumen: " + " ".join(words[:20])).split(" ")
        return iter([parts[0]] + [" " + p for p in parts[1:]])


# ── Provider factory ─────────────────────────────────────────────────────────

_PROVIDERS = {
    "openai": OpenAIProvider,
    "local": LocalStubProvider,
}


def get_provider(name: str | None = None) -> TranscriptionProvider:
    """Resolve the configured provider (``TRANSCRIPTION_PROVIDER``)."""
    name = (name or current_app.config.get("TRANSCRIPTION_PROVIDER") or "openai").lower()
    if name == "local":
        return LocalStubProvider()
    if name not in _PROVIDERS:
        logger.warning("Unknown transcription provider '%s'. Falling back to local stub.", name)
        return LocalStubProvider()
    return _PROVIDERS[name](current_app.config)
