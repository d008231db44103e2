"""Thin REST client for the Gemini ``generateContent`` endpoint."""

from __future__ import annotations

from typing import Any, Optional

import requests

from aura.utils.config import Settings, get_settings
from aura.utils.logger import get_logger


logger = get_logger(__name__)


class AIServiceError(Exception):
    """Base exception for generative AI call failures."""


class AIDisabledError(AIServiceError):
    """Raised when AI is switched off or no API key is configured."""


class AITransportError(AIServiceError):
    """Raised on connection errors, timeouts and 5xx responses."""


class AIAuthError(AIServiceError):
    """Raised when the API rejects the credentials."""


class AIMalformedResponseError(AIServiceError):
    """Raised when the response carries no usable text."""


def _extract_text(payload: dict[str, Any]) -> Optional[str]:
    candidates = payload.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        return None
    content = candidates[0].get("content") if isinstance(candidates[0], dict) else None
    if not isinstance(content, dict):
        return None
    parts = content.get("parts")
    if not isinstance(parts, list):
        return None
    chunks = [str(part["text"]) for part in parts if isinstance(part, dict) and isinstance(part.get("text"), str)]
    joined = "".join(chunks).strip()
    return joined or None


class GeminiClient:
    """Raises ``AIServiceError`` subclasses; callers own the fallback."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._session = session or requests.Session()

    @property
    def enabled(self) -> bool:
        return self._settings.ai_enabled and bool(self._settings.gemini_api_key)

    def generate(
        self,
        prompt: str,
        *,
        system_instruction: Optional[str] = None,
        temperature: float = 0.7,
        max_output_tokens: int = 150,
        json_response: bool = False,
    ) -> str:
        if not self.enabled:
            raise AIDisabledError("Gemini API key not configured")

        url = (
            f"{self._settings.gemini_base_url.rstrip('/')}/models/"
            f"{self._settings.gemini_model}:generateContent"
        )
        generation_config: dict[str, Any] = {
            "temperature": temperature,
            "maxOutputTokens": max_output_tokens,
        }
        if json_response:
            generation_config["responseMimeType"] = "application/json"
        payload: dict[str, Any] = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": generation_config,
        }
        if system_instruction:
            payload["systemInstruction"] = {"parts": [{"text": system_instruction}]}

        try:
            response = self._session.post(
                url,
                headers={
                    "x-goog-api-key": self._settings.gemini_api_key or "",
                    "Content-Type": "application/json",
                },
                json=payload,
                timeout=self._settings.ai_request_timeout_seconds,
            )
        except requests.exceptions.RequestException as exc:
            raise AITransportError(f"Gemini request failed: {exc}") from exc

        if response.status_code in (401, 403):
            raise AIAuthError(f"Gemini rejected credentials (HTTP {response.status_code})")
        if response.status_code >= 400:
            raise AITransportError(f"Gemini returned HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError as exc:
            raise AIMalformedResponseError("Gemini response is not JSON") from exc
        if not isinstance(data, dict):
            raise AIMalformedResponseError("Gemini response is not a JSON object")

        text = _extract_text(data)
        if text is None:
            raise AIMalformedResponseError("Gemini response carried no text")
        logger.debug("Gemini call succeeded | model=%s | chars=%s", self._settings.gemini_model, len(text))
        return text
