"""Collection-delay prediction and chat advice with a local fallback.

The generative model is optional. Every failure of the remote call is
absorbed here and answered by a deterministic heuristic, so callers on
the machine-start path never see an exception from this module.
"""

from __future__ import annotations

import json
import random
import re
import time
from dataclasses import dataclass
from threading import RLock
from typing import Any, Callable, Optional, Sequence

import numpy as np

from aura.domain.models import Machine, MachineStatus
from aura.services.ai_client import AIMalformedResponseError, AIServiceError, GeminiClient
from aura.utils.config import Settings, get_settings
from aura.utils.logger import get_logger


logger = get_logger(__name__)

SOURCE_AI = "ai"
SOURCE_CACHE = "cache"
SOURCE_FALLBACK = "fallback"

ADMIN_CHAT_REPLY = "Chat is for students. Please log in."

_DELAY_PROMPT = """
You are AuraBot, an AI assistant for users of the DYP Aura smart living system.

Student's delay history (minutes after cycle finished): [{history}]
Current cycle duration: {duration} minutes

TASK: Predict delay and create personalized reminder.

DELAY PREDICTION RULES:
- New users (empty history): 3-5 minutes
- Consistent users (avg < 5 min): 2-4 minutes
- Variable users (avg 5-15 min): 5-10 minutes
- Often late users (avg > 15 min): 10-20 minutes

REMINDER MESSAGE GUIDELINES:
- Keep under 25 words
- Be encouraging and friendly
- Reference studying, res life, or campus activities

Return ONLY valid JSON: {{"predicted_delay_minutes": number, "reminder_message": string}}
"""

_CHAT_INSTRUCTION = """
You are AuraBot, the official assistant for the DYP Aura laundry system.

CURRENT MACHINE STATUS: {summary}

RESPONSE GUIDELINES:
- Be friendly and helpful
- Keep responses concise (under 50 words)
- ONLY answer laundry-related questions
- Use current machine status to provide accurate information
- For non-laundry questions, politely redirect: "I'm here to help with laundry! Ask me about machine availability, cycle times, or laundry tips."
"""

FALLBACK_REMINDERS = (
    "Your {duration} min cycle is running smoothly!",
    "Laundry in progress! Check back in {duration} minutes.",
    "Cycle started! Your clothes will be ready soon.",
    "DYP Aura is working hard for you!",
)

FALLBACK_CHAT_REPLIES = (
    "I'm here to help with laundry questions! Ask me about machine availability.",
    "Sorry, I'm having trouble connecting. Check the machine status above!",
    "I can help with laundry info! What would you like to know?",
    "Having connection issues, but you can see machine status on the dashboard!",
)


@dataclass(frozen=True)
class DelayPrediction:
    delay_minutes: int
    message: str
    source: str = SOURCE_AI

    def to_dict(self) -> dict[str, Any]:
        return {
            "predicted_delay_minutes": self.delay_minutes,
            "reminder_message": self.message,
            "source": self.source,
        }


def _round_half_up(value: float) -> int:
    return int(np.floor(value + 0.5))


def _clamp(value: int, lower: int, upper: int) -> int:
    return max(lower, min(upper, value))


def _machine_hash(machines: Sequence[Machine]) -> str:
    return "".join(f"{machine.type.value}{machine.id}{machine.status.value}" for machine in machines)


def _strip_code_fence(text: str) -> str:
    match = re.search(r"```(?:json)?\s*(.*?)```", text, re.DOTALL)
    return match.group(1).strip() if match else text.strip()


class DelayPredictionService:
    """Wraps the Gemini client with a response cache and request spacing."""

    def __init__(
        self,
        client: Optional[GeminiClient] = None,
        settings: Optional[Settings] = None,
        *,
        monotonic: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._client = client or GeminiClient(self._settings)
        self._monotonic = monotonic
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._lock = RLock()
        self._cache: dict[str, tuple[float, Any]] = {}
        self._next_request_at = 0.0

    def fallback_delay(self, history: Sequence[int]) -> int:
        if not history:
            return self._settings.prediction_default_delay_minutes
        average = float(np.mean(np.asarray(history, dtype=float)))
        return _clamp(
            _round_half_up(average * 0.8),
            self._settings.prediction_fallback_min_minutes,
            self._settings.prediction_fallback_max_minutes,
        )

    def predict_delay(self, history: Sequence[int], duration_minutes: int) -> DelayPrediction:
        key = f"delay_{','.join(str(value) for value in history)}_{duration_minutes}"
        cached = self._cached(key)
        if cached is not None:
            logger.info("Delay prediction served from cache | duration=%s", duration_minutes)
            return DelayPrediction(cached.delay_minutes, cached.message, SOURCE_CACHE)

        try:
            self._wait_for_turn()
            raw = self._client.generate(
                _DELAY_PROMPT.format(
                    history=", ".join(str(value) for value in history),
                    duration=duration_minutes,
                ),
                temperature=0.7,
                max_output_tokens=150,
                json_response=True,
            )
            prediction = self._parse_prediction(raw, duration_minutes)
        except AIServiceError as exc:
            prediction = DelayPrediction(
                delay_minutes=self.fallback_delay(history),
                message=self._rng.choice(FALLBACK_REMINDERS).format(duration=duration_minutes),
                source=SOURCE_FALLBACK,
            )
            logger.warning(
                "Delay prediction degraded to heuristic | reason=%s | delay=%s",
                type(exc).__name__,
                prediction.delay_minutes,
            )
            return prediction

        self._store(key, prediction)
        logger.info(
            "Delay predicted | duration=%s | delay=%s | history_len=%s",
            duration_minutes,
            prediction.delay_minutes,
            len(history),
        )
        return prediction

    def chat_reply(self, question: str, machines: Sequence[Machine]) -> str:
        normalized = re.sub(r"\s+", "_", question.strip().lower())
        key = f"chat_{normalized}_{_machine_hash(machines)}"
        cached = self._cached(key)
        if cached is not None:
            return cached

        summary = ", ".join(f"{machine.label}: {machine.status.value}" for machine in machines)
        try:
            self._wait_for_turn()
            reply = self._client.generate(
                question,
                system_instruction=_CHAT_INSTRUCTION.format(summary=summary or "no machines"),
                temperature=0.8,
                max_output_tokens=100,
            )
        except AIServiceError as exc:
            logger.warning("Chat degraded to canned reply | reason=%s", type(exc).__name__)
            return self.fallback_chat_reply(question, machines)

        self._store(key, reply)
        return reply

    def fallback_chat_reply(self, question: str, machines: Sequence[Machine]) -> str:
        lowered = question.lower()
        free = [machine for machine in machines if machine.status is MachineStatus.FREE]

        if "free" in lowered or "available" in lowered:
            if free:
                names = ", ".join(machine.label for machine in free)
                return f"Yes! {len(free)} machines are free: {names}."
            return "All machines are currently busy. Check back in 30-60 minutes!"

        if "time" in lowered or "when" in lowered:
            if len(free) >= 2:
                return "Perfect time for laundry! Multiple machines available."
            if len(free) == 1:
                return "One machine free - grab it quick!"
            return "All machines busy. Try again later or check back in an hour."

        return self._rng.choice(FALLBACK_CHAT_REPLIES)

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()

    def _parse_prediction(self, raw: str, duration_minutes: int) -> DelayPrediction:
        try:
            parsed = json.loads(_strip_code_fence(raw))
        except json.JSONDecodeError as exc:
            raise AIMalformedResponseError("prediction is not valid JSON") from exc
        if not isinstance(parsed, dict):
            raise AIMalformedResponseError("prediction is not a JSON object")

        value = parsed.get("predicted_delay_minutes")
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise AIMalformedResponseError("predicted_delay_minutes missing or not numeric")
        delay = _clamp(_round_half_up(float(value)), 0, self._settings.prediction_max_delay_minutes)

        message = parsed.get("reminder_message")
        if not isinstance(message, str) or not message.strip():
            message = f"Your {duration_minutes} min cycle is running!"
        return DelayPrediction(delay_minutes=delay, message=message.strip(), source=SOURCE_AI)

    def _cached(self, key: str) -> Any:
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                return None
            stored_at, value = entry
            if self._monotonic() - stored_at >= self._settings.ai_cache_ttl_seconds:
                del self._cache[key]
                return None
            return value

    def _store(self, key: str, value: Any) -> None:
        with self._lock:
            self._cache[key] = (self._monotonic(), value)

    def _wait_for_turn(self) -> None:
        """Space remote calls by the minimum interval; never waits longer than it."""
        if not self._client.enabled:
            return
        interval = self._settings.ai_min_request_interval_seconds
        with self._lock:
            now = self._monotonic()
            wait = min(max(0.0, self._next_request_at - now), interval)
            self._next_request_at = now + wait + interval
        if wait > 0:
            self._sleep(wait)
