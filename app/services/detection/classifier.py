"""
Perspective Classifier
Runs one perspective against one record through an external chat-completion
service and turns its loosely structured reply into a Verdict.

The backend is a capability interface so tests and alternative providers
can plug in; ChatCompletionBackend talks to any OpenAI-compatible endpoint
(Groq by default).
"""

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional, Protocol

import httpx

from app.core.config import get_settings
from app.core.errors import ClassificationError
from app.services.detection.perspectives import Perspective
from app.services.detection.verdict import Severity, Verdict

logger = logging.getLogger(__name__)

RECORD_HEADER = "\n\nEMAIL À ANALYSER:\n"


class ClassificationBackend(Protocol):
    """Anything that can answer one (instructions, content) prompt with text."""
    name: str

    @property
    def is_available(self) -> bool: ...

    async def complete(self, system_instructions: str, user_content: str) -> str: ...


class ChatCompletionBackend:
    """
    OpenAI-compatible chat completions client.
    Groq by default; `api_url` overrides the endpoint for gateways.
    """

    API_URLS = {
        "groq": "https://api.groq.com/openai/v1/chat/completions",
        "openai": "https://api.openai.com/v1/chat/completions",
    }

    def __init__(
        self,
        api_key: str,
        model: str,
        provider: str = "groq",
        api_url: Optional[str] = None,
        temperature: float = 0.1,
        timeout: float = 45.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.name = provider
        self.api_key = api_key
        self.model = model
        self.api_url = api_url or self.API_URLS.get(provider, self.API_URLS["groq"])
        self.temperature = temperature
        self.timeout = timeout
        self._transport = transport

    @property
    def is_available(self) -> bool:
        """Check if the provider is configured."""
        return bool(self.api_key)

    async def complete(self, system_instructions: str, user_content: str) -> str:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_instructions},
                {"role": "user", "content": user_content},
            ],
            "temperature": self.temperature,
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.api_url, headers=headers, json=payload)
        except httpx.HTTPError as e:
            raise ClassificationError(self.name, f"request failed: {e.__class__.__name__}") from e

        if response.status_code != 200:
            raise ClassificationError(self.name, f"API error {response.status_code}")

        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise ClassificationError(self.name, "malformed completion envelope") from e
        if not isinstance(content, str):
            raise ClassificationError(self.name, "empty completion")
        return content


# =============================================================================
# Reply parsing
# =============================================================================

def extract_json_object(text: str) -> Optional[str]:
    """
    First balanced {...} block of `text`, or None.
    Braces inside JSON string literals are ignored.
    """
    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start:index + 1]
    return None


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value if v is not None and str(v).strip()]
    return [str(value)]


def _as_confidence(value: Any) -> int:
    try:
        confidence = int(round(float(value)))
    except (TypeError, ValueError, OverflowError):
        return 0
    return max(0, min(100, confidence))


def verdict_from_payload(payload: Dict[str, Any], perspective: Perspective) -> Verdict:
    """Build a Verdict from a parsed reply, defaulting every missing field."""
    return Verdict(
        perspective=perspective.name,
        detected=payload.get("incident_detected") is True,
        type=str(payload.get("type") or perspective.name),
        severity=Severity.parse(payload.get("severity")),
        confidence=_as_confidence(payload.get("confidence", 0)),
        evidence=_as_str_list(payload.get("evidence")),
        description=str(payload.get("description") or ""),
        articles=_as_str_list(payload.get("articles_violes")),
        extra=payload,
    )


def parse_reply(content: str, perspective: Perspective) -> Optional[Verdict]:
    raw = extract_json_object(content)
    if raw is None:
        logger.warning("No JSON object in %s reply", perspective.name)
        return None
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning("Invalid JSON in %s reply: %s", perspective.name, e.msg)
        return None
    return verdict_from_payload(payload, perspective)


# =============================================================================
# Classifier
# =============================================================================

class PerspectiveClassifier:
    """
    Applies one perspective to one record.

    Never raises for a failed classification: timeouts, transport errors
    and unusable replies all yield None (no verdict).
    """

    def __init__(self, backend: ClassificationBackend, timeout: Optional[float] = None):
        self.backend = backend
        self.timeout = timeout if timeout is not None else get_settings().ai_timeout_seconds

    async def classify(
        self,
        record_text: str,
        context_text: str,
        perspective: Perspective,
    ) -> Optional[Verdict]:
        user_content = f"{context_text}{RECORD_HEADER}{record_text}"
        try:
            content = await asyncio.wait_for(
                self.backend.complete(perspective.instructions, user_content),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Perspective %s timed out after %.1fs", perspective.name, self.timeout)
            return None
        except ClassificationError as e:
            logger.warning("Perspective %s failed: %s", perspective.name, e.message)
            return None

        return parse_reply(content, perspective)


# Singleton instance
_backend: Optional[ChatCompletionBackend] = None


def get_classification_backend() -> ChatCompletionBackend:
    """Get or create the configured classification backend."""
    global _backend
    if _backend is None:
        settings = get_settings()
        _backend = ChatCompletionBackend(
            api_key=settings.ai_api_key,
            model=settings.ai_model,
            provider=settings.ai_provider,
            api_url=settings.ai_api_url or None,
            temperature=settings.ai_temperature,
            timeout=settings.ai_timeout_seconds,
        )
    return _backend
