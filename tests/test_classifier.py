"""
Perspective Classifier Tests
============================

Reply parsing, defaults and failure handling of a single perspective.
"""

import asyncio
import json

import httpx
import pytest

from app.core.errors import ClassificationError
from app.services.detection import (
    DEFAULT_PERSPECTIVES,
    ChatCompletionBackend,
    PerspectiveClassifier,
    Severity,
    extract_json_object,
)
from app.services.detection.classifier import RECORD_HEADER, parse_reply
from app.services.detection.perspectives import COLLABORATION, DELAIS, perspective_names

from conftest import FakeBackend


class TestPerspectives:
    """Fixed perspective set."""

    def test_five_perspectives(self):
        assert perspective_names() == ["collaboration", "consentement", "documents", "delais", "comportement"]

    def test_instructions_request_json(self):
        for perspective in DEFAULT_PERSPECTIVES:
            assert "UNIQUEMENT en JSON" in perspective.instructions
            assert f'"type": "{perspective.violation_type}"' in perspective.instructions


class TestJsonExtraction:
    """Locating the JSON object inside free text."""

    def test_object_surrounded_by_prose(self):
        text = 'Voici mon analyse:\n{"incident_detected": true, "confidence": 80}\nFin.'
        assert json.loads(extract_json_object(text)) == {"incident_detected": True, "confidence": 80}

    def test_braces_inside_strings(self):
        text = 'x {"evidence": ["il a écrit {urgent}"], "nested": {"a": "}"}} y'
        payload = json.loads(extract_json_object(text))
        assert payload["evidence"] == ["il a écrit {urgent}"]
        assert payload["nested"] == {"a": "}"}

    def test_escaped_quotes(self):
        text = '{"description": "il dit \\"non}\\"", "ok": true}'
        assert json.loads(extract_json_object(text))["ok"] is True

    def test_no_object(self):
        assert extract_json_object("Aucun incident.") is None
        assert extract_json_object("{ incomplet") is None


class TestReplyParsing:
    """Verdict defaults and coercion."""

    def test_missing_fields_default(self):
        verdict = parse_reply("{}", DELAIS)
        assert verdict.detected is False
        assert verdict.type == "delais"
        assert verdict.severity == Severity.NONE
        assert verdict.confidence == 0
        assert verdict.evidence == []
        assert verdict.articles == []

    def test_full_reply(self):
        reply = json.dumps({
            "incident_detected": True,
            "type": "collaboration",
            "severity": "HIGH",
            "evidence": ["sans vous consulter"],
            "description": "Décision unilatérale",
            "articles_violes": ["Art. 406 CC"],
            "confidence": 87.6,
        })
        verdict = parse_reply(reply, COLLABORATION)
        assert verdict.detected is True
        assert verdict.severity == Severity.HIGH
        assert verdict.confidence == 88
        assert verdict.articles == ["Art. 406 CC"]
        assert verdict.to_dict()["articles_violes"] == ["Art. 406 CC"]

    def test_coercion(self):
        reply = '{"incident_detected": "yes", "severity": "extreme", "confidence": "beaucoup", "evidence": "une citation"}'
        verdict = parse_reply(reply, COLLABORATION)
        assert verdict.detected is False
        assert verdict.severity == Severity.NONE
        assert verdict.confidence == 0
        assert verdict.evidence == ["une citation"]

    def test_confidence_clamped(self):
        assert parse_reply('{"confidence": 150}', COLLABORATION).confidence == 100
        assert parse_reply('{"confidence": -5}', COLLABORATION).confidence == 0

    def test_non_finite_confidence(self):
        assert parse_reply('{"incident_detected": true, "confidence": 1e999}', COLLABORATION).confidence == 0
        assert parse_reply('{"confidence": -Infinity}', COLLABORATION).confidence == 0
        assert parse_reply('{"confidence": NaN}', COLLABORATION).confidence == 0

    def test_invalid_json(self):
        assert parse_reply('{"incident_detected": true,}', COLLABORATION) is None
        assert parse_reply("pas de json", COLLABORATION) is None


class SlowBackend(FakeBackend):
    async def complete(self, system_instructions: str, user_content: str) -> str:
        await asyncio.sleep(5)
        return "{}"


class TestPerspectiveClassifier:
    """One perspective applied to one record."""

    @pytest.mark.anyio
    async def test_classify(self):
        backend = FakeBackend({"collaboration": '{"incident_detected": true, "confidence": 75, "severity": "medium"}'})
        verdict = await PerspectiveClassifier(backend, timeout=5).classify("Texte", "Contexte", COLLABORATION)

        assert verdict.detected is True
        assert verdict.perspective == "collaboration"
        perspective, user_content = backend.calls[0]
        assert perspective == "collaboration"
        assert user_content == f"Contexte{RECORD_HEADER}Texte"

    @pytest.mark.anyio
    async def test_timeout_yields_no_verdict(self):
        classifier = PerspectiveClassifier(SlowBackend(), timeout=0.05)
        assert await classifier.classify("Texte", "", COLLABORATION) is None

    @pytest.mark.anyio
    async def test_provider_error_yields_no_verdict(self):
        backend = FakeBackend({"collaboration": ClassificationError("fake", "API error 500")})
        assert await PerspectiveClassifier(backend, timeout=5).classify("Texte", "", COLLABORATION) is None

    @pytest.mark.anyio
    async def test_overflowing_confidence_does_not_raise(self):
        backend = FakeBackend({"collaboration": '{"incident_detected": true, "severity": "high", "confidence": 1e999}'})
        verdict = await PerspectiveClassifier(backend, timeout=5).classify("Texte", "", COLLABORATION)
        assert verdict.detected is True
        assert verdict.confidence == 0

    @pytest.mark.anyio
    async def test_unparseable_reply_yields_no_verdict(self):
        backend = FakeBackend({"collaboration": "Je ne peux pas répondre."})
        assert await PerspectiveClassifier(backend, timeout=5).classify("Texte", "", COLLABORATION) is None


class TestChatCompletionBackend:
    """OpenAI-compatible HTTP client."""

    def _backend(self, handler, api_key: str = "test-key") -> ChatCompletionBackend:
        return ChatCompletionBackend(
            api_key=api_key,
            model="test-model",
            transport=httpx.MockTransport(handler),
        )

    @pytest.mark.anyio
    async def test_complete(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.headers["Authorization"] == "Bearer test-key"
            body = json.loads(request.content)
            assert body["model"] == "test-model"
            assert body["messages"][0] == {"role": "system", "content": "instructions"}
            assert body["temperature"] == 0.1
            return httpx.Response(200, json={"choices": [{"message": {"content": '{"a": 1}'}}]})

        assert await self._backend(handler).complete("instructions", "email") == '{"a": 1}'

    @pytest.mark.anyio
    async def test_non_200(self):
        backend = self._backend(lambda request: httpx.Response(429, json={"error": "rate limited"}))
        with pytest.raises(ClassificationError) as exc_info:
            await backend.complete("instructions", "email")
        assert "429" in exc_info.value.message

    @pytest.mark.anyio
    async def test_malformed_envelope(self):
        backend = self._backend(lambda request: httpx.Response(200, json={"choices": []}))
        with pytest.raises(ClassificationError):
            await backend.complete("instructions", "email")

    def test_availability(self):
        assert self._backend(lambda r: httpx.Response(200)).is_available is True
        assert self._backend(lambda r: httpx.Response(200), api_key="").is_available is False

    def test_default_endpoint(self):
        backend = self._backend(lambda r: httpx.Response(200))
        assert backend.api_url == ChatCompletionBackend.API_URLS["groq"]
