"""
LegalWatch - Shared Test Fixtures
Provides database, HTTP client and fake provider fixtures.
"""

import os
from datetime import datetime, timezone
from typing import AsyncGenerator, Dict, Optional, Union

import pytest
from httpx import AsyncClient, ASGITransport

# Configure test environment BEFORE importing app
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./test_legalwatch.db"
os.environ["AI_PROVIDER"] = "groq"
os.environ["GROQ_API_KEY"] = ""
os.environ["ANALYSIS_THROTTLE_SECONDS"] = "0"
os.environ["LOG_LEVEL"] = "WARNING"

from app.main import app
from app.core.errors import FetchError
from app.models.models import CommunicationRecord
from app.services.detection import DEFAULT_PERSPECTIVES
from app.services.legal_corpus import FetchedDocument


# =============================================================================
# Core Fixtures
# =============================================================================

@pytest.fixture
def anyio_backend():
    """Use asyncio for async tests."""
    return "asyncio"


@pytest.fixture
async def setup_database():
    """Create database tables before a test and drop them after."""
    from app.core.database import Base, close_db, get_engine
    from app.models import models  # noqa: F401  Import all models to register them

    engine = get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await close_db()


@pytest.fixture
async def db_session(setup_database):
    """A session on the test database, closed after the test."""
    from app.core.database import get_session_factory

    async with get_session_factory()() as session:
        yield session


@pytest.fixture
async def client(setup_database) -> AsyncGenerator[AsyncClient, None]:
    """Create async test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# =============================================================================
# Fakes
# =============================================================================

_PERSPECTIVE_BY_INSTRUCTIONS = {p.instructions: p.name for p in DEFAULT_PERSPECTIVES}

NO_INCIDENT = '{"incident_detected": false, "severity": "none", "confidence": 0}'


class FakeBackend:
    """
    Classification backend answering per perspective name.
    A response may be reply text or an exception instance to raise.
    """

    def __init__(
        self,
        responses: Optional[Dict[str, Union[str, Exception]]] = None,
        available: bool = True,
        default: str = NO_INCIDENT,
    ):
        self.name = "fake"
        self.responses = responses or {}
        self.available = available
        self.default = default
        self.calls = []

    @property
    def is_available(self) -> bool:
        return self.available

    async def complete(self, system_instructions: str, user_content: str) -> str:
        perspective = _PERSPECTIVE_BY_INSTRUCTIONS.get(system_instructions, "unknown")
        self.calls.append((perspective, user_content))
        response = self.responses.get(perspective, self.default)
        if isinstance(response, Exception):
            raise response
        return response


class FakeFetcher:
    """Source fetcher serving canned documents; exceptions are raised."""

    def __init__(self, documents: Dict[str, Union[str, Exception]]):
        self.documents = documents
        self.fetched = []

    async def fetch(self, url: str) -> FetchedDocument:
        self.fetched.append(url)
        content = self.documents.get(url)
        if content is None:
            raise FetchError(url, "HTTP 404")
        if isinstance(content, Exception):
            raise content
        return FetchedDocument(url=url, raw_content=content, content_type="text/plain")


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()


# =============================================================================
# Sample Data
# =============================================================================

CIVIL_CODE_TEXT = """Code civil suisse (CC)
Titre dixième: Des mesures prises par l'autorité
Art. 389
Subsidiarité et proportionnalité de la curatelle.
1. L'autorité de protection de l'adulte ordonne une mesure lorsque:
a) l'appui fourni par les membres de la famille ne suffit pas;
b) l'appui fourni par les services publics ne suffit pas.
2. Une mesure n'est ordonnée que si elle est nécessaire et appropriée.
Art. 406
Le curateur sauvegarde les intérêts de la personne concernée.
1. Il tient compte, autant que possible, de son avis et respecte sa volonté.
"""


def make_record(
    sender: str = "Curateur <curateur@justice.vd.ch>",
    subject: str = "Votre dossier",
    body: str = "Nous avons pris une décision sans vous consulter.",
    received_at: Optional[datetime] = None,
    **kwargs,
) -> CommunicationRecord:
    return CommunicationRecord(
        sender=sender,
        subject=subject,
        body=body,
        received_at=received_at or datetime(2025, 3, 14, 9, 30, tzinfo=timezone.utc),
        **kwargs,
    )
