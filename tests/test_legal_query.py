"""
Tests for corpus lookups: point-in-time units, status and citations.
"""

from datetime import date, timedelta

import pytest

from app.core.errors import NotFoundError, ValidationError
from app.core.utc import utc_today
from app.services.legal_corpus import (
    CorpusStore,
    IngestionRequest,
    IngestionRunner,
    LegalQueryService,
    normalize_cite_key,
)

from conftest import CIVIL_CODE_TEXT, FakeFetcher


CC_URL = "https://laws.example.org/rs/210.html"
LEO_URL = "https://laws.example.org/vd/400_01.html"
LEO_TEXT = """Loi sur l'enseignement obligatoire (LEO)
Art. 17
L'école assure l'instruction des enfants et seconde les parents dans leur tâche éducative.
"""


async def ingest_sample_corpus(db):
    fetcher = FakeFetcher({CC_URL: CIVIL_CODE_TEXT, LEO_URL: LEO_TEXT})
    await IngestionRunner(db, fetcher=fetcher).run(
        IngestionRequest(fetch_mode="full", source_urls=[CC_URL, LEO_URL])
    )


class TestUnitLookup:
    """Units by citation key at a point in time."""

    @pytest.mark.anyio
    async def test_get_unit_exact_key(self, db_session):
        await ingest_sample_corpus(db_session)
        result = await LegalQueryService(db_session).get_unit("rs_210", "Art. 389  AL. 1")

        assert result["unit"]["cite_key"] == "art. 389 al. 1"
        assert result["version"]["version_number"] == 1
        assert result["version"]["source_url"] == CC_URL
        assert len(result["all_matches"]) == 3

    @pytest.mark.anyio
    async def test_missing_article_does_not_match_longer_number(self, db_session):
        url = "https://laws.example.org/rs/101.html"
        text = (
            "Constitution fédérale (Cst.)\n"
            "Art. 10\nTout être humain a droit à la vie.\n"
            "Art. 2\nLa Confédération protège la liberté.\n"
        )
        await IngestionRunner(db_session, fetcher=FakeFetcher({url: text})).run(
            IngestionRequest(fetch_mode="full", source_urls=[url])
        )
        service = LegalQueryService(db_session)

        missing = await service.get_unit("rs_101", "art. 1")
        assert missing["unit"] is None
        assert missing["all_matches"] == []

        found = await service.get_unit("rs_101", "art. 10")
        assert found["unit"]["cite_key"] == "art. 10"
        assert [u["cite_key"] for u in found["all_matches"]] == ["art. 10"]

    @pytest.mark.anyio
    async def test_get_unit_before_validity(self, db_session):
        await ingest_sample_corpus(db_session)
        with pytest.raises(NotFoundError):
            await LegalQueryService(db_session).get_unit("rs_210", "art. 389", date(2000, 1, 1))

    @pytest.mark.anyio
    async def test_get_unit_picks_latest_applicable_version(self, db_session):
        await ingest_sample_corpus(db_session)
        store = CorpusStore(db_session)
        instrument = await store.get_instrument("rs_210")
        future = await store.create_version(
            instrument.id, "f" * 64, valid_from=utc_today() + timedelta(days=30),
        )
        await db_session.commit()

        service = LegalQueryService(db_session)
        today = await service.get_unit("rs_210", "art. 406")
        later = await service.get_unit("rs_210", "art. 406", utc_today() + timedelta(days=31))

        assert today["version"]["version_number"] == 1
        assert later["version"]["id"] == future.id
        assert later["unit"] is None

    @pytest.mark.anyio
    async def test_unknown_instrument(self, db_session):
        with pytest.raises(NotFoundError):
            await LegalQueryService(db_session).get_unit("rs_999", "art. 1")

    def test_normalize_cite_key(self):
        assert normalize_cite_key("  Art.  389 AL. 2 ") == "art. 389 al. 2"


class TestInstrumentLookup:
    """Search, details and status."""

    @pytest.mark.anyio
    async def test_search_instruments(self, db_session):
        await ingest_sample_corpus(db_session)
        service = LegalQueryService(db_session)

        results = await service.search_instruments(query="civil")
        assert [i["instrument_uid"] for i in results] == ["rs_210"]
        assert len(await service.search_instruments()) == 2

    @pytest.mark.anyio
    async def test_get_instrument_details(self, db_session):
        await ingest_sample_corpus(db_session)
        details = await LegalQueryService(db_session).get_instrument("rs_210")

        assert details["instrument"]["abbreviation"] == "CC"
        assert details["versions"][0]["sources"][0]["source_url"] == CC_URL
        assert details["unit_counts"] == {"article": 2, "paragraph": 3, "letter": 2}

    @pytest.mark.anyio
    async def test_resolve_status_with_replacement(self, db_session):
        await ingest_sample_corpus(db_session)
        store = CorpusStore(db_session)
        old = await store.ensure_instrument("vd_400_00", {
            "title": "Ancienne loi scolaire",
            "jurisdiction": "VD",
            "current_status": "repealed",
            "repealed_by_instrument_uid": "vd_400_01",
        })
        await db_session.commit()

        status = await LegalQueryService(db_session).resolve_status(old.instrument_uid)
        assert status["in_force"] is False
        assert status["status"] == "repealed"
        assert status["replaced_by"]["abbreviation"] == "LEO"

    @pytest.mark.anyio
    async def test_repealed_instruments_not_searched(self, db_session):
        store = CorpusStore(db_session)
        await store.ensure_instrument("vd_400_00", {
            "title": "Ancienne loi scolaire",
            "jurisdiction": "VD",
            "current_status": "repealed",
        })
        await db_session.commit()
        assert await LegalQueryService(db_session).search_instruments(query="scolaire") == []


class TestSearchAndCitations:
    """Unit search and free-text citations."""

    @pytest.mark.anyio
    async def test_search_units(self, db_session):
        await ingest_sample_corpus(db_session)
        result = await LegalQueryService(db_session).search_units("curateur")

        assert result["search_type"] == "keyword"
        assert result["count"] == 1
        assert result["units"][0]["cite_key"] == "art. 406"

    @pytest.mark.anyio
    async def test_search_units_requires_query(self, db_session):
        with pytest.raises(ValidationError):
            await LegalQueryService(db_session).search_units("   ")

    @pytest.mark.anyio
    async def test_resolve_citation(self, db_session):
        await ingest_sample_corpus(db_session)
        result = await LegalQueryService(db_session).resolve_citation("art. 17 LEO")

        assert result["cite_key"] == "art. 17"
        assert result["instrument_uid"] == "vd_400_01"
        assert "instruction des enfants" in result["unit"]["content_text"]

    @pytest.mark.anyio
    async def test_resolve_citation_with_paragraph(self, db_session):
        await ingest_sample_corpus(db_session)
        result = await LegalQueryService(db_session).resolve_citation("Art. 389 al. 1 let. b CC")

        assert result["cite_key"] == "art. 389 al. 1 let. b"
        assert result["unit"]["letter"] == "b"

    @pytest.mark.anyio
    async def test_unknown_abbreviation(self, db_session):
        await ingest_sample_corpus(db_session)
        with pytest.raises(NotFoundError):
            await LegalQueryService(db_session).resolve_citation("art. 1 XYZ")

    @pytest.mark.anyio
    async def test_unparseable_citation(self, db_session):
        with pytest.raises(ValidationError):
            await LegalQueryService(db_session).resolve_citation("voir le code")
