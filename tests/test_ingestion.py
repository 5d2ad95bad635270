"""
Ingestion Runner Tests
======================

Full and incremental runs, per-source failure isolation and the HTTP
fetcher.
"""

import httpx
import pytest
from sqlalchemy import func, select

from app.core.errors import FetchError
from app.models.models import (
    IngestionError,
    IngestionItem,
    IngestionRun,
    LegalInstrument,
    LegalSource,
    LegalVersion,
    SourceCatalogEntry,
)
from app.services.legal_corpus import (
    FetchedDocument,
    IngestionRequest,
    IngestionRunner,
    SourceFetcher,
    html_to_text,
    parse,
)
from app.services.legal_corpus.fetcher import document_text
from app.services.legal_corpus.ingestion import (
    derive_instrument_uid,
    extract_abbreviation,
    extract_title,
)

from conftest import CIVIL_CODE_TEXT, FakeFetcher


CC_URL = "https://laws.example.org/rs/210.html"
PA_URL = "https://laws.example.org/rs/172.html"


async def count(db, model) -> int:
    return await db.scalar(select(func.count()).select_from(model))


class TestIngestionRuns:
    """End-to-end runs against canned sources."""

    @pytest.mark.anyio
    async def test_full_run_creates_corpus(self, db_session):
        fetcher = FakeFetcher({CC_URL: CIVIL_CODE_TEXT})
        report = await IngestionRunner(db_session, fetcher=fetcher).run(
            IngestionRequest(fetch_mode="full", jurisdiction_scope="CH", source_urls=[CC_URL])
        )

        data = report.to_dict()
        assert data["status"] == "completed"
        assert data["stats"] == {"total": 1, "success": 1, "failed": 0, "skipped": 0}
        assert data["items"][0]["instrument_uid"] == "rs_210"
        assert data["items"][0]["units_created"] == 7

        instrument = (await db_session.execute(select(LegalInstrument))).scalar_one()
        assert instrument.title == "Code civil suisse (CC)"
        assert instrument.abbreviation == "CC"

        source = (await db_session.execute(select(LegalSource))).scalar_one()
        assert source.is_primary is True
        assert source.source_url == CC_URL

        run = await db_session.get(IngestionRun, report.run_id)
        assert run.status == "completed"
        assert run.completed_at is not None

    @pytest.mark.anyio
    async def test_incremental_run_skips_unchanged_source(self, db_session):
        fetcher = FakeFetcher({CC_URL: CIVIL_CODE_TEXT})
        request = IngestionRequest(fetch_mode="incremental", source_urls=[CC_URL])

        first = await IngestionRunner(db_session, fetcher=fetcher).run(request)
        second = await IngestionRunner(db_session, fetcher=fetcher).run(request)

        assert first.success == 1
        assert second.skipped == 1
        assert second.success == 0
        assert second.status == "completed"
        assert await count(db_session, LegalVersion) == 1

        skipped_item = (await db_session.execute(
            select(IngestionItem).where(IngestionItem.run_id == second.run_id)
        )).scalar_one()
        assert skipped_item.status == "skipped"

    @pytest.mark.anyio
    async def test_changed_source_gets_new_version(self, db_session):
        request = IngestionRequest(fetch_mode="incremental", source_urls=[CC_URL])
        await IngestionRunner(db_session, fetcher=FakeFetcher({CC_URL: CIVIL_CODE_TEXT})).run(request)

        amended = CIVIL_CODE_TEXT + "Art. 407\nLa personne concernée peut agir elle-même.\n"
        report = await IngestionRunner(db_session, fetcher=FakeFetcher({CC_URL: amended})).run(request)

        assert report.success == 1
        versions = (await db_session.execute(
            select(LegalVersion.version_number).order_by(LegalVersion.version_number)
        )).scalars().all()
        assert versions == [1, 2]
        assert await count(db_session, LegalInstrument) == 1

    @pytest.mark.anyio
    async def test_full_run_reingests_unchanged_source(self, db_session):
        request = IngestionRequest(fetch_mode="full", source_urls=[CC_URL])
        fetcher = FakeFetcher({CC_URL: CIVIL_CODE_TEXT})
        await IngestionRunner(db_session, fetcher=fetcher).run(request)
        report = await IngestionRunner(db_session, fetcher=fetcher).run(request)

        assert report.success == 1
        assert await count(db_session, LegalVersion) == 2

    @pytest.mark.anyio
    async def test_failed_source_does_not_stop_run(self, db_session):
        fetcher = FakeFetcher({CC_URL: CIVIL_CODE_TEXT})
        report = await IngestionRunner(db_session, fetcher=fetcher).run(
            IngestionRequest(fetch_mode="full", source_urls=[PA_URL, CC_URL])
        )

        assert report.status == "completed_with_errors"
        assert report.failed == 1
        assert report.success == 1
        assert report.errors[0]["source"] == PA_URL

        error = (await db_session.execute(select(IngestionError))).scalar_one()
        assert error.run_id == report.run_id
        assert error.error_type == "fetch"
        assert error.recoverable is True
        assert await count(db_session, LegalInstrument) == 1

    @pytest.mark.anyio
    async def test_catalog_sources_filtered(self, db_session):
        db_session.add_all([
            SourceCatalogEntry(source_url=CC_URL, jurisdiction="CH", domain_tags=["curatelle"]),
            SourceCatalogEntry(source_url=PA_URL, jurisdiction="CH", domain_tags=["procedure"]),
            SourceCatalogEntry(source_url="https://laws.example.org/vd/leo.html", jurisdiction="VD"),
        ])
        await db_session.commit()

        fetcher = FakeFetcher({CC_URL: CIVIL_CODE_TEXT})
        report = await IngestionRunner(db_session, fetcher=fetcher).run(
            IngestionRequest(fetch_mode="full", jurisdiction_scope="CH", domain_filter=["curatelle"])
        )

        assert fetcher.fetched == [CC_URL]
        assert report.total == 1

    @pytest.mark.anyio
    async def test_empty_run(self, db_session):
        report = await IngestionRunner(db_session, fetcher=FakeFetcher({})).run(IngestionRequest())
        assert report.status == "completed"
        assert report.total == 0


class TestSourceFetcher:
    """HTTP fetching through a mock transport."""

    @pytest.mark.anyio
    async def test_fetch_ok(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.headers["User-Agent"]
            return httpx.Response(200, text="<p>Art. 1</p>", headers={"content-type": "text/html"})

        document = await SourceFetcher(transport=httpx.MockTransport(handler)).fetch(CC_URL)
        assert document.is_html
        assert document.raw_content == "<p>Art. 1</p>"

    @pytest.mark.anyio
    async def test_fetch_http_error(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(404))
        with pytest.raises(FetchError) as exc_info:
            await SourceFetcher(transport=transport).fetch(CC_URL)
        assert "404" in exc_info.value.message

    @pytest.mark.anyio
    async def test_fetch_network_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(FetchError):
            await SourceFetcher(transport=httpx.MockTransport(handler)).fetch(CC_URL)


class TestHelpers:
    """Text extraction and instrument identity."""

    def test_html_to_text(self):
        html = (
            "<html><head><title>CC</title><style>p {}</style></head>"
            "<body><p>Art. 1</p><p>Texte&nbsp;légal</p><script>var a;</script></body></html>"
        )
        assert html_to_text(html) == "Art. 1\nTexte légal"

    def test_html_inline_reference_keeps_article_whole(self):
        html = (
            "<p>Art. 6</p>"
            "<p>1. Le mandataire applique l'<a href=\"#art_5\">art. 5</a> et respecte les délais fixés.</p>"
            "<p>2. Il rend compte de sa gestion <span>au mandant</span> chaque année.</p>"
        )
        text = html_to_text(html)
        assert text.splitlines()[1] == "1. Le mandataire applique l'art. 5 et respecte les délais fixés."

        units = parse(text, "test")
        assert [u.cite_key for u in units] == ["art. 6", "art. 6 al. 1", "art. 6 al. 2"]
        assert units[2].content_text == "Il rend compte de sa gestion au mandant chaque année."

    def test_html_line_breaks(self):
        assert html_to_text("<div>Art. 2<br/>Texte<sup>1</sup> suivant</div>") == "Art. 2\nTexte1 suivant"

    def test_plain_text_document(self):
        document = FetchedDocument(url=CC_URL, raw_content="  Art. 1\nTexte  ", content_type="text/plain")
        assert document_text(document) == "Art. 1\nTexte"

    def test_derive_instrument_uid(self):
        assert derive_instrument_uid(CC_URL) == "rs_210"
        assert derive_instrument_uid("https://laws.example.org/").startswith("manual_")

    def test_title_and_abbreviation(self):
        assert extract_title("\n\nCode civil suisse (CC)\nArt. 1", "fallback") == "Code civil suisse (CC)"
        assert extract_title("", "fallback") == "fallback"
        assert extract_abbreviation("Code civil suisse (CC)") == "CC"
        assert extract_abbreviation("Loi sans abréviation") is None
