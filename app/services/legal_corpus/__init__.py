"""
Legal Corpus
============

Versioned store of legal texts, split into citable units.

Architecture:
- Hashing: deterministic SHA-256 fingerprints for content and source sets
- Unit Parser: article / paragraph (alinéa) / letter segmentation
- Source Fetcher: HTTP download and HTML to text
- Corpus Store: instruments, versions, sources, units; keyword search
- Ingestion Runner: fetch -> hash -> parse -> persist, with a run ledger
- Legal Query: point-in-time lookups and citation resolution

Usage:
    from app.services.legal_corpus import IngestionRequest, run_ingestion

    report = await run_ingestion(db, IngestionRequest(
        fetch_mode="incremental",
        source_urls=["https://www.fedlex.admin.ch/eli/cc/24/233_245_233/fr"],
    ))
    print(report.to_dict()["stats"])
"""

from .hashing import hash_text, sha256_hex, source_set_hash
from .unit_parser import (
    ParsedUnit,
    UnitParser,
    UnitType,
    extract_keywords,
    parse,
)
from .fetcher import FetchedDocument, SourceFetcher, html_to_text
from .corpus_store import CorpusStore
from .ingestion import (
    IngestionReport,
    IngestionRequest,
    IngestionRunner,
    run_ingestion,
)
from .legal_query import LegalQueryService, normalize_cite_key

__all__ = [
    "hash_text",
    "sha256_hex",
    "source_set_hash",
    "ParsedUnit",
    "UnitParser",
    "UnitType",
    "extract_keywords",
    "parse",
    "FetchedDocument",
    "SourceFetcher",
    "html_to_text",
    "CorpusStore",
    "IngestionReport",
    "IngestionRequest",
    "IngestionRunner",
    "run_ingestion",
    "LegalQueryService",
    "normalize_cite_key",
]
