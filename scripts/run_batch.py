"""
Run one LegalWatch batch from the command line.

    python scripts/run_batch.py ingest --mode incremental --jurisdiction CH
    python scripts/run_batch.py ingest --url https://www.fedlex.admin.ch/eli/cc/24/233_245_233/fr
    python scripts/run_batch.py analyze --batch-size 10 --min-confidence 50

Prints the JSON envelope the HTTP trigger would return.
"""

import argparse
import asyncio
import json
import sys
sys.path.insert(0, ".")

from app.core.config import get_settings
from app.core.database import close_db, get_db_session, init_db
from app.core.errors import ConfigurationError
from app.core.logging_config import setup_logging
from app.services.detection import run_analysis_batch
from app.services.legal_corpus import IngestionRequest, run_ingestion


async def ingest(args) -> dict:
    request = IngestionRequest(
        fetch_mode=args.mode,
        jurisdiction_scope=args.jurisdiction,
        source_urls=args.url or None,
        domain_filter=args.domain or None,
    )
    async with get_db_session() as db:
        report = await run_ingestion(db, request)
    return report.to_dict()


async def analyze(args) -> dict:
    async with get_db_session() as db:
        report = await run_analysis_batch(db, args.batch_size, args.min_confidence)
    return report.to_dict()


async def main(args) -> int:
    await init_db()
    try:
        if args.command == "ingest":
            result = await ingest(args)
        else:
            result = await analyze(args)
    except ConfigurationError as e:
        print(f"⚠️ {e.message}", file=sys.stderr)
        return 2
    finally:
        await close_db()

    print(json.dumps(result, indent=2, ensure_ascii=False))
    return 0


def parse_args(argv=None):
    settings = get_settings()
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    commands = parser.add_subparsers(dest="command", required=True)

    ingest_parser = commands.add_parser("ingest", help="Run a legal corpus ingestion pass")
    ingest_parser.add_argument("--mode", choices=["full", "incremental"], default="incremental")
    ingest_parser.add_argument("--jurisdiction", default="ALL")
    ingest_parser.add_argument("--url", action="append", help="Explicit source URL (repeatable)")
    ingest_parser.add_argument("--domain", action="append", help="Catalog domain tag filter (repeatable)")

    analyze_parser = commands.add_parser("analyze", help="Run a detection batch")
    analyze_parser.add_argument("--batch-size", type=int, default=settings.analysis_batch_size)
    analyze_parser.add_argument("--min-confidence", type=int, default=settings.analysis_min_confidence)

    return parser.parse_args(argv)


if __name__ == "__main__":
    settings = get_settings()
    setup_logging(level=settings.log_level.upper(), json_format=settings.log_json_format)
    sys.exit(asyncio.run(main(parse_args())))
