"""CLI command for incremental XPath record extraction with JSON output."""

from __future__ import annotations

import argparse
from dataclasses import replace
import hashlib
import json
import logging
from pathlib import Path

from dotenv import load_dotenv

from xpathfeed.extraction.config import ExtractorSettings, load_context_config
from xpathfeed.extraction.engine import CollectingSink
from xpathfeed.extraction.errors import ConfigurationError, ExtractionError
from xpathfeed.extraction.models import Dialect, DocumentSource, ExtractedRecord
from xpathfeed.extraction.pipeline import ExtractionPipeline
from xpathfeed.extraction.validation import ensure_valid
from xpathfeed.state.progress import SqliteProgressStore

logger = logging.getLogger(__name__)

_HTML_SUFFIXES = {".html", ".htm", ".xhtml"}


def _infer_dialect(path: Path, explicit: str | None) -> Dialect:
    if explicit:
        return Dialect(explicit)
    return Dialect.HTML if path.suffix.lower() in _HTML_SUFFIXES else Dialect.XML


def fingerprint_source(raw: bytes) -> str:
    """Document identity: a changed payload is a new document with a new cursor."""

    return hashlib.sha256(raw).hexdigest()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Extract records from an XML/HTML document with XPath queries")
    parser.add_argument("--path", required=True, help="Source document")
    parser.add_argument("--config", required=True, help="JSON extraction config (context + fields)")
    parser.add_argument("--dialect", choices=[dialect.value for dialect in Dialect], default=None)
    parser.add_argument("--source-id", default=None, help="Cursor key; defaults to the content hash")
    parser.add_argument("--state-db", default=None, help="SQLite file holding pagination cursors")
    parser.add_argument("--batch-size", type=int, default=None, help="Context nodes per invocation")
    parser.add_argument("--all", action="store_true", help="Keep extracting until the document is exhausted")
    parser.add_argument("--restart", action="store_true", help="Discard the stored cursor first")
    parser.add_argument("--repair", action="store_true", help="Repair markup before parsing")
    parser.add_argument("--encoding", default=None, help="Declared document encoding")
    parser.add_argument("--show-errors", action="store_true", help="Report query diagnostics")
    parser.add_argument("--debug", action="append", default=[], help="Field key (or 'context') to debug")
    return parser


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    logging.basicConfig(format="%(asctime)s - %(name)s - %(levelname)s - %(message)s", level=logging.WARNING)
    args = _build_parser().parse_args(argv)

    source_path = Path(args.path)
    try:
        settings = ExtractorSettings.from_env()
        config = load_context_config(
            args.config,
            batch_size=args.batch_size,
            default_batch_size=settings.batch_size,
        )
        config = replace(
            config,
            show_errors=config.show_errors or settings.show_errors or args.show_errors,
            debug_keys=config.debug_keys | frozenset(args.debug),
        )
        ensure_valid(config)
    except ConfigurationError as exc:
        print(json.dumps({"path": str(source_path), "errors": [str(exc)]}, ensure_ascii=False, indent=2))
        return 2

    try:
        raw = source_path.read_bytes()
    except OSError as exc:
        print(json.dumps({"path": str(source_path), "errors": [f"Failed to read source file: {exc}"]}, indent=2))
        return 1

    source = DocumentSource(
        raw=raw,
        dialect=_infer_dialect(source_path, args.dialect),
        source_id=args.source_id or fingerprint_source(raw),
        link=str(source_path),
        repair=args.repair,
        encoding=args.encoding,
    )
    state_db = Path(args.state_db) if args.state_db else settings.state_db_path

    sink = CollectingSink()
    pipeline = ExtractionPipeline(config, sink=sink)
    records: list[ExtractedRecord] = []
    errors: list[str] = []
    total = pointer = skipped = batches = 0

    with SqliteProgressStore(state_db, source.source_id) as store:
        if args.restart:
            store.reset()
        while True:
            try:
                batch = pipeline.extract(source, store)
            except ExtractionError as exc:
                logger.error("Extraction failed for %s: %s", source_path, exc)
                errors.append(str(exc))
                break
            batches += 1
            records.extend(batch.records)
            total, pointer, skipped = batch.total, batch.pointer, skipped + batch.skipped
            if not args.all or batch.is_complete:
                break

    payload = {
        "path": str(source_path),
        "source_id": source.source_id,
        "dialect": source.dialect.value,
        "batches": batches,
        "total": total,
        "pointer": pointer,
        "complete": batches > 0 and pointer >= total,
        "skipped": skipped,
        "unique": config.unique_targets,
        "records": records,
        "messages": sink.to_list(),
        "errors": errors,
    }
    print(json.dumps(payload, ensure_ascii=False, indent=2))
    return 0 if not errors else 1


if __name__ == "__main__":
    raise SystemExit(main())
