from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

import orjson

from common.config import yaml_config
from common.exceptions import DocChatError, SourceError
from common.logger import get_logger
from ingestion.chunkers import chunk_document
from ingestion.context_expander import ContextExpander
from ingestion.document_models import EnrichedChunk
from ingestion.loaders import load_document
from vectorstore.chroma_store import ChromaStore

log = get_logger(__name__)


@dataclass
class IngestReport:
    path: str
    chunks: int = 0
    upserted: int = 0
    indexed: List[EnrichedChunk] = field(default_factory=list)
    error: Optional[DocChatError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class IngestSummary:
    reports: List[IngestReport] = field(default_factory=list)

    @property
    def failures(self) -> List[IngestReport]:
        return [r for r in self.reports if not r.ok]

    @property
    def upserted(self) -> int:
        return sum(r.upserted for r in self.reports)


def _dedup_chunks(chunks: Iterable[EnrichedChunk]) -> List[EnrichedChunk]:
    """
    Remove enriched chunks whose text duplicates an earlier one.
    """
    seen = set()
    uniq: List[EnrichedChunk] = []
    for c in chunks:
        if c.content_sha1 not in seen:
            uniq.append(c)
            seen.add(c.content_sha1)
    return uniq


def ingest_document(
    path: Path | str,
    *,
    store: ChromaStore,
    expander: ContextExpander,
    reindex_policy: str | None = None,
) -> IngestReport:
    """
    Load, chunk, expand and index one document.

    Errors propagate with the document path (and chunk index for expansion
    failures); chunks already written stay in the store.

    Under the upsert policy, chunks left over from an earlier, longer version
    of the document are deleted once the new chunks are written.
    """
    policy = reindex_policy or yaml_config.vectorstore.reindex_policy
    doc = load_document(Path(path))
    report = IngestReport(path=doc.path)

    chunks = chunk_document(doc)
    report.chunks = len(chunks)
    if not chunks:
        log.warning("No text extracted from %s, nothing to index", doc.path)
        store.delete_by_path(doc.path)
        return report
    log.info("Split %s into %d chunks", doc.path, len(chunks))

    enriched = _dedup_chunks(expander.expand(chunks, doc.path))

    if policy == "replace_document":
        store.delete_by_path(doc.path)
    report.upserted = store.upsert_chunks(enriched)
    if policy == "upsert":
        store.delete_by_path(doc.path, keep_ids={c.chunk_id for c in enriched})
    report.indexed = enriched
    return report


def ingest_paths(
    paths: Sequence[Path | str],
    *,
    store: ChromaStore,
    expander: ContextExpander,
    reset: bool = False,
    max_workers: int = 1,
    write_manifest: bool = True,
) -> IngestSummary:
    """
    Ingest documents independently. A failing document is reported and
    skipped; the others still complete. With max_workers > 1 documents run in
    a bounded thread pool; chunks within a document stay sequential.
    """
    if reset:
        store.reset_collection()

    def _run(p: Path | str) -> IngestReport:
        try:
            return ingest_document(p, store=store, expander=expander)
        except DocChatError as e:
            log.error("Ingestion of %s aborted: %s", p, e)
            return IngestReport(path=str(p), error=e)
        except Exception as e:
            log.exception("Unexpected failure while ingesting %s", p)
            error = SourceError(
                "Document could not be processed", cause=e, context={"path": str(p)}
            )
            return IngestReport(path=str(p), error=error)

    if max_workers > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            reports = list(pool.map(_run, paths))
    else:
        reports = [_run(p) for p in paths]

    summary = IngestSummary(reports=reports)
    log.info(
        "Ingest complete: %d chunks upserted into '%s', %d/%d documents failed",
        summary.upserted,
        store.collection_name,
        len(summary.failures),
        len(reports),
    )
    if write_manifest:
        _write_manifest(summary, store.collection_name)
    return summary


def _write_manifest(summary: IngestSummary, collection_name: str) -> Path:
    """Write an audit manifest of the indexed chunks."""
    manifest = {
        "collection": collection_name,
        "documents": [
            {
                "path": r.path,
                "chunks": r.chunks,
                "upserted": r.upserted,
                "error": r.error.to_dict() if r.error else None,
                "indexed": [
                    {
                        "chunk_id": c.chunk_id,
                        "chunk_index": c.metadata.get("chunk_index"),
                        "sha1": c.content_sha1,
                        "len": len(c.text),
                    }
                    for c in r.indexed
                ],
            }
            for r in summary.reports
        ],
    }
    out = yaml_config.app.cache_dir / f"manifest_{collection_name}.json"
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_bytes(orjson.dumps(manifest, option=orjson.OPT_INDENT_2))
    log.info("Wrote manifest to %s", out)
    return out
