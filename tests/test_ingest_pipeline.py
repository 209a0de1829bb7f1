import orjson
import pytest

import ingestion.ingest_pipeline as ingest_pipeline
from common.config import yaml_config
from common.exceptions import ExpansionError, SourceError
from ingestion.context_expander import ContextExpander
from ingestion.ingest_pipeline import ingest_document, ingest_paths
from tests.fakes import ScriptedChatModel

POLICY_TEXT = (
    "Employees get twenty five days of paid vacation every year.\n\n"
    "Vacation requests must be approved by the direct manager.\n\n"
    "Unused days can be carried over until the end of March.\n\n"
    "Remote work is allowed two days per week."
)


class RecordingStore:
    collection_name = "test_docs"

    def __init__(self):
        self.upserts = []
        self.deleted = []
        self.resets = 0

    def upsert_chunks(self, chunks):
        self.upserts.append(list(chunks))
        return len(chunks)

    def delete_by_path(self, path, keep_ids=frozenset()):
        self.deleted.append((path, set(keep_ids)))

    def reset_collection(self):
        self.resets += 1


@pytest.fixture(autouse=True)
def small_chunks(monkeypatch, tmp_path):
    monkeypatch.setattr(yaml_config.chunking, "max_tokens", 16)
    monkeypatch.setattr(yaml_config.chunking, "mode", "token")
    monkeypatch.setattr(yaml_config.app, "cache_dir", tmp_path / "cache")


@pytest.fixture
def policy_file(tmp_path):
    path = tmp_path / "policy.txt"
    path.write_text(POLICY_TEXT, encoding="utf-8")
    return path


def _expander(**kwargs) -> ContextExpander:
    llm = ScriptedChatModel(responses=[f"expanded chunk number {i}" for i in range(100)], **kwargs)
    return ContextExpander(llm, neighbors=2)


def test_document_is_chunked_expanded_and_upserted(policy_file):
    store = RecordingStore()
    report = ingest_document(policy_file, store=store, expander=_expander())

    assert report.ok
    assert report.chunks > 1
    assert report.upserted == report.chunks
    indexed = store.upserts[0]
    assert [c.metadata["chunk_index"] for c in indexed] == list(range(report.chunks))
    assert {c.metadata["path"] for c in indexed} == {str(policy_file)}
    assert indexed[0].text == "expanded chunk number 0"
    # upsert policy prunes everything but the freshly written ids
    assert store.deleted == [(str(policy_file), {c.chunk_id for c in indexed})]


def test_identical_expansions_are_deduplicated(policy_file):
    store = RecordingStore()
    expander = ContextExpander(ScriptedChatModel(responses=["same text"]), neighbors=1)

    report = ingest_document(policy_file, store=store, expander=expander)

    assert report.chunks > 1
    assert report.upserted == 1


def test_replace_document_policy_deletes_old_chunks(policy_file):
    store = RecordingStore()
    ingest_document(
        policy_file, store=store, expander=_expander(), reindex_policy="replace_document"
    )
    assert store.deleted == [(str(policy_file), set())]


def test_empty_document_indexes_nothing(tmp_path):
    empty = tmp_path / "empty.md"
    empty.write_text("   \n\n  ", encoding="utf-8")
    store = RecordingStore()

    report = ingest_document(empty, store=store, expander=_expander())

    assert report.ok
    assert report.chunks == 0
    assert store.upserts == []
    assert store.deleted == [(str(empty), set())]


def test_missing_document_raises_source_error(tmp_path):
    with pytest.raises(SourceError):
        ingest_document(tmp_path / "nope.txt", store=RecordingStore(), expander=_expander())


def test_failing_document_does_not_stop_the_others(policy_file, tmp_path):
    store = RecordingStore()
    missing = tmp_path / "missing.txt"

    summary = ingest_paths([missing, policy_file], store=store, expander=_expander())

    assert len(summary.reports) == 2
    assert len(summary.failures) == 1
    failed = summary.failures[0]
    assert failed.path == str(missing)
    assert isinstance(failed.error, SourceError)
    assert summary.upserted == summary.reports[1].chunks


def test_expansion_failure_names_the_chunk(policy_file):
    store = RecordingStore()
    summary = ingest_paths([policy_file], store=store, expander=_expander(fail_at=1))

    error = summary.failures[0].error
    assert isinstance(error, ExpansionError)
    assert error.chunk_index == 1
    assert error.path == str(policy_file)
    assert store.upserts == []


def test_reset_drops_collection_first(policy_file):
    store = RecordingStore()
    ingest_paths([policy_file], store=store, expander=_expander(), reset=True)
    assert store.resets == 1


def test_parallel_workers_ingest_every_document(tmp_path):
    paths = []
    for name in ("a.txt", "b.txt", "c.txt"):
        p = tmp_path / name
        p.write_text(f"{name} says hello.\n\nSecond paragraph of {name}.", encoding="utf-8")
        paths.append(p)
    store = RecordingStore()

    summary = ingest_paths(paths, store=store, expander=_expander(), max_workers=3)

    assert not summary.failures
    assert [r.path for r in summary.reports] == [str(p) for p in paths]


def test_manifest_records_indexed_chunks(policy_file):
    summary = ingest_paths([policy_file], store=RecordingStore(), expander=_expander())

    manifest_path = yaml_config.app.cache_dir / "manifest_test_docs.json"
    manifest = orjson.loads(manifest_path.read_bytes())
    doc = manifest["documents"][0]
    assert manifest["collection"] == "test_docs"
    assert doc["path"] == str(policy_file)
    assert doc["error"] is None
    assert len(doc["indexed"]) == summary.reports[0].upserted
    assert doc["indexed"][0]["chunk_index"] == 0


def test_document_quoting_special_tokens_is_indexed(tmp_path):
    doc = tmp_path / "tokenizer_notes.txt"
    doc.write_text(
        "The GPT end marker is <|endoftext|> in docs.\n\nIt separates exported chats.",
        encoding="utf-8",
    )
    store = RecordingStore()

    summary = ingest_paths([doc], store=store, expander=_expander())

    assert not summary.failures
    assert summary.upserted == summary.reports[0].chunks > 0


def test_unexpected_error_is_reported_for_that_document_only(
    policy_file, tmp_path, monkeypatch
):
    bad = tmp_path / "bad.txt"
    bad.write_text("This document breaks the chunker.", encoding="utf-8")
    real_chunk_document = ingest_pipeline.chunk_document

    def flaky_chunk_document(doc):
        if doc.path == str(bad):
            raise ValueError("tokenizer exploded")
        return real_chunk_document(doc)

    monkeypatch.setattr(ingest_pipeline, "chunk_document", flaky_chunk_document)

    summary = ingest_paths([bad, policy_file], store=RecordingStore(), expander=_expander())

    assert [r.ok for r in summary.reports] == [False, True]
    error = summary.reports[0].error
    assert isinstance(error, SourceError)
    assert error.context == {"path": str(bad)}
    assert isinstance(error.cause, ValueError)
    manifest_path = yaml_config.app.cache_dir / "manifest_test_docs.json"
    assert manifest_path.exists()


def _indexed_ids(store, path):
    return set(store.db.get(where={"path": str(path)})["ids"])


def test_reingesting_shorter_document_removes_stale_chunks(policy_file, chroma_store):
    first = ingest_document(
        policy_file, store=chroma_store, expander=_expander(), reindex_policy="upsert"
    )
    assert first.upserted > 1
    assert chroma_store.count() == first.upserted

    policy_file.write_text("Remote work is allowed two days per week.", encoding="utf-8")
    second = ingest_document(
        policy_file, store=chroma_store, expander=_expander(), reindex_policy="upsert"
    )

    assert second.upserted == 1
    assert chroma_store.count() == 1
    assert _indexed_ids(chroma_store, policy_file) == {c.chunk_id for c in second.indexed}


def test_reingest_drops_chunks_removed_by_dedup(policy_file, chroma_store):
    first = ingest_document(
        policy_file, store=chroma_store, expander=_expander(), reindex_policy="upsert"
    )
    assert first.upserted > 1

    same_text = ContextExpander(ScriptedChatModel(responses=["same text"]), neighbors=1)
    second = ingest_document(
        policy_file, store=chroma_store, expander=same_text, reindex_policy="upsert"
    )

    assert second.upserted == 1
    assert chroma_store.count() == 1
    hits = chroma_store.search("same text", k=5)
    assert [text for text, _, _ in hits] == ["same text"]
