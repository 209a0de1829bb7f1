"""
Pytest configuration and shared fixtures.
"""

from __future__ import annotations

import uuid
from typing import List

import pytest

from ingestion.document_models import Chunk
from retrieval.retriever_factory import RetrievedMatch


@pytest.fixture
def make_chunks():
    def _make(texts: List[str], path: str = "doc.pdf") -> List[Chunk]:
        return [Chunk(text=t, sequence_index=i, source_path=path) for i, t in enumerate(texts)]

    return _make


@pytest.fixture
def policy_matches() -> List[RetrievedMatch]:
    return [
        RetrievedMatch("Employees get 25 days of vacation.", 0.81, {"path": "policy.pdf"}),
        RetrievedMatch("Vacation must be approved by a manager.", 0.62, {"path": "policy.pdf"}),
    ]


@pytest.fixture
def chroma_store():
    chromadb = pytest.importorskip("chromadb")
    from langchain_core.embeddings import DeterministicFakeEmbedding

    from vectorstore.chroma_store import ChromaStore

    return ChromaStore(
        DeterministicFakeEmbedding(size=32),
        collection_name=f"test_{uuid.uuid4().hex[:12]}",
        client=chromadb.EphemeralClient(),
    )
