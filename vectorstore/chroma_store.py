from __future__ import annotations

from pathlib import Path
from typing import AbstractSet, Any, Dict, Iterable, List, Optional, Tuple

from langchain_chroma.vectorstores import Chroma
from langchain_core.embeddings import Embeddings
from tenacity import Retrying, stop_after_attempt, wait_exponential

from common.config import endpoints, yaml_config
from common.exceptions import EmbeddingError, StoreError
from common.logger import get_logger
from ingestion.document_models import EnrichedChunk

log = get_logger(__name__)

# (content, metadata, relevance score in [0, 1])
ScoredText = Tuple[str, Dict[str, Any], float]


def make_chroma_client():
    """
    HTTP client when a Chroma server is configured, otherwise None so the
    store falls back to the local persistent directory.
    """
    host = endpoints.chroma_host or yaml_config.vectorstore.chroma_host
    if not host:
        return None
    import chromadb

    port = endpoints.chroma_port or yaml_config.vectorstore.chroma_port
    return chromadb.HttpClient(host=host, port=port)


class ChromaStore:
    def __init__(
        self,
        embeddings: Embeddings,
        collection_name: str | None = None,
        persist_dir: Path | str | None = None,
        client=None,
        upsert_attempts: int | None = None,
    ):
        """
        Wrapper for a Chroma collection with an injected embedding model.
        Embedding and storage are separate steps so their failures are reported
        as EmbeddingError and StoreError respectively.
        """
        self.collection_name = collection_name or yaml_config.app.collection
        self.embeddings = embeddings
        self.upsert_attempts = upsert_attempts or yaml_config.vectorstore.upsert_attempts
        kwargs: Dict[str, Any] = {}
        if client is not None:
            kwargs["client"] = client
        else:
            kwargs["persist_directory"] = str(persist_dir or yaml_config.app.persist_dir)
        try:
            self._db = Chroma(
                collection_name=self.collection_name,
                embedding_function=embeddings,
                collection_metadata={"hnsw:space": "cosine"},
                **kwargs,
            )
        except Exception as e:
            raise StoreError(
                "Cannot open vector store collection",
                cause=e,
                context={"collection": self.collection_name},
            ) from e

    @property
    def db(self) -> Chroma:
        return self._db

    def _embed(self, texts: List[str]) -> List[List[float]]:
        try:
            return self.embeddings.embed_documents(texts)
        except Exception as e:
            raise EmbeddingError(
                "Embedding call failed",
                cause=e,
                context={"collection": self.collection_name, "count": len(texts)},
            ) from e

    def upsert_chunks(self, chunks: Iterable[EnrichedChunk]) -> int:
        """
        Embed and upsert enriched chunks. Ids are deterministic per
        (path, chunk_index), so re-running a document overwrites its chunks.
        Writes already committed are not rolled back on failure.
        """
        chunks = list(chunks)
        if not chunks:
            return 0

        ids = [c.chunk_id for c in chunks]
        texts = [c.text for c in chunks]
        metadatas = [c.metadata | {"content_sha1": c.content_sha1} for c in chunks]
        vectors = self._embed(texts)

        try:
            for attempt in Retrying(
                stop=stop_after_attempt(self.upsert_attempts),
                wait=wait_exponential(multiplier=1, min=1, max=8),
                reraise=True,
            ):
                with attempt:
                    self._db._collection.upsert(
                        ids=ids, embeddings=vectors, documents=texts, metadatas=metadatas
                    )
        except Exception as e:
            raise StoreError(
                "Vector store upsert failed",
                cause=e,
                context={"collection": self.collection_name, "count": len(ids)},
            ) from e

        log.info(
            "Upserted %d chunks into collection '%s'", len(ids), self.collection_name
        )
        return len(ids)

    def delete_by_path(self, path: str, keep_ids: AbstractSet[str] = frozenset()) -> int:
        """
        Delete the chunks whose metadata.path matches the given document,
        except those in keep_ids.
        """
        try:
            ids = [
                i
                for i in self._db.get(where={"path": path}).get("ids", [])
                if i not in keep_ids
            ]
            if ids:
                self._db.delete(ids=ids)
        except Exception as e:
            raise StoreError(
                "Vector store delete failed",
                cause=e,
                context={"collection": self.collection_name, "path": path},
            ) from e
        if ids:
            log.info("Deleted %d chunks for document '%s'", len(ids), path)
        return len(ids)

    def reset_collection(self) -> None:
        try:
            self._db.reset_collection()
        except Exception as e:
            raise StoreError(
                "Vector store reset failed",
                cause=e,
                context={"collection": self.collection_name},
            ) from e
        log.info("Reset collection '%s'", self.collection_name)

    def count(self) -> int:
        return self._db._collection.count()

    def search(
        self, query: str, k: int, where: Optional[Dict[str, Any]] = None
    ) -> List[ScoredText]:
        """
        Top-k similarity search, best first. Scores are cosine relevance
        (1 - cosine distance) clamped to [0, 1].
        """
        try:
            vector = self.embeddings.embed_query(query)
        except Exception as e:
            raise EmbeddingError(
                "Query embedding failed",
                cause=e,
                context={"collection": self.collection_name},
            ) from e

        try:
            results = self._db.similarity_search_by_vector_with_relevance_scores(
                embedding=vector, k=k, filter=where
            )
        except Exception as e:
            raise StoreError(
                "Vector store query failed",
                cause=e,
                context={"collection": self.collection_name, "k": k},
            ) from e

        out: List[ScoredText] = []
        for doc, distance in results:
            score = min(1.0, max(0.0, 1.0 - float(distance)))
            out.append((doc.page_content, dict(doc.metadata or {}), score))
        out.sort(key=lambda r: r[2], reverse=True)
        return out
