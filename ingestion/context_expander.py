from __future__ import annotations

from typing import List, Sequence

from langchain_core.language_models import BaseLanguageModel
from langchain_core.output_parsers import StrOutputParser
from tqdm import tqdm

from chains.prompts import EXPANSION_TEMPLATE
from common.exceptions import ExpansionError
from common.logger import get_logger
from common.pacing import NoPacer, Pacer
from ingestion.document_models import Chunk, EnrichedChunk, Neighborhood
from ingestion.hash_utils import make_chunk_id, sha1_text

log = get_logger(__name__)


def neighborhood(chunks: Sequence[Chunk], index: int, k: int) -> Neighborhood:
    """
    Previous k and next k chunks around chunks[index], truncated at the
    document boundaries.
    """
    if not 0 <= index < len(chunks):
        raise IndexError(f"chunk index {index} out of range for {len(chunks)} chunks")
    return Neighborhood(
        previous=list(chunks[max(0, index - k) : index]),
        next=list(chunks[index + 1 : min(len(chunks), index + 1 + k)]),
    )


class ContextExpander:
    """
    Rewrites each chunk of one document into a self-contained chunk using its
    neighborhood, one model call at a time.

    Neighbors are always read from the original, unexpanded chunks.
    """

    def __init__(
        self,
        llm: BaseLanguageModel,
        pacer: Pacer | None = None,
        neighbors: int = 2,
        pace_after_last: bool = False,
        show_progress: bool = False,
    ):
        if neighbors < 0:
            raise ValueError("neighbors must be >= 0")
        self.chain = EXPANSION_TEMPLATE | llm | StrOutputParser()
        self.pacer = pacer or NoPacer()
        self.neighbors = neighbors
        self.pace_after_last = pace_after_last
        self.show_progress = show_progress

    def expand_one(
        self, chunks: Sequence[Chunk], index: int, document_path: str
    ) -> EnrichedChunk:
        hood = neighborhood(chunks, index, self.neighbors)
        chunk = chunks[index]
        try:
            text = self.chain.invoke(
                {
                    "previous_chunks": hood.previous_text,
                    "input": chunk.text,
                    "next_chunks": hood.next_text,
                }
            )
        except Exception as e:
            log.error(
                "Expansion failed for %s chunk %d: %s", document_path, index, e
            )
            raise ExpansionError(
                "Context expansion failed", path=document_path, chunk_index=index, cause=e
            ) from e

        text = text.strip()
        return EnrichedChunk(
            chunk_id=make_chunk_id(document_path, chunk.sequence_index),
            text=text,
            metadata={"path": document_path, "chunk_index": chunk.sequence_index},
            content_sha1=sha1_text(text),
        )

    def expand(self, chunks: Sequence[Chunk], document_path: str) -> List[EnrichedChunk]:
        """
        Expand every chunk of a document in order. Any failure aborts the
        whole document with an ExpansionError naming the failing chunk.
        """
        chunks = list(chunks)
        foreign = {c.source_path for c in chunks if c.source_path and c.source_path != document_path}
        if foreign:
            raise ValueError(f"Chunks from other documents passed for {document_path}: {sorted(foreign)}")

        out: List[EnrichedChunk] = []
        indices = range(len(chunks))
        iterator = (
            tqdm(indices, desc=f"Expanding chunks ({document_path})", unit="chunk")
            if self.show_progress
            else indices
        )
        for i in iterator:
            out.append(self.expand_one(chunks, i, document_path))
            if i < len(chunks) - 1 or self.pace_after_last:
                self.pacer.wait()
        log.info("Expanded %d chunks for %s", len(out), document_path)
        return out
