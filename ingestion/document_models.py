from dataclasses import dataclass, field
from typing import Any, Dict, List


@dataclass
class RawDoc:
    path: str  # identifier reported as the answer source
    text: str  # full extracted text, all pages
    metadata: Dict[str, Any]  # { "type": "pdf|text", "pages": ... }
    content_sha1: str


@dataclass(frozen=True)
class Chunk:
    text: str
    sequence_index: int  # 0-based, contiguous within one document
    source_path: str


@dataclass(frozen=True)
class EnrichedChunk:
    chunk_id: str  # stable per (path, chunk_index)
    text: str
    metadata: Dict[str, Any]  # always holds "path" and "chunk_index"
    content_sha1: str

    @property
    def path(self) -> str:
        return self.metadata["path"]


@dataclass(frozen=True)
class Neighborhood:
    previous: List[Chunk] = field(default_factory=list)
    next: List[Chunk] = field(default_factory=list)

    @property
    def previous_text(self) -> str:
        return "\n".join(c.text for c in self.previous)

    @property
    def next_text(self) -> str:
        return "\n".join(c.text for c in self.next)
