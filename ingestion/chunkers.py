from __future__ import annotations

from functools import lru_cache
from typing import List

import tiktoken
from langchain_text_splitters import RecursiveCharacterTextSplitter, TokenTextSplitter

from common.config import yaml_config
from ingestion.document_models import Chunk, RawDoc

# Natural breakpoints, coarsest first; "" is the strict character fallback.
SEPARATORS = ["\n\n", "\n", ". ", " ", ""]


@lru_cache(maxsize=None)
def _encoding(name: str) -> tiktoken.Encoding:
    return tiktoken.get_encoding(name)


def count_tokens(text: str, encoding: str | None = None) -> int:
    # documents may quote special tokens such as <|endoftext|>; count them as text
    return len(
        _encoding(encoding or yaml_config.chunking.encoding).encode(text, disallowed_special=())
    )


def chunk_document(doc: RawDoc) -> List[Chunk]:
    """
    Split one loaded document according to the configured chunking mode.
    """
    cfg = yaml_config.chunking
    return chunk_text(
        doc.text,
        max_tokens=cfg.max_tokens,
        source_path=doc.path,
        mode=cfg.mode,
        encoding=cfg.encoding,
    )


def chunk_text(
    text: str,
    max_tokens: int,
    source_path: str = "",
    mode: str = "token",
    encoding: str = "cl100k_base",
) -> List[Chunk]:
    """
    Split text into ordered chunks of at most max_tokens tokens each.
    Empty text yields no chunks.
    """
    if max_tokens <= 0:
        raise ValueError(f"max_tokens must be positive, got {max_tokens}")
    if not text or not text.strip():
        return []

    if mode == "sentence":
        pieces = _sentence_pieces(text, max_tokens, encoding)
    else:
        pieces = _recursive_pieces(text, max_tokens, encoding)

    pieces = _enforce_budget(pieces, max_tokens, encoding)
    return [
        Chunk(text=piece, sequence_index=i, source_path=source_path)
        for i, piece in enumerate(pieces)
    ]


def _recursive_pieces(text: str, max_tokens: int, encoding: str) -> List[str]:
    """
    Token-measured RecursiveCharacterTextSplitter: prefers paragraph, line and
    sentence boundaries before falling back to words and characters.
    """
    splitter = RecursiveCharacterTextSplitter.from_tiktoken_encoder(
        encoding_name=encoding,
        chunk_size=max_tokens,
        chunk_overlap=0,
        separators=SEPARATORS,
        keep_separator="end",
        disallowed_special=(),
    )
    return [p for p in splitter.split_text(text) if p.strip()]


def _sentence_pieces(text: str, max_tokens: int, encoding: str) -> List[str]:
    """
    Pack nltk sentences into chunks until the token budget is reached.
    """
    from nltk.tokenize import sent_tokenize

    _ensure_punkt()
    out: List[str] = []
    buf: List[str] = []
    for s in sent_tokenize(text):
        candidate = " ".join(buf + [s])
        if buf and count_tokens(candidate, encoding) > max_tokens:
            out.append(" ".join(buf))
            buf = [s]
        else:
            buf.append(s)
    # flush last buffer
    if buf:
        out.append(" ".join(buf))
    return out


def _enforce_budget(pieces: List[str], max_tokens: int, encoding: str) -> List[str]:
    """
    Token counts are not additive across merged splits, so re-cut any piece
    that ended up over budget with a strict token splitter.
    """
    strict = TokenTextSplitter(
        encoding_name=encoding,
        chunk_size=max_tokens,
        chunk_overlap=0,
        disallowed_special=(),
    )
    out: List[str] = []
    for piece in pieces:
        if count_tokens(piece, encoding) <= max_tokens:
            out.append(piece)
        else:
            out.extend(p for p in strict.split_text(piece) if p.strip())
    return out


def _ensure_punkt() -> None:
    import nltk

    for resource in ("punkt", "punkt_tab"):
        try:
            nltk.data.find(f"tokenizers/{resource}")
        except LookupError:
            nltk.download(resource, quiet=True)
