import hashlib


def sha1_text(s: str) -> str:
    return hashlib.sha1(s.encode("utf-8")).hexdigest()


def make_chunk_id(path: str, chunk_index: int) -> str:
    """Deterministic id so re-ingesting a document overwrites its chunks."""
    return sha1_text(f"{path}::{chunk_index}")
