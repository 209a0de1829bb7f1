from __future__ import annotations

from pathlib import Path
from typing import List

from pypdf import PdfReader
from pypdf.errors import PdfReadError

from common.config import yaml_config
from common.exceptions import SourceError
from common.logger import get_logger
from ingestion.cleaners import normalize_text
from ingestion.document_models import RawDoc
from ingestion.hash_utils import sha1_text

log = get_logger(__name__)


def discover_files(root: Path) -> List[Path]:
    """
    Find all supported files under root (or root itself if it is a file).
    Supported extensions come from the app section of the config.
    """
    allowed_exts = tuple(e.lower() for e in yaml_config.app.allowed_exts)
    root = Path(root)
    if root.is_file():
        return [root] if root.suffix.lower() in allowed_exts else []
    paths: List[Path] = []
    for p in root.rglob("*"):
        if p.is_file() and p.suffix.lower() in allowed_exts:
            paths.append(p)
    return sorted(paths)


def load_document(path: Path) -> RawDoc:
    """Load one local file (.pdf, .txt, .md) as a single document."""
    path = Path(path)
    ext = path.suffix.lower()
    if not path.is_file():
        raise SourceError("Document not found", context={"path": str(path)})
    if ext == ".pdf":
        return _load_pdf(path)
    if ext in (".txt", ".md"):
        return _load_text_file(path)
    raise SourceError("Unsupported document type", context={"path": str(path)})


def _load_text_file(path: Path) -> RawDoc:
    try:
        txt = path.read_text(encoding="utf-8", errors="ignore")
    except OSError as e:
        raise SourceError("Cannot read document", cause=e, context={"path": str(path)}) from e
    txt = normalize_text(txt)
    return RawDoc(
        path=str(path),
        text=txt,
        metadata={"type": "text"},
        content_sha1=sha1_text(txt),
    )


def _load_pdf(path: Path) -> RawDoc:
    try:
        reader = PdfReader(str(path))
        pages = reader.pages
        # Limit by config if set, else all pages
        max_pages = yaml_config.app.max_pdf_pages or len(pages)
        texts = [page.extract_text() or "" for page in pages[:max_pages]]
    except (OSError, PdfReadError) as e:
        raise SourceError("Cannot extract PDF text", cause=e, context={"path": str(path)}) from e

    # Pages are joined so chunk neighborhoods can cross page breaks.
    text = "\n".join(normalize_text(t) for t in texts if t.strip())
    log.info("Extracted %d pages from %s", len(texts), path)
    return RawDoc(
        path=str(path),
        text=text,
        metadata={"type": "pdf", "pages": len(texts)},
        content_sha1=sha1_text(text),
    )
