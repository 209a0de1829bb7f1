from __future__ import annotations

import argparse
from pathlib import Path

from common.config import yaml_config
from common.logger import get_logger
from common.pacing import build_pacer
from ingestion.context_expander import ContextExpander
from ingestion.ingest_pipeline import ingest_paths
from ingestion.loaders import discover_files
from models.llm import load_embeddings, load_local_llm
from vectorstore.chroma_store import ChromaStore, make_chroma_client

log = get_logger(__name__)


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Expand document chunks with their context and index them into Chroma."
    )
    parser.add_argument(
        "--input",
        type=str,
        default=str(yaml_config.app.data_dir),
        help="A PDF/TXT/MD file or a folder of them",
    )
    parser.add_argument(
        "--collection",
        type=str,
        default=yaml_config.app.collection,
        help="Chroma collection name",
    )
    parser.add_argument(
        "--reset", action="store_true", help="Drop the collection before indexing"
    )
    parser.add_argument(
        "--workers", type=int, default=1, help="Documents ingested in parallel"
    )
    args = parser.parse_args(argv)

    input_path = Path(args.input)
    if not input_path.exists():
        log.error("Input does not exist: %s", input_path)
        raise SystemExit(1)

    files = discover_files(input_path)
    log.info("Discovered %d files", len(files))
    if not files:
        log.warning("No documents found to ingest.")
        return

    exp_cfg = yaml_config.expansion
    expander = ContextExpander(
        load_local_llm("llm_expansion"),
        pacer=build_pacer(exp_cfg),
        neighbors=exp_cfg.neighbors,
        pace_after_last=exp_cfg.pace_after_last,
        show_progress=exp_cfg.show_progress,
    )
    store = ChromaStore(
        load_embeddings(), collection_name=args.collection, client=make_chroma_client()
    )

    summary = ingest_paths(
        files, store=store, expander=expander, reset=args.reset, max_workers=args.workers
    )
    for r in summary.failures:
        log.error("FAILED %s: %s", r.path, r.error)
    if summary.failures:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
