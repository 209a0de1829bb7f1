from __future__ import annotations

from pathlib import Path

import streamlit as st

from common.config import yaml_config
from common.pacing import build_pacer
from ingestion.context_expander import ContextExpander
from ingestion.ingest_pipeline import ingest_paths
from models.llm import load_embeddings, load_local_llm
from vectorstore.chroma_store import ChromaStore, make_chroma_client


def render_ingest_section():
    st.subheader("Ingest Documents")
    st.write(
        "Upload internal documents. Each chunk is expanded with its surrounding "
        "context before it is indexed, so expect one model call per chunk."
    )

    uploaded_files = st.file_uploader(
        "Upload PDFs or text files",
        accept_multiple_files=True,
        type=["pdf", "txt", "md"],
    )
    reset = st.checkbox("Drop the collection first", value=False)

    if st.button("Run Ingestion", type="primary", disabled=not uploaded_files):
        with st.spinner("Expanding and indexing chunks..."):
            target_dir = Path(yaml_config.app.data_dir)
            target_dir.mkdir(parents=True, exist_ok=True)
            paths = []
            for f in uploaded_files or []:
                path = target_dir / f.name
                path.write_bytes(f.read())
                paths.append(path)

            exp_cfg = yaml_config.expansion
            expander = ContextExpander(
                load_local_llm("llm_expansion"),
                pacer=build_pacer(exp_cfg),
                neighbors=exp_cfg.neighbors,
                pace_after_last=exp_cfg.pace_after_last,
            )
            store = ChromaStore(load_embeddings(), client=make_chroma_client())
            summary = ingest_paths(paths, store=store, expander=expander, reset=reset)

        if summary.failures:
            for r in summary.failures:
                st.error(f"{r.path}: {r.error}")
        else:
            st.success(f"Ingestion complete! {summary.upserted} chunks indexed.")
        # cached chains keep a handle on the old collection after a reset
        st.session_state.pop("chat_chain", None)
