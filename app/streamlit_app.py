from __future__ import annotations

import streamlit as st
from components.chat_section import render_chat_section
from components.ingest_section import render_ingest_section

from common.config import yaml_config

st.set_page_config(page_title="Document Assistant", layout="wide")

st.markdown(
    """
    <style>
    .big-title { font-size:2rem; font-weight:700; margin-bottom:1rem; }
    </style>
    """,
    unsafe_allow_html=True,
)

st.markdown(
    "<p class='big-title'>Internal Document Assistant</p>",
    unsafe_allow_html=True,
)
st.caption("Context-expanded RAG over internal policies | Local & Private")

# --- Sidebar ---
st.sidebar.title("Settings")
st.sidebar.markdown("**Active collection:**")
st.sidebar.text(yaml_config.app.collection)
st.sidebar.divider()

k = st.sidebar.slider("Top-k Chunks", 1, 10, yaml_config.retrieval.k)
score_threshold = st.sidebar.slider(
    "Score threshold", 0.0, 1.0, yaml_config.retrieval.score_threshold, 0.05
)
rephrase = st.sidebar.checkbox("Rephrase follow-up questions", yaml_config.chat.rephrase)

st.sidebar.divider()
st.sidebar.caption(f"Chat model: {yaml_config.llm_qa.model_name}")
st.sidebar.caption(f"Embedding model: {yaml_config.vectorstore.embedding_model}")

# --- Tabs ---
tab_chat, tab_ingest = st.tabs(["Chat", "Ingest"])

with tab_chat:
    render_chat_section(k=k, score_threshold=score_threshold, rephrase=rephrase)

with tab_ingest:
    render_ingest_section()
