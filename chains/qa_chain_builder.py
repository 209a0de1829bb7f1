from __future__ import annotations

from typing import Dict, Optional

from chains.conversational_chain import ConversationalRetrievalChain
from common.config import yaml_config
from common.logger import get_logger
from models.llm import load_embeddings, load_local_llm
from retrieval.retriever_factory import build_retriever
from vectorstore.chroma_store import ChromaStore, make_chroma_client

log = get_logger(__name__)


def build_chat_chain(
    collection: Optional[str] = None,
    *,
    rephrase: Optional[bool] = None,
    k: Optional[int] = None,
    score_threshold: Optional[float] = None,
    where: Optional[Dict] = None,
) -> ConversationalRetrievalChain:
    """
    Wire the configured chat model, embeddings and Chroma collection into one
    conversational chain. Every entry point (CLI, HTTP, Streamlit) uses this.
    """
    store = ChromaStore(
        load_embeddings(),
        collection_name=collection or yaml_config.app.collection,
        client=make_chroma_client(),
    )
    retriever = build_retriever(store, k=k, score_threshold=score_threshold, where=where)
    chain = ConversationalRetrievalChain(
        load_local_llm("llm_qa"), retriever, rephrase=rephrase
    )
    log.info(
        "Initialized conversational chain on '%s' (rephrase=%s)",
        store.collection_name,
        chain.rephrase,
    )
    return chain
