from __future__ import annotations

import streamlit as st

from chains.conversation import AI, ConversationState
from chains.conversational_chain import format_sources
from chains.qa_chain_builder import build_chat_chain
from common.exceptions import DocChatError


def _chain(k: int, score_threshold: float, rephrase: bool):
    key = (k, score_threshold, rephrase)
    cached = st.session_state.get("chat_chain")
    if cached is None or cached[0] != key:
        chain = build_chat_chain(rephrase=rephrase, k=k, score_threshold=score_threshold)
        st.session_state["chat_chain"] = (key, chain)
        return chain
    return cached[1]


def render_chat_section(k: int, score_threshold: float, rephrase: bool):
    st.subheader("Ask about the documents")

    # one conversation per browser session
    state: ConversationState = st.session_state.setdefault("conversation", ConversationState())
    sources_by_turn = st.session_state.setdefault("sources", [])

    if st.button("New conversation", disabled=state.is_empty):
        st.session_state["conversation"] = ConversationState()
        st.session_state["sources"] = []
        st.rerun()

    answers = 0
    for turn in state.turns:
        with st.chat_message("assistant" if turn.role == AI else "user"):
            st.markdown(turn.text)
            if turn.role == AI:
                if answers < len(sources_by_turn) and sources_by_turn[answers]:
                    st.caption(f"documents: {format_sources(sources_by_turn[answers])}")
                answers += 1

    question = st.chat_input("Your question")
    if not question:
        return

    with st.chat_message("user"):
        st.markdown(question)

    with st.chat_message("assistant"):
        with st.spinner("Retrieving + reasoning..."):
            try:
                result = _chain(k, score_threshold, rephrase).answer(question, state)
            except DocChatError as e:
                st.error(f"The question could not be answered: {e}")
                return
        st.markdown(result.text)
        if result.sources:
            st.caption(f"documents: {format_sources(result.sources)}")
        else:
            st.info("No relevant documents found.")

    st.session_state["conversation"] = result.state
    sources_by_turn.append(result.sources)
