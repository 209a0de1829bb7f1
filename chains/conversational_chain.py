from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional, Union

from langchain_core.language_models import BaseLanguageModel
from langchain_core.output_parsers import StrOutputParser

from chains.conversation import (
    AnswerComplete,
    AnswerFragment,
    ChatAnswer,
    ConversationState,
)
from chains.prompts import CHAT_TEMPLATE, NO_CONTEXT, REPHRASE_TEMPLATE
from common.config import yaml_config
from common.exceptions import EmbeddingError, GenerationError, StoreError
from common.logger import get_logger
from ingestion.cleaners import unescape_text
from retrieval.retriever_factory import RetrievedMatch, ScoredRetriever

log = get_logger(__name__)

StreamEvent = Union[AnswerFragment, AnswerComplete]


def collect_sources(matches: Iterable[RetrievedMatch]) -> List[str]:
    """Document paths behind the matches, sorted and without duplicates."""
    return sorted({m.path for m in matches if m.path})


def format_sources(sources: Iterable[str]) -> str:
    return ", ".join(sources)


def build_context(matches: Iterable[RetrievedMatch]) -> str:
    parts = [m.content.strip() for m in matches if m.content.strip()]
    return "\n\n---\n\n".join(parts) if parts else NO_CONTEXT


@dataclass
class _Failure:
    error: BaseException


_DONE = object()


class ConversationalRetrievalChain:
    """
    One chat turn: rephrase the follow-up into a standalone question,
    retrieve context above the score threshold, assemble the grounded prompt
    and generate the answer, either blocking or as a stream.

    The chain holds no conversation memory. The caller passes the session's
    ConversationState in and receives the extended state back only when the
    turn completes.
    """

    def __init__(
        self,
        llm: BaseLanguageModel,
        retriever: ScoredRetriever,
        *,
        rephrase: Optional[bool] = None,
        degrade_on_retrieval_error: Optional[bool] = None,
        stream_buffer: Optional[int] = None,
        max_history_turns: Optional[int] = None,
    ):
        chat_cfg = yaml_config.chat
        self.retriever = retriever
        self.rephrase = chat_cfg.rephrase if rephrase is None else rephrase
        self.degrade_on_retrieval_error = (
            yaml_config.retrieval.degrade_on_error
            if degrade_on_retrieval_error is None
            else degrade_on_retrieval_error
        )
        self.stream_buffer = stream_buffer or chat_cfg.stream_buffer
        self.max_history_turns = max_history_turns or chat_cfg.max_history_turns
        self._rephrase_chain = REPHRASE_TEMPLATE | llm | StrOutputParser()
        self._answer_chain = CHAT_TEMPLATE | llm | StrOutputParser()

    # --- rephrasing ---

    def _rephrase_inputs(self, question: str, state: ConversationState) -> Dict[str, Any]:
        return {"question": question, "history": state.messages(self.max_history_turns)}

    def standalone_question(self, question: str, state: ConversationState) -> str:
        if not self.rephrase or state.is_empty:
            return question
        try:
            text = self._rephrase_chain.invoke(self._rephrase_inputs(question, state))
        except Exception as e:
            raise GenerationError(
                "Question rephrasing failed", cause=e, context={"question": question}
            ) from e
        return text.strip() or question

    async def astandalone_question(self, question: str, state: ConversationState) -> str:
        if not self.rephrase or state.is_empty:
            return question
        try:
            text = await self._rephrase_chain.ainvoke(self._rephrase_inputs(question, state))
        except Exception as e:
            raise GenerationError(
                "Question rephrasing failed", cause=e, context={"question": question}
            ) from e
        return text.strip() or question

    # --- retrieval ---

    def _on_retrieval_error(self, e: Exception) -> List[RetrievedMatch]:
        if not self.degrade_on_retrieval_error:
            raise e
        log.warning("Retrieval failed, answering without context: %s", e)
        return []

    def retrieve(self, query: str) -> List[RetrievedMatch]:
        try:
            return self.retriever.retrieve(query)
        except (EmbeddingError, StoreError) as e:
            return self._on_retrieval_error(e)

    async def aretrieve(self, query: str) -> List[RetrievedMatch]:
        try:
            return await self.retriever.aretrieve(query)
        except (EmbeddingError, StoreError) as e:
            return self._on_retrieval_error(e)

    # --- generation ---

    def _prompt_inputs(
        self, standalone: str, matches: List[RetrievedMatch], state: ConversationState
    ) -> Dict[str, Any]:
        return {
            "question": standalone,
            "context": build_context(matches),
            "history": state.messages(self.max_history_turns),
        }

    def answer(self, question: str, state: ConversationState) -> ChatAnswer:
        """
        Blocking turn. The passed state is never modified; the returned
        ChatAnswer carries the state extended with this turn.
        """
        standalone = self.standalone_question(question, state)
        matches = self.retrieve(standalone)
        try:
            raw = self._answer_chain.invoke(self._prompt_inputs(standalone, matches, state))
        except Exception as e:
            raise GenerationError(
                "Answer generation failed", cause=e, context={"question": question}
            ) from e

        text = unescape_text(raw).strip()
        return ChatAnswer(
            text=text,
            sources=collect_sources(matches),
            state=state.append(question, text),
            question=question,
            standalone_question=standalone,
        )

    async def _produce(self, inputs: Dict[str, Any], queue: asyncio.Queue) -> None:
        try:
            async for piece in self._answer_chain.astream(inputs):
                if piece:
                    await queue.put(piece)
        except Exception as e:
            await queue.put(_Failure(e))
            return
        await queue.put(_DONE)

    async def astream(
        self, question: str, state: ConversationState
    ) -> AsyncIterator[StreamEvent]:
        """
        Streaming turn: yields AnswerFragment items as the model produces
        them, then exactly one AnswerComplete with the sources and the new
        state. Fragments pass through a bounded queue, so a slow consumer
        pauses generation. Closing the iterator early cancels generation and
        no AnswerComplete (hence no history) is produced.
        """
        standalone = await self.astandalone_question(question, state)
        matches = await self.aretrieve(standalone)
        inputs = self._prompt_inputs(standalone, matches, state)

        queue: asyncio.Queue = asyncio.Queue(maxsize=self.stream_buffer)
        producer = asyncio.create_task(self._produce(inputs, queue))
        parts: List[str] = []
        finished = False
        try:
            while True:
                item = await queue.get()
                if item is _DONE:
                    finished = True
                    break
                if isinstance(item, _Failure):
                    finished = True
                    raise GenerationError(
                        "Answer generation failed",
                        cause=item.error,
                        context={"question": question},
                    ) from item.error
                parts.append(item)
                yield AnswerFragment(item)
        finally:
            if not finished:
                producer.cancel()
                log.info("Stream abandoned after %d fragments", len(parts))
            with contextlib.suppress(asyncio.CancelledError):
                await producer

        text = unescape_text("".join(parts)).strip()
        yield AnswerComplete(
            text=text,
            sources=collect_sources(matches),
            state=state.append(question, text),
            standalone_question=standalone,
        )
