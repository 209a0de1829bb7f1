from __future__ import annotations

import argparse
import asyncio
from contextlib import aclosing

from chains.conversation import AnswerComplete, ConversationState
from chains.conversational_chain import ConversationalRetrievalChain, format_sources
from chains.qa_chain_builder import build_chat_chain
from common.config import yaml_config
from common.exceptions import DocChatError
from common.logger import get_logger
from retrieval.filters import build_where_filter

log = get_logger(__name__)


async def _stream_turn(
    chain: ConversationalRetrievalChain, question: str, state: ConversationState
) -> ConversationState:
    async with aclosing(chain.astream(question, state)) as events:
        async for event in events:
            if isinstance(event, AnswerComplete):
                print(f"\n-------\ndocuments:[{format_sources(event.sources)}]")
                return event.state
            print(event.text, end="", flush=True)
    return state


def run_repl(chain: ConversationalRetrievalChain, stream: bool = False) -> ConversationState:
    state = ConversationState()
    while True:
        print("\n")
        try:
            query = input("Query> ").strip()
        except EOFError:
            query = ""
        if not query:
            print("Empty query. Exiting...")
            return state

        try:
            if stream:
                state = asyncio.run(_stream_turn(chain, query, state))
            else:
                result = chain.answer(query, state)
                state = result.state
                print(result.text)
                print(f"-------\ndocuments:[{format_sources(result.sources)}]")
        except DocChatError as e:
            # the turn is dropped, history stays as it was
            print(f"Error: {e}")


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Chat with the indexed documents (conversational RAG)."
    )
    parser.add_argument("--collection", type=str, default=yaml_config.app.collection)
    parser.add_argument("--stream", action="store_true", help="Print the answer as it is generated")
    parser.add_argument("--no-rephrase", action="store_true", help="Retrieve with the raw question")
    parser.add_argument("--k", type=int, default=None)
    parser.add_argument("--score_threshold", type=float, default=None)
    parser.add_argument(
        "--include_paths", nargs="*", help="Filter: restrict to these documents"
    )
    args = parser.parse_args(argv)

    where = build_where_filter(paths=args.include_paths)
    chain = build_chat_chain(
        args.collection,
        rephrase=False if args.no_rephrase else None,
        k=args.k,
        score_threshold=args.score_threshold,
        where=where or None,
    )
    run_repl(chain, stream=args.stream)


if __name__ == "__main__":
    main()
