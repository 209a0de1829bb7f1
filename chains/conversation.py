from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage

HUMAN = "human"
AI = "ai"


@dataclass(frozen=True)
class Turn:
    role: str  # "human" | "ai"
    text: str


@dataclass(frozen=True)
class ConversationState:
    """
    Memory of one chat session. Immutable: appending a turn returns a new
    state, so a failed or abandoned turn can never leave partial history.
    """

    turns: Tuple[Turn, ...] = ()

    def __len__(self) -> int:
        return len(self.turns)

    @property
    def is_empty(self) -> bool:
        return not self.turns

    def append(self, question: str, answer: str) -> "ConversationState":
        return ConversationState(self.turns + (Turn(HUMAN, question), Turn(AI, answer)))

    def messages(self, max_turns: Optional[int] = None) -> List[BaseMessage]:
        turns = self.turns
        if max_turns:
            turns = turns[-2 * max_turns :]
        return [
            HumanMessage(content=t.text) if t.role == HUMAN else AIMessage(content=t.text)
            for t in turns
        ]


@dataclass(frozen=True)
class ChatAnswer:
    text: str
    sources: List[str]
    state: ConversationState
    question: str = ""
    standalone_question: str = ""


@dataclass(frozen=True)
class AnswerFragment:
    text: str


@dataclass(frozen=True)
class AnswerComplete:
    text: str
    sources: List[str] = field(default_factory=list)
    state: ConversationState = ConversationState()
    standalone_question: str = ""
