from langchain_core.prompts import (
    ChatPromptTemplate,
    MessagesPlaceholder,
    PromptTemplate,
)

EXPANSION_TEMPLATE = PromptTemplate(
    input_variables=["previous_chunks", "input", "next_chunks"],
    template=(
        "You are a text-processing assistant. Expand the current chunk of a document "
        "using its nearest context (the chunks immediately before and after it) so that "
        "it is understandable and informative on its own, without needless repetition.\n\n"
        "Previous chunks:\n{previous_chunks}\n\n"
        "Current chunk:\n{input}\n\n"
        "Next chunks:\n{next_chunks}\n\n"
        "Requirements:\n"
        "- Completeness: if the current chunk lacks important information (subjects, "
        "events, definitions), add it from the neighboring chunks.\n"
        "- Consistency: keep the style and terminology of the original document.\n"
        "- Brevity: keep the chunk as short as possible while keeping all key information.\n"
        "- Coherence: the result must make sense without access to the surrounding chunks.\n"
        "- No repetition: do not copy whole sentences from the neighboring chunks, only "
        "add the missing information.\n\n"
        "Output only the rewritten chunk. Do not include any information that is not "
        "contained in the texts above."
    ),
)

REPHRASE_TEMPLATE = ChatPromptTemplate.from_messages(
    [
        MessagesPlaceholder("history"),
        (
            "human",
            "Given the conversation above and the follow-up question below, rephrase "
            "the follow-up question into a standalone question that can be understood "
            "without the conversation. Keep the language of the question. Return only "
            "the standalone question.\n\n"
            "Follow-up question: {question}\n"
            "Standalone question:",
        ),
    ]
)

SYSTEM_BASE = """You are an AI assistant answering questions about internal company documents, policies and rules.
Answer as precisely as the supplied documents allow."""

NO_CONTEXT = "(no relevant documents were found)"

CHAT_TEMPLATE = ChatPromptTemplate.from_messages(
    [
        ("system", SYSTEM_BASE),
        MessagesPlaceholder("history"),
        (
            "human",
            "User question:\n{question}\n\n"
            "Supplied information (may contain irrelevant parts):\n{context}\n\n"
            "Instructions:\n"
            "1. Use the conversation history to keep continuity. If the question refers "
            "to an earlier part of the dialogue, take it into account.\n"
            "2. Decide carefully which parts of the supplied text are relevant and ignore "
            "the rest.\n"
            "3. Answer in detail and in a structured way, using paragraphs, lists or "
            "examples where it helps.\n"
            "4. Include related information that may be useful for the answer.\n"
            "5. Do not use any knowledge outside the supplied information and the "
            "conversation history.\n"
            "6. If the answer is not in the supplied information, say so plainly instead "
            "of guessing.\n\n"
            "Your answer:",
        ),
    ]
)
