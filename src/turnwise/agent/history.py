"""Chat history compaction for turn seeding.

Long conversations are kept within a token budget by summarizing the older
messages with one LLM call. The most recent messages always stay verbatim,
and the summary goes in front of them as a system message. When the
summary cannot be produced the older messages are simply dropped.
"""

from __future__ import annotations

import logging

from turnwise.llm.message import Message
from turnwise.llm.provider import ChatProvider
from turnwise.llm.streaming import complete_text

logger = logging.getLogger(__name__)

HISTORY_TOKEN_LIMIT = 3000
HISTORY_KEEP_RECENT = 6

SUMMARY_PREFIX = "Previous conversation summary:\n"

SUMMARY_SYSTEM = """\
You summarize the earlier part of a conversation between a user and a data \
analyst assistant. The summary replaces those messages in the assistant's \
context.

Rules:
- Keep every dataset name, column name, metric, filter and number mentioned.
- Keep the questions the user asked and the conclusions that were reached.
- Keep open requests or follow-ups the user still expects.
- Use short bullet points.
- Maximum 300 words.
"""

SUMMARY_USER_TEMPLATE = """\
Summarize the following conversation.

---

{conversation}
"""


def estimate_tokens(messages: list[Message]) -> int:
    """Rough token estimate, ~4 characters per token."""
    return sum(len(m.text) for m in messages) // 4


async def compact_history(
    history: list[Message],
    provider: ChatProvider,
    token_limit: int = HISTORY_TOKEN_LIMIT,
    keep_recent: int = HISTORY_KEEP_RECENT,
) -> list[Message]:
    """Return ``history`` fitted to ``token_limit``.

    Histories within the budget, or too short to split, come back
    unchanged. Otherwise everything but the last ``keep_recent`` messages
    is summarized by ``provider``.
    """
    tokens = estimate_tokens(history)
    if tokens <= token_limit or len(history) <= keep_recent:
        return list(history)

    older, recent = history[:-keep_recent], history[-keep_recent:]
    logger.info(
        "History is ~%d tokens (limit %d), summarizing %d older messages",
        tokens,
        token_limit,
        len(older),
    )

    try:
        summary = await complete_text(
            provider,
            SUMMARY_SYSTEM,
            SUMMARY_USER_TEMPLATE.format(conversation=_render(older)),
        )
    except Exception as e:
        logger.error("History summarization failed, keeping recent messages only: %s", e)
        return list(recent)

    summary = summary.strip()
    if not summary:
        logger.warning("History summarization returned nothing, keeping recent messages only")
        return list(recent)

    logger.info("Summarized %d messages into %d chars", len(older), len(summary))
    return [Message.system(SUMMARY_PREFIX + summary), *recent]


def _render(messages: list[Message]) -> str:
    labels = {"user": "User", "assistant": "Assistant", "system": "System"}
    return "\n\n".join(f"{labels[m.role]}: {m.text}" for m in messages)
