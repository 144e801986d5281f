"""Bounded, recency-biased conversation context for a model request."""

import logging

from expert_panel.experts import ExpertRegistry
from expert_panel.models import Message
from expert_panel.store import DiscussionStore

logger = logging.getLogger(__name__)

DEFAULT_CONTEXT_WINDOW = 5


def build_context(
    store: DiscussionStore,
    discussion_id: str,
    max_messages: int = DEFAULT_CONTEXT_WINDOW,
) -> list[Message]:
    """Return the most recent ``max_messages`` messages, oldest first.

    Round boundaries are ignored; only recency matters.
    """
    if max_messages < 1:
        raise ValueError(f"max_messages must be >= 1, got {max_messages}")
    recent = store.get_recent_messages(discussion_id, max_messages)
    context = list(reversed(recent[:max_messages]))
    logger.debug("Context for %s: %d messages", discussion_id, len(context))
    return context


def to_chat_messages(messages: list[Message], persona: str | None = None) -> list[dict[str, str]]:
    """Map stored messages to ``{role, content}`` pairs.

    User messages become ``user`` turns and every expert message becomes an
    ``assistant`` turn. A persona, when given, is injected as a leading
    assistant turn for providers without a usable system prompt.
    """
    chat: list[dict[str, str]] = []
    if persona:
        chat.append({"role": "assistant", "content": persona})
    for msg in messages:
        chat.append({"role": "user" if msg.is_user else "assistant", "content": msg.content})
    return chat


def speaker_label(author: str, registry: ExpertRegistry) -> str:
    if author == "user":
        return "User"
    if author in registry:
        return registry.lookup(author).name
    return author


def format_transcript(messages: list[Message], registry: ExpertRegistry) -> str:
    """Render messages as an attributed transcript block for the turn prompt."""
    if not messages:
        return "(no previous messages)"
    parts = [f"{speaker_label(m.author, registry)}: {m.content}" for m in messages]
    return "\n\n".join(parts)
