"""Build an expert's turn prompt, call the model, and analyze the reply."""

import logging
from collections.abc import Callable

from config.config_loader import AppConfig
from expert_panel.analysis import ContentAnalyzer, HeuristicAnalyzer
from expert_panel.context import build_context, format_transcript, to_chat_messages
from expert_panel.experts import ExpertRegistry, ExpertRole
from expert_panel.keys import KeyProvider
from expert_panel.models import Contribution, Credential, Discussion, Message
from expert_panel.providers.base import AIProvider, ProviderError
from expert_panel.providers.registry import provider_for
from expert_panel.store import DiscussionStore

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[Credential, AppConfig], AIProvider]


def peer_roster(discussion: Discussion, expert_id: str, registry: ExpertRegistry) -> list[ExpertRole]:
    """Co-panelists of ``expert_id`` in declaration order; unknown ids are skipped."""
    return [
        registry.lookup(pid)
        for pid in discussion.participant_ids
        if pid != expert_id and pid in registry
    ]


def compose_prompt(
    template: str,
    expert: ExpertRole,
    peers: list[ExpertRole],
    context: list[Message],
    user_message: str,
    registry: ExpertRegistry,
) -> str:
    peers_block = "\n".join(p.summary() for p in peers) or "(none)"
    return template.format(
        persona=expert.system_prompt,
        expert_name=expert.name,
        expert_title=expert.title,
        peers=peers_block,
        transcript=format_transcript(context, registry),
        question=user_message,
    )


class ResponseSynthesizer:
    """Produces one expert contribution per call. Stores nothing itself."""

    def __init__(
        self,
        config: AppConfig,
        registry: ExpertRegistry,
        store: DiscussionStore,
        key_provider: KeyProvider,
        provider_factory: ProviderFactory = provider_for,
        analyzer: ContentAnalyzer | None = None,
    ) -> None:
        self._config = config
        self._registry = registry
        self._store = store
        self._keys = key_provider
        self._provider_factory = provider_factory
        self._analyzer = analyzer or HeuristicAnalyzer()

    def _request_messages(
        self,
        expert: ExpertRole,
        peers: list[ExpertRole],
        context: list[Message],
        user_message: str,
    ) -> tuple[list[dict[str, str]], str | None]:
        """Return (messages, native system prompt) for the configured prompt style."""
        if self._config.defaults.prompt_style == "chat":
            chat = to_chat_messages(context, persona=expert.system_prompt)
            chat.append({"role": "user", "content": user_message})
            return chat, None
        prompt = compose_prompt(
            self._config.prompts.turn, expert, peers, context, user_message, self._registry
        )
        return [{"role": "user", "content": prompt}], expert.system_prompt

    async def respond(self, discussion: Discussion, expert_id: str, user_message: str) -> Contribution:
        """Generate ``expert_id``'s reply to ``user_message`` within ``discussion``.

        Raises:
            ExpertNotFoundError: Unknown expert id.
            NotFoundError: No active credential.
            InvalidCredentialError: The provider rejected the credential.
            ProviderError: Any other provider failure. Not retried.
        """
        expert = self._registry.lookup(expert_id)
        context = build_context(self._store, discussion.id, self._config.defaults.context_window)
        peers = peer_roster(discussion, expert_id, self._registry)
        messages, system = self._request_messages(expert, peers, context, user_message)

        credential = self._keys.get_active_credential()
        provider = self._provider_factory(credential, self._config)

        logger.info(
            "Requesting %s response via %s (%s), %d context messages",
            expert.id, provider.name(), provider.model_string(), len(context),
        )
        try:
            content = await provider.complete(
                messages, system=system, max_tokens=self._config.defaults.max_tokens
            )
        except ProviderError:
            raise
        except Exception as exc:
            raise ProviderError(provider.name(), f"Unexpected error: {exc}") from exc

        refs, metadata = self._analyzer.analyze(content, context)

        try:
            self._keys.touch_last_used(credential.id)
        except Exception as exc:
            logger.warning("Could not update last-used time for key %s: %s", credential.id, exc)

        logger.info(
            "%s responded: %d chars, %d refs, %s (confidence %.2f, agreement %.2f)",
            expert.id, len(content), len(refs), metadata.contribution_type,
            metadata.confidence, metadata.agreement_level,
        )
        return Contribution(expert_id=expert.id, content=content, refs=refs, metadata=metadata)
