"""Discussion lifecycle and turn-taking on top of the store, policy and synthesizer."""

import logging
from dataclasses import dataclass

from config.config_loader import AppConfig
from expert_panel import turns
from expert_panel.errors import IneligibleTurnError
from expert_panel.experts import ExpertRegistry, ExpertRole
from expert_panel.keys import SQLiteKeyStore
from expert_panel.models import (
    DISCUSSION_MODES,
    DISCUSSION_STATUSES,
    Discussion,
    Message,
)
from expert_panel.store import SQLiteDiscussionStore
from expert_panel.synthesizer import ResponseSynthesizer

logger = logging.getLogger(__name__)


@dataclass
class TurnState:
    discussion_id: str
    mode: str
    status: str
    current_round: int
    eligible: list[str]
    responded: list[str]
    can_advance: bool


class DiscussionService:
    """Entry point used by the CLI and the HTTP surface."""

    def __init__(
        self,
        config: AppConfig,
        registry: ExpertRegistry,
        store: SQLiteDiscussionStore,
        keys: SQLiteKeyStore,
        synthesizer: ResponseSynthesizer,
    ) -> None:
        self.config = config
        self.registry = registry
        self.store = store
        self.keys = keys
        self.synthesizer = synthesizer

    @classmethod
    def from_config(cls, config: AppConfig) -> "DiscussionService":
        registry = ExpertRegistry(config.experts)
        store = SQLiteDiscussionStore(config.defaults.database_path)
        keys = SQLiteKeyStore(config.defaults.database_path)
        synthesizer = ResponseSynthesizer(config, registry, store, keys)
        return cls(config, registry, store, keys, synthesizer)

    def available_experts(self) -> list[ExpertRole]:
        """All experts, or none when no active API key is stored."""
        if not self.keys.has_active_credential():
            return []
        return self.registry.list_all()

    def create_discussion(
        self,
        topic: str,
        description: str,
        expert_ids: list[str],
        mode: str = "sequential",
    ) -> Discussion:
        if not topic.strip():
            raise ValueError("Topic must not be empty")
        if mode not in DISCUSSION_MODES:
            raise ValueError(f"Unknown discussion mode: {mode}")
        lo, hi = self.config.defaults.min_experts, self.config.defaults.max_experts
        if not lo <= len(expert_ids) <= hi:
            raise ValueError(f"Select between {lo} and {hi} experts, got {len(expert_ids)}")
        if len(set(expert_ids)) != len(expert_ids):
            raise ValueError("Duplicate experts in participant list")
        for expert_id in expert_ids:
            self.registry.lookup(expert_id)
        return self.store.create_discussion(topic.strip(), description.strip(), list(expert_ids), mode)

    def get_discussion(self, discussion_id: str) -> Discussion:
        return self.store.get_discussion(discussion_id)

    def list_discussions(self) -> list[Discussion]:
        return self.store.list_discussions()

    def get_messages(self, discussion_id: str) -> list[Message]:
        return self.store.get_messages(discussion_id)

    def turn_state(self, discussion_id: str) -> TurnState:
        discussion = self.store.get_discussion(discussion_id)
        messages = self.store.get_round_messages(discussion_id, discussion.current_round)
        responded = turns.responded_in_round(discussion, messages)
        return TurnState(
            discussion_id=discussion.id,
            mode=discussion.mode,
            status=discussion.status,
            current_round=discussion.current_round,
            eligible=turns.eligible_experts(discussion, messages),
            responded=[e for e in discussion.participant_ids if e in responded],
            can_advance=turns.can_advance_round(discussion, messages),
        )

    async def take_turn(self, discussion_id: str, expert_id: str, user_text: str) -> Message:
        """Run one expert turn and persist it.

        Eligibility is checked before any network call or write. Nothing is
        stored when the completion fails, and the user and expert messages
        are written in a single transaction.
        """
        discussion = self.store.get_discussion(discussion_id)
        round_messages = self.store.get_round_messages(discussion_id, discussion.current_round)
        turns.ensure_can_respond(discussion, expert_id, round_messages)

        contribution = await self.synthesizer.respond(discussion, expert_id, user_text)

        message = self.store.append_turn(
            discussion_id, discussion.current_round, user_text.strip(), contribution
        )
        logger.info(
            "Discussion %s round %d: %s answered (order %d)",
            discussion_id, discussion.current_round, expert_id, message.response_order,
        )
        return message

    def advance_round(self, discussion_id: str) -> int:
        discussion = self.store.get_discussion(discussion_id)
        round_messages = self.store.get_round_messages(discussion_id, discussion.current_round)
        turns.ensure_can_advance(discussion, round_messages)
        new_round = discussion.current_round + 1
        self.store.update_round(discussion_id, new_round)
        logger.info("Discussion %s advanced to round %d", discussion_id, new_round)
        return new_round

    def set_status(self, discussion_id: str, status: str) -> None:
        if status not in DISCUSSION_STATUSES:
            raise ValueError(f"Unknown status: {status}")
        self.store.get_discussion(discussion_id)
        self.store.update_status(discussion_id, status)

    def toggle_status(self, discussion_id: str) -> str:
        discussion = self.store.get_discussion(discussion_id)
        new_status = "completed" if discussion.status == "active" else "active"
        self.store.update_status(discussion_id, new_status)
        return new_status

    def delete_discussion(self, discussion_id: str) -> None:
        discussion = self.store.get_discussion(discussion_id)
        if discussion.status != "completed":
            raise IneligibleTurnError("Only completed discussions can be deleted")
        self.store.delete_discussion(discussion_id)
