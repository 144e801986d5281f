"""Shared pytest fixtures."""

from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from config.config_loader import AppConfig, DefaultsConfig, ModelConfig, PromptsConfig
from expert_panel.experts import ExpertRegistry, ExpertRole
from expert_panel.keys import SQLiteKeyStore
from expert_panel.models import ContributionMetadata, Credential, Discussion, Message
from expert_panel.providers.base import AIProvider
from expert_panel.service import DiscussionService
from expert_panel.store import SQLiteDiscussionStore
from expert_panel.synthesizer import ResponseSynthesizer

TURN_TEMPLATE = (
    "{persona}\n\nYou are {expert_name}, {expert_title}.\n\n"
    "Panel:\n{peers}\n\nTranscript:\n{transcript}\n\nUser: {question}"
)


@pytest.fixture
def sample_experts() -> list[ExpertRole]:
    return [
        ExpertRole(
            id="architect",
            name="Tech Architect",
            title="Principal Solutions Architect",
            description="System design",
            system_prompt="You are a Principal Solutions Architect.",
            expertise=["System Design", "Scalability"],
        ),
        ExpertRole(
            id="security",
            name="Security Expert",
            title="Chief Security Architect",
            description="Application security",
            system_prompt="You are a Chief Security Architect.",
            expertise=["AppSec", "Threat Modeling"],
        ),
        ExpertRole(
            id="devops",
            name="DevOps Expert",
            title="DevOps Architect",
            description="Cloud infrastructure",
            system_prompt="You are a DevOps Architect.",
            expertise=["CI/CD", "SRE"],
        ),
    ]


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "panel.db"


@pytest.fixture
def sample_app_config(tmp_path: Path, db_path: Path, sample_experts: list[ExpertRole]) -> AppConfig:
    return AppConfig(
        defaults=DefaultsConfig(
            database_path=db_path,
            export_dir=tmp_path / "output",
            context_window=5,
            max_tokens=1000,
        ),
        models={
            "openai": ModelConfig(name="openai", sdk="openai", model="gpt-4", timeout_sec=30),
            "claude": ModelConfig(
                name="claude", sdk="anthropic", model="claude-3-haiku-20240307", timeout_sec=30
            ),
        },
        prompts=PromptsConfig(turn=TURN_TEMPLATE),
        experts=sample_experts,
    )


@pytest.fixture
def registry(sample_experts: list[ExpertRole]) -> ExpertRegistry:
    return ExpertRegistry(sample_experts)


@pytest.fixture
def store(db_path: Path) -> SQLiteDiscussionStore:
    return SQLiteDiscussionStore(db_path)


@pytest.fixture
def key_store(db_path: Path) -> SQLiteKeyStore:
    return SQLiteKeyStore(db_path)


@pytest.fixture
def active_key(key_store: SQLiteKeyStore) -> Credential:
    return key_store.add("openai", "sk-test-0123456789abcdef", name="test")


class MockProvider(AIProvider):
    """Test double AIProvider."""

    def __init__(self, provider_name: str = "openai", response_content: str = "Mock response") -> None:
        self._name = provider_name
        self._response_content = response_content
        # Shadow the class method with an AsyncMock at the instance level.
        # ABC check passes because complete is defined in the class body below.
        self.complete = AsyncMock(return_value=response_content)  # type: ignore[method-assign]

    def name(self) -> str:
        return self._name

    def model_string(self) -> str:
        return "mock-model"

    async def complete(  # type: ignore[override]
        self,
        messages: list[dict[str, str]],
        system: str | None,
        max_tokens: int,
    ) -> str:
        """Default implementation; replaced by AsyncMock in __init__."""
        return self._response_content


@pytest.fixture
def mock_provider() -> MockProvider:
    return MockProvider()


@pytest.fixture
def synthesizer(
    sample_app_config: AppConfig,
    registry: ExpertRegistry,
    store: SQLiteDiscussionStore,
    key_store: SQLiteKeyStore,
    mock_provider: MockProvider,
) -> ResponseSynthesizer:
    return ResponseSynthesizer(
        sample_app_config,
        registry,
        store,
        key_store,
        provider_factory=lambda credential, config: mock_provider,
    )


@pytest.fixture
def service(
    sample_app_config: AppConfig,
    registry: ExpertRegistry,
    store: SQLiteDiscussionStore,
    key_store: SQLiteKeyStore,
    synthesizer: ResponseSynthesizer,
) -> DiscussionService:
    return DiscussionService(sample_app_config, registry, store, key_store, synthesizer)


def make_discussion(
    participants: list[str],
    mode: str = "sequential",
    current_round: int = 1,
    status: str = "active",
) -> Discussion:
    return Discussion(
        id="d1",
        topic="Event sourcing for billing?",
        description="",
        participant_ids=participants,
        mode=mode,  # type: ignore[arg-type]
        status=status,  # type: ignore[arg-type]
        current_round=current_round,
    )


def make_message(
    author: str,
    content: str = "Some content.",
    round_number: int = 1,
    order: int = 1,
    message_id: str | None = None,
) -> Message:
    return Message(
        id=message_id or f"m-{author}-{round_number}-{order}",
        discussion_id="d1",
        author=author,
        content=content,
        round=round_number,
        response_order=order,
        metadata=None if author == "user" else ContributionMetadata(),
    )
