"""Pure dataclasses for discussions, messages and credentials. No logic, no deps."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

DiscussionMode = Literal["sequential", "parallel"]
DiscussionStatus = Literal["active", "completed"]
ContributionType = Literal["primary", "supporting", "alternative"]

USER_AUTHOR = "user"

DISCUSSION_MODES: tuple[str, ...] = ("sequential", "parallel")
DISCUSSION_STATUSES: tuple[str, ...] = ("active", "completed")


@dataclass
class Discussion:
    id: str
    topic: str
    description: str
    participant_ids: list[str]
    mode: DiscussionMode = "sequential"
    status: DiscussionStatus = "active"
    current_round: int = 1
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None


@dataclass
class MessageRef:
    message_id: str
    expert_id: str
    quote: str
    context: str = ""      # text around the quote in the citing message


@dataclass
class ContributionMetadata:
    confidence: float = 0.7
    agreement_level: float = 0.5
    contribution_type: ContributionType = "primary"


@dataclass
class Message:
    id: str
    discussion_id: str
    author: str            # USER_AUTHOR or an expert id
    content: str
    round: int
    response_order: int
    refs: list[MessageRef] = field(default_factory=list)
    metadata: ContributionMetadata | None = None
    created_at: datetime | None = None

    @property
    def is_user(self) -> bool:
        return self.author == USER_AUTHOR


@dataclass
class Contribution:
    expert_id: str
    content: str
    refs: list[MessageRef]
    metadata: ContributionMetadata


@dataclass
class Credential:
    id: str
    provider: str          # "openai", "claude", "gemini"
    secret: str
    name: str = ""
    is_active: bool = True
    last_used: datetime | None = None
    created_at: datetime | None = None

    def masked(self) -> str:
        if len(self.secret) <= 8:
            return "*" * len(self.secret)
        return f"{self.secret[:4]}...{self.secret[-4:]}"
