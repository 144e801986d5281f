"""Static catalog of expert personas."""

from collections.abc import Iterable
from dataclasses import dataclass, field

from expert_panel.errors import ExpertNotFoundError


@dataclass(frozen=True)
class ExpertRole:
    id: str
    name: str
    title: str
    description: str
    system_prompt: str
    expertise: list[str] = field(default_factory=list)

    def summary(self) -> str:
        """One-line roster entry used when introducing co-panelists."""
        tags = ", ".join(self.expertise)
        line = f"- {self.name} ({self.title})"
        return f"{line}: {tags}" if tags else line


class ExpertRegistry:
    """Read-only lookup of expert roles, in declaration order."""

    def __init__(self, roles: Iterable[ExpertRole]) -> None:
        self._roles: dict[str, ExpertRole] = {}
        for role in roles:
            if role.id in self._roles:
                raise ValueError(f"Duplicate expert id: {role.id}")
            self._roles[role.id] = role

    def lookup(self, expert_id: str) -> ExpertRole:
        try:
            return self._roles[expert_id]
        except KeyError:
            raise ExpertNotFoundError(expert_id) from None

    def list_all(self) -> list[ExpertRole]:
        return list(self._roles.values())

    def __contains__(self, expert_id: object) -> bool:
        return expert_id in self._roles

    def __len__(self) -> int:
        return len(self._roles)
