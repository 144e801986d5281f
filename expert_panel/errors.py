"""Error taxonomy shared by the store, turn policy and service layers."""


class PanelError(Exception):
    """Base class for expected, user-visible failures."""


class NotFoundError(PanelError):
    """An expert, discussion or credential does not exist."""


class ExpertNotFoundError(NotFoundError):
    def __init__(self, expert_id: str) -> None:
        self.expert_id = expert_id
        super().__init__(f"Expert not found: {expert_id}")


class IneligibleTurnError(PanelError):
    """The turn policy rejected the requested action."""


class PersistenceError(PanelError):
    """The discussion store failed to read or write."""
