"""Turn policy: who may respond next and when a round may advance.

State is derived from the discussion row and the messages tagged with its
current round; nothing here is stored. Sequential mode is a round-robin over
the participants in the order they were declared at creation.
"""

from expert_panel.errors import IneligibleTurnError
from expert_panel.models import Discussion, Message


def responded_in_round(discussion: Discussion, messages: list[Message]) -> set[str]:
    """Expert ids with at least one message in the discussion's current round."""
    return {
        m.author
        for m in messages
        if m.round == discussion.current_round and m.author in discussion.participant_ids
    }


def next_sequential_expert(discussion: Discussion, messages: list[Message]) -> str | None:
    answered = responded_in_round(discussion, messages)
    for expert_id in discussion.participant_ids:
        if expert_id not in answered:
            return expert_id
    return None


def can_respond(discussion: Discussion, expert_id: str, messages: list[Message]) -> bool:
    if discussion.status == "completed":
        return False
    if expert_id not in discussion.participant_ids:
        return False
    if discussion.mode == "parallel":
        return True
    return expert_id not in responded_in_round(discussion, messages)


def eligible_experts(discussion: Discussion, messages: list[Message]) -> list[str]:
    if discussion.status == "completed":
        return []
    if discussion.mode == "parallel":
        return list(discussion.participant_ids)
    nxt = next_sequential_expert(discussion, messages)
    return [nxt] if nxt is not None else []


def can_advance_round(discussion: Discussion, messages: list[Message]) -> bool:
    if discussion.status == "completed" or not discussion.participant_ids:
        return False
    answered = responded_in_round(discussion, messages)
    return all(expert_id in answered for expert_id in discussion.participant_ids)


def ensure_can_respond(discussion: Discussion, expert_id: str, messages: list[Message]) -> None:
    """Raise IneligibleTurnError unless ``expert_id`` may take the next turn."""
    if discussion.status == "completed":
        raise IneligibleTurnError("Discussion is completed; no further turns are allowed")
    if expert_id not in discussion.participant_ids:
        raise IneligibleTurnError(f"Expert '{expert_id}' is not a participant in this discussion")
    if discussion.mode == "parallel":
        return
    if not can_respond(discussion, expert_id, messages):
        raise IneligibleTurnError(
            f"Expert '{expert_id}' has already responded in round {discussion.current_round}"
        )
    nxt = next_sequential_expert(discussion, messages)
    if nxt != expert_id:
        raise IneligibleTurnError(
            f"Not your turn: waiting on '{nxt}' in round {discussion.current_round}"
        )


def ensure_can_advance(discussion: Discussion, messages: list[Message]) -> None:
    if discussion.status == "completed":
        raise IneligibleTurnError("Discussion is completed; rounds cannot advance")
    if not can_advance_round(discussion, messages):
        missing = [
            e for e in discussion.participant_ids
            if e not in responded_in_round(discussion, messages)
        ]
        raise IneligibleTurnError(
            f"Round {discussion.current_round} is not complete; waiting on: {', '.join(missing)}"
        )
