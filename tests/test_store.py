"""Tests for expert_panel/store.py."""

import pytest

from expert_panel.errors import NotFoundError
from expert_panel.models import Contribution, ContributionMetadata, MessageRef
from expert_panel.store import SQLiteDiscussionStore


@pytest.fixture
def discussion(store: SQLiteDiscussionStore):
    return store.create_discussion("Event sourcing?", "Billing rewrite", ["architect", "security"])


def test_create_discussion_defaults(discussion):
    assert discussion.status == "active"
    assert discussion.current_round == 1
    assert discussion.mode == "sequential"
    assert discussion.participant_ids == ["architect", "security"]
    assert discussion.metadata == {}
    assert discussion.created_at is not None


def test_get_missing_discussion(store):
    with pytest.raises(NotFoundError, match="Discussion not found"):
        store.get_discussion("nope")


def test_response_order_starts_at_one_without_gaps(store, discussion):
    orders = [
        store.append_message(discussion.id, author, "text", 1).response_order
        for author in ["user", "architect", "user", "security"]
    ]
    assert orders == [1, 2, 3, 4]
    assert store.get_next_response_order(discussion.id, 1) == 5


def test_response_order_is_per_round(store, discussion):
    store.append_message(discussion.id, "architect", "r1", 1)
    store.append_message(discussion.id, "security", "r1", 1)
    assert store.get_next_response_order(discussion.id, 2) == 1
    assert store.append_message(discussion.id, "architect", "r2", 2).response_order == 1


def test_append_to_missing_discussion(store):
    with pytest.raises(NotFoundError):
        store.append_message("nope", "architect", "text", 1)


def test_refs_and_metadata_round_trip(store, discussion):
    refs = [MessageRef(message_id="m0", expert_id="architect", quote="use an outbox", context="…use an outbox…")]
    meta = ContributionMetadata(confidence=0.8, agreement_level=0.3, contribution_type="supporting")
    msg = store.append_message(discussion.id, "security", "text", 1, refs=refs, metadata=meta)
    loaded = store.get_messages(discussion.id)[0]
    assert loaded.id == msg.id
    assert loaded.refs == refs
    assert loaded.metadata == meta


def test_missing_metadata_gets_defaults(store, discussion):
    store.append_message(discussion.id, "user", "question", 1)
    msg = store.get_messages(discussion.id)[0]
    assert msg.metadata == ContributionMetadata(0.7, 0.5, "primary")
    assert msg.refs == []


def test_recent_messages_newest_first_and_limited(store, discussion):
    for i in range(8):
        store.append_message(discussion.id, "user", f"msg {i}", 1 + i // 4)
    recent = store.get_recent_messages(discussion.id, 3)
    assert [m.content for m in recent] == ["msg 7", "msg 6", "msg 5"]


def test_round_messages_filtered(store, discussion):
    store.append_message(discussion.id, "architect", "a", 1)
    store.append_message(discussion.id, "architect", "b", 2)
    assert [m.content for m in store.get_round_messages(discussion.id, 2)] == ["b"]


def test_update_round_and_status(store, discussion):
    store.update_round(discussion.id, 3)
    store.update_status(discussion.id, "completed")
    reloaded = store.get_discussion(discussion.id)
    assert reloaded.current_round == 3
    assert reloaded.status == "completed"


def test_update_missing_discussion(store):
    with pytest.raises(NotFoundError):
        store.update_round("nope", 2)


def test_delete_discussion_removes_messages(store, discussion):
    store.append_message(discussion.id, "architect", "a", 1)
    store.delete_discussion(discussion.id)
    assert store.get_messages(discussion.id) == []
    with pytest.raises(NotFoundError):
        store.get_discussion(discussion.id)


def test_list_discussions(store, discussion):
    other = store.create_discussion("Second", "", ["devops"], mode="parallel")
    ids = {d.id for d in store.list_discussions()}
    assert ids == {discussion.id, other.id}


def test_store_reopens_existing_file(db_path, discussion):
    reopened = SQLiteDiscussionStore(db_path)
    assert reopened.get_discussion(discussion.id).topic == "Event sourcing?"


def test_append_turn_writes_user_then_expert(store, discussion):
    store.append_message(discussion.id, "architect", "earlier", 1)
    contribution = Contribution(
        expert_id="security",
        content="Encrypt the payloads.",
        refs=[],
        metadata=ContributionMetadata(0.8, 0.7, "supporting"),
    )
    reply = store.append_turn(discussion.id, 1, "What about risks?", contribution)

    assert reply.author == "security"
    assert reply.response_order == 3
    assert reply.metadata.contribution_type == "supporting"
    messages = store.get_round_messages(discussion.id, 1)
    assert [(m.author, m.response_order) for m in messages] == [
        ("architect", 1),
        ("user", 2),
        ("security", 3),
    ]


def test_append_turn_without_user_text(store, discussion):
    reply = store.append_turn(discussion.id, 1, "", Contribution("architect", "Go", [], ContributionMetadata()))
    assert reply.response_order == 1
    assert [m.author for m in store.get_messages(discussion.id)] == ["architect"]


def test_append_turn_missing_discussion(store):
    with pytest.raises(NotFoundError):
        store.append_turn("nope", 1, "Hi", Contribution("architect", "Go", [], ContributionMetadata()))
