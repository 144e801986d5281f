"""Tests for expert_panel/models.py dataclasses."""

from expert_panel.models import ContributionMetadata, Discussion, Message


def test_discussion_defaults():
    d = Discussion(id="d1", topic="T", description="", participant_ids=["architect"])
    assert d.mode == "sequential"
    assert d.status == "active"
    assert d.current_round == 1
    assert d.metadata == {}


def test_metadata_defaults():
    m = ContributionMetadata()
    assert (m.confidence, m.agreement_level, m.contribution_type) == (0.7, 0.5, "primary")


def test_message_is_user():
    m = Message(id="m1", discussion_id="d1", author="user", content="Hi", round=1, response_order=1)
    assert m.is_user is True
    assert m.refs == []
    m2 = Message(id="m2", discussion_id="d1", author="architect", content="Hi", round=1, response_order=2)
    assert m2.is_user is False
