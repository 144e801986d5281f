"""Tests for expert_panel/synthesizer.py."""

from dataclasses import replace

import pytest
from unittest.mock import AsyncMock

from expert_panel.errors import ExpertNotFoundError, NotFoundError
from expert_panel.providers.base import InvalidCredentialError, ProviderError
from expert_panel.synthesizer import ResponseSynthesizer, peer_roster


@pytest.fixture
def discussion(store):
    return store.create_discussion("Event sourcing?", "", ["architect", "security", "devops"])


def _sent(mock_provider):
    call = mock_provider.complete.call_args
    return call.args[0], call.kwargs["system"], call.kwargs["max_tokens"]


async def test_respond_builds_structured_prompt(synthesizer, mock_provider, store, discussion, active_key):
    store.append_message(discussion.id, "user", "Should billing be event sourced?", 1)
    store.append_message(discussion.id, "architect", "Yes, with an outbox table.", 1)

    contribution = await synthesizer.respond(discussion, "security", "What are the risks?")

    messages, system, max_tokens = _sent(mock_provider)
    assert system == "You are a Chief Security Architect."
    assert max_tokens == 1000
    assert len(messages) == 1 and messages[0]["role"] == "user"
    prompt = messages[0]["content"]
    assert "Tech Architect: Yes, with an outbox table." in prompt
    assert "User: Should billing be event sourced?" in prompt
    assert "What are the risks?" in prompt
    # peer roster lists co-panelists but not the responding expert
    assert "- Tech Architect (Principal Solutions Architect)" in prompt
    assert "- DevOps Expert (DevOps Architect)" in prompt
    assert "- Security Expert" not in prompt
    assert contribution.expert_id == "security"
    assert contribution.content == "Mock response"


async def test_respond_uses_bounded_context(synthesizer, mock_provider, store, discussion, active_key):
    for i in range(12):
        store.append_message(discussion.id, "user", f"old message {i:02d}", 1)

    await synthesizer.respond(discussion, "architect", "Next?")

    prompt = _sent(mock_provider)[0][0]["content"]
    assert "old message 06" not in prompt
    for i in range(7, 12):
        assert f"old message {i:02d}" in prompt


async def test_respond_chat_style_uses_persona_framing(
    sample_app_config, registry, store, key_store, mock_provider, discussion, active_key
):
    config = replace(sample_app_config, defaults=replace(sample_app_config.defaults, prompt_style="chat"))
    synth = ResponseSynthesizer(config, registry, store, key_store, provider_factory=lambda c, cfg: mock_provider)
    store.append_message(discussion.id, "user", "Hello", 1)

    await synth.respond(discussion, "architect", "Go")

    messages, system, _ = _sent(mock_provider)
    assert system is None
    assert messages == [
        {"role": "assistant", "content": "You are a Principal Solutions Architect."},
        {"role": "user", "content": "Hello"},
        {"role": "user", "content": "Go"},
    ]


async def test_respond_analyzes_completion(synthesizer, mock_provider, store, discussion, active_key):
    prior = store.append_message(discussion.id, "architect", "Use an outbox table for event publishing.", 1)
    mock_provider.complete = AsyncMock(
        return_value="I agree: keep the outbox table for event publishing, specifically per tenant."
    )

    contribution = await synthesizer.respond(discussion, "security", "Thoughts?")

    assert [r.message_id for r in contribution.refs] == [prior.id]
    assert contribution.metadata.contribution_type == "supporting"
    assert contribution.metadata.confidence == pytest.approx(1.0)
    assert contribution.metadata.agreement_level == pytest.approx(0.7)


async def test_unknown_expert_is_fatal(synthesizer, mock_provider, discussion, active_key):
    with pytest.raises(ExpertNotFoundError):
        await synthesizer.respond(discussion, "wizard", "Hi")
    mock_provider.complete.assert_not_called()


async def test_missing_credential_is_fatal(synthesizer, mock_provider, discussion):
    with pytest.raises(NotFoundError, match="No active API key"):
        await synthesizer.respond(discussion, "architect", "Hi")
    mock_provider.complete.assert_not_called()


async def test_touches_credential_after_success(synthesizer, key_store, discussion, active_key):
    await synthesizer.respond(discussion, "architect", "Hi")
    assert key_store.get(active_key.id).last_used is not None


async def test_invalid_credential_leaves_last_used_untouched(
    synthesizer, mock_provider, key_store, discussion, active_key
):
    mock_provider.complete = AsyncMock(side_effect=InvalidCredentialError("openai"))
    with pytest.raises(InvalidCredentialError, match="Invalid API key"):
        await synthesizer.respond(discussion, "architect", "Hi")
    assert key_store.get(active_key.id).last_used is None
    assert mock_provider.complete.call_count == 1


async def test_unexpected_error_is_wrapped(synthesizer, mock_provider, discussion, active_key):
    mock_provider.complete = AsyncMock(side_effect=RuntimeError("socket closed"))
    with pytest.raises(ProviderError, match="Failed to get expert response: .*socket closed"):
        await synthesizer.respond(discussion, "architect", "Hi")


def test_peer_roster_skips_self_and_unknown(registry):
    from tests.conftest import make_discussion

    d = make_discussion(["architect", "ghost", "devops"])
    assert [p.id for p in peer_roster(d, "architect", registry)] == ["devops"]
