"""Tests for config/config_loader.py."""

from pathlib import Path

import pytest
import yaml

from config.config_loader import AppConfig, ModelConfig, PromptsConfig, load_config


def _settings(**overrides) -> dict:
    settings = {
        "defaults": {
            "database_path": "./data/test.db",
            "export_dir": "./output",
            "context_window": 4,
            "max_tokens": 800,
        },
        "models": {
            "openai": {"sdk": "openai", "model": "gpt-4", "timeout_sec": 60},
        },
        "prompts": {"turn": "{persona}\n{question}"},
        "experts": [
            {
                "id": "architect",
                "name": "Tech Architect",
                "title": "Principal Solutions Architect",
                "expertise": ["System Design"],
                "system_prompt": "You are an architect.\n",
            }
        ],
    }
    settings.update(overrides)
    return settings


@pytest.fixture
def minimal_settings(tmp_path: Path) -> Path:
    path = tmp_path / "settings.yaml"
    path.write_text(yaml.dump(_settings()), encoding="utf-8")
    return path


def test_load_config_returns_app_config(minimal_settings):
    assert isinstance(load_config(minimal_settings), AppConfig)


def test_load_config_defaults(minimal_settings, monkeypatch):
    monkeypatch.delenv("EXPERT_PANEL_DB", raising=False)
    config = load_config(minimal_settings)
    assert config.defaults.context_window == 4
    assert config.defaults.max_tokens == 800
    assert config.defaults.max_experts == 3
    assert config.defaults.prompt_style == "structured"
    assert config.defaults.database_path == Path("./data/test.db")


def test_db_path_env_override(minimal_settings, monkeypatch, tmp_path):
    monkeypatch.setenv("EXPERT_PANEL_DB", str(tmp_path / "other.db"))
    assert load_config(minimal_settings).defaults.database_path == tmp_path / "other.db"


def test_load_config_models(minimal_settings):
    config = load_config(minimal_settings)
    assert isinstance(config.models["openai"], ModelConfig)
    assert config.models["openai"].model == "gpt-4"
    assert config.models["openai"].base_url is None


def test_load_config_prompts(minimal_settings):
    config = load_config(minimal_settings)
    assert isinstance(config.prompts, PromptsConfig)
    assert "{question}" in config.prompts.turn


def test_load_config_experts(minimal_settings):
    experts = load_config(minimal_settings).experts
    assert [e.id for e in experts] == ["architect"]
    assert experts[0].system_prompt == "You are an architect."
    assert experts[0].expertise == ["System Design"]


def test_expert_missing_prompt_rejected(tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text(yaml.dump(_settings(experts=[{"id": "x", "name": "X"}])), encoding="utf-8")
    with pytest.raises(ValueError, match="system_prompt"):
        load_config(path)


def test_unknown_prompt_style_rejected(tmp_path):
    raw = _settings()
    raw["defaults"]["prompt_style"] = "poetic"
    path = tmp_path / "settings.yaml"
    path.write_text(yaml.dump(raw), encoding="utf-8")
    with pytest.raises(ValueError, match="prompt_style"):
        load_config(path)


def test_load_config_missing_file():
    with pytest.raises(FileNotFoundError):
        load_config(Path("/nonexistent/settings.yaml"))


def test_bundled_settings_load():
    config = load_config()
    assert [e.id for e in config.experts] == ["architect", "security", "devops"]
    assert {"openai", "claude", "gemini"} <= set(config.models)
    for placeholder in ("{persona}", "{peers}", "{transcript}", "{question}"):
        assert placeholder in config.prompts.turn
