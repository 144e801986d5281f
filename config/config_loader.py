"""Load settings.yaml into typed dataclasses."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from expert_panel.experts import ExpertRole

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"

DB_PATH_ENV = "EXPERT_PANEL_DB"

_PROMPT_STYLES = ("structured", "chat")


@dataclass
class ModelConfig:
    name: str              # credential provider id: "openai", "claude", "gemini"
    sdk: str
    model: str
    timeout_sec: int
    base_url: str | None = None


@dataclass
class PromptsConfig:
    turn: str


@dataclass
class DefaultsConfig:
    database_path: Path
    export_dir: Path
    context_window: int = 5
    max_tokens: int = 1000
    min_experts: int = 1
    max_experts: int = 3
    prompt_style: str = "structured"


@dataclass
class AppConfig:
    defaults: DefaultsConfig
    models: dict[str, ModelConfig]
    prompts: PromptsConfig
    experts: list[ExpertRole] = field(default_factory=list)


def _load_expert(raw: dict) -> ExpertRole:
    missing = [k for k in ("id", "name", "system_prompt") if not raw.get(k)]
    if missing:
        raise ValueError(f"Expert entry missing fields {missing}: {raw!r}")
    return ExpertRole(
        id=str(raw["id"]),
        name=str(raw["name"]),
        title=str(raw.get("title", "")),
        description=str(raw.get("description", "")),
        expertise=[str(e) for e in raw.get("expertise", [])],
        system_prompt=str(raw["system_prompt"]).strip(),
    )


def load_config(settings_path: Path = _SETTINGS_PATH) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Raises FileNotFoundError if the settings file is missing and ValueError
    for malformed expert entries or an unknown prompt style. The database
    path can be overridden with the EXPERT_PANEL_DB environment variable.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    defaults_raw = raw["defaults"]
    db_override = os.environ.get(DB_PATH_ENV, "").strip()
    defaults = DefaultsConfig(
        database_path=Path(db_override or defaults_raw["database_path"]),
        export_dir=Path(defaults_raw.get("export_dir", "./output")),
        context_window=int(defaults_raw.get("context_window", 5)),
        max_tokens=int(defaults_raw.get("max_tokens", 1000)),
        min_experts=int(defaults_raw.get("min_experts", 1)),
        max_experts=int(defaults_raw.get("max_experts", 3)),
        prompt_style=str(defaults_raw.get("prompt_style", "structured")),
    )
    if defaults.prompt_style not in _PROMPT_STYLES:
        raise ValueError(f"Unknown prompt_style: {defaults.prompt_style}")
    if db_override:
        logger.info("Database path overridden by %s", DB_PATH_ENV)

    prompts = PromptsConfig(turn=raw["prompts"]["turn"])

    models: dict[str, ModelConfig] = {}
    for provider_name, model_raw in raw["models"].items():
        models[provider_name] = ModelConfig(
            name=provider_name,
            sdk=model_raw["sdk"],
            model=model_raw["model"],
            timeout_sec=int(model_raw["timeout_sec"]),
            base_url=model_raw.get("base_url"),
        )

    experts = [_load_expert(e) for e in raw.get("experts", [])]
    logger.debug("Loaded %d experts, %d provider models", len(experts), len(models))

    return AppConfig(
        defaults=defaults,
        models=models,
        prompts=prompts,
        experts=experts,
    )
