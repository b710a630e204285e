"""Handles configuration loading and backend settings resolution."""

import json
import logging
import os
import re
from dataclasses import dataclass

from gsio.globals import CONFIG_FILE_NAME, retrieve_key

PROVIDERS = ("openai", "ollama")
DEFAULT_MODELS = {"openai": "gpt-4o-mini", "ollama": "llama3.1:8b"}
OLLAMA_BASE_URL = "http://localhost:11434/v1"
DEFAULT_INSTRUCTIONS = "You are a helpful assistant"

# Matches a "/v1" path segment anywhere in the URL
V1_SEGMENT = re.compile(r"/v1(?:/|$)")


def config_path(cwd: str | None = None) -> str:
    """Returns the location of the project-local config file."""
    return os.path.join(os.path.abspath(cwd or os.getcwd()), CONFIG_FILE_NAME)


def _model_string(value, fallback: str) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return fallback


def normalize_ai(data) -> dict:
    """Coerces a raw 'ai' namespace into a complete, well-typed dict."""
    data = data if isinstance(data, dict) else {}
    provider = data.get("provider") if data.get("provider") in PROVIDERS else "openai"
    models = data.get("models") if isinstance(data.get("models"), dict) else {}
    execution = _model_string(models.get("execution"), DEFAULT_MODELS[provider])
    return {
        "provider": provider,
        "model": _model_string(data.get("model"), execution),
        "baseUrl": data["baseUrl"] if isinstance(data.get("baseUrl"), str) else "",
        "apiKey": data["apiKey"] if isinstance(data.get("apiKey"), str) else "",
        "instructions": _model_string(data.get("instructions"), DEFAULT_INSTRUCTIONS),
        "models": {"execution": execution},
    }


class Config:
    """User-facing configuration variables"""

    def __init__(self, path: str | None = None):
        self.path: str = path or config_path()
        self.ai: dict = normalize_ai({})
        # Other namespaces are carried through untouched
        self.extra: dict = {}

    def load(self):
        """Loads the config file. A missing file leaves the defaults in place."""
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (FileNotFoundError, NotADirectoryError):
            return
        if not isinstance(data, dict):
            raise ValueError(f"{self.path} must contain a JSON object")
        self.ai = normalize_ai(data.get("ai"))
        self.extra = {k: v for k, v in data.items() if k != "ai"}

    def save(self):
        """Saves the normalized config to the config file."""
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump({"ai": normalize_ai(self.ai), **self.extra}, f, indent=2)

    @property
    def provider(self) -> str:
        return self.ai["provider"]

    @property
    def model_name(self) -> str:
        """Returns the model used for chat turns"""
        return self.ai["models"]["execution"] or self.ai["model"]


def load_config(path: str | None = None) -> Config:
    """Builds a Config and loads it from disk."""
    config = Config(path)
    config.load()
    return config


def normalize_base_url(provider: str, raw: str) -> tuple[str, str | None]:
    """
    Strips trailing slashes and, for Ollama, appends the "/v1" suffix the
    OpenAI-compatible API lives under.\n
    Returns the URL and a note describing any adjustment.
    """
    cleaned = (raw or "").strip().rstrip("/")
    if not cleaned:
        return "", None
    if provider == "ollama" and not V1_SEGMENT.search(cleaned):
        return (
            f"{cleaned}/v1",
            'Detected Ollama provider without "/v1"; appended automatically',
        )
    return cleaned, None


@dataclass(frozen=True)
class LLMSettings:
    """Everything needed to build a backend client. Built once at startup."""

    provider: str
    model: str
    summary_model: str
    base_url: str
    api_key: str
    instructions: str = DEFAULT_INSTRUCTIONS

    @property
    def api_mode(self) -> str:
        # Ollama only speaks Chat Completions
        return "chat_completions" if self.provider == "ollama" else "responses"


def resolve_settings(config: Config) -> LLMSettings:
    """Applies provider defaults to the loaded config."""
    provider = config.provider
    raw_url = config.ai["baseUrl"].strip() or (
        OLLAMA_BASE_URL if provider == "ollama" else ""
    )
    base_url, note = normalize_base_url(provider, raw_url)
    if note:
        logging.info(f"{note} (provider={provider}, originalBaseUrl={raw_url})")
    api_key = config.ai["apiKey"].strip() or retrieve_key(
        "ollama" if provider == "ollama" else "dummy-key"
    )
    return LLMSettings(
        provider=provider,
        model=config.model_name,
        summary_model=config.ai["model"],
        base_url=base_url,
        api_key=api_key,
        instructions=config.ai["instructions"],
    )
