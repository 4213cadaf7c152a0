"""Configuration for the avalanche analyzer entry points.

Settings are read from a JSON file (``config/analyzer.json`` by default).
The OpenAI key is never stored in the file: ``openai.api_key_env`` names the
environment variable that holds it, and ``.env`` files are honoured by the
entry points through python-dotenv.

Example::

    {
        "server": {"host": "0.0.0.0", "port": 8000},
        "openai": {"model": "gpt-4o-mini", "timeout": 60},
        "validation": {"min_margin": 3, "min_score": 6}
    }
"""

from __future__ import annotations

import json
import logging
import math
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

from ..ai.openai_client import OpenAIAvalancheClassifier
from ..ai.scoring import MIN_MARGIN, MIN_SCORE, ConsistencyValidator
from ..ai.types import Analyzer

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config/analyzer.json")


@dataclass
class ServerSettings:
    host: str = "127.0.0.1"
    port: int = 8000


@dataclass
class OpenAISettings:
    api_key_env: str = "OPENAI_API_KEY"
    model: str = "gpt-4o-mini"
    base_url: str = "https://api.openai.com/v1"
    timeout: float = 60.0
    max_tokens: int = 600
    image_detail: str = "high"

    def resolve_api_key(self) -> str | None:
        value = os.environ.get(self.api_key_env, "").strip()
        return value or None


@dataclass
class ValidationSettings:
    min_margin: int = MIN_MARGIN
    min_score: int = MIN_SCORE


@dataclass
class AppConfig:
    server: ServerSettings = field(default_factory=ServerSettings)
    openai: OpenAISettings = field(default_factory=OpenAISettings)
    validation: ValidationSettings = field(default_factory=ValidationSettings)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AppConfig:
        server_data = _section(data, "server")
        openai_data = _section(data, "openai")
        validation_data = _section(data, "validation")

        defaults_server = ServerSettings()
        defaults_openai = OpenAISettings()
        defaults_validation = ValidationSettings()

        return cls(
            server=ServerSettings(
                host=_string(server_data, "host", defaults_server.host),
                port=_int(server_data, "port", defaults_server.port, minimum=1),
            ),
            openai=OpenAISettings(
                api_key_env=_string(openai_data, "api_key_env", defaults_openai.api_key_env),
                model=_string(openai_data, "model", defaults_openai.model),
                base_url=_string(openai_data, "base_url", defaults_openai.base_url),
                timeout=_float(openai_data, "timeout", defaults_openai.timeout),
                max_tokens=_int(
                    openai_data, "max_tokens", defaults_openai.max_tokens, minimum=1
                ),
                image_detail=_string(
                    openai_data, "image_detail", defaults_openai.image_detail
                ),
            ),
            validation=ValidationSettings(
                min_margin=_int(
                    validation_data, "min_margin", defaults_validation.min_margin, minimum=1
                ),
                min_score=_int(
                    validation_data, "min_score", defaults_validation.min_score, minimum=1
                ),
            ),
        )


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name, {})
    if not isinstance(value, dict):
        logger.warning("Config section '%s' must be an object; using defaults", name)
        return {}
    return value


def _string(data: dict[str, Any], key: str, default: str) -> str:
    value = data.get(key)
    if value is None:
        return default
    if not isinstance(value, str) or not value.strip():
        logger.warning("Invalid config value %s=%r; using %r", key, value, default)
        return default
    return value.strip()


def _int(data: dict[str, Any], key: str, default: int, minimum: int) -> int:
    value = data.get(key)
    if value is None:
        return default
    if isinstance(value, float) and not value.is_integer():
        logger.warning("Invalid config value %s=%r; using %d", key, value, default)
        return default
    try:
        number = int(value)
    except (TypeError, ValueError, OverflowError):
        logger.warning("Invalid config value %s=%r; using %d", key, value, default)
        return default
    if isinstance(value, bool) or number < minimum:
        logger.warning("Invalid config value %s=%r; using %d", key, value, default)
        return default
    return number


def _float(data: dict[str, Any], key: str, default: float) -> float:
    value = data.get(key)
    if value is None:
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        logger.warning("Invalid config value %s=%r; using %.1f", key, value, default)
        return default
    if isinstance(value, bool) or not math.isfinite(number) or number <= 0:
        logger.warning("Invalid config value %s=%r; using %.1f", key, value, default)
        return default
    return number


def build_analyzer_factory(config: AppConfig) -> Callable[[str], Analyzer]:
    settings = config.openai
    validator = ConsistencyValidator(
        min_margin=config.validation.min_margin,
        min_score=config.validation.min_score,
    )

    def factory(api_key: str) -> Analyzer:
        return OpenAIAvalancheClassifier(
            api_key=api_key,
            model=settings.model,
            base_url=settings.base_url,
            timeout=settings.timeout,
            max_tokens=settings.max_tokens,
            image_detail=settings.image_detail,
            validator=validator,
        )

    return factory


def load_config(path: Path | None = None) -> AppConfig:
    """Load configuration, falling back to defaults when no file is given.

    A missing explicit path raises ``FileNotFoundError``; invalid JSON raises
    ``ValueError`` so the entry point can report it and exit.
    """
    if path is None:
        logger.info("No configuration file given; using defaults")
        return AppConfig()

    content = path.read_text(encoding="utf-8")
    try:
        data = json.loads(content)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Configuration file {path} is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError(f"Configuration file {path} must contain a JSON object")

    logger.info("Loaded configuration from %s", path)
    return AppConfig.from_dict(data)


__all__ = [
    "AppConfig",
    "DEFAULT_CONFIG_PATH",
    "OpenAISettings",
    "ServerSettings",
    "ValidationSettings",
    "build_analyzer_factory",
    "load_config",
]
