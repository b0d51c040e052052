"""
Configuration for the enigma CLI.

Three layers, lowest precedence first:
  1. Built-in defaults  (the dataclasses below)
  2. .pplxrc            (YAML file in the working directory)
  3. Environment        (PPLX_* variables, see SETTINGS)

Every leaf goes through a typed parser before it is merged, so a bad value
in the file or the environment falls back to the layer beneath it instead
of leaking into the request.
"""

from __future__ import annotations

import enum
import logging
import math
import os
import re
from collections.abc import Mapping
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Callable

import yaml

log = logging.getLogger("enigma.config")

CONFIG_FILE = ".pplxrc"

# --- API key format ---
API_KEY_PREFIX = "pplx-"
API_KEY_MIN_LENGTH = 37    # prefix (5) + 32 chars
API_KEY_MAX_LENGTH = 128
_KEY_SUFFIX_RE = re.compile(r"^[A-Za-z0-9_-]+$")

SEARCH_MODES = ("low", "medium", "high")
OUTPUT_FORMATS = ("markdown", "json", "plain")

AVAILABLE_MODELS = [
    "sonar",
    "sonar-pro",
    "sonar-reasoning",
    "sonar-reasoning-pro",
    "sonar-reasoning-large",
    "sonar-deep-research",
    "sonar-large",
]


# ----------------------------------------------------------------------
# Schema
# ----------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class ApiConfig:
    key: str | None = None
    base_url: str = "https://api.perplexity.ai"
    timeout: float = 60000  # milliseconds


@dataclass(frozen=True, slots=True)
class ModelConfig:
    default: str = "sonar-pro"
    search_heavy: str = "sonar-pro"
    reasoning: str = "sonar-reasoning-pro"
    fast: str = "sonar"
    deep_research: str = "sonar-deep-research"


@dataclass(frozen=True, slots=True)
class AgentConfig:
    max_iterations: int = 10
    temperature: float = 0.3
    max_tokens: int = 4096
    top_p: float = 0.9


@dataclass(frozen=True, slots=True)
class ResearchConfig:
    search_mode: str = "medium"
    include_citations: bool = True
    focus_on_recent: bool = True


@dataclass(frozen=True, slots=True)
class OutputConfig:
    format: str = "markdown"
    stream: bool = False
    verbose: bool = False


@dataclass(frozen=True, slots=True)
class EnigmaConfig:
    """Effective configuration for one invocation. Read-only once resolved."""

    api: ApiConfig = field(default_factory=ApiConfig)
    models: ModelConfig = field(default_factory=ModelConfig)
    agent: AgentConfig = field(default_factory=AgentConfig)
    research: ResearchConfig = field(default_factory=ResearchConfig)
    output: OutputConfig = field(default_factory=OutputConfig)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping) -> EnigmaConfig:
        """Build from a fully merged mapping (defaults already applied)."""
        return cls(
            api=ApiConfig(**data["api"]),
            models=ModelConfig(**data["models"]),
            agent=AgentConfig(**data["agent"]),
            research=ResearchConfig(**data["research"]),
            output=OutputConfig(**data["output"]),
        )


DEFAULT_CONFIG = EnigmaConfig()


# ----------------------------------------------------------------------
# Typed parsers
# ----------------------------------------------------------------------

def parse_boolean(value: str | None) -> bool | None:
    """'true' / '1' are true, any other string is false, None stays None."""
    if value is None:
        return None
    return value in ("true", "1")


def parse_number(value: str | None) -> int | float | None:
    if value is None:
        return None
    try:
        number = float(value)
    except ValueError:
        return None
    if not math.isfinite(number):
        return None
    return int(number) if number.is_integer() else number


def parse_search_mode(value: str | None) -> str | None:
    return value if value in SEARCH_MODES else None


def parse_output_format(value: str | None) -> str | None:
    return value if value in OUTPUT_FORMATS else None


def _parse_text(value: str | None) -> str | None:
    return value


@dataclass(frozen=True, slots=True)
class Setting:
    """One config leaf: where it lives, its env var, and how to parse it."""

    section: str
    name: str
    env: str
    parse: Callable[[str], Any]
    native: tuple[type, ...]

    def coerce(self, value: Any) -> Any:
        """Parse a file value. Returns None when the value is rejected."""
        if isinstance(value, str):
            return self.parse(value)
        # bool is an int subclass; don't let `timeout: true` through as 1
        if isinstance(value, bool) and bool not in self.native:
            return None
        if isinstance(value, self.native):
            return value
        return None


_NUMBER = (int, float)

SETTINGS: tuple[Setting, ...] = (
    Setting("api", "key", "PPLX_API_KEY", _parse_text, (str,)),
    Setting("api", "base_url", "PPLX_API_BASE_URL", _parse_text, (str,)),
    Setting("api", "timeout", "PPLX_API_TIMEOUT", parse_number, _NUMBER),
    Setting("models", "default", "PPLX_MODEL_DEFAULT", _parse_text, (str,)),
    Setting("models", "search_heavy", "PPLX_MODEL_SEARCH_HEAVY", _parse_text, (str,)),
    Setting("models", "reasoning", "PPLX_MODEL_REASONING", _parse_text, (str,)),
    Setting("models", "fast", "PPLX_MODEL_FAST", _parse_text, (str,)),
    Setting("models", "deep_research", "PPLX_MODEL_DEEP_RESEARCH", _parse_text, (str,)),
    Setting("agent", "max_iterations", "PPLX_AGENT_MAX_ITERATIONS", parse_number, _NUMBER),
    Setting("agent", "temperature", "PPLX_AGENT_TEMPERATURE", parse_number, _NUMBER),
    Setting("agent", "max_tokens", "PPLX_AGENT_MAX_TOKENS", parse_number, _NUMBER),
    Setting("agent", "top_p", "PPLX_AGENT_TOP_P", parse_number, _NUMBER),
    Setting("research", "search_mode", "PPLX_SEARCH_MODE", parse_search_mode, ()),
    Setting("research", "include_citations", "PPLX_INCLUDE_CITATIONS", parse_boolean, (bool,)),
    Setting("research", "focus_on_recent", "PPLX_FOCUS_ON_RECENT", parse_boolean, (bool,)),
    Setting("output", "format", "PPLX_OUTPUT_FORMAT", parse_output_format, ()),
    Setting("output", "stream", "PPLX_OUTPUT_STREAM", parse_boolean, (bool,)),
    Setting("output", "verbose", "PPLX_VERBOSE", parse_boolean, (bool,)),
)

API_KEY_ENV = "PPLX_API_KEY"


# ----------------------------------------------------------------------
# Merging
# ----------------------------------------------------------------------

def deep_merge(base: Mapping, override: Any) -> dict:
    """
    Overlay `override` onto `base` and return a new dict.

    Nested mappings merge key-wise, lists replace wholesale, None values in
    `override` are skipped. A non-mapping `override` leaves `base` as is.
    """
    if not isinstance(override, Mapping):
        return dict(base)
    result = dict(base)
    for key, value in override.items():
        if value is None:
            continue
        if isinstance(value, list):
            result[key] = list(value)
        elif isinstance(value, Mapping):
            current = result.get(key)
            result[key] = deep_merge(current if isinstance(current, Mapping) else {}, value)
        else:
            result[key] = value
    return result


def _set_leaf(overlay: dict, setting: Setting, value: Any) -> None:
    overlay.setdefault(setting.section, {})[setting.name] = value


def _load_file_overlay(base_dir: Path) -> dict:
    path = base_dir / CONFIG_FILE
    if not path.exists():
        return {}

    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, yaml.YAMLError) as exc:
        log.warning("Unable to parse %s: %s. Using defaults.", path, exc)
        return {}
    if raw is None:
        return {}
    if not isinstance(raw, Mapping):
        log.warning("Ignoring %s: expected a mapping at the top level.", path)
        return {}

    overlay: dict = {}
    for setting in SETTINGS:
        section = raw.get(setting.section)
        if not isinstance(section, Mapping) or section.get(setting.name) is None:
            continue
        value = setting.coerce(section[setting.name])
        if value is None:
            log.warning(
                "Ignoring invalid value for %s.%s in %s: %r",
                setting.section, setting.name, path, section[setting.name],
            )
            continue
        _set_leaf(overlay, setting, value)
    return overlay


def _load_env_overlay() -> dict:
    overlay: dict = {}
    for setting in SETTINGS:
        raw = os.environ.get(setting.env)
        if raw is None:
            continue
        value = setting.parse(raw)
        if value is None:
            log.debug("Ignoring unparsable %s=%r", setting.env, raw)
            continue
        _set_leaf(overlay, setting, value)
    return overlay


def load_config(base_dir: str | Path | None = None) -> EnigmaConfig:
    """Resolve defaults <- .pplxrc <- environment into one EnigmaConfig."""
    directory = Path(base_dir) if base_dir is not None else Path.cwd()
    merged = deep_merge(DEFAULT_CONFIG.to_dict(), _load_file_overlay(directory))
    merged = deep_merge(merged, _load_env_overlay())
    return EnigmaConfig.from_dict(merged)


def resolve_api_key(config: EnigmaConfig) -> str | None:
    """Environment key wins over the file/default one."""
    env_key = os.environ.get(API_KEY_ENV)
    if env_key is not None:
        return env_key
    return config.api.key


# ----------------------------------------------------------------------
# Validation
# ----------------------------------------------------------------------

def validate_model_name(requested: str | None, config: EnigmaConfig) -> tuple[str, bool]:
    """
    Return (model, was_invalid).

    No request -> configured default. Unknown model -> warning + default.
    """
    if not requested:
        return config.models.default, False
    if requested in AVAILABLE_MODELS:
        return requested, False
    log.warning(
        'Invalid model "%s". Available models: %s. Using default: %s',
        requested, ", ".join(AVAILABLE_MODELS), config.models.default,
    )
    return config.models.default, True


class KeyProblem(enum.Enum):
    EMPTY = "API key is required"
    WRONG_PREFIX = f'API key must start with "{API_KEY_PREFIX}"'
    TOO_SHORT = "API key is too short"
    TOO_LONG = "API key is too long"
    INVALID_CHARS = "API key contains invalid characters"


@dataclass(frozen=True, slots=True)
class KeyCheck:
    valid: bool
    problem: KeyProblem | None = None

    @property
    def message(self) -> str | None:
        return self.problem.value if self.problem else None


def validate_api_key_format(key: str | None) -> KeyCheck:
    """Check the shape of a key without contacting the API."""
    if not isinstance(key, str) or not key.strip():
        return KeyCheck(False, KeyProblem.EMPTY)

    key = key.strip()
    if not key.startswith(API_KEY_PREFIX):
        return KeyCheck(False, KeyProblem.WRONG_PREFIX)
    if len(key) < API_KEY_MIN_LENGTH:
        return KeyCheck(False, KeyProblem.TOO_SHORT)
    if len(key) > API_KEY_MAX_LENGTH:
        return KeyCheck(False, KeyProblem.TOO_LONG)
    if not _KEY_SUFFIX_RE.match(key[len(API_KEY_PREFIX):]):
        return KeyCheck(False, KeyProblem.INVALID_CHARS)
    return KeyCheck(True)


# ----------------------------------------------------------------------
# Persistence
# ----------------------------------------------------------------------

def write_secure_file(path: str | Path, content: str) -> None:
    """Write `content` readable and writable by the owner only (0600)."""
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as fh:
        fh.write(content)
    # os.open keeps the old mode of an existing file
    os.chmod(path, 0o600)


def save_config(config: EnigmaConfig, path: str | Path | None = None) -> Path:
    target = Path(path) if path is not None else Path.cwd() / CONFIG_FILE
    write_secure_file(target, yaml.safe_dump(config.to_dict(), sort_keys=False))
    log.debug("Configuration written to %s", target)
    return target
