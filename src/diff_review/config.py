"""Configuration for Diff Review, read from ``.diff-review.yaml``."""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

DEFAULT_CONFIG_FILE = ".diff-review.yaml"
DEFAULT_OUTPUT_DIR = ".diff-review/reviews"
SESSION_ENV_VAR = "DIFF_REVIEW_SESSION"

# ${NAME} or ${NAME:-fallback}
_ENV_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-([^}]*))?\}")

_TRUE = {"true", "yes", "on", "1"}
_FALSE = {"false", "no", "off", "0", ""}


@dataclass
class ServerSettings:
    """Where the local review page is served."""

    host: str = "127.0.0.1"
    port: int = 0  # 0 picks a free port
    open_browser: bool = True


@dataclass
class Config:
    """Settings shared by all commands."""

    output_dir: str = DEFAULT_OUTPUT_DIR  # relative to the launch directory
    session_id: str = "default"
    server: ServerSettings = field(default_factory=ServerSettings)


def load_config(config_path: Path | None = None) -> Config:
    """Read settings from YAML, falling back to defaults when the file is absent.

    ``${NAME}`` references in string values are replaced from the environment
    and ``DIFF_REVIEW_SESSION`` overrides the configured session.

    Args:
        config_path: YAML file to read (default: .diff-review.yaml)

    Returns:
        Parsed configuration

    Raises:
        ValueError: If the file does not contain a mapping
        yaml.YAMLError: If the file is not valid YAML
    """
    path = config_path or Path(DEFAULT_CONFIG_FILE)

    data: Any = {}
    if path.exists():
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a mapping, got {type(data).__name__}")

    return _from_mapping(_expand_env(data))


def _expand_env(value: Any) -> Any:
    if isinstance(value, str):
        return _ENV_PATTERN.sub(
            lambda m: os.environ.get(m.group(1), m.group(2) or ""), value
        )
    if isinstance(value, dict):
        return {key: _expand_env(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_expand_env(item) for item in value]
    return value


def _as_bool(value: Any, name: str) -> bool:
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
        raise ValueError(f"{name} must be true or false, got {value!r}")
    return bool(value)


def session_id_problem(session_id: str) -> str | None:
    """Return why ``session_id`` cannot name a session directory, or None."""
    if not session_id.strip():
        return "session_id must not be empty"
    if "/" in session_id or "\\" in session_id or ".." in session_id:
        return f"session_id must not contain path separators or '..', got {session_id!r}"
    return None


def _from_mapping(raw: dict[str, Any]) -> Config:
    server = raw.get("server") or {}
    if not isinstance(server, dict):
        raise ValueError("server must be a mapping")

    defaults = ServerSettings()
    return Config(
        output_dir=str(raw.get("output_dir", DEFAULT_OUTPUT_DIR)),
        session_id=os.environ.get(SESSION_ENV_VAR) or str(raw.get("session_id", "default")),
        server=ServerSettings(
            host=str(server.get("host", defaults.host)),
            port=int(server.get("port", defaults.port)),
            open_browser=_as_bool(
                server.get("open_browser", defaults.open_browser), "server.open_browser"
            ),
        ),
    )


def validate_config(config: Config) -> list[str]:
    """Check a configuration for unusable values.

    Returns:
        Human-readable problems, empty when the configuration is usable
    """
    errors = []

    if not config.output_dir.strip():
        errors.append("output_dir must not be empty")
    problem = session_id_problem(config.session_id)
    if problem:
        errors.append(problem)
    if not config.server.host.strip():
        errors.append("server.host must not be empty")
    if not 0 <= config.server.port <= 65535:
        errors.append(f"server.port must be between 0 and 65535, got {config.server.port}")

    return errors
