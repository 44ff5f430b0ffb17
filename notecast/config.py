from __future__ import annotations

import hashlib
import json
import os
from pathlib import Path
from typing import Iterable, Mapping

import yaml
from pydantic import ValidationError

from .config_schema import AppConfig
from .errors import ConfigError


def load_config(path: str | Path) -> AppConfig:
    """
    Load a YAML config file and validate it into a typed AppConfig.

    Raises ConfigError with a readable validation message on failure.
    """
    p = Path(path)

    if not p.exists():
        raise ConfigError(f"Config file not found: {p}")

    try:
        raw_text = p.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Failed to read config file: {p}") from e

    try:
        data = yaml.safe_load(raw_text)
    except Exception as e:  # PyYAML can raise multiple exception types
        raise ConfigError(f"Failed to parse YAML in {p}: {e}") from e

    if data is None:
        data = {}

    if not isinstance(data, dict):
        raise ConfigError(f"Top-level YAML in {p} must be a mapping/object")

    try:
        return AppConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(_format_pydantic_errors(e, p)) from e


def resolve_server_credentials(
    config: AppConfig,
    server_names: Iterable[str],
    *,
    environ: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """
    Resolve Authorization header values for the named servers.

    Only servers that declare `auth_env` need a value; a missing or empty variable
    for any of them raises ConfigError naming every missing variable.
    """
    env = os.environ if environ is None else environ
    by_name = {s.name: s for s in config.servers}

    out: dict[str, str] = {}
    missing: list[str] = []

    for raw in server_names:
        name = (raw or "").strip().lower()
        server = by_name.get(name)
        if server is None:
            raise ConfigError(f"Unknown server: {raw!r}")
        if not server.auth_env:
            continue
        value = (env.get(server.auth_env) or "").strip()
        if not value:
            if server.auth_env not in missing:
                missing.append(server.auth_env)
            continue
        out[name] = value

    if missing:
        joined = ", ".join(missing)
        raise ConfigError(f"Missing required environment variables: {joined}")

    return out


def config_sha256(config: AppConfig) -> str:
    """
    Compute a stable SHA-256 hash of the config values for reproducibility.
    """
    payload = json.dumps(
        config.model_dump(mode="json"),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    ).encode("utf-8")
    return hashlib.sha256(payload).hexdigest()


def _format_pydantic_errors(err: ValidationError, path: Path) -> str:
    lines: list[str] = [f"Invalid configuration in {path}:"]
    for item in err.errors():
        loc = ".".join(str(part) for part in item.get("loc", [])) or "<root>"
        msg = item.get("msg", "invalid value")
        lines.append(f"- {loc}: {msg}")
    return "\n".join(lines)
