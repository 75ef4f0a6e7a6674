from __future__ import annotations

import json
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Mapping, Optional, Tuple

from .azure.clients import AUTH_MODES
from .evidence.identity import FINDING_IDENTITY_MODES, FINDING_IDENTITY_SHARED


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class Settings:
    subscription_id: str
    auth_mode: str = "default"
    tenant_id: Optional[str] = None
    client_id: Optional[str] = None
    client_secret_env: str = "AZURE_CLIENT_SECRET"
    policy_paths: Tuple[str, ...] = ()
    opa_binary: str = "opa"
    opa_timeout: int = 60
    api_url: Optional[str] = None
    api_token_env: Optional[str] = None
    output_dir: Optional[str] = None
    evidence_retention_hours: float = 24
    finding_identity: str = FINDING_IDENTITY_SHARED
    log_level: str = "INFO"

    def client_secret(self, env: Optional[Mapping[str, str]] = None) -> Optional[str]:
        env = os.environ if env is None else env
        return _optional_str(env.get(self.client_secret_env))

    def api_token(self, env: Optional[Mapping[str, str]] = None) -> Optional[str]:
        if not self.api_token_env:
            return None
        env = os.environ if env is None else env
        return _optional_str(env.get(self.api_token_env))


def load_config(path: str | Path, env: Optional[Mapping[str, str]] = None) -> Settings:
    config_path = Path(path)
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    with config_path.open("r", encoding="utf-8") as handle:
        try:
            raw = json.load(handle)
        except json.JSONDecodeError as exc:
            raise ConfigError(f"Config file is not valid JSON: {exc}") from exc

    if not isinstance(raw, dict):
        raise ConfigError("Config must be a JSON object")
    return settings_from_mapping(raw, env=env)


def settings_from_mapping(raw: Mapping[str, Any], env: Optional[Mapping[str, str]] = None) -> Settings:
    """Build settings from a parsed config file or a flat {str: str} plugin config."""
    env = os.environ if env is None else env

    subscription_id = _optional_str(raw.get("subscription_id")) or _optional_str(env.get("AZURE_SUBSCRIPTION_ID"))
    if not subscription_id:
        raise ConfigError("Config must include 'subscription_id' (or set AZURE_SUBSCRIPTION_ID)")

    auth_mode = str(raw.get("auth_mode", "default")).strip().lower()
    if auth_mode not in AUTH_MODES:
        raise ConfigError(f"'auth_mode' must be one of: {', '.join(AUTH_MODES)}")

    finding_identity = str(raw.get("finding_identity", FINDING_IDENTITY_SHARED)).strip().lower()
    if finding_identity not in FINDING_IDENTITY_MODES:
        raise ConfigError(f"'finding_identity' must be one of: {', '.join(FINDING_IDENTITY_MODES)}")

    settings = Settings(
        subscription_id=subscription_id,
        auth_mode=auth_mode,
        tenant_id=_optional_str(raw.get("tenant_id")) or _optional_str(env.get("AZURE_TENANT_ID")),
        client_id=_optional_str(raw.get("client_id")) or _optional_str(env.get("AZURE_CLIENT_ID")),
        client_secret_env=_optional_str(raw.get("client_secret_env")) or "AZURE_CLIENT_SECRET",
        policy_paths=tuple(_ensure_string_list(raw.get("policy_paths"))),
        opa_binary=_optional_str(raw.get("opa_binary")) or "opa",
        opa_timeout=_positive(raw.get("opa_timeout", 60), "opa_timeout", int),
        api_url=_optional_str(raw.get("api_url")),
        api_token_env=_optional_str(raw.get("api_token_env")),
        output_dir=_optional_str(raw.get("output_dir")),
        evidence_retention_hours=_positive(raw.get("evidence_retention_hours", 24), "evidence_retention_hours", float),
        finding_identity=finding_identity,
        log_level=str(raw.get("log_level", "INFO")).strip().upper(),
    )

    if auth_mode == "service_principal" and not (settings.tenant_id and settings.client_id):
        raise ConfigError("'service_principal' auth requires 'tenant_id' and 'client_id'")
    return settings


def with_overrides(settings: Settings, **overrides: Any) -> Settings:
    values = {k: v for k, v in overrides.items() if v not in (None, (), [])}
    if "policy_paths" in values:
        values["policy_paths"] = tuple(values["policy_paths"])
    return replace(settings, **values)


def validate_for_run(settings: Settings) -> None:
    if not settings.policy_paths:
        raise ConfigError("At least one policy path is required")
    if not settings.api_url and not settings.output_dir:
        raise ConfigError("Configure an evidence sink: 'api_url' or 'output_dir'")


def _optional_str(value: object) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _ensure_string_list(value: object) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        # plugin configs arrive as flat strings
        return [item.strip() for item in value.split(",") if item.strip()]
    if not isinstance(value, list):
        raise ConfigError("Expected a list of strings")
    return [str(item) for item in value]


def _positive(value: object, name: str, cast):
    try:
        number = cast(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"'{name}' must be a number") from exc
    if number <= 0:
        raise ConfigError(f"'{name}' must be positive")
    return number
