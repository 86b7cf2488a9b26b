#!/usr/bin/env python3
# file: .github/workflows/scripts/release_config.py
# version: 1.0.0
# guid: 5c8d2e1f-7a6b-4c3d-9e0f-b1a2c3d4e5f6

"""Configuration for release asset synchronization.

Settings are resolved from, in increasing precedence: built-in defaults, the
``release_assets`` section of ``.github/repository-config.yml``, environment
variables, and explicit overrides (CLI flags). The merged result is checked
against :data:`CONFIG_SCHEMA` before anything talks to the API.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import os
from typing import Any, Mapping, Optional

from jsonschema import ValidationError, validate

import workflow_common
from github_request import MAX_RETRY_DELAY_MS, RetryPolicy

DEFAULT_API_URL = "https://api.github.com"

DEFAULTS: dict[str, Any] = {
    "max_retries": 8,
    "base_retry_ms": 2000,
    "upload_delay_ms": 700,
    "tag": "latest",
    "api_url": DEFAULT_API_URL,
}

# setting name -> environment variable
ENV_VARS = {
    "max_retries": "RELEASE_MAX_RETRIES",
    "base_retry_ms": "RELEASE_BASE_RETRY_MS",
    "upload_delay_ms": "RELEASE_UPLOAD_DELAY_MS",
    "tag": "RELEASE_TAG",
    "api_url": "GITHUB_API_URL",
    "repository": "GITHUB_REPOSITORY",
    "target_commitish": "GITHUB_SHA",
}

INTEGER_SETTINGS = ("max_retries", "base_retry_ms", "upload_delay_ms")

CONFIG_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "max_retries": {"type": "integer", "minimum": 0},
        "base_retry_ms": {"type": "integer", "exclusiveMinimum": 0},
        "upload_delay_ms": {"type": "integer", "minimum": 0},
        "tag": {"type": "string", "minLength": 1},
        "api_url": {"type": "string", "pattern": r"^https?://"},
        "repository": {"type": "string", "pattern": r"^[^/\s]+/[^/\s]+$"},
        "token": {"type": "string", "minLength": 1},
        "target_commitish": {"type": "string", "minLength": 1},
    },
    "required": ["repository", "token"],
    "additionalProperties": False,
}

_DOCS_URL = (
    "https://docs.github.com/en/actions/security-guides/"
    "automatic-token-authentication"
)


@dataclass(frozen=True)
class ReleaseSyncConfig:
    """Immutable settings for one release sync run."""

    repository: str
    token: str = field(repr=False)
    tag: str = DEFAULTS["tag"]
    api_url: str = DEFAULT_API_URL
    max_retries: int = DEFAULTS["max_retries"]
    base_retry_ms: int = DEFAULTS["base_retry_ms"]
    upload_delay_ms: int = DEFAULTS["upload_delay_ms"]
    target_commitish: Optional[str] = None

    @property
    def owner(self) -> str:
        return self.repository.split("/", 1)[0]

    @property
    def repo(self) -> str:
        return self.repository.split("/", 1)[1]

    @property
    def repo_api_url(self) -> str:
        return f"{self.api_url.rstrip('/')}/repos/{self.owner}/{self.repo}"

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_retries=self.max_retries,
            base_delay_ms=self.base_retry_ms,
            max_delay_ms=MAX_RETRY_DELAY_MS,
        )


def _parse_int(name: str, raw: str) -> int:
    try:
        return int(raw.strip())
    except ValueError as error:
        raise workflow_common.WorkflowError(
            f"Invalid integer for {name}: {raw!r}",
            hint=f"Set {name} to a whole number",
        ) from error


def settings_from_env(environ: Mapping[str, str]) -> dict[str, Any]:
    """Collect settings present in the environment."""
    settings: dict[str, Any] = {}
    for key, env_name in ENV_VARS.items():
        raw = environ.get(env_name)
        if not raw:
            continue
        settings[key] = _parse_int(env_name, raw) if key in INTEGER_SETTINGS else raw

    token = environ.get("GH_TOKEN") or environ.get("GITHUB_TOKEN")
    if token:
        settings["token"] = token
    return settings


def settings_from_repository_config() -> dict[str, Any]:
    """Return the ``release_assets`` section of the repository config."""
    section = workflow_common.config_path({}, "release_assets")
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise workflow_common.WorkflowError(
            "release_assets in repository-config.yml must be a mapping",
            hint="Use keys such as tag, max_retries, upload_delay_ms",
        )
    if "token" in section:
        raise workflow_common.WorkflowError(
            "Tokens must not be stored in repository-config.yml",
            hint="Provide GH_TOKEN or GITHUB_TOKEN through the environment",
            docs_url=_DOCS_URL,
        )
    return dict(section)


def _describe_validation_error(error: ValidationError) -> workflow_common.WorkflowError:
    if error.validator == "required":
        missing = next(
            (key for key in error.validator_value if key not in error.instance),
            "",
        )
        if missing == "token":
            return workflow_common.WorkflowError(
                "Missing GITHUB_TOKEN (or GH_TOKEN) environment variable",
                hint="Pass secrets.GITHUB_TOKEN to the step environment",
                docs_url=_DOCS_URL,
            )
        env_name = ENV_VARS.get(missing, missing)
        return workflow_common.WorkflowError(
            f"Missing required environment variable: {env_name}",
            hint="GitHub Actions sets GITHUB_REPOSITORY automatically",
        )

    setting = ".".join(str(part) for part in error.path)
    if setting == "repository":
        return workflow_common.WorkflowError(
            f"Invalid GITHUB_REPOSITORY: {error.instance}",
            hint="Expected the owner/name form, e.g. octocat/hello-world",
        )
    if setting == "token":
        return workflow_common.WorkflowError(
            "Missing GITHUB_TOKEN (or GH_TOKEN) environment variable",
            docs_url=_DOCS_URL,
        )
    env_name = ENV_VARS.get(setting, setting or "configuration")
    return workflow_common.WorkflowError(
        f"Invalid value for {env_name}: {error.message}",
        hint="Check release_assets in repository-config.yml and the environment",
    )


def load_config(
    environ: Optional[Mapping[str, str]] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> ReleaseSyncConfig:
    """Build and validate the run configuration."""
    if environ is None:
        environ = os.environ

    settings: dict[str, Any] = dict(DEFAULTS)
    settings.update(settings_from_repository_config())
    settings.update(settings_from_env(environ))
    if overrides:
        settings.update({k: v for k, v in overrides.items() if v is not None})

    try:
        validate(settings, CONFIG_SCHEMA)
    except ValidationError as error:
        raise _describe_validation_error(error) from error

    return ReleaseSyncConfig(**settings)
