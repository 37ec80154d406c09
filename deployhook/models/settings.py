"""Immutable runtime configuration for the deployment manager."""

from __future__ import annotations

import os
import shlex
from pathlib import Path
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError, field_validator

from deployhook.models.errors import ConfigError


# Environment variable -> settings field.
ENVIRONMENT_FIELDS: dict[str, str] = {
    "DEPLOYHOOK_GIT_OWNER": "git_owner",
    "DEPLOYHOOK_GIT_REPO": "git_repo",
    "DEPLOYHOOK_GIT_TOKEN": "git_token",
    "DEPLOYHOOK_WEBHOOK_SECRET": "webhook_secret",
    "DEPLOYHOOK_GIT_BASE_URL": "git_base_url",
    "DEPLOYHOOK_WORK_DIR": "work_dir",
    "DEPLOYHOOK_BUILD_OUTPUT": "build_output",
    "DEPLOYHOOK_SERVE_DIR": "serve_dir",
    "DEPLOYHOOK_INSTALL_COMMAND": "install_command",
    "DEPLOYHOOK_BUILD_COMMAND": "build_command",
    "DEPLOYHOOK_COMMAND_TIMEOUT": "command_timeout_seconds",
    "DEPLOYHOOK_BUILD_ON_STARTUP": "build_on_startup",
    "DEPLOYHOOK_HOST": "host",
    "DEPLOYHOOK_PORT": "port",
}

REQUIRED_VARIABLES: tuple[str, ...] = (
    "DEPLOYHOOK_GIT_OWNER",
    "DEPLOYHOOK_GIT_REPO",
    "DEPLOYHOOK_GIT_TOKEN",
)


class ManagerSettings(BaseModel):
    """Configuration snapshot loaded once at startup and shared by every component."""

    model_config = ConfigDict(frozen=True)

    git_owner: str
    git_repo: str
    git_token: SecretStr
    webhook_secret: SecretStr | None = None
    git_base_url: str = "https://github.com"
    work_dir: Path = Path("/app/repo")
    build_output: Path = Path("dist")
    serve_dir: Path = Path("/var/www/html")
    install_command: tuple[str, ...] = ("npm", "install")
    build_command: tuple[str, ...] = ("npm", "run", "build")
    command_timeout_seconds: float = Field(default=900.0, gt=0)
    build_on_startup: bool = True
    host: str = "0.0.0.0"
    port: int = Field(default=3000, ge=1, le=65535)
    entry_point: str = "index.html"

    @field_validator("git_owner", "git_repo")
    @classmethod
    def _ensure_identity_segment(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("must not be empty")
        if "/" in cleaned or any(char.isspace() for char in cleaned):
            raise ValueError("must be a single path segment without whitespace")
        return cleaned

    @field_validator("webhook_secret", mode="before")
    @classmethod
    def _blank_secret_is_unset(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("install_command", "build_command", mode="before")
    @classmethod
    def _split_command(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = shlex.split(value)
        if not value:
            raise ValueError("command must not be empty")
        return value

    @field_validator("build_output")
    @classmethod
    def _ensure_relative_output(cls, value: Path) -> Path:
        if value.is_absolute():
            raise ValueError("build output must be relative to the working copy")
        return value

    @field_validator("git_base_url")
    @classmethod
    def _normalise_base_url(cls, value: str) -> str:
        cleaned = value.strip().rstrip("/")
        if not cleaned:
            raise ValueError("must not be empty")
        return cleaned

    @property
    def repository_slug(self) -> str:
        """Return the ``owner/repo`` identity of the tracked source."""

        return f"{self.git_owner}/{self.git_repo}"

    @property
    def remote_url(self) -> str:
        """Return the canonical, credential-free clone URL."""

        return f"{self.git_base_url}/{self.git_owner}/{self.git_repo}.git"

    @property
    def build_output_dir(self) -> Path:
        return self.work_dir / self.build_output

    @property
    def secret_value(self) -> str | None:
        """Return the webhook secret in clear text, or ``None`` when not configured."""

        if self.webhook_secret is None:
            return None
        return self.webhook_secret.get_secret_value() or None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ManagerSettings":
        """Build settings from ``environ`` (defaults to ``os.environ``).

        Raises :class:`ConfigError` when the source identity or the token is
        missing, or when any provided value fails validation.
        """

        env = os.environ if environ is None else environ
        missing = [name for name in REQUIRED_VARIABLES if not (env.get(name) or "").strip()]
        if missing:
            raise ConfigError(f"{', '.join(missing)} must be provided.")

        values: dict[str, Any] = {}
        for variable, field_name in ENVIRONMENT_FIELDS.items():
            raw_value = env.get(variable)
            if raw_value is None or not raw_value.strip():
                continue
            values[field_name] = raw_value.strip()

        try:
            return cls(**values)
        except ValidationError as exc:
            problems = "; ".join(
                f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
            )
            raise ConfigError(f"Invalid configuration: {problems}") from exc
