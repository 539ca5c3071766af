"""Resolved configuration for the reconciler.

The reconciler never reads the environment on its own: configuration is
resolved once (usually via ``Config.from_env``) and passed in at construction.
All constraints are validated at construction time.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path


class OperationScope(str, Enum):
    """Where a resource kind's long-running operations live."""

    ZONE = "zone"
    REGION = "region"
    GLOBAL = "global"


class ConfigurationError(Exception):
    """Raised when configuration validation fails."""

    pass


# Polling budgets match the provider's documented operation latencies
DEFAULT_POLL_MAX_ATTEMPTS = 60
DEFAULT_ZONE_POLL_INTERVAL_SECONDS = 5.0
DEFAULT_REGION_POLL_INTERVAL_SECONDS = 5.0
DEFAULT_GLOBAL_POLL_INTERVAL_SECONDS = 2.0

MAX_POLL_ATTEMPTS = 10_000
MAX_POLL_INTERVAL_SECONDS = 300.0

# SECURITY: Input size limits
MAX_MANIFEST_FILE_SIZE_BYTES = 1024 * 1024  # 1MB max manifest file
MAX_STATE_FILE_SIZE_BYTES = 1024 * 1024

# Project IDs: 6-30 chars, lowercase letters, digits, hyphens, starting with a letter
VALID_PROJECT_PATTERN = r"^[a-z][a-z0-9-]{4,28}[a-z0-9]$"


@dataclass(frozen=True)
class Config:
    """Reconciler configuration.

    ``adopt`` is the scope-level adoption default; a resource-level ``adopt``
    flag always takes precedence over it. ``None`` means "not configured".
    """

    project: str
    key_filename: Path | None = None

    # Behavior
    adopt: bool | None = None
    local: bool = False

    # Long-running operation polling
    zone_poll_max_attempts: int = DEFAULT_POLL_MAX_ATTEMPTS
    zone_poll_interval_seconds: float = DEFAULT_ZONE_POLL_INTERVAL_SECONDS
    region_poll_max_attempts: int = DEFAULT_POLL_MAX_ATTEMPTS
    region_poll_interval_seconds: float = DEFAULT_REGION_POLL_INTERVAL_SECONDS
    global_poll_max_attempts: int = DEFAULT_POLL_MAX_ATTEMPTS
    global_poll_interval_seconds: float = DEFAULT_GLOBAL_POLL_INTERVAL_SECONDS

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        errors: list[str] = []

        if not self.project:
            errors.append(
                "GOOGLE_CLOUD_PROJECT is required (or pass project explicitly)"
            )
        elif not re.match(VALID_PROJECT_PATTERN, self.project):
            errors.append(
                f"GOOGLE_CLOUD_PROJECT must match pattern {VALID_PROJECT_PATTERN}: "
                f"{self.project}"
            )

        if self.key_filename is not None and not self.key_filename.exists():
            errors.append(f"Credentials file does not exist: {self.key_filename}")

        for scope in OperationScope:
            attempts, interval = self.poll_budget(scope)
            if not 1 <= attempts <= MAX_POLL_ATTEMPTS:
                errors.append(
                    f"{scope.value} poll attempts must be between 1 and {MAX_POLL_ATTEMPTS}"
                )
            if not 0 <= interval <= MAX_POLL_INTERVAL_SECONDS:
                errors.append(
                    f"{scope.value} poll interval must be between 0 and "
                    f"{MAX_POLL_INTERVAL_SECONDS:g} seconds"
                )

        if errors:
            error_msg = "Configuration validation failed:\n  - " + "\n  - ".join(errors)
            raise ConfigurationError(error_msg)

    def poll_budget(self, scope: OperationScope) -> tuple[int, float]:
        """Get ``(max_attempts, interval_seconds)`` for an operation scope."""
        match scope:
            case OperationScope.ZONE:
                return self.zone_poll_max_attempts, self.zone_poll_interval_seconds
            case OperationScope.REGION:
                return self.region_poll_max_attempts, self.region_poll_interval_seconds
            case OperationScope.GLOBAL:
                return self.global_poll_max_attempts, self.global_poll_interval_seconds
        raise ValueError(f"Unsupported operation scope: {scope}")

    @classmethod
    def from_env(cls) -> Config:
        """Load configuration from environment variables.

        Environment Variables:
            GOOGLE_CLOUD_PROJECT: Target project (falls back to GCLOUD_PROJECT)
            GOOGLE_APPLICATION_CREDENTIALS: Path to a service account key file
            RECONCILE_ADOPT: Scope-level adoption default (unset = no default)
            RECONCILE_LOCAL: If "true", synthesize state without remote calls
            POLL_MAX_ATTEMPTS: Poll attempts for every operation scope (default: 60)
            ZONE_POLL_INTERVAL: Seconds between zone operation polls (default: 5)
            REGION_POLL_INTERVAL: Seconds between regional operation polls (default: 5)
            GLOBAL_POLL_INTERVAL: Seconds between global operation polls (default: 2)
        """

        def get_int(key: str, default: int) -> int:
            value = os.environ.get(key)
            if value is None:
                return default
            try:
                return int(value)
            except ValueError as e:
                raise ConfigurationError(f"{key} must be an integer: {value}") from e

        def get_float(key: str, default: float) -> float:
            value = os.environ.get(key)
            if value is None:
                return default
            try:
                return float(value)
            except ValueError as e:
                raise ConfigurationError(f"{key} must be a number: {value}") from e

        def get_bool(key: str, default: bool) -> bool:
            value = os.environ.get(key, "").lower()
            if not value:
                return default
            return value in ("true", "1", "yes")

        def get_optional_bool(key: str) -> bool | None:
            if not os.environ.get(key):
                return None
            return get_bool(key, False)

        key_filename = os.environ.get("GOOGLE_APPLICATION_CREDENTIALS")
        attempts = get_int("POLL_MAX_ATTEMPTS", DEFAULT_POLL_MAX_ATTEMPTS)

        return cls(
            project=(
                os.environ.get("GOOGLE_CLOUD_PROJECT")
                or os.environ.get("GCLOUD_PROJECT")
                or ""
            ),
            key_filename=Path(key_filename) if key_filename else None,
            adopt=get_optional_bool("RECONCILE_ADOPT"),
            local=get_bool("RECONCILE_LOCAL", False),
            zone_poll_max_attempts=attempts,
            zone_poll_interval_seconds=get_float(
                "ZONE_POLL_INTERVAL", DEFAULT_ZONE_POLL_INTERVAL_SECONDS
            ),
            region_poll_max_attempts=attempts,
            region_poll_interval_seconds=get_float(
                "REGION_POLL_INTERVAL", DEFAULT_REGION_POLL_INTERVAL_SECONDS
            ),
            global_poll_max_attempts=attempts,
            global_poll_interval_seconds=get_float(
                "GLOBAL_POLL_INTERVAL", DEFAULT_GLOBAL_POLL_INTERVAL_SECONDS
            ),
        )
