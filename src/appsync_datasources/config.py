"""Configuration management with validation.

All settings are validated at load time so that a misconfigured run fails
before any AppSync API call is made.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path


class ConfigurationError(Exception):
    """Raised when configuration validation fails."""

    pass


# Configuration constants with documented bounds
DEFAULT_OPERATION_TIMEOUT_SECONDS = 60
MIN_OPERATION_TIMEOUT_SECONDS = 5
MAX_OPERATION_TIMEOUT_SECONDS = 900

DEFAULT_SPECS_FILE = "datasources.yaml"
DEFAULT_STATE_FILE = ".datasources-state.yaml"

# Input limits
MAX_SPEC_FILE_SIZE_BYTES = 1024 * 1024  # 1MB max spec file
MAX_STATE_FILE_SIZE_BYTES = 1024 * 1024
MAX_DATA_SOURCES_PER_API = 500
MAX_LIST_PAGES = 1000  # Guards against a nextToken that never terminates

# Input validation patterns
VALID_API_ID_PATTERN = r"^[a-z0-9]{26}$"
VALID_REGION_PATTERN = r"^[a-z]{2}(-gov)?-[a-z]+-\d$"


@dataclass(frozen=True)
class Config:
    """Reconciler configuration loaded from environment variables.

    All fields are validated at construction time. Invalid configurations
    raise ConfigurationError immediately rather than failing at runtime.
    """

    # Required fields
    api_id: str
    region: str

    # Paths
    specs_file: Path = field(default_factory=lambda: Path(DEFAULT_SPECS_FILE))
    state_file: Path = field(default_factory=lambda: Path(DEFAULT_STATE_FILE))

    # Timing
    operation_timeout_seconds: int = DEFAULT_OPERATION_TIMEOUT_SECONDS

    # Behavior
    dry_run: bool = False
    prune: bool = True

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        errors: list[str] = []

        if not self.api_id:
            errors.append("APPSYNC_API_ID is required")
        elif not re.match(VALID_API_ID_PATTERN, self.api_id):
            errors.append(
                f"APPSYNC_API_ID must match pattern {VALID_API_ID_PATTERN}: {self.api_id}"
            )

        if not self.region:
            errors.append("AWS_REGION is required")
        elif not re.match(VALID_REGION_PATTERN, self.region):
            errors.append(f"AWS_REGION must be a valid AWS region: {self.region}")

        if not (
            MIN_OPERATION_TIMEOUT_SECONDS
            <= self.operation_timeout_seconds
            <= MAX_OPERATION_TIMEOUT_SECONDS
        ):
            errors.append(
                f"OPERATION_TIMEOUT must be between {MIN_OPERATION_TIMEOUT_SECONDS} "
                f"and {MAX_OPERATION_TIMEOUT_SECONDS} seconds"
            )

        if self.state_file.exists() and self.state_file.is_dir():
            errors.append(f"STATE_FILE must be a file, not a directory: {self.state_file}")

        if errors:
            error_msg = "Configuration validation failed:\n  - " + "\n  - ".join(errors)
            raise ConfigurationError(error_msg)

    @classmethod
    def from_env(cls, **overrides: object) -> Config:
        """Load configuration from environment variables.

        Keyword overrides (e.g. from CLI options) take precedence over the
        environment when their value is not None.

        Environment Variables:
            APPSYNC_API_ID: Target AppSync GraphQL API identifier
            AWS_REGION: Default region for data sources without one
            SPECS_FILE: Path to the YAML data source spec (default: datasources.yaml)
            STATE_FILE: Path to the prior deployment record
                (default: .datasources-state.yaml)
            OPERATION_TIMEOUT: Timeout for each AppSync API call in seconds (default: 60)
            DRY_RUN: If "true", only compute the plan without applying (default: false)
            PRUNE: If "false", never delete data sources (default: true)
        """

        def get_int(key: str, default: int) -> int:
            value = os.environ.get(key)
            if value is None:
                return default
            try:
                return int(value)
            except ValueError as e:
                raise ConfigurationError(f"{key} must be an integer: {value}") from e

        def get_bool(key: str, default: bool) -> bool:
            value = os.environ.get(key, "").lower()
            if not value:
                return default
            return value in ("true", "1", "yes")

        values: dict[str, object] = {
            "api_id": os.environ.get("APPSYNC_API_ID", ""),
            "region": os.environ.get("AWS_REGION", os.environ.get("AWS_DEFAULT_REGION", "")),
            "specs_file": Path(os.environ.get("SPECS_FILE", DEFAULT_SPECS_FILE)),
            "state_file": Path(os.environ.get("STATE_FILE", DEFAULT_STATE_FILE)),
            "operation_timeout_seconds": get_int(
                "OPERATION_TIMEOUT", DEFAULT_OPERATION_TIMEOUT_SECONDS
            ),
            "dry_run": get_bool("DRY_RUN", False),
            "prune": get_bool("PRUNE", True),
        }
        values.update({key: value for key, value in overrides.items() if value is not None})

        return cls(**values)  # type: ignore[arg-type]
