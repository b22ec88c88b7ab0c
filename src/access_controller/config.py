"""Controller settings read from the environment.

Configuration is read from the environment once and validated at load time,
so a misconfigured controller fails before it touches the governance service.
Credentials are not part of it: authentication belongs to the transport.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path


class ConfigurationError(Exception):
    """Raised when one or more settings are missing or out of range."""


# Listing deadline bounds (seconds)
DEFAULT_LISTING_TIMEOUT_SECONDS = 60
MIN_LISTING_TIMEOUT_SECONDS = 1
MAX_LISTING_TIMEOUT_SECONDS = 3600

DEFAULT_OWNER_ROLE = "OwnerRole"
DEFAULT_SPECS_DIR = "./specs"

# Declaration files larger than this are rejected before parsing
MAX_SPEC_FILE_SIZE_BYTES = 1024 * 1024

# Tenant slugs and API base URLs
VALID_DOMAIN_PATTERN = r"^[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?$"
VALID_URL_PATTERN = r"^https?://[^\s/$.?#].[^\s]*$"

# Accepted spellings of "on" for boolean environment variables
TRUTHY_VALUES = frozenset({"true", "1", "yes", "on"})


@dataclass(frozen=True)
class Config:
    """Controller configuration loaded from environment variables.

    Every field is checked on construction and all problems are reported
    together in one ConfigurationError.
    """

    # Tenant slug of the governance service
    domain: str

    # User the transport authenticates as (used for ownership hand-over)
    api_user: str | None = None
    url_override: str | None = None

    specs_dir: Path = field(default_factory=lambda: Path(DEFAULT_SPECS_DIR))

    # Deadline for draining one remote listing
    listing_timeout_seconds: int = DEFAULT_LISTING_TIMEOUT_SECONDS

    # Role whose assignees are the owners of a governed resource
    owner_role: str = DEFAULT_OWNER_ROLE

    enable_json_logging: bool = True

    def __post_init__(self) -> None:
        problems: list[str] = []

        if not self.domain:
            problems.append("GOVERNANCE_DOMAIN is required")
        elif re.fullmatch(VALID_DOMAIN_PATTERN, self.domain) is None:
            problems.append(f"GOVERNANCE_DOMAIN is not a valid tenant slug: {self.domain!r}")

        if self.url_override and re.fullmatch(VALID_URL_PATTERN, self.url_override) is None:
            problems.append(f"GOVERNANCE_URL_OVERRIDE must be an http(s) URL: {self.url_override}")

        if not (
            MIN_LISTING_TIMEOUT_SECONDS
            <= self.listing_timeout_seconds
            <= MAX_LISTING_TIMEOUT_SECONDS
        ):
            problems.append(
                f"LISTING_TIMEOUT must be within {MIN_LISTING_TIMEOUT_SECONDS}.."
                f"{MAX_LISTING_TIMEOUT_SECONDS} seconds, got {self.listing_timeout_seconds}"
            )

        if not self.owner_role:
            problems.append("OWNER_ROLE must not be empty")

        if problems:
            raise ConfigurationError("Invalid configuration:\n  - " + "\n  - ".join(problems))

    @property
    def base_url(self) -> str:
        """URL of the governance API for this tenant."""
        if self.url_override:
            return self.url_override.rstrip("/")
        return f"https://api.{self.domain}.governance.io"

    @classmethod
    def from_env(cls) -> Config:
        """Build the configuration from the process environment.

        GOVERNANCE_DOMAIN is required. Optional: GOVERNANCE_USER,
        GOVERNANCE_URL_OVERRIDE, SPECS_DIR (./specs), LISTING_TIMEOUT (60),
        OWNER_ROLE (OwnerRole), ENABLE_JSON_LOGGING (true).
        """
        env = os.environ
        return cls(
            domain=env.get("GOVERNANCE_DOMAIN", ""),
            api_user=env.get("GOVERNANCE_USER") or None,
            url_override=env.get("GOVERNANCE_URL_OVERRIDE") or None,
            specs_dir=Path(env.get("SPECS_DIR", DEFAULT_SPECS_DIR)),
            listing_timeout_seconds=_env_int("LISTING_TIMEOUT", DEFAULT_LISTING_TIMEOUT_SECONDS),
            owner_role=env.get("OWNER_ROLE", DEFAULT_OWNER_ROLE),
            enable_json_logging=_env_flag("ENABLE_JSON_LOGGING", default=True),
        )


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer: {raw}") from e


def _env_flag(name: str, *, default: bool) -> bool:
    raw = os.environ.get(name, "").strip().lower()
    if not raw:
        return default
    return raw in TRUTHY_VALUES
