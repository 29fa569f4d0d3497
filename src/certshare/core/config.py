# src/certshare/core/config.py
"""
Configuration schema and loading for certshare workers and monitors.

Uses Pydantic for validation and Dynaconf for multi-source loading.
Settings are frozen (immutable) after construction and passed explicitly
to every component; nothing reads configuration from module state.
"""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

POLL_INTERVAL_FLOOR_SECONDS = 5

# Bare environment names understood by earlier releases and set by the
# launcher for each worker. They take precedence over CERTSHARE_* values.
_LEGACY_ENV_FIELDS: dict[str, str] = {
    "SHEET_ID": "sheet_id",
    "SHEET_NAME": "sheet_name",
    "PARENT_FOLDER_ID": "parent_folder_id",
    "THROTTLE_MS": "throttle_ms",
    "MAX_PER_RUN": "max_per_run",
    "POLL_INTERVAL": "poll_interval_seconds",
    "DRY_RUN": "dry_run",
    "LOOP": "loop",
    "SHARD_TOTAL": "shard_total",
    "SHARD_INDEX": "shard_index",
}
_LEGACY_INT_FIELDS = frozenset({"throttle_ms", "max_per_run", "poll_interval_seconds", "shard_total", "shard_index"})
_LEGACY_BOOL_FIELDS = frozenset({"dry_run", "loop"})

_EMAIL_DOMAIN_PATTERN = re.compile(r"^[a-z0-9.-]+\.[a-z]{2,}$")


class CertshareSettings(BaseModel):
    """Top-level settings for one worker or monitor process.

    Example YAML:
        sheet_id: 1AbC...
        sheet_name: participants
        parent_folder_id: 0BxYz...
        throttle_ms: 2500
        allowed_email_domains: [gmail.com]
    """

    model_config = {"frozen": True}

    sheet_id: str = Field(default="", description="Spreadsheet id holding the participant list")
    sheet_name: str = Field(default="participants_sample", min_length=1, description="Worksheet (tab) name")
    parent_folder_id: str = Field(default="", description="Root folder for scoped search; empty searches all of Drive")
    role: str = Field(default="reader", description="Permission role granted to each participant")
    dry_run: bool = Field(default=False, description="Do everything except create permissions")
    debug: bool = Field(default=False, description="Emit debug diagnostics to console and log file")
    throttle_ms: int = Field(default=2500, ge=0, description="Minimum spacing between remote calls")
    max_per_run: int = Field(default=300, gt=0, description="Records processed per cycle at most")
    poll_interval_seconds: int = Field(default=30, description="Seconds between cycles in loop mode")
    loop: bool = Field(default=False, description="Repeat cycles forever")
    shard_total: int = Field(default=0, ge=0, description="Number of workers; 0 disables partitioning")
    shard_index: int = Field(default=0, ge=0, description="This worker's slot")
    allowed_email_domains: tuple[str, ...] = Field(default=("gmail.com",), min_length=1)
    credentials_path: Path = Field(default=Path("service.json"), description="Service account key file")
    logs_dir: Path = Field(default=Path("logs"))
    folder_mapping_path: Path = Field(default=Path("cache/folder-mapping.json"))
    timezone: str = Field(default="Asia/Jakarta", description="Time zone of LastLog timestamps")
    search_timeout_seconds: float = Field(default=30.0, gt=0)
    search_max_depth: int = Field(default=3, ge=0)

    @field_validator("poll_interval_seconds")
    @classmethod
    def clamp_poll_interval(cls, v: int) -> int:
        """Loop mode never polls faster than the floor."""
        return max(POLL_INTERVAL_FLOOR_SECONDS, v)

    @field_validator("allowed_email_domains", mode="before")
    @classmethod
    def normalize_domains(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = [part for part in v.split(",")]
        if isinstance(v, (list, tuple)):
            return tuple(str(part).strip().lower().lstrip("@") for part in v if str(part).strip())
        return v

    @field_validator("allowed_email_domains")
    @classmethod
    def validate_domains(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        for domain in v:
            if not _EMAIL_DOMAIN_PATTERN.match(domain):
                raise ValueError(f"Invalid email domain: {domain!r}")
        return v

    @model_validator(mode="after")
    def validate_shard(self) -> CertshareSettings:
        """shard_index must name an existing slot when sharding."""
        if self.shard_total > 0 and self.shard_index >= self.shard_total:
            raise ValueError(f"shard_index {self.shard_index} out of range for shard_total {self.shard_total}")
        return self

    @property
    def sharded(self) -> bool:
        return self.shard_total > 0

    @property
    def throttle_seconds(self) -> float:
        return self.throttle_ms / 1000


def _legacy_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    """Read the bare environment names, ignoring unparseable numbers.

    An invalid or non-positive MAX_PER_RUN falls back to the configured
    value instead of failing the worker.
    """
    overrides: dict[str, Any] = {}
    for env_name, field_name in _LEGACY_ENV_FIELDS.items():
        raw = environ.get(env_name)
        if raw is None:
            continue
        if field_name in _LEGACY_INT_FIELDS:
            try:
                value = int(raw.strip())
            except ValueError:
                continue
            if field_name == "max_per_run" and value <= 0:
                continue
            overrides[field_name] = value
        elif field_name in _LEGACY_BOOL_FIELDS:
            overrides[field_name] = raw.strip().lower() == "true"
        else:
            overrides[field_name] = raw
    if environ.get("DEBUG", "").lower() == "true" or environ.get("DEBUG_SHARE", "").lower() == "true":
        overrides["debug"] = True
    return overrides


def load_settings(
    config_path: Path | None = None,
    *,
    environ: Mapping[str, str] | None = None,
    **overrides: Any,
) -> CertshareSettings:
    """Load settings from an optional YAML file and the environment.

    Uses Dynaconf for multi-source loading with precedence:
    1. Explicit keyword overrides (CLI flags) - highest priority
    2. Bare environment names (SHEET_ID, SHARD_INDEX, ...)
    3. Environment variables (CERTSHARE_*)
    4. Config file (settings.yaml)
    5. Defaults from Pydantic schema - lowest priority

    Args:
        config_path: Optional path to YAML configuration file
        environ: Environment for the bare names (defaults to os.environ)
        overrides: Field values that win over every other source

    Returns:
        Validated CertshareSettings instance

    Raises:
        ValidationError: If configuration fails Pydantic validation
        FileNotFoundError: If an explicit config file doesn't exist
    """
    from dynaconf import Dynaconf

    # Explicit check for file existence (Dynaconf silently accepts missing files)
    if config_path is not None and not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    dynaconf_settings = Dynaconf(
        envvar_prefix="CERTSHARE",
        settings_files=[str(config_path)] if config_path is not None else [],
        environments=False,
        load_dotenv=False,
        merge_enabled=True,
    )

    # Dynaconf returns uppercase keys; convert to lowercase for Pydantic
    # Also filter out internal Dynaconf settings
    internal_keys = {"LOAD_DOTENV", "ENVIRONMENTS", "SETTINGS_FILES"}
    raw_config: dict[str, Any] = {
        k.lower(): v for k, v in dynaconf_settings.as_dict().items() if k not in internal_keys
    }

    raw_config.update(_legacy_overrides(os.environ if environ is None else environ))
    raw_config.update({k: v for k, v in overrides.items() if v is not None})

    return CertshareSettings(**raw_config)
