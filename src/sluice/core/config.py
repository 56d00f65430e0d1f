"""
Configuration schema and loading for Sluice.

Uses Pydantic for validation and Dynaconf for multi-source loading.
Settings are frozen (immutable) after construction.
"""

import re
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from sluice.contracts import BackendKind, ComponentRole

# Stream names and labels end up in channel and consumer-group names
_NAME_PATTERN = re.compile(r"^[a-zA-Z][a-zA-Z0-9_-]*$")


class DeployerSettings(BaseModel):
    """Instance deployer endpoint used by the direct backend."""

    model_config = {"frozen": True}

    url: str = Field(description="Base URL of the instance deployer API")
    timeout_seconds: float = Field(
        default=30.0, gt=0, description="Per-request timeout"
    )


class ReleaseManagerSettings(BaseModel):
    """Release manager endpoint used by the release-managed backend."""

    model_config = {"frozen": True}

    url: str = Field(description="Base URL of the release manager API")
    timeout_seconds: float = Field(
        default=60.0, gt=0, description="Per-request timeout"
    )
    package_repository: str = Field(
        default="local",
        description="Repository new stream packages are published to",
    )
    package_version: str = Field(
        default="1.0.0",
        description="Package version used on first install",
    )


class BackendSettings(BaseModel):
    """Which backend the orchestrator delegates to, and its collaborator.

    Example YAML:
        backend:
          kind: release_managed
          release_manager:
            url: http://localhost:7577/api
    """

    model_config = {"frozen": True}

    kind: BackendKind = Field(
        default=BackendKind.DIRECT,
        description="direct (per-component) or release_managed (whole stream)",
    )
    deployer: DeployerSettings | None = Field(
        default=None,
        description="Required when kind is direct",
    )
    release_manager: ReleaseManagerSettings | None = Field(
        default=None,
        description="Required when kind is release_managed",
    )

    @model_validator(mode="after")
    def validate_collaborator_present(self) -> "BackendSettings":
        """The chosen backend's collaborator must be configured."""
        if self.kind == BackendKind.DIRECT and self.deployer is None:
            raise ValueError("backend.deployer is required when backend.kind is 'direct'")
        if self.kind == BackendKind.RELEASE_MANAGED and self.release_manager is None:
            raise ValueError(
                "backend.release_manager is required when backend.kind is 'release_managed'"
            )
        return self


class StoreSettings(BaseModel):
    """Deployment store configuration."""

    model_config = {"frozen": True}

    # NOTE: str, not Path - Path mangles DSNs like "postgresql://user@host/db"
    url: str = Field(
        default="sqlite:///./.sluice/deployments.db",
        description="Full SQLAlchemy database URL",
    )


class StatusSettings(BaseModel):
    """Status fan-out configuration."""

    model_config = {"frozen": True}

    pool_size: int = Field(
        default=8, gt=0, description="Concurrent status queries per aggregation"
    )
    timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Instances not answering within this window report 'unknown'",
    )


class LoggingSettings(BaseModel):
    """Structured logging configuration."""

    model_config = {"frozen": True}

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["console", "json"] = "console"


class AppSettings(BaseModel):
    """A registered application artifact."""

    model_config = {"frozen": True}

    uri: str = Field(description="Artifact location (e.g. maven://, docker:)")
    defaults: dict[str, str] = Field(
        default_factory=dict,
        description="Properties the artifact declares as defaults",
    )


class ComponentSettings(BaseModel):
    """One component of a configured stream."""

    model_config = {"frozen": True}

    label: str
    app: str = Field(description="Registered app (artifact reference)")
    role: ComponentRole | None = Field(
        default=None,
        description="Inferred from position when omitted",
    )
    properties: dict[str, str] = Field(default_factory=dict)

    @field_validator("label")
    @classmethod
    def validate_label(cls, v: str) -> str:
        if not _NAME_PATTERN.match(v):
            raise ValueError(
                f"Component label '{v}' must start with a letter and contain only "
                "letters, digits, '_' or '-'"
            )
        return v


class StreamSettings(BaseModel):
    """A stream definition supplied through configuration."""

    model_config = {"frozen": True}

    components: list[ComponentSettings] = Field(min_length=2)

    @field_validator("components")
    @classmethod
    def validate_unique_labels(
        cls, v: list[ComponentSettings]
    ) -> list[ComponentSettings]:
        labels = [c.label for c in v]
        duplicates = sorted({label for label in labels if labels.count(label) > 1})
        if duplicates:
            raise ValueError(f"Duplicate component labels: {duplicates}")
        return v


class SluiceSettings(BaseModel):
    """Top-level Sluice configuration.

    This is the single source of truth for orchestrator wiring.
    All settings are validated and frozen after construction.
    """

    model_config = {"frozen": True}

    backend: BackendSettings = Field(description="Deployment backend")
    store: StoreSettings = Field(default_factory=StoreSettings)
    status: StatusSettings = Field(default_factory=StatusSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    common_properties: dict[str, str] = Field(
        default_factory=dict,
        description="Properties applied to every component (lowest precedence "
        "after artifact defaults)",
    )
    apps: dict[str, AppSettings] = Field(
        default_factory=dict,
        description="Artifact registry: reference -> location and defaults",
    )
    streams: dict[str, StreamSettings] = Field(
        default_factory=dict,
        description="Stream definitions by name",
    )

    @field_validator("streams")
    @classmethod
    def validate_stream_names(
        cls, v: dict[str, StreamSettings]
    ) -> dict[str, StreamSettings]:
        for name in v:
            if not _NAME_PATTERN.match(name):
                raise ValueError(
                    f"Stream name '{name}' must start with a letter and contain only "
                    "letters, digits, '_' or '-'"
                )
        return v

    def unregistered_apps(self) -> dict[str, list[str]]:
        """Stream name -> app references not present in ``apps``."""
        missing: dict[str, list[str]] = {}
        for name, stream in self.streams.items():
            refs = [c.app for c in stream.components if c.app not in self.apps]
            if refs:
                missing[name] = refs
        return missing


def load_settings(config_path: Path) -> SluiceSettings:
    """Load settings from YAML file with environment variable overrides.

    Uses Dynaconf for multi-source loading with precedence:
    1. Environment variables (SLUICE_*) - highest priority
    2. Config file (settings.yaml)
    3. Defaults from Pydantic schema - lowest priority

    Environment variable format: SLUICE_BACKEND__KIND for nested keys.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        Validated SluiceSettings instance

    Raises:
        pydantic.ValidationError: If configuration fails validation
        FileNotFoundError: If config file doesn't exist
    """
    from dynaconf import Dynaconf

    # Dynaconf silently accepts missing files
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    dynaconf_settings = Dynaconf(
        envvar_prefix="SLUICE",
        settings_files=[str(config_path)],
        environments=False,
        load_dotenv=False,
        merge_enabled=True,
    )

    # Dynaconf returns uppercase top-level keys; nested keys keep their case
    internal_keys = {"LOAD_DOTENV", "ENVIRONMENTS", "SETTINGS_FILES"}
    raw_config = {
        k.lower(): v
        for k, v in dynaconf_settings.as_dict().items()
        if k not in internal_keys
    }
    return SluiceSettings(**raw_config)


def resolve_config(settings: SluiceSettings) -> dict[str, Any]:
    """Convert validated settings to a JSON-serializable dict."""
    return settings.model_dump(mode="json")
