import logging
import os
import re
import sys
from pathlib import Path
from typing import Any

import logfire
import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource

from kiae.domain.workload.model.workload import WorkloadKind

ALL_KINDS = "*"


# =============================================================================
# Registry Configuration
# =============================================================================


class RegistryConfig(BaseModel):
    """How registries are reached (nested in Config, uses env_nested_delimiter)."""

    default_registry: str = ""  # Used when a reference has no host; Docker Hub when empty
    plain_http: bool = False  # Talk plain HTTP instead of TLS
    skip_tls_verify: bool = False  # Do not verify registry certificates
    ca_paths: list[str] = []  # Extra PEM bundles trusted in addition to the system store


# =============================================================================
# Scheduling Configuration
# =============================================================================


class CheckConfig(BaseModel):
    """Check pass cadence and batching."""

    interval: float = 15.0  # Seconds between check passes
    batch_size: int = Field(default=50, gt=0)  # Unknown/available images per pass
    failed_batch_size: int = Field(default=20, ge=0)  # Failed images retried per pass
    concurrency: int = Field(default=10, gt=0)  # Probes running at once


class GcConfig(BaseModel):
    """Garbage collection cadence."""

    interval: float = 300.0  # Seconds between GC passes


class KubernetesConfig(BaseModel):
    """Cluster source configuration."""

    resync_period: float = 60.0  # Seconds between full list passes
    in_cluster: bool | None = None  # None = try in-cluster config, then kubeconfig
    kubeconfig: str | None = None


class ServerConfig(BaseModel):
    """Metrics endpoint configuration."""

    name: str = "k8s-image-availability-exporter"
    version: str = "0.1.0"
    host: str = "0.0.0.0"
    port: int = 8080


class LoggingConfig(BaseModel):
    """Logging configuration (nested in Config, uses env_nested_delimiter)."""

    level: str = "INFO"
    format: str = "%(asctime)s %(levelname)-8s [%(name)s] %(message)s"
    date_format: str = "%Y-%m-%d %H:%M:%S"


# =============================================================================
# Application Configuration
# =============================================================================


class YamlConfigSettingsSource(PydanticBaseSettingsSource):
    """Load settings from YAML file specified by KIAE_CONFIG_FILE env var."""

    def get_field_value(self, field: Any, field_name: str) -> tuple[Any, str, bool]:
        """Get the value for a field from the YAML config."""
        yaml_data = self._load_yaml_config()
        field_value = yaml_data.get(field_name)
        return field_value, field_name, False

    def __call__(self) -> dict[str, Any]:
        """Return all settings from YAML file."""
        return self._load_yaml_config()

    def _load_yaml_config(self) -> dict[str, Any]:
        """Load config from YAML file if specified."""
        config_file = os.environ.get("KIAE_CONFIG_FILE")
        if config_file:
            path = Path(config_file)
            if path.exists():
                return yaml.safe_load(path.read_text()) or {}
        return {}


class Config(BaseSettings):
    """Exporter configuration, immutable for the process lifetime."""

    registry: RegistryConfig = RegistryConfig()
    check: CheckConfig = CheckConfig()
    gc: GcConfig = GcConfig()
    kubernetes: KubernetesConfig = KubernetesConfig()
    server: ServerConfig = ServerConfig()
    logging: LoggingConfig = LoggingConfig()
    ignored_images: list[str] = []  # Regular expressions; matching images are never tracked
    force_check_disabled_controller_kinds: list[str] = []  # Kinds checked even when disabled
    namespace_label: str = ""  # Label selector restricting tracked namespaces

    model_config = {
        "env_prefix": "KIAE_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_nested_delimiter": "__",  # Allows KIAE_REGISTRY__PLAIN_HTTP override
        "frozen": True,
    }

    @field_validator("ignored_images")
    @classmethod
    def validate_ignored_images(cls, patterns: list[str]) -> list[str]:
        for pattern in patterns:
            try:
                re.compile(pattern)
            except re.error as e:
                raise ValueError(f"invalid ignored image pattern {pattern!r}: {e}") from e
        return patterns

    @field_validator("force_check_disabled_controller_kinds")
    @classmethod
    def validate_controller_kinds(cls, kinds: list[str]) -> list[str]:
        for kind in kinds:
            if kind.strip() != ALL_KINDS:
                WorkloadKind.parse(kind)
        return kinds

    @property
    def ignored_image_patterns(self) -> list[re.Pattern[str]]:
        return [re.compile(pattern) for pattern in self.ignored_images]

    @property
    def force_check_kinds(self) -> frozenset[WorkloadKind]:
        """Controller kinds whose disabled workloads are still checked."""
        if any(kind.strip() == ALL_KINDS for kind in self.force_check_disabled_controller_kinds):
            return frozenset(WorkloadKind)
        return frozenset(WorkloadKind.parse(k) for k in self.force_check_disabled_controller_kinds)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Customize settings sources to include YAML config.

        Priority (highest to lowest):
        1. init_settings - values passed to Config()
        2. env_settings - environment variables
        3. dotenv_settings - .env file
        4. yaml_settings - KIAE_CONFIG_FILE yaml
        5. file_secret_settings - secrets from files
        """
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls),
            file_secret_settings,
        )


def configure_logging(config: LoggingConfig) -> None:
    """Configure Python logging and logfire based on config.

    Should be called early in application startup, before other modules
    are imported to ensure all loggers pick up the configuration.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(config.level)

    # Remove existing handlers to avoid duplicates
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    formatter = logging.Formatter(config.format, datefmt=config.date_format)
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(config.level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # Structured probe events; only shipped when a LOGFIRE_TOKEN is present
    logfire.configure(send_to_logfire="if-token-present", service_name="kiae")

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("kubernetes").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)  # Suppress job completion spam

    logging.debug("Logging configured: level=%s", config.level)
