"""Configuration loading and Pydantic models for objectsync."""

from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field

from objectsync.tags import IgnoreTags


class LoggingConfig(BaseModel):
    """Log output configuration."""

    level: str = "INFO"
    format: Literal["text", "json"] = "text"


class AWSTransportConfig(BaseModel):
    """AWS S3 transport configuration."""

    region: str = "us-east-1"
    endpoint_url: str = ""
    use_path_style: bool = False
    access_key_id: str = ""
    secret_access_key: str = ""
    connect_timeout: float = 10.0
    read_timeout: float = 60.0
    max_attempts: int = 5


class TransportConfig(BaseModel):
    """Storage transport configuration."""

    backend: Literal["memory", "aws"] = "aws"
    aws: AWSTransportConfig = Field(default_factory=AWSTransportConfig)


class IgnoreTagsConfig(BaseModel):
    """Tag keys and prefixes that reconciliation leaves alone."""

    keys: list[str] = Field(default_factory=list)
    key_prefixes: list[str] = Field(default_factory=list)

    def to_ignore_tags(self) -> IgnoreTags:
        return IgnoreTags.of(self.keys, self.key_prefixes)


class PolicyConfig(BaseModel):
    """Apply policy configuration."""

    metadata_update: Literal["in_place", "rewrite"] = "in_place"
    governance_bypass: bool = True


class MetricsConfig(BaseModel):
    """Prometheus metrics configuration."""

    enabled: bool = False
    textfile: str = ""


class ObjectSyncConfig(BaseModel):
    """Top-level objectsync configuration."""

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    transport: TransportConfig = Field(default_factory=TransportConfig)
    ignore_tags: IgnoreTagsConfig = Field(default_factory=IgnoreTagsConfig)
    policy: PolicyConfig = Field(default_factory=PolicyConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)


def _parse_logging(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the logging section from YAML data into a dict for Pydantic."""
    if data is None:
        return {}
    return {
        "level": data.get("level", "INFO"),
        "format": data.get("format", "text"),
    }


def _parse_transport(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the transport section from YAML data.

    Handles the nested aws section: transport.aws.region, etc.
    """
    if data is None:
        return {}
    result: dict[str, Any] = {"backend": data.get("backend", "aws")}
    aws_section = data.get("aws")
    if isinstance(aws_section, dict):
        result["aws"] = AWSTransportConfig(**aws_section)
    return result


def _parse_ignore_tags(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the ignore_tags section from YAML data."""
    if data is None:
        return {}
    return {
        "keys": data.get("keys") or [],
        "key_prefixes": data.get("key_prefixes") or [],
    }


def _parse_policy(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the policy section from YAML data."""
    if data is None:
        return {}
    return {
        "metadata_update": data.get("metadata_update", "in_place"),
        "governance_bypass": data.get("governance_bypass", True),
    }


def _parse_metrics(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the metrics section from YAML data."""
    if data is None:
        return {}
    return {
        "enabled": data.get("enabled", False),
        "textfile": data.get("textfile", ""),
    }


def load_config(path: Path) -> ObjectSyncConfig:
    """Load an ObjectSyncConfig from a YAML file.

    Args:
        path: Path to the YAML configuration file.

    Returns:
        A fully populated ObjectSyncConfig validated by Pydantic.

    Raises:
        FileNotFoundError: If the config file does not exist.
        yaml.YAMLError: If the file is not valid YAML.
        pydantic.ValidationError: If a value has the wrong type or is not allowed.
    """
    with open(path, "r") as fh:
        raw: dict[str, Any] = yaml.safe_load(fh) or {}

    return ObjectSyncConfig(
        logging=LoggingConfig(**_parse_logging(raw.get("logging"))),
        transport=TransportConfig(**_parse_transport(raw.get("transport"))),
        ignore_tags=IgnoreTagsConfig(**_parse_ignore_tags(raw.get("ignore_tags"))),
        policy=PolicyConfig(**_parse_policy(raw.get("policy"))),
        metrics=MetricsConfig(**_parse_metrics(raw.get("metrics"))),
    )
