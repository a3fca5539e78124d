"""Configuration for the Loxone MCP server.

Two kinds of configuration live here:

1. Process configuration (LoxoneConfig) - connection credentials and server
   settings, read from environment variables.
2. Tool/resource definitions (McpConfig) - loaded from YAML.

Example mcp-config.yaml:
    tools:
      - name: control_device
        description: Control a specific device
        parameters:
          - name: device_id
            type: string
            description: Device UUID
            required: true
          - name: action
            type: string
            description: Action to perform
            required: true
            enum: ["On", "Off", "Pulse"]
        handler:
          type: control_device

    resources:
      - uri: lox://rooms
        name: All Rooms
        description: List all rooms
        mimeType: application/json
        handler:
          type: rooms_list

A missing or unreadable YAML file never stops the server: the loader logs
the problem and returns an empty configuration.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from importlib import resources
from pathlib import Path
from typing import Any

import yaml

from lox_mcp.constants import DEFAULT_TIMEOUT_SECONDS
from lox_mcp.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_RESOURCE = "mcp-config.yaml"


# =============================================================================
# Tool / Resource Definitions
# =============================================================================


def _require(data: dict[str, Any], key: str, context: str) -> Any:
    if not isinstance(data, dict):
        raise ValueError(f"{context} must be a mapping, got {type(data).__name__}")
    value = data.get(key)
    if value is None:
        raise ValueError(f"{context} is missing required field '{key}'")
    return value


def _optional_str(value: Any) -> str | None:
    return None if value is None else str(value)


@dataclass
class ToolParameter:
    """A declared tool argument."""

    name: str
    type: str
    description: str
    required: bool = False
    default: str | None = None
    enum: list[str] | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ToolParameter":
        name = str(_require(data, "name", "Tool parameter"))
        context = f"Tool parameter '{name}'"
        enum = data.get("enum")
        return cls(
            name=name,
            type=str(_require(data, "type", context)),
            description=str(_require(data, "description", context)),
            required=bool(data.get("required", False)),
            default=_optional_str(data.get("default")),
            enum=[str(v) for v in enum] if enum is not None else None,
        )


@dataclass
class ToolHandlerSpec:
    """Which behavior a tool runs, plus optional static values.

    Static fields fill in arguments the caller did not pass:
    target -> uuid/device_id, scope -> room/device_type/category,
    action -> action/command. value_param renames the optional value argument.
    """

    type: str
    scope: str | None = None
    target: str | None = None
    action: str | None = None
    value_param: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ToolHandlerSpec":
        return cls(
            type=str(_require(data, "type", "Tool handler")),
            scope=_optional_str(data.get("scope")),
            target=_optional_str(data.get("target")),
            action=_optional_str(data.get("action")),
            value_param=_optional_str(data.get("valueParam")),
        )


@dataclass
class ToolConfig:
    """A tool definition loaded from YAML."""

    name: str
    description: str
    handler: ToolHandlerSpec
    parameters: list[ToolParameter] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ToolConfig":
        name = str(_require(data, "name", "Tool"))
        context = f"Tool '{name}'"
        return cls(
            name=name,
            description=str(_require(data, "description", context)),
            handler=ToolHandlerSpec.from_dict(_require(data, "handler", context)),
            parameters=[ToolParameter.from_dict(p) for p in data.get("parameters") or []],
        )

    def get_parameter(self, name: str) -> ToolParameter | None:
        return next((p for p in self.parameters if p.name == name), None)


@dataclass
class ResourceHandlerSpec:
    """Which projection a resource runs."""

    type: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ResourceHandlerSpec":
        return cls(type=str(_require(data, "type", "Resource handler")))


@dataclass
class ResourceConfig:
    """A resource definition loaded from YAML."""

    uri: str
    name: str
    description: str
    mime_type: str
    handler: ResourceHandlerSpec

    @property
    def is_template(self) -> bool:
        """Whether the URI contains {placeholder} segments."""
        return "{" in self.uri and "}" in self.uri

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ResourceConfig":
        uri = str(_require(data, "uri", "Resource"))
        context = f"Resource '{uri}'"
        return cls(
            uri=uri,
            name=str(_require(data, "name", context)),
            description=str(_require(data, "description", context)),
            mime_type=str(_require(data, "mimeType", context)),
            handler=ResourceHandlerSpec.from_dict(_require(data, "handler", context)),
        )


@dataclass
class McpConfig:
    """Root configuration: tools and resources."""

    tools: list[ToolConfig] = field(default_factory=list)
    resources: list[ResourceConfig] = field(default_factory=list)
    source: str | None = None
    """Where the configuration was loaded from."""


def parse_config(raw: Any, source: str | None = None) -> McpConfig:
    """Parse a decoded YAML document into an McpConfig.

    Args:
        raw: Result of yaml.safe_load.
        source: Description of where the document came from.

    Returns:
        Parsed configuration.

    Raises:
        ValueError: If the document does not have the expected shape.
    """
    if raw is None:
        return McpConfig(source=source)
    if not isinstance(raw, dict):
        raise ValueError(f"Configuration root must be a mapping, got {type(raw).__name__}")

    return McpConfig(
        tools=[ToolConfig.from_dict(t) for t in raw.get("tools") or []],
        resources=[ResourceConfig.from_dict(r) for r in raw.get("resources") or []],
        source=source,
    )


def _parse_yaml(content: str, source: str) -> McpConfig:
    try:
        logger.info(f"Loading MCP configuration from {source}")
        config = parse_config(yaml.safe_load(content), source)
    except (yaml.YAMLError, ValueError, TypeError, AttributeError) as e:
        logger.error(f"Failed to load configuration from {source}, using defaults: {e}")
        return McpConfig()

    logger.info(
        f"Loaded {len(config.tools)} tools and {len(config.resources)} resources from {source}"
    )
    return config


def load_config(path: Path | str) -> McpConfig:
    """Load tool/resource configuration from a YAML file.

    Args:
        path: Path to the YAML file.

    Returns:
        Loaded configuration, or an empty one if the file is missing or invalid.
    """
    config_path = Path(path)
    if not config_path.exists():
        logger.warning(f"Configuration file not found at {config_path}, using defaults")
        return McpConfig()

    try:
        content = config_path.read_text(encoding="utf-8")
    except OSError as e:
        logger.error(f"Failed to read configuration file {config_path}: {e}")
        return McpConfig()

    return _parse_yaml(content, f"file {config_path}")


def load_default_config(resource_name: str = DEFAULT_CONFIG_RESOURCE) -> McpConfig:
    """Load the configuration shipped inside the package.

    Args:
        resource_name: File name inside the lox_mcp package.

    Returns:
        Loaded configuration, or an empty one if the resource is missing or invalid.
    """
    resource = resources.files("lox_mcp").joinpath(resource_name)
    if not resource.is_file():
        logger.warning(f"Configuration resource not found: {resource_name}, using defaults")
        return McpConfig()

    return _parse_yaml(resource.read_text(encoding="utf-8"), f"resources: {resource_name}")


# =============================================================================
# Process Configuration
# =============================================================================


def _env_timeout() -> float:
    raw = os.environ.get("LOXONE_TIMEOUT")
    if not raw:
        return DEFAULT_TIMEOUT_SECONDS
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid LOXONE_TIMEOUT={raw!r}")
        return DEFAULT_TIMEOUT_SECONDS


@dataclass
class LoxoneConfig:
    """Process configuration for the Loxone MCP server."""

    host: str = field(default_factory=lambda: os.environ.get("LOXONE_HOST", ""))
    """Miniserver address: local IP, MAC/serial or URL."""

    username: str = field(default_factory=lambda: os.environ.get("LOXONE_USER", ""))
    """Miniserver user."""

    password: str = field(default_factory=lambda: os.environ.get("LOXONE_PASS", ""))
    """Miniserver password."""

    config_path: str | None = field(
        default_factory=lambda: os.environ.get("LOX_MCP_CONFIG") or None
    )
    """Tool/resource YAML file; the packaged default is used when unset."""

    log_level: str = field(
        default_factory=lambda: os.environ.get("LOX_MCP_LOG_LEVEL", "INFO")
    )
    """Logging level."""

    timeout: float = field(default_factory=_env_timeout)
    """Per-request timeout in seconds."""

    @classmethod
    def from_env(cls) -> "LoxoneConfig":
        """Create config from environment variables.

        Environment variables:
        - LOXONE_HOST: Miniserver address (required)
        - LOXONE_USER: Miniserver user (required)
        - LOXONE_PASS: Miniserver password (required)
        - LOX_MCP_CONFIG: Path to tool/resource YAML
        - LOX_MCP_LOG_LEVEL: Logging level
        - LOXONE_TIMEOUT: Request timeout in seconds

        Raises:
            ConfigurationError: If a required variable is missing.
        """
        config = cls()
        config.validate()
        return config

    def validate(self) -> None:
        """Check that all connection credentials are present.

        Raises:
            ConfigurationError: Naming every missing variable.
        """
        missing = [
            env_name
            for env_name, value in (
                ("LOXONE_HOST", self.host),
                ("LOXONE_USER", self.username),
                ("LOXONE_PASS", self.password),
            )
            if not value
        ]
        if missing:
            raise ConfigurationError(
                f"Missing required environment variable(s): {', '.join(missing)}"
            )

    def load_definitions(self) -> McpConfig:
        """Load tool/resource definitions from config_path or the packaged default."""
        if self.config_path:
            return load_config(self.config_path)
        return load_default_config()
