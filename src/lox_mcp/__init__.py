"""
lox-mcp-server: Loxone Miniserver over the Model Context Protocol.

Exposes a Loxone home-automation controller to AI assistants. Tools
(actions) and resources (read-only structure queries) are declared in YAML
and dispatched against a shared, lazily-connected Miniserver adapter.

Main components:
- Address resolution: local IP, MAC (Cloud DNS) or URL
- LoxoneAdapter: connection, structure cache, raw commands
- Query layer: room/category lookup, visible controls, device JSON
- Tool and resource dispatchers driven by mcp-config.yaml
- LoxoneMCPServer: MCP wiring over stdio or SSE
"""

__version__ = "0.1.0"

from lox_mcp.adapter import LoxoneAdapter
from lox_mcp.address import AddressType, Endpoint, resolve_address_type, resolve_endpoint
from lox_mcp.config import LoxoneConfig, McpConfig, load_config, load_default_config
from lox_mcp.exceptions import (
    AddressError,
    BackendUnavailableError,
    ConfigurationError,
    DispatchError,
    LoxMcpError,
)
from lox_mcp.results import DispatchResult, ResourceResult
from lox_mcp.server import LoxoneMCPServer, create_lox_mcp_server
from lox_mcp.structure import StructureSnapshot

__all__ = [
    "__version__",
    # Address
    "AddressType",
    "Endpoint",
    "resolve_address_type",
    "resolve_endpoint",
    # Backend
    "LoxoneAdapter",
    "StructureSnapshot",
    # Configuration
    "LoxoneConfig",
    "McpConfig",
    "load_config",
    "load_default_config",
    # Results
    "DispatchResult",
    "ResourceResult",
    # Server
    "LoxoneMCPServer",
    "create_lox_mcp_server",
    # Exceptions
    "LoxMcpError",
    "ConfigurationError",
    "AddressError",
    "DispatchError",
    "BackendUnavailableError",
]
