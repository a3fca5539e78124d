"""Tool and resource registries.

Built once at startup from the YAML definitions. The registries advertise
definitions in MCP form (tools with JSON input schemas, resources and
resource templates) and route calls to the matching dispatcher.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from mcp import types

from lox_mcp.adapter import LoxoneAdapter
from lox_mcp.config import ResourceConfig, ToolConfig
from lox_mcp.resources import ResourceDispatcher
from lox_mcp.results import DispatchResult, ResourceResult
from lox_mcp.tools import ToolDispatcher

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\{[^}]+\}")


def build_input_schema(tool: ToolConfig) -> dict[str, Any]:
    """Build the JSON schema advertised for a tool's arguments."""
    properties: dict[str, Any] = {}
    for param in tool.parameters:
        prop: dict[str, Any] = {"type": param.type, "description": param.description}
        if param.enum is not None:
            prop["enum"] = list(param.enum)
        if param.default is not None:
            prop["default"] = param.default
        properties[param.name] = prop

    schema: dict[str, Any] = {"type": "object", "properties": properties}
    required = [p.name for p in tool.parameters if p.required]
    if required:
        schema["required"] = required
    return schema


def compile_uri_template(template: str) -> re.Pattern[str]:
    """Compile a URI template to a regex; each {placeholder} matches one segment.

    Empty segments match too, so handlers can report them as errors.
    """
    pattern = ""
    position = 0
    for match in _PLACEHOLDER.finditer(template):
        pattern += re.escape(template[position : match.start()]) + "[^/]*"
        position = match.end()
    pattern += re.escape(template[position:].rstrip("/"))
    return re.compile(pattern + "/?")


class ToolRegistry:
    """Configured tools by name."""

    def __init__(self, adapter: LoxoneAdapter, tools: list[ToolConfig]) -> None:
        self._dispatchers: dict[str, ToolDispatcher] = {}
        for tool in tools:
            if tool.name in self._dispatchers:
                logger.warning(f"Duplicate tool name '{tool.name}' ignored")
                continue
            self._dispatchers[tool.name] = ToolDispatcher(adapter, tool)
            logger.debug(f"Registered tool: {tool.name}")

        if not self._dispatchers:
            logger.warning("No tools defined in configuration")
        else:
            logger.info(f"Registered {len(self._dispatchers)} tools from configuration")

    def __len__(self) -> int:
        return len(self._dispatchers)

    def __contains__(self, name: str) -> bool:
        return name in self._dispatchers

    def get(self, name: str) -> ToolDispatcher | None:
        return self._dispatchers.get(name)

    def list_tools(self) -> list[types.Tool]:
        """Tools in MCP form, in configuration order."""
        return [
            types.Tool(
                name=d.config.name,
                description=d.config.description,
                inputSchema=build_input_schema(d.config),
            )
            for d in self._dispatchers.values()
        ]

    async def call(self, name: str, arguments: dict[str, Any] | None) -> DispatchResult:
        """Call a tool by name; unknown names yield an error result."""
        dispatcher = self._dispatchers.get(name)
        if dispatcher is None:
            logger.warning(f"Call to unknown tool: {name}")
            return DispatchResult.failure(f"Unknown tool: {name}")
        return await dispatcher.handle(arguments)


class ResourceRegistry:
    """Configured resources, matched by exact URI or URI template."""

    def __init__(self, adapter: LoxoneAdapter, resources: list[ResourceConfig]) -> None:
        self._exact: dict[str, ResourceDispatcher] = {}
        self._templates: list[tuple[re.Pattern[str], ResourceDispatcher]] = []

        for resource in resources:
            dispatcher = ResourceDispatcher(adapter, resource)
            if resource.is_template:
                self._templates.append((compile_uri_template(resource.uri), dispatcher))
            else:
                key = resource.uri.rstrip("/")
                if key in self._exact:
                    logger.warning(f"Duplicate resource URI '{resource.uri}' ignored")
                    continue
                self._exact[key] = dispatcher
            logger.debug(f"Registered resource: {resource.uri}")

        if not len(self):
            logger.warning("No resources defined in configuration")
        else:
            logger.info(f"Registered {len(self)} resources from configuration")

    def __len__(self) -> int:
        return len(self._exact) + len(self._templates)

    def match(self, uri: str) -> ResourceDispatcher | None:
        """Find the dispatcher for a URI: exact matches first, then templates in order."""
        dispatcher = self._exact.get(uri.rstrip("/"))
        if dispatcher is not None:
            return dispatcher
        for pattern, candidate in self._templates:
            if pattern.fullmatch(uri):
                return candidate
        return None

    def list_resources(self) -> list[types.Resource]:
        """Fixed-URI resources in MCP form."""
        return [
            types.Resource(
                uri=d.config.uri,
                name=d.config.name,
                description=d.config.description,
                mimeType=d.config.mime_type,
            )
            for d in self._exact.values()
        ]

    def list_templates(self) -> list[types.ResourceTemplate]:
        """Templated resources in MCP form."""
        return [
            types.ResourceTemplate(
                uriTemplate=d.config.uri,
                name=d.config.name,
                description=d.config.description,
                mimeType=d.config.mime_type,
            )
            for _, d in self._templates
        ]

    async def read(self, uri: str) -> ResourceResult:
        """Read a resource by URI; unknown URIs yield an error result."""
        dispatcher = self.match(uri)
        if dispatcher is None:
            logger.warning(f"Read of unknown resource: {uri}")
            return ResourceResult.failure(uri, f"Unknown resource: {uri}")
        return await dispatcher.handle(uri)
