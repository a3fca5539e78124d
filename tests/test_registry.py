"""Tests for the tool and resource registries."""

import json

import pytest

from lox_mcp.config import (
    ToolConfig,
    ToolHandlerSpec,
    ToolParameter,
    load_default_config,
)
from lox_mcp.registry import (
    ResourceRegistry,
    ToolRegistry,
    build_input_schema,
    compile_uri_template,
)


@pytest.fixture
def definitions():
    """Packaged tool and resource definitions."""
    return load_default_config()


class TestBuildInputSchema:
    """Tests for JSON schema generation."""

    def test_schema_fields(self):
        """Type, description, enum, default and required are carried over."""
        tool = ToolConfig(
            name="dim",
            description="Dim a light",
            handler=ToolHandlerSpec(type="control_device"),
            parameters=[
                ToolParameter("device_id", "string", "Device", required=True),
                ToolParameter("action", "string", "Action", required=True, enum=["On", "Off"]),
                ToolParameter("value", "string", "Level", default="50"),
            ],
        )

        schema = build_input_schema(tool)

        assert schema == {
            "type": "object",
            "properties": {
                "device_id": {"type": "string", "description": "Device"},
                "action": {"type": "string", "description": "Action", "enum": ["On", "Off"]},
                "value": {"type": "string", "description": "Level", "default": "50"},
            },
            "required": ["device_id", "action"],
        }

    def test_no_parameters(self):
        """Tools without parameters get an empty object schema."""
        tool = ToolConfig(
            name="ping", description="Ping", handler=ToolHandlerSpec(type="get_api_version")
        )

        assert build_input_schema(tool) == {"type": "object", "properties": {}}


class TestCompileUriTemplate:
    """Tests for URI template matching."""

    def test_placeholder_matches_segment(self):
        """A placeholder matches exactly one path segment."""
        pattern = compile_uri_template("lox://rooms/{roomName}/devices")

        assert pattern.fullmatch("lox://rooms/Kitchen/devices")
        assert pattern.fullmatch("lox://rooms/Living%20Room/devices")
        assert pattern.fullmatch("lox://rooms/Kitchen/devices/")
        assert not pattern.fullmatch("lox://rooms/a/b/devices")
        assert not pattern.fullmatch("lox://rooms/Kitchen")

    def test_empty_segment_matches(self):
        """Empty segments match so the handler can report them."""
        assert compile_uri_template("lox://rooms/{roomName}/devices").fullmatch(
            "lox://rooms//devices"
        )
        assert compile_uri_template("lox://devices/type/{type}").fullmatch("lox://devices/type/")

    def test_literal_characters_escaped(self):
        """Regex metacharacters in the template are literal."""
        pattern = compile_uri_template("lox://a.b/{x}")

        assert pattern.fullmatch("lox://a.b/1")
        assert not pattern.fullmatch("lox://aXb/1")


class TestToolRegistry:
    """Tests for ToolRegistry."""

    def test_registers_packaged_tools(self, adapter, definitions):
        """Every packaged tool is registered in configuration order."""
        registry = ToolRegistry(adapter, definitions.tools)

        assert len(registry) == 6
        assert "control_device" in registry
        assert [t.name for t in registry.list_tools()] == [
            "send_command",
            "control_device",
            "control_devices_by_room",
            "control_devices_by_type",
            "control_devices_by_category",
            "get_api_version",
        ]

    def test_list_tools_schema(self, adapter, definitions):
        """Listed tools carry their input schema."""
        registry = ToolRegistry(adapter, definitions.tools)
        tool = next(t for t in registry.list_tools() if t.name == "control_devices_by_room")

        assert tool.inputSchema["required"] == ["room", "action"]
        assert "device_type" in tool.inputSchema["properties"]

    def test_duplicate_names_first_wins(self, adapter):
        """A second definition with the same name is ignored."""
        tools = [
            ToolConfig(name="ping", description="first", handler=ToolHandlerSpec(type="get_api_version")),
            ToolConfig(name="ping", description="second", handler=ToolHandlerSpec(type="send_command")),
        ]

        registry = ToolRegistry(adapter, tools)

        assert len(registry) == 1
        assert registry.get("ping").config.description == "first"

    def test_empty(self, adapter):
        """No tools is allowed."""
        registry = ToolRegistry(adapter, [])
        assert len(registry) == 0
        assert registry.list_tools() == []

    @pytest.mark.asyncio
    async def test_call(self, adapter, definitions, fake_client):
        """Calls route to the named tool."""
        registry = ToolRegistry(adapter, definitions.tools)

        result = await registry.call("control_device", {"device_id": "act-1", "action": "On"})

        assert result.is_error is False
        assert fake_client.commands == ["jdev/sps/io/act-1/On"]

    @pytest.mark.asyncio
    async def test_call_unknown(self, adapter, definitions, fake_client):
        """Unknown tool names are error results."""
        registry = ToolRegistry(adapter, definitions.tools)

        result = await registry.call("launch_rocket", {})

        assert result.is_error is True
        assert result.text == "Unknown tool: launch_rocket"
        assert fake_client.backend_calls == 0


class TestResourceRegistry:
    """Tests for ResourceRegistry."""

    def test_resources_and_templates(self, adapter, definitions):
        """Fixed URIs are resources, placeholder URIs are templates."""
        registry = ResourceRegistry(adapter, definitions.resources)

        assert len(registry) == 8
        assert {str(r.uri).rstrip("/") for r in registry.list_resources()} == {
            "lox://rooms",
            "lox://devices",
            "lox://categories",
            "lox://structure/summary",
            "lox://status",
        }
        assert [t.uriTemplate for t in registry.list_templates()] == [
            "lox://rooms/{roomName}/devices",
            "lox://devices/type/{type}",
            "lox://devices/category/{category}",
        ]

    def test_match(self, adapter, definitions):
        """Exact URIs win over templates; trailing slashes are ignored."""
        registry = ResourceRegistry(adapter, definitions.resources)

        assert registry.match("lox://rooms").config.handler.type == "rooms_list"
        assert registry.match("lox://rooms/").config.handler.type == "rooms_list"
        assert registry.match("lox://rooms/Kitchen/devices").config.handler.type == "room_devices"
        assert registry.match("lox://devices/type/Switch").config.handler.type == "devices_by_type"
        assert registry.match("lox://weather") is None

    @pytest.mark.asyncio
    async def test_read_template(self, adapter, definitions):
        """Template reads use the requested URI."""
        registry = ResourceRegistry(adapter, definitions.resources)

        result = await registry.read("lox://rooms/Kitchen/devices")

        assert result.is_error is False
        assert len(json.loads(result.text)) == 3

    @pytest.mark.asyncio
    async def test_read_unknown(self, adapter, definitions, fake_client):
        """Unknown URIs are text/plain error results."""
        registry = ResourceRegistry(adapter, definitions.resources)

        result = await registry.read("lox://weather")

        assert result.is_error is True
        assert result.mime_type == "text/plain"
        assert result.text == "Error: Unknown resource: lox://weather"
        assert fake_client.backend_calls == 0
