"""Application-wide constants."""

from enum import Enum

SERVER_NAME = "lox-mcp-server"

# Miniserver raw commands
API_VERSION_COMMAND = "jdev/cfg/api"
STRUCTURE_FILE_COMMAND = "data/LoxAPP3.json"
IO_COMMAND_PREFIX = "jdev/sps/io"

DEFAULT_HTTP_PORT = 3001
DEFAULT_TIMEOUT_SECONDS = 30.0

MIME_JSON = "application/json"
MIME_TEXT = "text/plain"


class ToolHandlerKind(str, Enum):
    """Built-in behaviors a tool definition can select via `handler.type`."""

    SEND_COMMAND = "send_command"
    CONTROL_DEVICE = "control_device"
    CONTROL_DEVICES_BY_ROOM = "control_devices_by_room"
    CONTROL_DEVICES_BY_TYPE = "control_devices_by_type"
    CONTROL_DEVICES_BY_CATEGORY = "control_devices_by_category"
    GET_API_VERSION = "get_api_version"


class ResourceHandlerKind(str, Enum):
    """Built-in projections a resource definition can select via `handler.type`."""

    ROOMS_LIST = "rooms_list"
    ROOM_DEVICES = "room_devices"
    DEVICES_ALL = "devices_all"
    DEVICES_BY_TYPE = "devices_by_type"
    DEVICES_BY_CATEGORY = "devices_by_category"
    CATEGORIES_LIST = "categories_list"
    STRUCTURE_SUMMARY = "structure_summary"
    SERVER_STATUS = "server_status"
