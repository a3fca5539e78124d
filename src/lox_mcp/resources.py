"""Resource dispatch.

A ResourceDispatcher binds one resource definition to the shared adapter
and renders a read-only projection of the structure snapshot. Handlers that
take a name from the URI (room, type, category) reject a blank segment
before any backend access.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Awaitable, Callable
from urllib.parse import unquote

from lox_mcp.adapter import LoxoneAdapter
from lox_mcp.config import ResourceConfig
from lox_mcp.constants import MIME_JSON, MIME_TEXT, ResourceHandlerKind
from lox_mcp.exceptions import DispatchError, NotFoundError, UnknownHandlerKindError
from lox_mcp.query import (
    build_device_json,
    count_visible_controls_in_category,
    count_visible_controls_in_room,
    find_category_by_name,
    find_room_by_name,
    visible_controls,
    visible_controls_by_type,
    visible_controls_for_category,
    visible_controls_for_room,
)
from lox_mcp.results import ResourceResult

logger = logging.getLogger(__name__)


def extract_segment(uri: str, start: str, end: str | None = None) -> str:
    """Take the part of a URI after `start` and before `end`, percent-decoded.

    Example:
        extract_segment("lox://rooms/Kitchen/devices", "rooms/", "/devices") -> "Kitchen"

    Returns:
        The segment, or an empty string when `start` does not occur.
    """
    _, found, rest = uri.partition(start)
    if not found:
        return ""
    if end is not None:
        rest = rest.partition(end)[0]
    return unquote(rest).strip().rstrip("/").strip()


def _to_json(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False)


class ResourceDispatcher:
    """Renders one configured resource.

    Example:
        dispatcher = ResourceDispatcher(adapter, resource_config)
        result = await dispatcher.handle("lox://rooms/Kitchen/devices")
    """

    def __init__(self, adapter: LoxoneAdapter, resource_config: ResourceConfig) -> None:
        self.adapter = adapter
        self.config = resource_config
        self._handlers: dict[ResourceHandlerKind, Callable[[str], Awaitable[ResourceResult]]] = {
            ResourceHandlerKind.ROOMS_LIST: self._handle_rooms_list,
            ResourceHandlerKind.ROOM_DEVICES: self._handle_room_devices,
            ResourceHandlerKind.DEVICES_ALL: self._handle_devices_all,
            ResourceHandlerKind.DEVICES_BY_TYPE: self._handle_devices_by_type,
            ResourceHandlerKind.DEVICES_BY_CATEGORY: self._handle_devices_by_category,
            ResourceHandlerKind.CATEGORIES_LIST: self._handle_categories_list,
            ResourceHandlerKind.STRUCTURE_SUMMARY: self._handle_structure_summary,
            ResourceHandlerKind.SERVER_STATUS: self._handle_server_status,
        }

    async def handle(self, uri: str) -> ResourceResult:
        """Read the resource.

        Args:
            uri: The requested URI (may differ from the configured template).

        Returns:
            ResourceResult (is_error set on failure).
        """
        try:
            kind = ResourceHandlerKind(self.config.handler.type)
        except ValueError:
            error = UnknownHandlerKindError(self.config.handler.type)
            logger.error(
                f"Resource '{self.config.uri}' references handler '{error.kind}' "
                f"which is not implemented; check the configuration"
            )
            return ResourceResult.failure(uri, str(error))

        try:
            return await self._handlers[kind](uri)
        except DispatchError as e:
            return ResourceResult.failure(uri, str(e))
        except Exception as e:
            logger.error(f"Error handling resource {self.config.uri}: {e}", exc_info=True)
            return ResourceResult.failure(uri, str(e))

    def _json(self, uri: str, data: Any) -> ResourceResult:
        return ResourceResult.success(uri, _to_json(data), MIME_JSON)

    # =========================================================================
    # Handlers
    # =========================================================================

    async def _handle_rooms_list(self, uri: str) -> ResourceResult:
        structure = await self.adapter.get_structure()
        rooms = [
            {
                "uuid": room.uuid,
                "name": room.name,
                "deviceCount": count_visible_controls_in_room(structure, room.uuid),
            }
            for room in structure.rooms.values()
        ]
        return self._json(self.config.uri, rooms)

    async def _handle_room_devices(self, uri: str) -> ResourceResult:
        room_name = extract_segment(uri, "rooms/", "/devices")
        if not room_name:
            return ResourceResult.failure(uri, "Room name not found in URI")

        structure = await self.adapter.get_structure()
        room = find_room_by_name(structure, room_name)
        if room is None:
            raise NotFoundError("Room", room_name)

        devices = [
            build_device_json(structure, control, include_room=False)
            for control in visible_controls_for_room(structure, room.uuid)
        ]
        return self._json(uri, devices)

    async def _handle_devices_all(self, uri: str) -> ResourceResult:
        structure = await self.adapter.get_structure()
        devices = [build_device_json(structure, c) for c in visible_controls(structure)]
        return self._json(self.config.uri, devices)

    async def _handle_devices_by_type(self, uri: str) -> ResourceResult:
        device_type = extract_segment(uri, "type/")
        if not device_type:
            return ResourceResult.failure(uri, "Device type not found in URI")

        structure = await self.adapter.get_structure()
        devices = [
            build_device_json(structure, c)
            for c in visible_controls_by_type(structure, device_type)
        ]
        return self._json(uri, devices)

    async def _handle_devices_by_category(self, uri: str) -> ResourceResult:
        category_name = extract_segment(uri, "category/")
        if not category_name:
            return ResourceResult.failure(uri, "Category name not found in URI")

        structure = await self.adapter.get_structure()
        category = find_category_by_name(structure, category_name)
        if category is None:
            raise NotFoundError("Category", category_name)

        devices = [
            build_device_json(structure, control, include_category=False)
            for control in visible_controls_for_category(structure, category.uuid)
        ]
        return self._json(uri, devices)

    async def _handle_categories_list(self, uri: str) -> ResourceResult:
        structure = await self.adapter.get_structure()
        categories = [
            {
                "uuid": category.uuid,
                "name": category.name,
                "type": category.type or "unknown",
                "deviceCount": count_visible_controls_in_category(structure, category.uuid),
            }
            for category in structure.categories.values()
        ]
        return self._json(self.config.uri, categories)

    async def _handle_structure_summary(self, uri: str) -> ResourceResult:
        structure = await self.adapter.get_structure()
        summary = {
            "rooms": len(structure.rooms),
            "devices": len(visible_controls(structure)),
            "categories": len(structure.categories),
            "roomList": [
                {
                    "name": room.name,
                    "deviceCount": count_visible_controls_in_room(structure, room.uuid),
                }
                for room in structure.rooms.values()
            ],
            "categoryList": [
                {
                    "name": category.name,
                    "type": category.type or "unknown",
                    "deviceCount": count_visible_controls_in_category(structure, category.uuid),
                }
                for category in structure.categories.values()
            ],
        }
        return self._json(self.config.uri, summary)

    async def _handle_server_status(self, uri: str) -> ResourceResult:
        """Connection status as text; a backend error is reported, not failed."""
        try:
            api_version = await self.adapter.get_api_version()
        except Exception as e:
            logger.error(f"Failed to get server status: {e}")
            text = (
                "Loxone Miniserver Status\n"
                "========================\n\n"
                "Connection: Error\n"
                f"Message: {e}\n\n"
                "The Miniserver is not accessible."
            )
        else:
            text = (
                "Loxone Miniserver Status\n"
                "========================\n\n"
                "Connection: Active\n"
                f"API Version: {api_version}\n\n"
                "The Miniserver is online and responding to requests."
            )
        return ResourceResult.success(uri, text, MIME_TEXT)
