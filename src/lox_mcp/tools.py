"""Tool dispatch.

A ToolDispatcher binds one tool definition from the YAML configuration to
the shared adapter. Each call runs validate -> execute -> format and always
ends in a DispatchResult; errors never propagate to the transport.

Bulk handlers (by room, type or category) act on every visible control in
scope one at a time, in structure order. A failing device is reported on
its own result line and does not stop the others.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Awaitable, Callable

from lox_mcp.adapter import LoxoneAdapter
from lox_mcp.config import ToolConfig
from lox_mcp.constants import ToolHandlerKind
from lox_mcp.exceptions import (
    DispatchError,
    EmptyScopeError,
    InvalidParameterError,
    MissingParameterError,
    NotFoundError,
    UnknownHandlerKindError,
)
from lox_mcp.query import (
    find_category_by_name,
    find_room_by_name,
    visible_controls_by_type,
    visible_controls_for_category,
    visible_controls_for_room,
)
from lox_mcp.results import DispatchResult
from lox_mcp.structure import Control

logger = logging.getLogger(__name__)

Arguments = dict[str, Any]


def _stringify(value: Any) -> str:
    """Render a JSON argument value the way the Miniserver expects it in a command."""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    return json.dumps(value)


class ToolDispatcher:
    """Executes one configured tool against the Miniserver.

    Example:
        dispatcher = ToolDispatcher(adapter, tool_config)
        result = await dispatcher.handle({"device_id": "0f1e...", "action": "On"})
        if result.is_error:
            ...
    """

    def __init__(self, adapter: LoxoneAdapter, tool_config: ToolConfig) -> None:
        self.adapter = adapter
        self.config = tool_config
        self._handlers: dict[ToolHandlerKind, Callable[[Arguments], Awaitable[DispatchResult]]] = {
            ToolHandlerKind.SEND_COMMAND: self._handle_send_command,
            ToolHandlerKind.CONTROL_DEVICE: self._handle_control_device,
            ToolHandlerKind.CONTROL_DEVICES_BY_ROOM: self._handle_control_devices_by_room,
            ToolHandlerKind.CONTROL_DEVICES_BY_TYPE: self._handle_control_devices_by_type,
            ToolHandlerKind.CONTROL_DEVICES_BY_CATEGORY: self._handle_control_devices_by_category,
            ToolHandlerKind.GET_API_VERSION: self._handle_get_api_version,
        }

    @property
    def name(self) -> str:
        return self.config.name

    async def handle(self, arguments: Arguments | None) -> DispatchResult:
        """Run the tool.

        Args:
            arguments: Argument name -> JSON value, as sent by the client.

        Returns:
            DispatchResult (is_error set on failure).
        """
        arguments = arguments or {}

        try:
            kind = ToolHandlerKind(self.config.handler.type)
        except ValueError:
            error = UnknownHandlerKindError(self.config.handler.type)
            logger.error(
                f"Tool '{self.name}' references handler '{error.kind}' "
                f"which is not implemented; check the configuration"
            )
            return DispatchResult.failure(str(error))

        try:
            self._validate_declared_parameters(arguments)
            return await self._handlers[kind](arguments)
        except DispatchError as e:
            logger.info(f"Tool {self.name} rejected: {e}")
            return DispatchResult.failure(str(e))
        except Exception as e:
            logger.error(f"Error executing tool {self.name}: {e}", exc_info=True)
            return DispatchResult.failure(f"Error: {e}")

    # =========================================================================
    # Argument handling
    # =========================================================================

    def _validate_declared_parameters(self, arguments: Arguments) -> None:
        """Check declared parameters before anything touches the backend.

        Declared defaults only fill in optional parameters; a required
        parameter must be present in the call.

        Raises:
            MissingParameterError: A required parameter is absent from the call.
            InvalidParameterError: A value is not among the declared enum values.
        """
        for param in self.config.parameters:
            value = arguments.get(param.name)
            if value is None:
                if param.required:
                    raise MissingParameterError(param.name)
                continue
            if param.enum is not None:
                text = _stringify(value)
                if text not in param.enum:
                    raise InvalidParameterError(param.name, text, param.enum)

    def _argument(
        self,
        arguments: Arguments,
        name: str,
        fallback: str | None = None,
        required: bool = True,
    ) -> str | None:
        """Resolve an argument: call value, then declared default, then static fallback.

        Required declared parameters were already checked, so the default
        only applies to optional ones.

        Raises:
            MissingParameterError: If required and no source provides a value.
        """
        value = arguments.get(name)
        if value is None:
            param = self.config.get_parameter(name)
            if param is not None and param.default is not None:
                value = param.default
        if value is None:
            value = fallback
        if value is None:
            if required:
                raise MissingParameterError(name)
            return None
        return _stringify(value)

    # =========================================================================
    # Handlers
    # =========================================================================

    async def _handle_send_command(self, arguments: Arguments) -> DispatchResult:
        handler = self.config.handler
        uuid = self._argument(arguments, "uuid", fallback=handler.target)
        command = self._argument(arguments, "command", fallback=handler.action)

        response = await self.adapter.send_command(uuid, command)
        return DispatchResult.success(f"Command sent successfully: {response}")

    async def _handle_control_device(self, arguments: Arguments) -> DispatchResult:
        handler = self.config.handler
        device_id = self._argument(arguments, "device_id", fallback=handler.target)
        action = self._argument(arguments, "action", fallback=handler.action)
        value = self._argument(arguments, handler.value_param or "value", required=False)

        command = action if value is None else f"{action}/{value}"
        response = await self.adapter.send_command(device_id, command)
        return DispatchResult.success(f"Device {device_id} {action}: {response}")

    async def _handle_control_devices_by_room(self, arguments: Arguments) -> DispatchResult:
        handler = self.config.handler
        room_name = self._argument(arguments, "room", fallback=handler.scope)
        action = self._argument(arguments, "action", fallback=handler.action)
        device_type = self._argument(arguments, "device_type", required=False)

        structure = await self.adapter.get_structure()
        room = find_room_by_name(structure, room_name)
        if room is None:
            raise NotFoundError("Room", room_name)

        controls = visible_controls_for_room(structure, room.uuid)
        if device_type is not None:
            controls = [c for c in controls if c.type.lower() == device_type.lower()]
            if not controls:
                raise EmptyScopeError(f"of type {device_type} in room: {room_name}")
        if not controls:
            raise EmptyScopeError(f"in room: {room_name}")

        return await self._bulk_result(controls, action, f"in {room_name}")

    async def _handle_control_devices_by_type(self, arguments: Arguments) -> DispatchResult:
        handler = self.config.handler
        device_type = self._argument(arguments, "device_type", fallback=handler.scope)
        action = self._argument(arguments, "action", fallback=handler.action)

        structure = await self.adapter.get_structure()
        controls = visible_controls_by_type(structure, device_type)
        if not controls:
            raise EmptyScopeError(f"of type: {device_type}")

        return await self._bulk_result(controls, action, f"of type {device_type}")

    async def _handle_control_devices_by_category(self, arguments: Arguments) -> DispatchResult:
        handler = self.config.handler
        category_name = self._argument(arguments, "category", fallback=handler.scope)
        action = self._argument(arguments, "action", fallback=handler.action)

        structure = await self.adapter.get_structure()
        category = find_category_by_name(structure, category_name)
        if category is None:
            raise NotFoundError("Category", category_name)

        controls = visible_controls_for_category(structure, category.uuid)
        if not controls:
            raise EmptyScopeError(f"in category: {category_name}")

        return await self._bulk_result(controls, action, f"in category {category_name}")

    async def _handle_get_api_version(self, arguments: Arguments) -> DispatchResult:
        version = await self.adapter.get_api_version()
        logger.info(f"Retrieved API version: {version}")
        return DispatchResult.success(
            f"API Version: {version}\n\n"
            "This indicates the Miniserver is responding and accessible."
        )

    # =========================================================================
    # Bulk execution
    # =========================================================================

    async def _bulk_execute(self, controls: list[Control], action: str) -> list[str]:
        """Send an action to each control, capturing every outcome separately."""
        lines = []
        for control in controls:
            try:
                await self.adapter.send_command(control.uuid_action, action)
                lines.append(f"{control.name}: OK")
            except Exception as e:
                logger.warning(f"Bulk action '{action}' failed for {control.name}: {e}")
                lines.append(f"{control.name}: {e}")
        return lines

    async def _bulk_result(
        self, controls: list[Control], action: str, scope_label: str
    ) -> DispatchResult:
        lines = await self._bulk_execute(controls, action)
        header = f"Controlled {len(controls)} devices {scope_label}:"
        return DispatchResult.success("\n".join([header, *lines]))
