"""Miniserver structure model.

The Miniserver describes its topology in the structure file
(``data/LoxAPP3.json``). Only the parts the MCP server needs are kept:
rooms, categories and controls, in document order.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class Room:
    """A room of the installation."""

    uuid: str
    name: str

    @classmethod
    def from_api(cls, uuid: str, data: dict[str, Any]) -> "Room":
        """Create from a structure file entry."""
        return cls(uuid=data.get("uuid") or uuid, name=data.get("name") or "")


@dataclass(frozen=True)
class Category:
    """A category (lighting, shading, ...) of the installation."""

    uuid: str
    name: str
    type: str | None = None

    @classmethod
    def from_api(cls, uuid: str, data: dict[str, Any]) -> "Category":
        """Create from a structure file entry."""
        return cls(
            uuid=data.get("uuid") or uuid,
            name=data.get("name") or "",
            type=data.get("type") or None,
        )


@dataclass(frozen=True)
class Control:
    """A controllable or observable block (switch, dimmer, sensor, ...).

    Room and category are weak references by UUID, resolved against the
    snapshot on demand.
    """

    uuid: str
    uuid_action: str
    name: str
    type: str = ""
    room: str | None = None
    category: str | None = None

    @property
    def is_visible(self) -> bool:
        """Controls without a type are internal and never shown or acted on."""
        return bool(self.type)

    @classmethod
    def from_api(cls, uuid: str, data: dict[str, Any]) -> "Control":
        """Create from a structure file entry."""
        return cls(
            uuid=uuid,
            uuid_action=data.get("uuidAction") or uuid,
            name=data.get("name") or "",
            type=data.get("type") or "",
            room=data.get("room"),
            category=data.get("cat"),
        )


@dataclass(frozen=True)
class StructureSnapshot:
    """Rooms, categories and controls as of the last structure fetch.

    Treat as read-only once built; query functions never modify it.
    """

    rooms: dict[str, Room] = field(default_factory=dict)
    categories: dict[str, Category] = field(default_factory=dict)
    controls: dict[str, Control] = field(default_factory=dict)
    last_modified: str = ""

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "StructureSnapshot":
        """Build a snapshot from the parsed structure file.

        Args:
            data: Decoded LoxAPP3.json document.

        Returns:
            StructureSnapshot preserving document order.
        """
        return cls(
            rooms={
                uuid: Room.from_api(uuid, entry)
                for uuid, entry in (data.get("rooms") or {}).items()
            },
            categories={
                uuid: Category.from_api(uuid, entry)
                for uuid, entry in (data.get("cats") or {}).items()
            },
            controls={
                uuid: Control.from_api(uuid, entry)
                for uuid, entry in (data.get("controls") or {}).items()
            },
            last_modified=str(data.get("lastModified", "")),
        )

    def room_name(self, control: Control) -> str | None:
        """Name of the control's room, if it references a known room."""
        room = self.rooms.get(control.room) if control.room else None
        return room.name if room else None

    def category_name(self, control: Control) -> str | None:
        """Name of the control's category, if it references a known category."""
        category = self.categories.get(control.category) if control.category else None
        return category.name if category else None
