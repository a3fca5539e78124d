"""Query helpers over a structure snapshot.

Pure functions shared by the tool and resource dispatchers: name lookup,
visibility filtering and JSON projection. No I/O happens here.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from lox_mcp.structure import Category, Control, Room, StructureSnapshot


class ScopeKind(str, Enum):
    """How a control listing is narrowed."""

    ALL = "all"
    ROOM = "room"
    TYPE = "type"
    CATEGORY = "category"


@dataclass(frozen=True)
class ControlScope:
    """Selection of controls: everything, one room, one type or one category."""

    kind: ScopeKind
    value: str | None = None

    @classmethod
    def all(cls) -> "ControlScope":
        return cls(ScopeKind.ALL)

    @classmethod
    def room(cls, room_uuid: str) -> "ControlScope":
        return cls(ScopeKind.ROOM, room_uuid)

    @classmethod
    def type(cls, control_type: str) -> "ControlScope":
        return cls(ScopeKind.TYPE, control_type)

    @classmethod
    def category(cls, category_uuid: str) -> "ControlScope":
        return cls(ScopeKind.CATEGORY, category_uuid)

    def matches(self, control: Control) -> bool:
        """Check whether a control falls inside this scope (visibility aside)."""
        if self.kind == ScopeKind.ROOM:
            return control.room == self.value
        if self.kind == ScopeKind.TYPE:
            return control.type.lower() == (self.value or "").lower()
        if self.kind == ScopeKind.CATEGORY:
            return control.category == self.value
        return True


def find_room_by_name(snapshot: StructureSnapshot, name: str) -> Room | None:
    """Find a room by name (case-insensitive).

    Duplicate names are not resolved: the first room in structure order wins.
    """
    wanted = name.lower()
    return next((r for r in snapshot.rooms.values() if r.name.lower() == wanted), None)


def find_category_by_name(snapshot: StructureSnapshot, name: str) -> Category | None:
    """Find a category by name (case-insensitive), first match wins."""
    wanted = name.lower()
    return next(
        (c for c in snapshot.categories.values() if c.name.lower() == wanted), None
    )


def visible_controls(
    snapshot: StructureSnapshot,
    scope: ControlScope | None = None,
) -> list[Control]:
    """Get visible controls (non-empty type) within a scope, in structure order.

    Args:
        snapshot: Structure to query.
        scope: Selection to apply (defaults to all controls).

    Returns:
        Matching visible controls.
    """
    scope = scope or ControlScope.all()
    return [c for c in snapshot.controls.values() if c.is_visible and scope.matches(c)]


def visible_controls_for_room(snapshot: StructureSnapshot, room_uuid: str) -> list[Control]:
    return visible_controls(snapshot, ControlScope.room(room_uuid))


def visible_controls_by_type(snapshot: StructureSnapshot, control_type: str) -> list[Control]:
    return visible_controls(snapshot, ControlScope.type(control_type))


def visible_controls_for_category(
    snapshot: StructureSnapshot, category_uuid: str
) -> list[Control]:
    return visible_controls(snapshot, ControlScope.category(category_uuid))


def count_visible_controls_in_room(snapshot: StructureSnapshot, room_uuid: str) -> int:
    return len(visible_controls_for_room(snapshot, room_uuid))


def count_visible_controls_in_category(snapshot: StructureSnapshot, category_uuid: str) -> int:
    return len(visible_controls_for_category(snapshot, category_uuid))


def build_device_json(
    snapshot: StructureSnapshot,
    control: Control,
    include_room: bool = True,
    include_category: bool = True,
) -> dict[str, Any]:
    """Build the JSON object describing one device.

    Args:
        snapshot: Structure used to resolve room/category names.
        control: The control to describe.
        include_room: Add the room name when known.
        include_category: Add the category name when known.

    Returns:
        Dict with uuid (the action UUID), name, type and optional room/category.
    """
    device: dict[str, Any] = {
        "uuid": control.uuid_action,
        "name": control.name,
        "type": control.type,
    }
    if include_room:
        room_name = snapshot.room_name(control)
        if room_name is not None:
            device["room"] = room_name
    if include_category:
        category_name = snapshot.category_name(control)
        if category_name is not None:
            device["category"] = category_name
    return device
