"""Pytest configuration for lox-mcp-server tests."""

import asyncio
import copy
from typing import Any

import pytest

from lox_mcp.adapter import LoxoneAdapter
from lox_mcp.constants import API_VERSION_COMMAND
from lox_mcp.exceptions import BackendUnavailableError
from lox_mcp.structure import StructureSnapshot


# =============================================================================
# Structure Fixtures
# =============================================================================


SAMPLE_STRUCTURE: dict[str, Any] = {
    "lastModified": "2024-05-01 10:00:00",
    "rooms": {
        "r-kitchen": {"uuid": "r-kitchen", "name": "Kitchen"},
        "r-living": {"uuid": "r-living", "name": "Living Room"},
        "r-attic": {"uuid": "r-attic", "name": "Attic"},
    },
    "cats": {
        "c-light": {"uuid": "c-light", "name": "Lighting", "type": "lights"},
        "c-shade": {"uuid": "c-shade", "name": "Shading"},
        "c-security": {"uuid": "c-security", "name": "Security", "type": "undefined"},
    },
    "controls": {
        "ctl-1": {
            "name": "Kitchen Light",
            "type": "Switch",
            "uuidAction": "act-1",
            "room": "r-kitchen",
            "cat": "c-light",
        },
        "ctl-2": {
            "name": "Kitchen Dimmer",
            "type": "Dimmer",
            "uuidAction": "act-2",
            "room": "r-kitchen",
            "cat": "c-light",
        },
        "ctl-3": {
            "name": "Kitchen Blind",
            "type": "Jalousie",
            "uuidAction": "act-3",
            "room": "r-kitchen",
            "cat": "c-shade",
        },
        "ctl-4": {
            "name": "Living Light",
            "type": "Switch",
            "uuidAction": "act-4",
            "room": "r-living",
            "cat": "c-light",
        },
        "ctl-5": {
            "name": "Hidden Block",
            "type": "",
            "uuidAction": "act-5",
            "room": "r-kitchen",
            "cat": "c-light",
        },
        "ctl-6": {
            "name": "Attic Internal",
            "uuidAction": "act-6",
            "room": "r-attic",
        },
    },
}


@pytest.fixture
def structure_data() -> dict[str, Any]:
    """A fresh copy of the sample structure document."""
    return copy.deepcopy(SAMPLE_STRUCTURE)


@pytest.fixture
def snapshot(structure_data) -> StructureSnapshot:
    """The sample structure as a snapshot."""
    return StructureSnapshot.from_api(structure_data)


# =============================================================================
# Mock Miniserver Fixtures
# =============================================================================


API_VERSION_VALUE = "{'snr': '50:4F:94:10:20:30', 'version':'14.5.12.7'}"


class FakeMiniserverClient:
    """In-memory Miniserver client for adapter and dispatcher tests.

    Usage:
        client = FakeMiniserverClient(structure_data, failing={"act-2"})
        adapter = LoxoneAdapter("192.168.1.77", "admin", "secret",
                                client_factory=lambda endpoint: client)
    """

    def __init__(
        self,
        structure: dict[str, Any],
        failing: set[str] | None = None,
        structure_delay: float = 0.0,
    ):
        self.structure = structure
        self.failing = set(failing or ())
        self.structure_delay = structure_delay
        self.structure_error: Exception | None = None
        self.commands: list[str] = []
        self.structure_calls = 0
        self.opened = 0
        self.closed = 0

    @property
    def backend_calls(self) -> int:
        return len(self.commands) + self.structure_calls

    async def open(self) -> None:
        self.opened += 1

    async def call_raw(self, command: str) -> str:
        self.commands.append(command)
        for uuid in self.failing:
            if f"/{uuid}/" in command:
                raise BackendUnavailableError(
                    f"Miniserver returned code 500 for {command}", command=command
                )
        if command == API_VERSION_COMMAND:
            return API_VERSION_VALUE
        return "1"

    async def get_structure(self) -> dict[str, Any]:
        self.structure_calls += 1
        await asyncio.sleep(self.structure_delay)
        if self.structure_error is not None:
            raise self.structure_error
        return self.structure

    async def close(self) -> None:
        self.closed += 1


@pytest.fixture
def fake_client(structure_data) -> FakeMiniserverClient:
    """Fake Miniserver serving the sample structure."""
    return FakeMiniserverClient(structure_data)


@pytest.fixture
def adapter(fake_client) -> LoxoneAdapter:
    """Adapter bound to the fake Miniserver."""
    return LoxoneAdapter(
        "192.168.1.77",
        "admin",
        "secret",
        client_factory=lambda endpoint: fake_client,
    )
