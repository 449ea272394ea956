"""Shared test fixtures and marker registration."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from panelfs._registry import Registry
from tests.memory_provider import MemoryProvider

if TYPE_CHECKING:
    from collections.abc import Iterator


def pytest_configure(config: object) -> None:
    """Register custom markers."""
    if isinstance(config, pytest.Config):
        config.addinivalue_line("markers", "integration: starts the in-process SFTP server")


@pytest.fixture
def mem() -> MemoryProvider:
    return MemoryProvider("mem")


@pytest.fixture
def other_mem() -> MemoryProvider:
    return MemoryProvider("other")


@pytest.fixture
def registry(mem: MemoryProvider, other_mem: MemoryProvider) -> Iterator[Registry]:
    """Registry with two independent in-memory providers."""
    reg = Registry()
    reg.register(mem)
    reg.register(other_mem)
    yield reg
    reg.close()
