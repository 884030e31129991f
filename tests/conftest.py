import pytest

from lamusfs.events import EventDispatcher
from lamusfs.registry import ProviderRegistry

from .fixtures.memory_provider import MemoryProvider


@pytest.fixture
def dispatcher():
    return EventDispatcher()


@pytest.fixture
def registry(dispatcher):
    return ProviderRegistry(dispatcher)


@pytest.fixture
async def source_provider(registry):
    """Initialized in-memory provider registered as "src"."""
    provider = MemoryProvider("Source")
    await registry.connect("src", provider)
    return provider


@pytest.fixture
async def target_provider(registry):
    """Initialized in-memory provider registered as "dst"."""
    provider = MemoryProvider("Target")
    await registry.connect("dst", provider)
    return provider
