from pytest import fixture

from aiojanitor import ResourceTracker


@fixture
def anyio_backend():
    return "asyncio"


@fixture
def tracker():
    return ResourceTracker()
