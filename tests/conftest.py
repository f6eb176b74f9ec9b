import pytest


@pytest.fixture
def anyio_backend() -> str:
    # The suite is written against asyncio (asyncio.Queue, asyncio.sleep).
    return "asyncio"
