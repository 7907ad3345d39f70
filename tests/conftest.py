import pytest
from loguru import logger


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def log_lines():
    """Capture loguru output for assertions."""
    lines = []
    handler_id = logger.add(lambda msg: lines.append(str(msg)), level="DEBUG", format="{message}")
    yield lines
    logger.remove(handler_id)
