from unittest.mock import MagicMock

import pytest
from helpers import InMemoryIndexWriter


@pytest.fixture
def index_writer() -> InMemoryIndexWriter:
    return InMemoryIndexWriter()


@pytest.fixture
def rate_limiter() -> MagicMock:
    return MagicMock()
