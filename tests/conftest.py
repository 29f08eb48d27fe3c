import logging

import pytest
import structlog


@pytest.fixture(autouse=True)
def reset_logging():
    """Undo logging set up by CLI runs so later tests do not write to closed streams."""
    yield
    structlog.reset_defaults()
    logging.getLogger().handlers.clear()
