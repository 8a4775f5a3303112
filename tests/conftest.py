import pytest
import structlog


@pytest.fixture(autouse=True)
def _restore_structlog_config():
    """Undo logging configuration made by a test (e.g. CLI runs bind the runner's stderr)."""
    saved = structlog.get_config()
    yield
    structlog.configure(**saved)
