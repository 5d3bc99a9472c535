"""Shared test fixtures for recall-feedback."""

import sys
from pathlib import Path

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from cli.config_models import FeedbackConfig  # noqa: E402
from cli.retry import RetryOptions  # noqa: E402


@pytest.fixture
def project_dir(tmp_path):
    """An empty project directory."""
    path = tmp_path / "my-project"
    path.mkdir()
    return path


@pytest.fixture
def enabled_config():
    return FeedbackConfig(enabled=True)


@pytest.fixture
def fast_retry():
    """Retry policy that never actually sleeps."""

    async def no_sleep(_delay):
        return None

    return RetryOptions(max_attempts=3, initial_delay=0.0, max_delay=0.0, jitter=False, sleep=no_sleep)


@pytest.fixture
def recalled_memories():
    """Facts as returned by the backend recall endpoint."""
    return [
        {"id": "f1", "text": "Authentication uses JWT tokens", "fact_type": "world", "score": 0.92},
        {"id": "f2", "text": "The team deploys to Kubernetes every Friday", "fact_type": "experience", "score": 0.71},
        {"id": "f3", "text": "Prefers tabs over spaces in Makefiles", "fact_type": "opinion", "score": 0.40},
    ]
