"""
Shared pytest fixtures for pipefold tests.
"""

import pytest

from pipefold.config import reset_config
from pipefold.dsl import IOEffect, TryEffect
from pipefold.logging_config import reset_debug_trace_logger


@pytest.fixture(autouse=True)
def clean_runtime(monkeypatch):
    """
    Isolate every test from the caller's environment: no PIPEFOLD_* variables,
    no cached configuration and no trace handlers left behind.
    """
    for name in ("PIPEFOLD_PARALLEL_WORKERS", "PIPEFOLD_DEBUG_LOG", "PIPEFOLD_LOG_DIR"):
        monkeypatch.delenv(name, raising=False)
    reset_config()
    reset_debug_trace_logger()
    yield
    reset_config()
    reset_debug_trace_logger()


@pytest.fixture
def try_effect():
    return TryEffect()


@pytest.fixture
def io_effect():
    return IOEffect()


@pytest.fixture(params=["try", "io"])
def effect(request):
    """Run a test once per effect implementation."""
    return TryEffect() if request.param == "try" else IOEffect()


@pytest.fixture
def run(effect):
    """Evaluate a pipeline under the parametrized effect and return the tuple."""
    def _run(pipeline):
        return pipeline.run(effect)
    return _run
