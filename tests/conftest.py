"""
Pytest configuration and fixtures for code-runner tests.
"""

import os
import sys

import pytest
from hypothesis import Verbosity, settings

from code_runner.core.config import RunnerConfig
from code_runner.execution.dispatcher import ExecutionDispatcher
from code_runner.execution.models import ExecutionRequest, Language

# Configure hypothesis settings for property-based testing
settings.register_profile(
    "default",
    max_examples=100,
    verbosity=Verbosity.normal,
    deadline=None,  # Disable deadline for slow operations
)

settings.register_profile(
    "ci",
    max_examples=200,
    verbosity=Verbosity.normal,
    deadline=None,
)

settings.register_profile(
    "dev",
    max_examples=10,
    verbosity=Verbosity.verbose,
    deadline=None,
)

# Load profile from environment or use default
settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "default"))


@pytest.fixture
def runner_config():
    """Default configuration with the running interpreter listed first."""
    config = RunnerConfig()
    config.sandbox.python_candidates = [sys.executable]
    return config

@pytest.fixture
def dispatcher(runner_config):
    return ExecutionDispatcher(runner_config)

@pytest.fixture
def make_request():
    """Build an ExecutionRequest with short defaults."""

    def _make(language, code, **overrides):
        overrides.setdefault("timeout_ms", 5_000)
        return ExecutionRequest(code=code, language=Language.parse(language), **overrides)

    return _make

@pytest.fixture
def sample_javascript_code():
    return """const numbers = [1, 2, 3, 4, 5];
const total = numbers.reduce((a, b) => a + b, 0);
console.log("Sum:", total);
total * 2"""

@pytest.fixture
def sample_python_code():
    return """numbers = [1, 2, 3, 4, 5]
total = sum(numbers)
print("Sum:", total)
total * 2"""
