"""
Pytest configuration and shared fixtures for the ConTUI test suite.
"""

import asyncio
import logging
import os
import sys
import tempfile
from pathlib import Path
from unittest.mock import AsyncMock, Mock
import pytest

# Add src to path for imports during testing
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from contui.core.agent import AgentController, AgentLoop  # noqa: E402
from contui.llm.manager import LLMManager  # noqa: E402
from contui.memory.session import ChatHistory  # noqa: E402
from contui.tools.execution import CommandRunner  # noqa: E402
from contui.tools.executor import ActionExecutor  # noqa: E402
from contui.tools.git import GitTool  # noqa: E402
from contui.tools.sandbox import FileAccessGuard  # noqa: E402
from contui.utils.config import AgentConfig, LLMConfig  # noqa: E402

# Disable logging during tests to reduce noise
logging.getLogger("contui").setLevel(logging.CRITICAL)


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir).resolve()


@pytest.fixture
def workdir(temp_dir, monkeypatch):
    """Temporary directory that is also the working directory."""
    monkeypatch.chdir(temp_dir)
    return temp_dir


@pytest.fixture
def guard(workdir):
    """Sandbox granting only the working directory."""
    guard = FileAccessGuard()
    guard.grant(workdir)
    return guard


@pytest.fixture
def agent_config():
    """Configuration with test-friendly settings."""
    return AgentConfig(
        llm=LLMConfig(api_key="test-key", request_timeout=5.0),
        log_file=None,
        command_timeout=10.0
    )


@pytest.fixture
def executor(guard, agent_config):
    return ActionExecutor(guard, agent_config)


@pytest.fixture
def mock_llm():
    """LLM manager whose ``chat`` replies come from ``replies`` in order."""
    def _create(*replies, finished=None):
        llm = Mock(spec=LLMManager)
        llm.config = LLMConfig(api_key="test-key", request_timeout=5.0)
        llm.chat = AsyncMock(side_effect=list(replies))
        llm.is_finished = Mock(side_effect=finished or LLMManager.is_finished)
        llm.get_provider_info = Mock(return_value={"provider": "mock", "model": "mock-model"})
        return llm

    return _create


@pytest.fixture
def make_controller(guard, agent_config):
    """Build a controller around a (mock) LLM manager."""
    def _create(llm, runner=None):
        executor = ActionExecutor(
            guard,
            agent_config,
            git=GitTool(),
            runner=runner or CommandRunner(timeout=10.0)
        )
        agent_loop = AgentLoop(llm=llm, executor=executor, history=ChatHistory(), config=agent_config)
        return AgentController(agent_loop)

    return _create


@pytest.fixture
def mock_git_repo(workdir):
    """Create a git repository with one commit in the working directory."""
    import git

    repo = git.Repo.init(workdir)
    with repo.config_writer() as git_config:
        git_config.set_value("user", "name", "Test User")
        git_config.set_value("user", "email", "test@example.com")

    readme = workdir / "README.md"
    readme.write_text("# Test Repository\n")
    repo.index.add([str(readme)])
    repo.index.commit("Initial commit")

    yield workdir
    repo.close()


@pytest.fixture
def clean_environment(monkeypatch):
    """Remove environment variables that override configuration."""
    for var in [
        'GEMINI_API_KEY',
        'OPENAI_API_KEY',
        'ANTHROPIC_API_KEY',
        'MODEL',
        'LLM_MODEL',
        'LLM_BASE_URL',
        'MAX_TOKENS',
        'TEMPERATURE',
    ]:
        monkeypatch.delenv(var, raising=False)


def drain(queue: asyncio.Queue) -> list:
    """All events currently waiting in ``queue``."""
    events = []
    while not queue.empty():
        events.append(queue.get_nowait())
    return events


def assert_file_contains(path, text):
    """Assert that a file contains specific text."""
    content = Path(path).read_text()
    assert text in content, f"File {path} does not contain '{text}'"
