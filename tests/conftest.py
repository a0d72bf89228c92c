"""Shared fixtures for the llm-key-ring test suite."""
from pathlib import Path

import pytest

from llm_key_ring.keys.domains.clipboard import ClipboardEscrow, MemoryClipboard
from llm_key_ring.keys.domains.context import ExecutionContext
from llm_key_ring.keys.domains.models import KeyKind
from llm_key_ring.keys.domains.store import MemoryStore


@pytest.fixture
def temp_home(tmp_path, monkeypatch):
    """Fixture to create a temporary home directory for testing."""
    fake_home = tmp_path / "home"
    fake_home.mkdir()
    monkeypatch.setenv("HOME", str(fake_home))
    monkeypatch.setattr(Path, "home", lambda: fake_home)
    return fake_home


@pytest.fixture
def store():
    """Memory store seeded with two runtime keys."""
    s = MemoryStore()
    s.put("openai:prod", "sk-test-openai-key-12345678", KeyKind.RUNTIME)
    s.put("anthropic:main", "sk-ant-test-key-87654321", KeyKind.RUNTIME)
    return s


@pytest.fixture
def interactive():
    return ExecutionContext(stdin_is_interactive=True, stdout_is_interactive=True)


@pytest.fixture
def piped():
    return ExecutionContext(stdin_is_interactive=False, stdout_is_interactive=False)


@pytest.fixture
def memory_clipboard():
    return MemoryClipboard()


@pytest.fixture
def scheduled():
    """Tokens handed to the clear spawner instead of starting a process."""
    return []


@pytest.fixture
def escrow(memory_clipboard, scheduled, tmp_path):
    return ClipboardEscrow(
        backend=memory_clipboard,
        ttl=30,
        state_path=tmp_path / "escrow.json",
        spawn=lambda token, state_path: scheduled.append(token),
    )
