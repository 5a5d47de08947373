"""Shared fixtures for jest-tools tests."""

from __future__ import annotations

import io
import logging
import textwrap
from pathlib import Path
from typing import Any

import pytest

from jest_tools import core
from jest_tools.core import Settings, ToolContext
from jest_tools.session import SessionManager, SessionRegistry


@pytest.fixture(autouse=True)
def reset_tool_registry():
    """Save and restore _TOOL_REGISTRY around each test."""
    saved = core._TOOL_REGISTRY.copy()
    yield
    core._TOOL_REGISTRY.clear()
    core._TOOL_REGISTRY.update(saved)


class FakeHandle:
    """Stands in for a ProcessHandle; tests drive output and exit by hand."""

    def __init__(self, cwd: Path, command: str, on_output, on_exit) -> None:
        self.cwd = cwd
        self.command = command
        self.on_output = on_output
        self.on_exit = on_exit
        self.alive = True
        self.killed = False
        self.sent: list[str] = []

    def emit(self, text: str) -> None:
        self.on_output(self, text)

    def finish(self, status: int = 0) -> None:
        try:
            self.on_exit(self, status)
        finally:
            self.alive = False

    def is_alive(self) -> bool:
        return self.alive

    def wait(self, timeout: float | None = None) -> bool:
        # Fake processes only end through finish() or kill().
        return not self.alive

    def send_text(self, text: str) -> bool:
        self.sent.append(text)
        return self.alive

    def kill(self) -> None:
        self.killed = True
        if self.alive:
            self.finish(-15)


class FakeSpawner:
    def __init__(self) -> None:
        self.handles: list[FakeHandle] = []

    def __call__(self, cwd, command, on_output, on_exit) -> FakeHandle:
        handle = FakeHandle(cwd, command, on_output, on_exit)
        self.handles.append(handle)
        return handle

    @property
    def last(self) -> FakeHandle:
        return self.handles[-1]


class FakePrompter:
    """Scripted answers for confirm/edit prompts."""

    def __init__(self, confirm: bool = True, edit: str | None = "") -> None:
        self.confirm_answer = confirm
        self.edit_answer = edit
        self.questions: list[str] = []
        self.edits: list[tuple[str, list[str]]] = []

    def confirm(self, question: str) -> bool:
        self.questions.append(question)
        return self.confirm_answer

    def edit(self, initial: str, history: list[str]) -> str | None:
        self.edits.append((initial, history))
        if self.edit_answer == "":
            return initial
        return self.edit_answer


@pytest.fixture
def spawner() -> FakeSpawner:
    return FakeSpawner()


@pytest.fixture
def prompter() -> FakePrompter:
    return FakePrompter()


@pytest.fixture
def make_manager(spawner, prompter):
    """Factory for a SessionManager wired to the fake spawner and prompter."""

    def _make(**settings: Any) -> SessionManager:
        return SessionManager(
            registry=SessionRegistry(),
            spawner=spawner,
            prompter=prompter,
            settings=Settings(**settings),
        )

    return _make


@pytest.fixture
def make_project(tmp_path: Path):
    """Factory that creates a temp JS project.

    Usage::

        root = make_project(files={"src/a.test.js": "test('x', () => {})"})
    """
    _counter = 0

    def _make(
        files: dict[str, str] | None = None,
        config_yaml: str | None = None,
    ) -> Path:
        nonlocal _counter
        root = tmp_path / f"project_{_counter}"
        root.mkdir()
        _counter += 1
        (root / "package.json").write_text('{"name": "demo"}\n', encoding="utf-8")

        if config_yaml is not None:
            (root / "jest-tools.yaml").write_text(
                textwrap.dedent(config_yaml), encoding="utf-8",
            )
        for rel, content in (files or {}).items():
            path = root / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(textwrap.dedent(content), encoding="utf-8")
        return root

    return _make


@pytest.fixture
def make_tool_context(make_manager, tmp_path: Path):
    """Factory to build a ToolContext for unit-testing tools directly."""

    def _make(
        project_root: Path | None = None,
        config: dict[str, Any] | None = None,
        tool_config: dict[str, Any] | None = None,
        passthrough_args: list[str] | None = None,
        manager: SessionManager | None = None,
    ) -> ToolContext:
        root = project_root or tmp_path / "ws"
        root.mkdir(exist_ok=True)
        cfg = config or {}
        settings = Settings.from_config(cfg)
        return ToolContext(
            project_root=root,
            settings=settings,
            config=cfg,
            tool_config=tool_config or {},
            passthrough_args=passthrough_args or [],
            session_manager=manager or make_manager(),
        )

    return _make


@pytest.fixture
def capture_logs():
    """Capture jest_tools logger output into a StringIO buffer.

    The logger has propagate=False and its own StreamHandler, so caplog
    cannot see it.  This fixture adds a temporary StringIO handler.
    """
    buf = io.StringIO()
    handler = logging.StreamHandler(buf)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger = logging.getLogger("jest_tools")
    logger.addHandler(handler)
    yield buf
    logger.removeHandler(handler)
