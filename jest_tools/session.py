"""Per-project Jest sessions: lifecycle, run history and transcript."""

from __future__ import annotations

import dataclasses
import enum
import functools
import re
import threading
from collections.abc import Callable
from pathlib import Path
from typing import Protocol

from .command import CommandLine
from .core import NoHistory, Settings, UserCancelled, logger
from .process import ExitCallback, OutputCallback, ProcessHandle, spawn_process
from .prompts import ClickPrompter, Prompter

SESSION_KIND = "jest"
SESSION_NAME = "*jest*"

_ANSI_RE = re.compile(r"\x1b\[[0-9;?]*[A-Za-z]")
_CLEAR_SCREEN_RE = re.compile(r"\x1b\[2J|\x1bc")
_BANNER_RE = re.compile(
    r"^Test Suites:.*\n\s*^Tests:.*\n\s*^Snapshots:.*\n\s*^Time:",
    re.MULTILINE,
)
_RUN_START_RE = re.compile(r"^\s*(?:(?:PASS|FAIL|RUNS)\s|Determining test suites)")
_BANNER_TAIL = 4096


def strip_ansi(text: str) -> str:
    return _ANSI_RE.sub("", text)


def contains_banner(text: str) -> bool:
    """Whether *text* holds Jest's final summary block."""
    return _BANNER_RE.search(strip_ansi(text)) is not None


def starts_new_run(chunk: str) -> bool:
    """Whether *chunk* is the first output of a (re)run."""
    if _CLEAR_SCREEN_RE.search(chunk):
        return True
    return _RUN_START_RE.match(strip_ansi(chunk)) is not None


class SessionState(enum.Enum):
    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    COMPLETED = "completed"
    KILLED = "killed"


class Transcript:
    """Append-only output buffer that can be cleared."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._parts: list[str] = []

    def write(self, text: str) -> None:
        with self._lock:
            self._parts.append(text)

    def clear(self) -> None:
        with self._lock:
            self._parts.clear()

    @property
    def text(self) -> str:
        with self._lock:
            return "".join(self._parts)

    def tail(self, size: int) -> str:
        return self.text[-size:]


class RunHistory:
    """Rendered commands, most recent first, without duplicates."""

    def __init__(self) -> None:
        self._entries: list[str] = []

    def add(self, rendered: str) -> None:
        if rendered in self._entries:
            self._entries.remove(rendered)
        self._entries.insert(0, rendered)

    def entries(self) -> list[str]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(list(self._entries))


@dataclasses.dataclass(eq=False)
class ProjectSession:
    name: str
    project_root: Path
    display_name: str
    kind: str = SESSION_KIND
    state: SessionState = SessionState.IDLE
    handle: ProcessHandle | None = None
    transcript: Transcript = dataclasses.field(default_factory=Transcript)
    banner_seen: bool = False

    @property
    def is_running(self) -> bool:
        return (
            self.handle is not None
            and self.state in (SessionState.STARTING, SessionState.RUNNING)
            and self.handle.is_alive()
        )


class Spawner(Protocol):
    def __call__(
        self,
        cwd: Path,
        command: str,
        on_output: OutputCallback,
        on_exit: ExitCallback,
    ) -> ProcessHandle: ...


@dataclasses.dataclass
class SessionHooks:
    """Listeners notified around a run.

    ``output`` receives every chunk after it reached the transcript;
    ``finished`` receives the exit status.
    """

    setup: list[Callable[[ProjectSession], None]] = dataclasses.field(default_factory=list)
    started: list[Callable[[ProjectSession], None]] = dataclasses.field(default_factory=list)
    output: list[Callable[[ProjectSession, str], None]] = dataclasses.field(default_factory=list)
    finished: list[Callable[[ProjectSession, int], None]] = dataclasses.field(default_factory=list)


class SessionRegistry:
    """Process-lifetime state shared by every project.

    Holds the sessions by name, the global run history and the last
    command of each project.  ``lock`` guards all of it together with the
    state of every session.
    """

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.history = RunHistory()
        self.sessions: dict[str, object] = {}
        self._last_commands: dict[Path, CommandLine] = {}

    def last_command(self, project_root: Path) -> CommandLine | None:
        with self.lock:
            return self._last_commands.get(project_root)

    def record(self, project_root: Path, command: CommandLine) -> None:
        with self.lock:
            self.history.add(command.rendered)
            self._last_commands[project_root] = command

    def session(self, name: str) -> ProjectSession | None:
        """Return the session called *name* if it is one of ours."""
        with self.lock:
            found = self.sessions.get(name)
            if isinstance(found, ProjectSession) and found.kind == SESSION_KIND:
                return found
            return None


class SessionManager:
    """Launches Jest commands into per-project sessions."""

    def __init__(
        self,
        registry: SessionRegistry | None = None,
        spawner: Spawner = spawn_process,
        prompter: Prompter | None = None,
        settings: Settings | None = None,
        hooks: SessionHooks | None = None,
    ) -> None:
        self.registry = registry or SessionRegistry()
        self.spawner = spawner
        self.prompter = prompter or ClickPrompter()
        self.settings = settings or Settings()
        self.hooks = hooks or SessionHooks()

    # ── identity ─────────────────────────────────────────────────────

    def session_name(self, project_root: Path) -> str:
        if self.settings.project_name_in_session:
            return f"{SESSION_NAME}<{project_root.name}>"
        return SESSION_NAME

    def get_session(self, project_root: Path) -> ProjectSession | None:
        return self.registry.session(self.session_name(project_root))

    def _session_for(self, project_root: Path) -> ProjectSession:
        name = self.session_name(project_root)
        with self.registry.lock:
            session = self.registry.session(name)
            if session is None:
                if name in self.registry.sessions:
                    logger.debug(f"Replacing foreign session object named {name}")
                session = ProjectSession(
                    name=name,
                    project_root=project_root,
                    display_name=project_root.name,
                )
                self.registry.sessions[name] = session
            return session

    # ── operations ───────────────────────────────────────────────────

    def launch(
        self,
        project_root: Path,
        command: CommandLine,
        edit: bool = False,
    ) -> ProjectSession:
        """Run *command* in the project's session and return immediately.

        Raises ``UserCancelled`` if the user declines the edit prompt or
        refuses to kill a running process; nothing is changed in that case.
        """
        if edit or self.settings.confirm:
            edited = self.prompter.edit(command.rendered, self.registry.history.entries())
            if edited is None or not edited.strip():
                raise UserCancelled("Edit cancelled")
            command = command.with_rendered(edited.strip())

        session = self._session_for(project_root)
        if session.is_running:
            if not self.settings.always_kill and not self.prompter.confirm(
                f"Jest is still running in {session.name}; kill it?"
            ):
                raise UserCancelled("Kept the running process")
            self._terminate(session)

        with self.registry.lock:
            self.registry.record(project_root, command)
            session.project_root = project_root
            session.display_name = project_root.name
            session.transcript.clear()
            session.banner_seen = False
            session.transcript.write(f"cwd: {project_root}\ncmd: {command.rendered}\n\n")
            session.state = SessionState.STARTING
            for hook in self.hooks.setup:
                hook(session)
            try:
                session.handle = self.spawner(
                    project_root,
                    command.rendered,
                    functools.partial(self._on_output, session),
                    functools.partial(self._on_exit, session),
                )
            except OSError:
                session.handle = None
                session.state = SessionState.IDLE
                raise
            session.state = SessionState.RUNNING

        logger.info(f"Running: {command.rendered}")
        for hook in self.hooks.started:
            hook(session)
        return session

    def repeat(self, project_root: Path, edit: bool = False) -> ProjectSession:
        """Launch the last command run in the project again.

        Raises ``NoHistory`` when nothing ran there yet.
        """
        root = project_root
        command = self.registry.last_command(root)
        if command is None:
            # A session shared between projects remembers where it last ran.
            session = self.get_session(project_root)
            if session is not None:
                root = session.project_root
                command = self.registry.last_command(root)
        if command is None:
            raise NoHistory(f"No previous jest run in {project_root}")
        return self.launch(root, command, edit=edit)

    def kill(self, project_root: Path) -> bool:
        """Kill the running process of the project's session, if any."""
        session = self.get_session(project_root)
        if session is None or not session.is_running:
            return False
        self._terminate(session)
        return True

    def send(self, project_root: Path, text: str) -> bool:
        """Forward *text* to the running process (e.g. watch-mode keys)."""
        session = self.get_session(project_root)
        if session is None or not session.is_running or session.handle is None:
            return False
        return session.handle.send_text(text)

    def wait(self, project_root: Path, timeout: float | None = None) -> bool:
        session = self.get_session(project_root)
        if session is None or session.handle is None:
            return True
        return session.handle.wait(timeout)

    # ── internals ────────────────────────────────────────────────────

    def _terminate(self, session: ProjectSession) -> None:
        with self.registry.lock:
            handle = session.handle
            session.state = SessionState.KILLED
        # Killing waits for the reader thread, which needs the lock.
        if handle is not None:
            handle.kill()

    def _on_output(self, session: ProjectSession, handle: ProcessHandle, text: str) -> None:
        with self.registry.lock:
            if handle is not session.handle:
                return
            if self.settings.clear_on_rerun and session.banner_seen and starts_new_run(text):
                session.transcript.clear()
                session.banner_seen = False
            session.transcript.write(text)
            if not session.banner_seen and "Time:" in text:
                session.banner_seen = contains_banner(session.transcript.tail(_BANNER_TAIL))
        for hook in self.hooks.output:
            hook(session, text)

    def _on_exit(self, session: ProjectSession, handle: ProcessHandle, status: int) -> None:
        with self.registry.lock:
            if handle is not session.handle:
                return
            if session.state is not SessionState.KILLED:
                session.state = SessionState.COMPLETED
        logger.debug(f"{session.name} exited with status {status}")
        for hook in self.hooks.finished:
            hook(session, status)
