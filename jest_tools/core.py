"""Core framework: JestTool base, token system, config loading, errors, utilities."""

from __future__ import annotations

import dataclasses
import logging
import string
from pathlib import Path
from typing import Any

import click
import yaml
from colorama import Fore, Style


# ── Logging ──────────────────────────────────────────────────────────


def _level_color(levelno: int) -> str:
    if levelno >= logging.ERROR:
        return Fore.RED
    if levelno >= logging.WARNING:
        return Fore.YELLOW
    return Fore.CYAN


class ToolFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        color = _level_color(record.levelno)
        message = record.getMessage()
        return f"{color}[{record.levelname.lower()}]{Style.RESET_ALL} {message}"


logger = logging.getLogger("jest_tools")
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(ToolFormatter())
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    logger.propagate = False


def print_subprocess_line(line: str) -> None:
    text = line.rstrip()
    print(f"{Style.DIM}{text}{Style.RESET_ALL}")


# ── Errors ───────────────────────────────────────────────────────────


class JestToolsError(Exception):
    """Base class for errors surfaced to the user."""


class UserCancelled(JestToolsError):
    """The user declined a confirmation or an edit prompt."""


class NoHistory(JestToolsError):
    """A repeat was requested before anything ran in the project."""


# ── Token System ─────────────────────────────────────────────────────


class TokenFormatter(string.Formatter):
    """Format string subclass with circular-reference detection.

    Executables may reference tokens: ``{project_root}/node_modules/.bin/jest``.
    Tokens may in turn reference other tokens; expansion repeats until
    stable and raises on cycles.
    """

    MAX_DEPTH = 10

    def __init__(self, tokens: dict[str, str]) -> None:
        self._tokens = tokens

    def resolve(self, template: str) -> str:
        seen: set[str] = set()
        result = template
        for _ in range(self.MAX_DEPTH):
            try:
                expanded = result.format_map(self._tokens)
            except KeyError as exc:
                missing = exc.args[0] if exc.args else "unknown"
                raise KeyError(f"Missing token: {missing}") from exc
            if expanded == result:
                return expanded
            if expanded in seen:
                raise ValueError(f"Circular token reference: {expanded}")
            seen.add(expanded)
            result = expanded
        raise ValueError(f"Token expansion exceeded {self.MAX_DEPTH} iterations")


def project_tokens(project_root: Path) -> dict[str, str]:
    """Built-in tokens available to executable templates."""
    return {
        "project_root": project_root.as_posix(),
        "project_name": project_root.name,
    }


# ── Config Loading ───────────────────────────────────────────────────

CONFIG_FILENAME = "jest-tools.yaml"

DEFAULT_EXECUTABLE = "npx --no-install jest"
DEFAULT_DEBUG_EXECUTABLE = "npx --node-options=--inspect-brk --no-install jest"

_DEFAULT_SETTINGS: dict[str, Any] = {
    "executable": DEFAULT_EXECUTABLE,
    "debug_executable": DEFAULT_DEBUG_EXECUTABLE,
    "always_kill": False,
    "confirm": False,
    "project_name_in_session": False,
    "clear_on_rerun": True,
    "quote_prefixes": ["-t", "-m"],
}


def load_config(project_root: str | Path) -> dict[str, Any]:
    """Load jest-tools.yaml from the project root."""
    config_path = Path(project_root) / CONFIG_FILENAME
    if not config_path.exists():
        return {}
    data = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise TypeError(f"{CONFIG_FILENAME} must contain a top-level mapping.")
    return data


@dataclasses.dataclass(frozen=True)
class Settings:
    """Global (non per-action) options, with defaults filled in."""

    executable: str = DEFAULT_EXECUTABLE
    debug_executable: str = DEFAULT_DEBUG_EXECUTABLE
    always_kill: bool = False
    confirm: bool = False
    project_name_in_session: bool = False
    clear_on_rerun: bool = True
    quote_prefixes: tuple[str, ...] = ("-t", "-m")

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> Settings:
        merged = {**_DEFAULT_SETTINGS}
        for key in _DEFAULT_SETTINGS:
            if config.get(key) is not None:
                merged[key] = config[key]
        prefixes = merged["quote_prefixes"]
        if isinstance(prefixes, str):
            prefixes = [prefixes]
        return cls(
            executable=str(merged["executable"]),
            debug_executable=str(merged["debug_executable"]),
            always_kill=bool(merged["always_kill"]),
            confirm=bool(merged["confirm"]),
            project_name_in_session=bool(merged["project_name_in_session"]),
            clear_on_rerun=bool(merged["clear_on_rerun"]),
            quote_prefixes=tuple(str(p) for p in prefixes),
        )


def find_project_root(start: Path) -> Path:
    """Return the nearest ancestor of *start* holding a ``package.json``.

    Falls back to *start* itself (or its directory, for a file).
    """
    current = start if start.is_dir() else start.parent
    current = current.resolve()
    for candidate in (current, *current.parents):
        if (candidate / "package.json").is_file():
            return candidate
    return current


# ── ToolContext ───────────────────────────────────────────────────────


@dataclasses.dataclass(frozen=True)
class ToolContext:
    """Immutable context passed to every tool execution."""

    project_root: Path
    settings: Settings
    config: dict[str, Any]
    tool_config: dict[str, Any]
    passthrough_args: list[str]
    session_manager: Any = None
    blocking: bool = True
    background_watch: bool = False


# ── JestTool Base ────────────────────────────────────────────────────


class JestTool:
    """Base class for all actions.

    Subclasses set ``name`` and ``help``, then implement ``setup()`` to
    add click options and ``execute()`` to run the action.
    """

    name: str = ""
    help: str = ""

    def setup(self, cmd: click.Command) -> click.Command:
        """Add click options/arguments to the command. Return the command."""
        return cmd

    def default_args(self) -> dict[str, Any]:
        """Return default args dict before config/CLI merge."""
        return {}

    def execute(self, ctx: ToolContext, args: dict[str, Any]) -> None:
        """Execute the tool with context and tool-specific args."""
        raise NotImplementedError


# ── Tool Registry ────────────────────────────────────────────────────

_TOOL_REGISTRY: dict[str, JestTool] = {}


def register_tool(tool: JestTool) -> None:
    """Add a tool to the global registry."""
    _TOOL_REGISTRY[tool.name] = tool


def get_tool(name: str) -> JestTool | None:
    """Look up a registered tool by name."""
    return _TOOL_REGISTRY.get(name)

