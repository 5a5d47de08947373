"""Assemble Jest command lines and locate test files."""

from __future__ import annotations

import dataclasses
import re
import shlex
from collections.abc import Sequence
from pathlib import Path

from .arguments import DEFAULT_QUOTE_PREFIXES, transform_arguments
from .core import DEFAULT_DEBUG_EXECUTABLE, DEFAULT_EXECUTABLE

RUN_IN_BAND = "--runInBand"
TEST_NAME_PATTERN = "--testNamePattern"
ONLY_FAILURES = "--onlyFailures"
WATCH_FLAGS = ("--watch", "--watchAll")

JS_EXTENSIONS = (".js", ".jsx", ".ts", ".tsx", ".mjs", ".cjs", ".mts", ".cts")

_TEST_FILE_RE = re.compile(r"\.(test|spec)\.[cm]?[jt]sx?$")


@dataclasses.dataclass(frozen=True)
class RunRequest:
    raw_flags: tuple[str, ...] = ()
    file_path: Path | None = None
    test_name_pattern: str | None = None
    use_debugger: bool = False
    force_edit: bool = False


@dataclasses.dataclass(frozen=True)
class CommandLine:
    """A built command.  ``rendered`` is what gets edited, stored and executed."""

    executable: str
    argv: tuple[str, ...]
    rendered: str

    def with_rendered(self, rendered: str) -> CommandLine:
        return dataclasses.replace(self, rendered=rendered)

    def __str__(self) -> str:
        return self.rendered


def relative_to_root(path: Path, project_root: Path) -> str:
    """Render *path* relative to *project_root* (POSIX separators).

    Relative paths are returned as given; absolute paths outside the
    root stay absolute.
    """
    if not path.is_absolute():
        return path.as_posix()
    # Compare unresolved first, then with symlinks resolved on both sides.
    for candidate, root in ((path, project_root), (path.resolve(), project_root.resolve())):
        if candidate.is_relative_to(root):
            return candidate.relative_to(root).as_posix()
    return path.as_posix()


def build_command(
    request: RunRequest,
    project_root: Path,
    executable: str = DEFAULT_EXECUTABLE,
    debug_executable: str = DEFAULT_DEBUG_EXECUTABLE,
    quote_prefixes: Sequence[str] = DEFAULT_QUOTE_PREFIXES,
) -> CommandLine:
    """Build the command line for *request*.

    Layout::

        <executable> [flags...] [--runInBand] [<file>] [--testNamePattern <pattern>]
    """
    argv = transform_arguments(request.raw_flags, quote_prefixes)
    if request.use_debugger:
        # The inspector cannot follow tests spread over worker processes.
        argv.append(RUN_IN_BAND)
    if request.file_path is not None:
        argv.append(shlex.quote(relative_to_root(request.file_path, project_root)))
    if request.test_name_pattern:
        argv.extend([TEST_NAME_PATTERN, shlex.quote(request.test_name_pattern)])

    exe = debug_executable if request.use_debugger else executable
    return CommandLine(
        executable=exe,
        argv=tuple(argv),
        rendered=" ".join([exe, *argv]),
    )


def is_watch_command(command: CommandLine) -> bool:
    """Whether *command* runs Jest in watch mode, which never exits on its own."""
    try:
        words = shlex.split(command.rendered)
    except ValueError:
        words = list(command.argv)
    return any(w in WATCH_FLAGS for w in words)


# ── Test files ───────────────────────────────────────────────────────


def is_test_file(path: Path) -> bool:
    """``*.test.*``/``*.spec.*`` JS/TS files, or any JS/TS file under ``__tests__``."""
    if _TEST_FILE_RE.search(path.name):
        return True
    return path.suffix in JS_EXTENSIONS and "__tests__" in path.parts


def _candidates(path: Path) -> list[Path]:
    stem = path.name[: -len(path.suffix)] if path.suffix else path.name
    # Prefer the source file's own extension, then the rest.
    own = [path.suffix] if path.suffix in JS_EXTENSIONS else []
    exts = own + [e for e in JS_EXTENSIONS if e not in own]
    tests_dir = path.parent / "__tests__"
    result: list[Path] = []
    for ext in exts:
        result.append(path.parent / f"{stem}.test{ext}")
        result.append(path.parent / f"{stem}.spec{ext}")
    for ext in exts:
        result.append(tests_dir / f"{stem}{ext}")
        result.append(tests_dir / f"{stem}.test{ext}")
        result.append(tests_dir / f"{stem}.spec{ext}")
    return result


def find_test_file(path: Path) -> Path | None:
    """Return *path* if it is a test file, else its first existing companion test."""
    if is_test_file(path):
        return path
    for candidate in _candidates(path):
        if candidate.is_file():
            return candidate
    return None
