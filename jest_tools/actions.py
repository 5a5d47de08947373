"""Run actions: whole project, one file, nearest test, last failures."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import click

from .command import ONLY_FAILURES, RunRequest, build_command, find_test_file, is_watch_command
from .core import JestTool, TokenFormatter, ToolContext, UserCancelled, logger, project_tokens
from .locator import nearest_test_name, offset_from_position


def _common_options(cmd: click.Command) -> click.Command:
    cmd = click.option("--debug", is_flag=True, default=None, help="Run under the Node inspector (implies --runInBand)")(cmd)
    cmd = click.option("--edit", is_flag=True, default=None, help="Edit the command line before running")(cmd)
    return cmd


def _flags(ctx: ToolContext, args: dict[str, Any]) -> tuple[str, ...]:
    """Configured flags for the action followed by flags from the command line."""
    configured = args.get("flags") or []
    if isinstance(configured, str):
        configured = configured.split()
    return tuple(str(f) for f in configured) + tuple(ctx.passthrough_args)


def _resolve_file(path: str) -> Path:
    file_path = Path(path)
    if not file_path.is_absolute():
        file_path = Path.cwd() / file_path
    return file_path


def launch_request(ctx: ToolContext, request: RunRequest) -> None:
    """Build the command for *request* and run it in the project's session."""
    settings = ctx.settings
    formatter = TokenFormatter(project_tokens(ctx.project_root))
    command = build_command(
        request,
        ctx.project_root,
        executable=formatter.resolve(settings.executable),
        debug_executable=formatter.resolve(settings.debug_executable),
        quote_prefixes=settings.quote_prefixes,
    )
    manager = ctx.session_manager
    try:
        session = manager.launch(ctx.project_root, command, edit=request.force_edit)
    except UserCancelled as exc:
        logger.info(f"Cancelled: {exc}")
        return

    launched = manager.registry.last_command(session.project_root)
    watching = launched is not None and is_watch_command(launched)
    if ctx.blocking and not (watching and ctx.background_watch):
        try:
            manager.wait(ctx.project_root)
        except KeyboardInterrupt:
            manager.kill(ctx.project_root)
            logger.warning("Interrupted, jest killed")
            raise SystemExit(130)


class RunTool(JestTool):
    name = "run"
    help = "Run the whole test suite of the project"

    def setup(self, cmd: click.Command) -> click.Command:
        return _common_options(cmd)

    def execute(self, ctx: ToolContext, args: dict[str, Any]) -> None:
        launch_request(ctx, RunRequest(
            raw_flags=_flags(ctx, args),
            use_debugger=bool(args.get("debug")),
            force_edit=bool(args.get("edit")),
        ))


class FileTool(JestTool):
    name = "file"
    help = "Run the tests of one file"

    def setup(self, cmd: click.Command) -> click.Command:
        cmd = click.argument("path", type=click.Path(exists=True, dir_okay=False))(cmd)
        return _common_options(cmd)

    def execute(self, ctx: ToolContext, args: dict[str, Any]) -> None:
        launch_request(ctx, RunRequest(
            raw_flags=_flags(ctx, args),
            file_path=_resolve_file(args["path"]),
            use_debugger=bool(args.get("debug")),
            force_edit=bool(args.get("edit")),
        ))


class FileDwimTool(JestTool):
    name = "file-dwim"
    help = "Run a test file, or the test file belonging to a source file"

    def setup(self, cmd: click.Command) -> click.Command:
        cmd = click.argument("path", type=click.Path(exists=True, dir_okay=False))(cmd)
        return _common_options(cmd)

    def execute(self, ctx: ToolContext, args: dict[str, Any]) -> None:
        source = _resolve_file(args["path"])
        test_file = find_test_file(source)
        if test_file is None:
            logger.error(f"No test file found for {source}")
            raise SystemExit(1)
        if test_file != source:
            logger.info(f"Using test file {test_file}")
        launch_request(ctx, RunRequest(
            raw_flags=_flags(ctx, args),
            file_path=test_file,
            use_debugger=bool(args.get("debug")),
            force_edit=bool(args.get("edit")),
        ))


class NearestTool(JestTool):
    name = "nearest"
    help = "Run the test (or describe block) enclosing a cursor position"

    def setup(self, cmd: click.Command) -> click.Command:
        cmd = click.argument("path", type=click.Path(exists=True, dir_okay=False))(cmd)
        cmd = click.option("--line", type=int, default=None, help="1-based cursor line")(cmd)
        cmd = click.option("--column", type=int, default=None, help="0-based cursor column")(cmd)
        cmd = click.option("--offset", type=int, default=None, help="0-based character offset")(cmd)
        return _common_options(cmd)

    def execute(self, ctx: ToolContext, args: dict[str, Any]) -> None:
        file_path = _resolve_file(args["path"])
        source = file_path.read_text(encoding="utf-8")

        if args.get("offset") is not None:
            offset = int(args["offset"])
        elif args.get("line") is not None:
            offset = offset_from_position(source, int(args["line"]), int(args.get("column") or 0))
        else:
            logger.error("nearest needs --line or --offset")
            raise SystemExit(1)

        pattern = nearest_test_name(source, offset, file_path.name)
        if pattern is None:
            logger.warning("No enclosing test found, running the whole file")
        launch_request(ctx, RunRequest(
            raw_flags=_flags(ctx, args),
            file_path=file_path,
            test_name_pattern=pattern,
            use_debugger=bool(args.get("debug")),
            force_edit=bool(args.get("edit")),
        ))


class LastFailedTool(JestTool):
    name = "last-failed"
    help = "Re-run only the tests that failed in the previous run"

    def setup(self, cmd: click.Command) -> click.Command:
        return _common_options(cmd)

    def execute(self, ctx: ToolContext, args: dict[str, Any]) -> None:
        flags = _flags(ctx, args)
        if ONLY_FAILURES not in flags:
            flags = (*flags, ONLY_FAILURES)
        launch_request(ctx, RunRequest(
            raw_flags=flags,
            use_debugger=bool(args.get("debug")),
            force_edit=bool(args.get("edit")),
        ))
