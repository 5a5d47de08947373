"""Entry point: main(), click group, tool discovery, session wiring."""

from __future__ import annotations

import importlib
import inspect
import pkgutil
from pathlib import Path
from typing import Any

import click

from .core import (
    JestTool,
    Settings,
    ToolContext,
    find_project_root,
    load_config,
    logger,
    print_subprocess_line,
    register_tool,
)
from .session import ProjectSession, SessionHooks, SessionManager

# ── Tool Discovery ───────────────────────────────────────────────────


def _discover_tools(namespace_path: list[str], package_name: str) -> list[JestTool]:
    """Instantiate every JestTool subclass defined in the package's modules."""
    tools: list[JestTool] = []
    for module_info in pkgutil.iter_modules(namespace_path):
        name = module_info.name
        if name.startswith("_") or name in ("cli", "core"):
            continue
        try:
            module = importlib.import_module(f"{package_name}.{name}")
        except ImportError as exc:
            logger.debug(f"Could not import {package_name}.{name}: {exc}")
            continue

        for _, cls in inspect.getmembers(module, inspect.isclass):
            if cls is JestTool or not issubclass(cls, JestTool):
                continue
            if cls.__module__ != module.__name__:
                continue
            tool = cls()
            if not tool.name:
                logger.warning(f"Skipping tool '{cls.__name__}' with empty name")
                continue
            tools.append(tool)
    return sorted(tools, key=lambda t: t.name)


# ── Session Wiring ───────────────────────────────────────────────────


def _echo_output(session: ProjectSession, text: str) -> None:
    print_subprocess_line(text)


def _report_finished(session: ProjectSession, status: int) -> None:
    logger.info(f"Jest finished in {session.display_name} (exit {status})")


def make_session_manager(settings: Settings) -> SessionManager:
    hooks = SessionHooks(output=[_echo_output], finished=[_report_finished])
    return SessionManager(settings=settings, hooks=hooks)


# ── Click Command Builder ────────────────────────────────────────────


def _build_tool_context(ctx_obj: dict[str, Any], tool_name: str) -> ToolContext:
    """Build a ToolContext from the click context obj dict."""
    config = ctx_obj["config"]
    tool_config = config.get(tool_name, {})
    if not isinstance(tool_config, dict):
        tool_config = {}
    return ToolContext(
        project_root=Path(ctx_obj["project_root"]),
        settings=ctx_obj["settings"],
        config=config,
        tool_config=tool_config,
        passthrough_args=[],
        session_manager=ctx_obj["session_manager"],
        blocking=ctx_obj.get("blocking", True),
        background_watch=ctx_obj.get("background_watch", False),
    )


def _make_tool_command(tool: JestTool) -> click.Command:
    """Build a click command for a tool."""

    @click.pass_context
    def callback(ctx: click.Context, **kwargs: Any) -> None:
        context = _build_tool_context(ctx.obj, tool.name)
        context = ToolContext(
            project_root=context.project_root,
            settings=context.settings,
            config=context.config,
            tool_config=context.tool_config,
            passthrough_args=list(ctx.args) if ctx.args else [],
            session_manager=context.session_manager,
            blocking=context.blocking,
            background_watch=context.background_watch,
        )

        # Merge: defaults < tool_config < CLI kwargs
        args: dict[str, Any] = {**tool.default_args()}
        for k, v in context.tool_config.items():
            if k not in kwargs or kwargs[k] is None:
                args[k] = v
        for k, v in kwargs.items():
            if v is not None:
                args[k] = v

        tool.execute(context, args)

    cmd = click.Command(
        name=tool.name,
        help=tool.help,
        callback=callback,
        # No "-h" here: jest values like "-tshows help" must reach passthrough.
        context_settings={
            "ignore_unknown_options": True,
            "allow_extra_args": True,
            "help_option_names": ["--help"],
        },
    )
    return tool.setup(cmd)


# ── Main CLI Group ───────────────────────────────────────────────────


def _build_cli() -> click.Group:
    """Build the top-level click group with all discovered tools."""

    @click.group(context_settings={"help_option_names": ["-h", "--help"]})
    @click.option(
        "--project-root",
        type=click.Path(exists=True, file_okay=False),
        default=None,
        help="Directory jest runs in (default: nearest package.json)",
    )
    @click.pass_context
    def cli(ctx: click.Context, project_root: str | None) -> None:
        ctx.ensure_object(dict)
        # The interactive shell re-enters with its own populated obj.
        if "session_manager" in ctx.obj:
            return

        root = Path(project_root).resolve() if project_root else find_project_root(Path.cwd())
        try:
            config = load_config(root)
        except TypeError as exc:
            logger.error(str(exc))
            raise SystemExit(1)
        settings = Settings.from_config(config)

        ctx.obj["project_root"] = root
        ctx.obj["config"] = config
        ctx.obj["settings"] = settings
        ctx.obj["session_manager"] = make_session_manager(settings)

    import jest_tools as jt_pkg

    for tool in _discover_tools(list(jt_pkg.__path__), jt_pkg.__name__):
        register_tool(tool)
        cli.add_command(_make_tool_command(tool))

    return cli


def main() -> None:
    """CLI entry point (``jest-tools``)."""
    from colorama import init as colorama_init
    colorama_init()

    cli = _build_cli()
    cli(prog_name="jest-tools", standalone_mode=True)


if __name__ == "__main__":
    main()
