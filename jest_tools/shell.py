"""ShellTool — interactive loop that keeps sessions and history alive between runs."""

from __future__ import annotations

import shlex
from typing import Any

import click

from .command import is_watch_command
from .core import JestTool, NoHistory, ToolContext, UserCancelled, logger

_BUILTINS = {
    "repeat": "Run the last command again (--edit to edit it first)",
    "kill": "Kill the running jest process",
    "send": "Send text to the running process (watch-mode keys)",
    "history": "List previous commands",
    "help": "Show this help",
    "quit": "Leave the shell",
}


class ShellTool(JestTool):
    name = "shell"
    help = "Interactive shell: run, file, nearest, repeat, kill, ..."

    def execute(self, ctx: ToolContext, args: dict[str, Any]) -> None:
        click_ctx = click.get_current_context()
        group = click_ctx.parent.command if click_ctx.parent else None
        if not isinstance(group, click.Group):
            logger.error("shell must be started from the jest-tools command group")
            raise SystemExit(1)

        obj = dict(click_ctx.obj)
        obj["background_watch"] = True
        logger.info(f"jest shell in {ctx.project_root} (type 'help')")

        while True:
            try:
                line = click.prompt("jest", prompt_suffix="> ", default="", show_default=False)
            except click.Abort:
                break
            try:
                words = shlex.split(line)
            except ValueError as exc:
                logger.error(f"Cannot parse input: {exc}")
                continue
            if not words:
                continue
            if words[0] in ("quit", "exit"):
                break
            self.dispatch(ctx, group, obj, words)

        ctx.session_manager.kill(ctx.project_root)

    def dispatch(
        self,
        ctx: ToolContext,
        group: click.Group,
        obj: dict[str, Any],
        words: list[str],
    ) -> None:
        """Run one shell command line already split into *words*."""
        name, rest = words[0], words[1:]
        manager = ctx.session_manager

        if name == "help":
            for builtin, text in _BUILTINS.items():
                click.echo(f"  {builtin:<12} {text}")
            for cmd_name in group.list_commands(click.get_current_context()):
                if cmd_name != self.name:
                    cmd = group.commands[cmd_name]
                    click.echo(f"  {cmd_name:<12} {cmd.help or ''}")
        elif name == "repeat":
            try:
                session = manager.repeat(ctx.project_root, edit="--edit" in rest)
            except NoHistory as exc:
                logger.error(str(exc))
            except UserCancelled as exc:
                logger.info(f"Cancelled: {exc}")
            else:
                last = manager.registry.last_command(session.project_root)
                if last is not None and not is_watch_command(last):
                    manager.wait(session.project_root)
        elif name == "kill":
            if not manager.kill(ctx.project_root):
                logger.info("Nothing is running")
        elif name == "send":
            text = " ".join(rest) if rest else "\n"
            if not manager.send(ctx.project_root, text):
                logger.warning("Nothing is running")
        elif name == "history":
            for i, entry in enumerate(manager.registry.history, 1):
                click.echo(f"  {i:>3}  {entry}")
        elif name in group.commands and name != self.name:
            cmd = group.commands[name]
            try:
                cmd.main(args=rest, prog_name=name, standalone_mode=False, obj=obj)
            except click.ClickException as exc:
                exc.show()
            except (click.Abort, SystemExit):
                pass
        else:
            logger.error(f"Unknown command: {name} (type 'help')")
