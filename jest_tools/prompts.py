"""User prompts: confirm a question, edit a command line."""

from __future__ import annotations

from typing import Protocol

import click


class Prompter(Protocol):
    def edit(self, initial: str, history: list[str]) -> str | None:
        """Return the edited text, or ``None`` if the user declined."""

    def confirm(self, question: str) -> bool:
        """Return ``True`` if the user agreed."""


class ClickPrompter:
    """Terminal prompts built on click.

    The edit prompt lists recent commands; entering ``!N`` recalls entry N,
    an empty answer keeps the initial text and ``!q`` cancels.
    """

    def __init__(self, history_size: int = 10) -> None:
        self.history_size = history_size

    def edit(self, initial: str, history: list[str]) -> str | None:
        recent = [h for h in history if h != initial][: self.history_size]
        for i, entry in enumerate(recent, 1):
            click.echo(f"  !{i}  {entry}")
        try:
            answer = click.prompt("Command", default=initial, show_default=False)
        except click.Abort:
            return None
        answer = answer.strip()
        if answer == "!q":
            return None
        if answer.startswith("!") and answer[1:].isdigit():
            index = int(answer[1:]) - 1
            if 0 <= index < len(recent):
                return recent[index]
            click.echo(f"No history entry {answer}")
            return None
        return answer or initial

    def confirm(self, question: str) -> bool:
        try:
            return click.confirm(question, default=False)
        except click.Abort:
            return False
