"""Normalize raw flag tokens into the option syntax Jest expects."""

from __future__ import annotations

import shlex
from collections.abc import Iterable, Sequence

COLOR_SWITCH = "--colors"
COLOR_ON = "--colors=true"
COLOR_OFF = "--colors=false"

DEFAULT_QUOTE_PREFIXES = ("-t", "-m")


def pin_colors(args: list[str]) -> list[str]:
    """Replace a bare ``--colors`` with an explicit on form, or append the off form.

    Jest guesses colour support from the TTY, which is wrong inside a
    captured session, so the mode is always pinned.
    """
    if COLOR_SWITCH in args:
        return [COLOR_ON if a == COLOR_SWITCH else a for a in args]
    if any(a.startswith(COLOR_SWITCH + "=") for a in args):
        return list(args)
    return [*args, COLOR_OFF]


def _is_canonical(rest: str) -> bool:
    """Whether *rest* (text after the prefix) is already ``" <quoted value>"``."""
    if not rest or not rest[0].isspace():
        return False
    return is_shell_word(rest[1:])


def is_shell_word(token: str) -> bool:
    """Whether *token* already reads as exactly one word to the shell."""
    try:
        parts = shlex.split(token)
    except ValueError:
        return False
    return len(parts) == 1 and shlex.quote(parts[0]) == token


def quote_option(args: list[str], prefix: str) -> list[str]:
    """Quote the value of every token starting with *prefix*, in place.

    ``-tfoo bar``, ``-t=foo bar`` and ``-t`` followed by the word
    ``foo bar`` all become ``-t 'foo bar'``.
    """
    result: list[str] = []
    i = 0
    while i < len(args):
        arg = args[i]
        i += 1
        if not arg.startswith(prefix):
            result.append(arg)
            continue
        rest = arg[len(prefix):]
        if _is_canonical(rest):
            result.append(arg)
            continue
        if not rest and i < len(args) and not args[i].startswith("-"):
            rest = args[i]
            i += 1
        elif rest.startswith("="):
            rest = rest[1:]
        result.append(f"{prefix} {shlex.quote(rest.strip())}")
    return result


def quote_words(args: list[str], prefixes: Sequence[str]) -> list[str]:
    """Shell-quote every token that is not yet a single word.

    Tokens starting with one of *prefixes* were already assembled by
    ``quote_option`` and are left alone.
    """
    result: list[str] = []
    for arg in args:
        if any(arg.startswith(p) for p in prefixes) or is_shell_word(arg):
            result.append(arg)
        else:
            result.append(shlex.quote(arg))
    return result


def transform_arguments(
    args: Iterable[str],
    quote_prefixes: Sequence[str] = DEFAULT_QUOTE_PREFIXES,
) -> list[str]:
    """Apply colour pinning, value quoting for each designated prefix, then word quoting."""
    result = pin_colors(list(args))
    for prefix in quote_prefixes:
        result = quote_option(result, prefix)
    return quote_words(result, quote_prefixes)
