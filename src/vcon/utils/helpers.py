"""Helper utilities."""

import asyncio
import sys
from functools import wraps
from pathlib import Path
from typing import Any, Callable

from typer.core import TyperGroup


def async_to_sync(func: Callable[..., Any]) -> Callable[..., Any]:
    """Decorator to run async functions synchronously."""

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        return asyncio.run(func(*args, **kwargs))

    return wrapper


def ordered_group(order: list[str]) -> type[TyperGroup]:
    """Create a TyperGroup subclass that orders commands."""

    class _OrderedGroup(TyperGroup):
        def list_commands(self, ctx: Any) -> list[str]:
            commands = super().list_commands(ctx)
            rank = {n: i for i, n in enumerate(order)}
            return sorted(commands, key=lambda n: rank.get(n, 99))

    return _OrderedGroup


def read_text_argument(value: str | None) -> str:
    """Resolve a TEXT-style argument.

    A path to an existing file is read, any other value is used as is, and
    no value at all reads stdin to EOF.

    Args:
        value: Command-line argument, if given

    Returns:
        The text
    """
    if value is None:
        return sys.stdin.read()

    path = Path(value)
    try:
        if path.is_file():
            return path.read_text()
    except OSError:
        # Not a usable path (too long, bad characters); treat as literal text
        pass
    return value
