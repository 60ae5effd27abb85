from __future__ import annotations

from rich.columns import Columns
from rich.console import Console
from rich.text import Text


def print_as_grid(strings: list[str], console: Console | None = None) -> None:
    """Print names left-to-right in as many columns as the terminal fits."""
    if console is None:
        console = Console(stderr=True, highlight=False)
    if not console.is_terminal:
        for string in strings:
            console.print(Text(string), soft_wrap=True)
        return
    console.print(Columns([Text(string) for string in strings], padding=(0, 2)))
