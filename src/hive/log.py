"""Console logging for hive via Rich.

Library modules report recoverable incidents here (stale locks, best-effort
cleanup failures, conflict aborts); the CLI uses it for user-facing output.
"""

from __future__ import annotations

from rich.console import Console

console = Console(highlight=False, soft_wrap=True)
_err_console = Console(highlight=False, soft_wrap=True, stderr=True)

_verbose = False


def set_verbose(enabled: bool) -> None:
    global _verbose
    _verbose = enabled


def info(msg: str) -> None:
    console.print(f"[cyan]\\[hive][/cyan] {msg}")


def success(msg: str) -> None:
    console.print(f"[green]\\[hive][/green] {msg}")


def warn(msg: str) -> None:
    _err_console.print(f"[yellow]\\[hive:warn][/yellow] {msg}")


def error(msg: str) -> None:
    _err_console.print(f"[red]\\[hive:error][/red] {msg}")


def debug(msg: str) -> None:
    if _verbose:
        _err_console.print(f"[dim]\\[hive:debug] {msg}[/dim]")
