"""Shared rich console and colored status-line helpers."""

from __future__ import annotations

from rich.console import Console
from rich.markup import escape

console = Console(highlight=False)


def info(message: str) -> None:
    console.print(escape(message))


def success(message: str) -> None:
    console.print(f"[green]{escape(message)}[/green]")


def warning(message: str) -> None:
    console.print(f"[yellow]{escape(message)}[/yellow]")


def error(message: str) -> None:
    console.print(f"[bold red]{escape(message)}[/bold red]")
