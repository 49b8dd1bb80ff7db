"""
Delivery collaborators.

The coach only produces text; a Delivery decides where it goes. Network
transports live outside this package and only need to satisfy the
``Delivery`` protocol.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from loguru import logger
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.text import Text


@runtime_checkable
class Delivery(Protocol):
    """Sends a text payload to a destination channel."""

    def send(self, channel: str, text: str) -> bool:
        """Return True if the payload was accepted."""
        ...


class ConsoleDelivery:
    """Prints payloads to the terminal in a panel."""

    def __init__(self, console: Console | None = None):
        self.console = console or Console()

    def send(self, channel: str, text: str) -> bool:
        title = f"[bold cyan]{escape(channel)}[/bold cyan]" if channel else None
        self.console.print(Panel(Text(text), title=title, title_align="left", border_style="cyan", padding=(1, 2)))
        return True


class LogDelivery:
    """Writes payloads to the log. Useful for headless runs."""

    def __init__(self, level: str = "INFO"):
        self.level = level

    def send(self, channel: str, text: str) -> bool:
        logger.log(self.level, f"[{channel or 'default'}] {text}")
        return True
