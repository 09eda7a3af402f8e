"""Operator prompts used while acquiring credentials."""

from __future__ import annotations

from rich.console import Console
from rich.prompt import Confirm, Prompt

from appcreds.errors import NonInteractiveError


class Prompter:
    def confirm(self, message: str, *, default: bool = True) -> bool:
        raise NotImplementedError

    def text(self, message: str, *, default: str | None = None) -> str:
        raise NotImplementedError

    def secret(self, message: str) -> str:
        raise NotImplementedError


class ConsolePrompter(Prompter):
    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console(stderr=True)

    def confirm(self, message: str, *, default: bool = True) -> bool:
        return Confirm.ask(message, default=default, console=self.console)

    def text(self, message: str, *, default: str | None = None) -> str:
        if default is None:
            return Prompt.ask(message, console=self.console)
        return Prompt.ask(message, default=default, console=self.console)

    def secret(self, message: str) -> str:
        return Prompt.ask(message, password=True, console=self.console)


class NonInteractivePrompter(Prompter):
    """Refuses every prompt so callers fail fast instead of blocking on a TTY."""

    def _refuse(self, message: str) -> NonInteractiveError:
        return NonInteractiveError(f"operator input required in non-interactive mode: {message}")

    def confirm(self, message: str, *, default: bool = True) -> bool:
        raise self._refuse(message)

    def text(self, message: str, *, default: str | None = None) -> str:
        raise self._refuse(message)

    def secret(self, message: str) -> str:
        raise self._refuse(message)
