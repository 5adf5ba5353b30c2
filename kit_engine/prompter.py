"""User interaction behind a narrow interface.

Engine code asks questions only through a Prompter, so the same code path
runs under CI (NonInteractivePrompter) and in a terminal (ConsolePrompter).
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol, TypeVar

from rich.console import Console
from rich.prompt import Confirm, Prompt

from .errors import SyncCancelled
from .types import ConflictChoice

T = TypeVar("T")


class Prompter(Protocol):
    """choose() may raise SyncCancelled to stop the run, or ConflictUnresolved to leave one file alone."""

    def confirm(self, message: str) -> bool: ...

    def choose(self, message: str, options: Sequence[T]) -> T: ...


class NonInteractivePrompter:
    """Answers every question from a fixed policy."""

    def __init__(self, conflict_policy: ConflictChoice = ConflictChoice.KEEP, *, confirm_default: bool = True) -> None:
        self.conflict_policy = conflict_policy
        self.confirm_default = confirm_default

    def confirm(self, message: str) -> bool:
        return self.confirm_default

    def choose(self, message: str, options: Sequence[T]) -> T:
        if not options:
            raise ValueError("choose() needs at least one option")
        if self.conflict_policy in options:
            return self.conflict_policy  # type: ignore[return-value]
        return options[0]


class ConsolePrompter:
    """Terminal prompts rendered with rich."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console(stderr=True)

    def confirm(self, message: str) -> bool:
        try:
            return Confirm.ask(message, console=self.console, default=False)
        except (KeyboardInterrupt, EOFError) as err:
            raise SyncCancelled("Cancelled by user") from err

    def choose(self, message: str, options: Sequence[T]) -> T:
        if not options:
            raise ValueError("choose() needs at least one option")
        labels = [str(option) for option in options]
        try:
            answer = Prompt.ask(message, console=self.console, choices=labels, default=labels[0])
        except (KeyboardInterrupt, EOFError) as err:
            raise SyncCancelled("Cancelled by user") from err
        return options[labels.index(answer)]


def make_prompter(interactive: bool, conflict_policy: ConflictChoice = ConflictChoice.KEEP) -> Prompter:
    if interactive:
        return ConsolePrompter()
    return NonInteractivePrompter(conflict_policy)
