# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Operator console - injectable prompt/output pair for the interactive flows.

The menu and the restore flow only talk to a Console, so they can be
driven by a script in tests instead of a terminal.
"""

from typing import Callable


class Console:
    """Line-oriented prompt and output, defaulting to stdin/stdout."""

    def __init__(
        self,
        read: Callable[[str], str] = input,
        write: Callable[[str], None] = print,
    ):
        self._read = read
        self._write = write

    def ask(self, prompt: str) -> str | None:
        """
        Prompt for one line of input.

        Returns:
            The stripped answer, or None once input is exhausted (EOF)
        """
        try:
            return self._read(prompt).strip()
        except EOFError:
            return None

    def say(self, text: str = "") -> None:
        self._write(text)

    def confirm(self, prompt: str, expected: str = "yes") -> bool:
        """True only if the answer is exactly ``expected``."""
        return self.ask(prompt) == expected
