from __future__ import annotations

import sys
from typing import Any

from tqdm import tqdm
from tqdm.std import tqdm as TqdmType

"""Poll progress display with tqdm (TTY only).

The poll loop can take up to ``max_attempts * interval`` seconds. On a
terminal a single bar shows attempts used so far and the last status seen;
in non-TTY environments (CI, the HTTP server) the bar is disabled and the
DEBUG poll log lines are the only trace.
"""

__all__ = [
    "PollProgress",
    "is_tty_enabled",
]


def is_tty_enabled() -> bool:
    return sys.stdout.isatty()


class PollProgress:
    """Progress bar over poll attempts."""

    def __init__(self, max_attempts: int, *, description: str = "Polling export") -> None:
        self.max_attempts = max_attempts
        self.description = description
        self.attempts = 0

        self.enabled = is_tty_enabled()
        self.pbar: TqdmType[Any] | None
        if self.enabled:
            self.pbar = tqdm(
                total=max_attempts,
                desc=description,
                unit="poll",
                leave=False,
                ncols=80,
                ascii=True,
            )
        else:
            self.pbar = None

    def update(self, status: Any = None) -> None:
        self.attempts += 1
        if self.enabled and self.pbar is not None:
            self.pbar.update(1)
            self.pbar.set_postfix(status=status if status is not None else "?")

    def close(self) -> None:
        if self.enabled and self.pbar is not None:
            self.pbar.close()
            self.pbar = None

    def __enter__(self) -> PollProgress:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
