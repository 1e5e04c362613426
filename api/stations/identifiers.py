"""
Terminal identifier validation.

The store is queried with SQL text, so a terminal id is only ever embedded
into a query as a `TerminalId`, which can only hold a validated value.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

MAX_TERMINAL_ID_LENGTH = 10

_TERMINAL_ID_RE = re.compile(r"[A-Za-z0-9]{1,%d}" % MAX_TERMINAL_ID_LENGTH)


class InvalidIdentifier(ValueError):
    pass


def is_valid_terminal_id(raw: object) -> bool:
    return isinstance(raw, str) and _TERMINAL_ID_RE.fullmatch(raw) is not None


@dataclass(frozen=True)
class TerminalId:
    value: str

    def __post_init__(self) -> None:
        if not is_valid_terminal_id(self.value):
            raise InvalidIdentifier("Invalid station identifier.")

    def __str__(self) -> str:
        return self.value


def validate_terminal_id(raw: str) -> TerminalId:
    """
    Accept 1-10 ASCII letters or digits; anything else is rejected.
    """
    return TerminalId(raw)
