from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class OutcomeKind(str, Enum):
    OK = "ok"
    RECOVERABLE = "recoverable"


@dataclass(frozen=True)
class Outcome:
    """Result of a best-effort operation. Callers decide whether to discard RECOVERABLE."""

    kind: OutcomeKind
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.kind is OutcomeKind.OK

    @classmethod
    def success(cls) -> "Outcome":
        return cls(OutcomeKind.OK)

    @classmethod
    def recoverable(cls, reason: str) -> "Outcome":
        return cls(OutcomeKind.RECOVERABLE, reason)
