"""Result of handling one queue message.

The message handler turns these into broker actions: `Retryable` -> nack with
requeue (the broker redelivers), `Success` and `Terminal` -> ack.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union


@dataclass(frozen=True)
class Success:
    value: Any = None


@dataclass(frozen=True)
class Retryable:
    error: BaseException


@dataclass(frozen=True)
class Terminal:
    error: BaseException | None = None
    reason: str = ""


Outcome = Union[Success, Retryable, Terminal]


def should_requeue(outcome: Outcome) -> bool:
    return isinstance(outcome, Retryable)
