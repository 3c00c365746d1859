"""
Outcome types returned by every public engine operation.

Expected "nothing to report" conditions are `NotFound`, unexpected store
problems are `Failure`; neither is raised. Callers branch with `isinstance`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeAlias, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Found(Generic[T]):
    value: T


@dataclass(frozen=True)
class NotFound:
    reason: str


@dataclass(frozen=True)
class Failure:
    reason: str
    detail: str | None = None


Result: TypeAlias = Found[T] | NotFound | Failure
