"""Ordered pattern rules evaluated first-match-wins."""

import re
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Rule(Generic[T]):
    """A compiled pattern tagged with the category it selects."""

    pattern: re.Pattern[str]
    category: T


def rule(pattern: str, category: T) -> Rule[T]:
    """Build a case-insensitive rule."""
    return Rule(re.compile(pattern, re.IGNORECASE), category)


def first_match(rules: Iterable[Rule[T]], text: str) -> tuple[Rule[T], re.Match[str]] | None:
    """Return the first rule whose pattern occurs in ``text``, with its match.

    Rule order is significant.
    """
    for candidate in rules:
        match = candidate.pattern.search(text)
        if match:
            return candidate, match
    return None
