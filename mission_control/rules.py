"""Ordered "first match wins" rule evaluation shared by the output parsers.

A rule is any callable taking the subject and returning a result, or ``None``
when it does not apply. Keeping rules as plain lists makes each parser's
priority order visible at a glance and lets every rule be tested alone.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import TypeVar

S = TypeVar("S")
R = TypeVar("R")


def first_match(rules: Iterable[Callable[[S], R | None]], subject: S) -> R | None:
    """Return the result of the first rule that yields one."""
    for rule in rules:
        result = rule(subject)
        if result is not None:
            return result
    return None


def scan(
    rules: Iterable[Callable[[S], R | None]], subjects: Iterable[S]
) -> R | None:
    """Apply ``rules`` to each subject in turn; stop at the first hit."""
    rules = list(rules)
    for subject in subjects:
        result = first_match(rules, subject)
        if result is not None:
            return result
    return None
