"""
Wildcard matching for action and resource patterns.

A pattern matches the whole candidate string. ``*`` stands for any run of
characters, including none; every other character, regex metacharacters
included, is matched literally and case-sensitively.
"""

from __future__ import annotations

import re
from functools import lru_cache

WILDCARD = "*"


@lru_cache(maxsize=4096)
def compile_pattern(pattern: str) -> re.Pattern[str]:
    """
    Compile a wildcard pattern into an anchored regular expression.

    Example:
        >>> compile_pattern("db:*").pattern
        '\\\\Adb:.*\\\\Z'
    """
    body = ".*".join(re.escape(part) for part in pattern.split(WILDCARD))
    return re.compile(rf"\A{body}\Z", re.DOTALL)


def matches(pattern: str, candidate: str) -> bool:
    """
    Check whether ``candidate`` matches ``pattern`` in full.

    Example:
        >>> matches("/pub/*", "/pub/file1")
        True
        >>> matches("read", "read:all")
        False
    """
    if pattern == WILDCARD:
        return True
    if WILDCARD not in pattern:
        return pattern == candidate
    return compile_pattern(pattern).match(candidate) is not None


def matches_any(patterns: tuple[str, ...] | list[str], candidate: str) -> bool:
    """Check whether at least one of ``patterns`` matches ``candidate``."""
    return any(matches(pattern, candidate) for pattern in patterns)
