"""
Time-bounded regex evaluation and fuzzy pattern construction.

All pattern evaluation in the engine goes through this module. It uses the
`regex` package, whose `timeout=` argument stops a runaway match; a timed-out
evaluation counts as "no match" and never blocks or propagates.
"""

import logging
from functools import lru_cache
from typing import List, Optional, Tuple

import regex

from .exceptions import RegexTimeout

logger = logging.getLogger(__name__)

# Hard budget for one regex evaluation
REGEX_TIMEOUT_MS = 100

# Fuzzy candidate bounds: longer strings make the gap-tolerant alternation
# prone to catastrophic backtracking
MAX_ENTITY_LENGTH = 50
MAX_ENTITY_CHARS_CLEANED = 30
MIN_ENTITY_LENGTH = 3

# Non-alphanumeric characters tolerated between two candidate characters
FUZZY_MATCH_GAP_TOLERANCE = 2

DEFAULT_FLAGS = regex.IGNORECASE


@lru_cache(maxsize=2048)
def compile_pattern(pattern: str, flags: int = DEFAULT_FLAGS) -> "regex.Pattern":
    """
    Compile a pattern once and cache it.

    Args:
        pattern: Regular expression source
        flags: regex flags (case-insensitive by default)

    Returns:
        Compiled pattern

    Raises:
        regex.error: If the pattern is invalid
    """
    return regex.compile(pattern, flags)


def _timeout_seconds(timeout_ms: Optional[float]) -> float:
    return (REGEX_TIMEOUT_MS if timeout_ms is None else timeout_ms) / 1000.0


def finditer_bounded(compiled: "regex.Pattern", text: str,
                     timeout_ms: Optional[float] = None) -> List["regex.Match"]:
    """
    Collect all matches, raising RegexTimeout when the budget is exceeded.
    """
    try:
        return list(compiled.finditer(text, timeout=_timeout_seconds(timeout_ms)))
    except TimeoutError as e:
        raise RegexTimeout(compiled.pattern, timeout_ms or REGEX_TIMEOUT_MS) from e


def safe_finditer(compiled: "regex.Pattern", text: str,
                  timeout_ms: Optional[float] = None) -> List["regex.Match"]:
    """
    Collect all matches; a timeout yields no matches at all.

    Partial results from a timed-out scan are discarded so that callers never
    act on an incomplete pass over the text.
    """
    try:
        return finditer_bounded(compiled, text, timeout_ms)
    except RegexTimeout as e:
        logger.warning("Regex timed out after %sms (pattern length %d); treating as no match",
                       e.timeout_ms, len(compiled.pattern))
        return []


def safe_search(compiled: "regex.Pattern", text: str,
                timeout_ms: Optional[float] = None) -> Optional["regex.Match"]:
    """First match or None; a timeout counts as no match."""
    try:
        return compiled.search(text, timeout=_timeout_seconds(timeout_ms))
    except TimeoutError:
        logger.warning("Regex search timed out; treating as no match")
        return None


def clean_candidate(text: str) -> str:
    """Strip everything but word characters."""
    return regex.sub(r"[^\w]", "", text)


def build_fuzzy_regex(candidate: str) -> Optional["regex.Pattern"]:
    """
    Build a pattern that matches `candidate` with formatting drift.

    Every pair of consecutive characters may be separated by up to
    FUZZY_MATCH_GAP_TOLERANCE non-alphanumeric characters, so
    "CH93 0076" also matches "CH93-0076" and "CH930076".

    Args:
        candidate: Previously seen entity text

    Returns:
        Compiled case-insensitive pattern, or None if the candidate is outside
        the safe length bounds
    """
    if not candidate or len(candidate) > MAX_ENTITY_LENGTH:
        return None

    cleaned = clean_candidate(candidate)
    if len(cleaned) < MIN_ENTITY_LENGTH or len(cleaned) > MAX_ENTITY_CHARS_CLEANED:
        return None

    gap = f"[^a-zA-Z0-9]{{0,{FUZZY_MATCH_GAP_TOLERANCE}}}?"
    body = gap.join(regex.escape(ch) for ch in cleaned)
    # Do not start or end inside a longer alphanumeric run
    return compile_pattern(rf"(?<![a-zA-Z0-9]){body}(?![a-zA-Z0-9])")


def find_fuzzy_occurrences(text: str, candidate: str,
                           timeout_ms: Optional[float] = None) -> List[Tuple[int, int]]:
    """
    Find all occurrences of `candidate` in `text`, tolerating formatting drift.

    Returns:
        List of (start, end) spans; empty if the candidate is unsafe or the
        scan timed out
    """
    pattern = build_fuzzy_regex(candidate)
    if pattern is None:
        return []
    return [(m.start(), m.end()) for m in safe_finditer(pattern, text, timeout_ms)]
