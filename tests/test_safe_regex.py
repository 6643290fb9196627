"""Tests for bounded regex evaluation and fuzzy occurrence search."""

import pytest
import regex

from pii_engine.safe_regex import (
    build_fuzzy_regex,
    compile_pattern,
    find_fuzzy_occurrences,
    finditer_bounded,
    safe_finditer,
    safe_search,
)
from pii_engine.exceptions import RegexTimeout


def test_compile_is_cached():
    assert compile_pattern(r"\d+") is compile_pattern(r"\d+")


def test_safe_finditer_returns_matches():
    matches = safe_finditer(compile_pattern(r"\d+"), "a 12 b 345")
    assert [m.group() for m in matches] == ["12", "345"]


class _SlowPattern:
    """Stands in for a pattern whose evaluation exceeds the time budget."""
    pattern = r"(a+)+$"

    def finditer(self, text, timeout=None):
        raise TimeoutError("regex timed out")

    def search(self, text, timeout=None):
        raise TimeoutError("regex timed out")


def test_timeout_counts_as_no_match():
    assert safe_finditer(_SlowPattern(), "aaaa!", timeout_ms=1) == []
    assert safe_search(_SlowPattern(), "aaaa!", timeout_ms=1) is None


def test_bounded_finditer_raises_on_timeout():
    with pytest.raises(RegexTimeout) as info:
        finditer_bounded(_SlowPattern(), "aaaa!", timeout_ms=1)
    assert info.value.timeout_ms == 1


# -- Fuzzy occurrences --

def test_fuzzy_matches_formatting_drift():
    text = "IBAN CH93-0076-2011 and later CH9300762011"
    spans = find_fuzzy_occurrences(text, "CH93 0076 2011")
    assert [text[s:e] for s, e in spans] == ["CH93-0076-2011", "CH9300762011"]


def test_fuzzy_does_not_match_inside_longer_token():
    assert find_fuzzy_occurrences("XABC123Y", "ABC123") == []


def test_fuzzy_rejects_unsafe_candidates():
    assert build_fuzzy_regex("") is None
    assert build_fuzzy_regex("ab") is None
    assert build_fuzzy_regex("x" * 51) is None
    assert build_fuzzy_regex("a" * 31) is None


def test_fuzzy_is_case_insensitive():
    pattern = build_fuzzy_regex("Müller")
    assert isinstance(pattern, regex.Pattern)
    assert find_fuzzy_occurrences("Herr MÜLLER kommt", "Müller") == [(5, 11)]
