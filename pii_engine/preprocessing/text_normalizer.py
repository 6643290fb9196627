"""
Text normalization and structural scanning for converted documents.

This module provides preprocessing functions to handle:
- Unicode normalization (fullwidth characters, zero-width spaces, dashes)
- YAML frontmatter detection (metadata block that is never anonymized)
- Markdown code spans (optionally protected from redaction)
"""

import unicodedata
from typing import List, Tuple

import regex

_ZERO_WIDTH = regex.compile(r"[\u200b-\u200f\u2060\ufeff]")
_DASHES = regex.compile(r"[\u2010-\u2015\u2212]")
_HORIZONTAL_SPACE = regex.compile(r'[^\S\n]+')

_FENCED_BLOCK = regex.compile(r'^(`{3,}|~{3,})[^\n]*\n.*?^\1[ \t]*$', regex.MULTILINE | regex.DOTALL)
_INLINE_CODE = regex.compile(r'(?<!`)(`+)(?!`)(.+?)(?<!`)\1(?!`)')


def normalize_text(text: str) -> str:
    """
    Normalize text for PII detection.

    Handles common evasion and conversion artefacts:
    - Fullwidth characters (＠ → @, ０ → 0)
    - Zero-width characters that break patterns
    - Typographic dashes
    - Inconsistent whitespace

    Offsets of detected entities refer to the normalized text, so callers
    must redact the same normalized string they analyzed.

    Args:
        text: Raw converted text

    Returns:
        Normalized text ready for PII detection
    """
    if not text:
        return text

    # NFKC normalization: converts fullwidth to ASCII equivalents
    text = unicodedata.normalize('NFKC', text)

    # U+200B..U+200F, U+2060 word joiner, U+FEFF BOM
    text = _ZERO_WIDTH.sub('', text)

    # U+2010..U+2015 hyphens and dashes, U+2212 minus sign
    text = _DASHES.sub('-', text)

    # Collapse tabs and runs of spaces but keep newlines (postal blocks
    # and table rows depend on them)
    text = _HORIZONTAL_SPACE.sub(' ', text)

    return text


def detect_frontmatter_end(text: str) -> int:
    """
    Find the end of a leading YAML frontmatter block.

    The block starts with '---' on the first line and ends at the next line
    consisting of '---' (or '...').

    Returns:
        Offset just past the closing delimiter line, or 0 if there is none
    """
    if not text.startswith('---'):
        return 0
    first_newline = text.find('\n')
    if first_newline == -1 or text[:first_newline].strip() != '---':
        return 0

    match = regex.compile(r'^(?:---|\.\.\.)[ \t]*$', regex.MULTILINE).search(text, first_newline + 1)
    if match is None:
        return 0
    end = match.end()
    if end < len(text) and text[end] == '\n':
        end += 1
    return end


def find_code_spans(text: str) -> List[Tuple[int, int]]:
    """
    Locate fenced code blocks and inline code spans.

    Returns:
        Sorted, non-overlapping (start, end) spans
    """
    spans = [(m.start(), m.end()) for m in _FENCED_BLOCK.finditer(text)]
    for m in _INLINE_CODE.finditer(text):
        if any(start <= m.start() < end for start, end in spans):
            continue
        if '\n\n' in m.group(0):
            continue
        spans.append((m.start(), m.end()))
    return sorted(spans)


def is_in_spans(start: int, end: int, spans: List[Tuple[int, int]]) -> bool:
    """True if [start, end) overlaps any span."""
    return any(start < s_end and s_start < end for s_start, s_end in spans)
