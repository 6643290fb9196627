"""Preprocessing of converted document text."""

from .language import detect_language, language_scores
from .text_normalizer import (
    detect_frontmatter_end,
    find_code_spans,
    is_in_spans,
    normalize_text,
)

__all__ = [
    'detect_language',
    'language_scores',
    'detect_frontmatter_end',
    'find_code_spans',
    'is_in_spans',
    'normalize_text',
]
