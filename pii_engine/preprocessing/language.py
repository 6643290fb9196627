"""
Offline language detection by marker words.

Good enough to pick deny lists and context words for de/fr/it/en business
documents; not a general-purpose language identifier.
"""

from collections import Counter
from typing import Dict, Optional, Set

import regex

SUPPORTED_LANGUAGES = ("de", "fr", "it", "en")

LANGUAGE_MARKERS: Dict[str, Set[str]] = {
    "de": {"der", "die", "das", "und", "ist", "nicht", "mit", "für", "von", "sie", "wir",
           "ein", "eine", "auf", "bei", "sehr", "geehrte", "geehrter", "rechnung", "betrag"},
    "fr": {"le", "la", "les", "et", "est", "pas", "avec", "pour", "des", "une", "nous",
           "vous", "sur", "dans", "madame", "monsieur", "facture", "montant"},
    "it": {"il", "lo", "gli", "e", "è", "non", "con", "per", "della", "delle", "una",
           "sono", "signora", "signor", "fattura", "importo", "gentile"},
    "en": {"the", "and", "is", "not", "with", "for", "of", "you", "we", "this", "that",
           "are", "dear", "invoice", "amount", "please"},
}

_WORD = regex.compile(r"[^\W\d_]+")


def language_scores(text: str) -> Dict[str, int]:
    """Count marker words per language."""
    words = Counter(w.lower() for w in _WORD.findall(text))
    return {
        lang: sum(words[m] for m in markers)
        for lang, markers in LANGUAGE_MARKERS.items()
    }


def detect_language(text: str, default: Optional[str] = "de") -> Optional[str]:
    """
    Detect the document language.

    Args:
        text: Document text
        default: Returned when no marker word is found

    Returns:
        Language code (de, fr, it, en) or the default
    """
    if not text:
        return default
    scores = language_scores(text)
    best = max(SUPPORTED_LANGUAGES, key=lambda lang: scores[lang])
    if scores[best] == 0:
        return default
    return best
