"""
Global deny list and context words.

The deny list removes matches that are table headers, month abbreviations or
company suffixes rather than PII. Context words raise (or lower) confidence
when typical labels ("IBAN", "AHV-Nr.", "Tel.") appear next to a match.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Union

import regex

from ..entities import Entity, clamp_confidence
from ..safe_regex import compile_pattern, safe_search

logger = logging.getLogger(__name__)

DenyEntry = Union[str, "regex.Pattern"]


# =============================================================================
# DENY LIST
# =============================================================================

DEFAULT_GLOBAL_DENY = [
    # French table headers / invoice terms
    "Montant", "Libellé", "Description", "Quantité", "Prix", "Total", "Sous-total",
    "TVA", "Rabais", "Réduction", "Référence", "Numéro", "Facture", "Client",
    "Fournisseur", "Désignation", "Unité", "Remise", "HT", "TTC",
    # German table headers / invoice terms
    "Beschreibung", "Betrag", "Menge", "Preis", "Summe", "MwSt", "Zwischensumme",
    "Rabatt", "Referenz", "Nummer", "Rechnung", "Kunde", "Lieferant", "Bezeichnung",
    "Einheit", "Netto", "Brutto",
    # English table headers / invoice terms
    "Amount", "Quantity", "Price", "Subtotal", "Tax", "Discount", "Reference",
    "Number", "Invoice", "Customer", "Supplier", "Unit", "Net", "Gross",
    # Date labels
    "Date", "Datum",
]

DEFAULT_ENTITY_TYPE_DENY = {
    "PERSON": [
        r"^[A-Z]{2,4}$",  # acronyms
        r"^\d+$",
        r"^(?:Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec)$",
        r"^(?:Janv|Févr|Mars|Avr|Mai|Juin|Juil|Août|Sept|Oct|Nov|Déc)$",
        r"^(?:Mär|Okt|Dez)$",
        r"^(?:Mon|Tue|Wed|Thu|Fri|Sat|Sun)$",
        r"\b(?:Ltd|AG|SA|GmbH|Inc|Corp|LLC|Sàrl|SARL|Cie|KG|OHG|SE|NV|BV|Plc)\.?$",
        r"^(?:Via|Viale|Piazza|Corso|Vicolo|Largo|Rue|Avenue|Boulevard|Chemin|Route|Place|Allée|Strasse|Straße|Gasse|Weg|Platz|Allee)\b",
        r"\b(?:Holding|Group|Technologies|Services|Solutions|Systems|Consulting|Partners|Foundation|Institute|Bank)\s*$",
    ],
}


def parse_deny_entry(entry: Any) -> DenyEntry:
    """
    Strings stay literal; {"regex": ..., "flags": "i"} and compiled patterns
    (re or regex) become bounded `regex` patterns.
    """
    if isinstance(entry, str):
        return entry
    if isinstance(entry, dict) and "regex" in entry:
        flags = regex.IGNORECASE if "i" in entry.get("flags", "") else 0
        return compile_pattern(entry["regex"], flags)
    if hasattr(entry, "pattern") and hasattr(entry, "flags"):
        return compile_pattern(entry.pattern, entry.flags)
    raise ValueError(f"Unsupported deny list entry: {entry!r}")


class DenyList:
    """
    Deny list with global, per-entity-type and per-language scopes.

    String entries match on trimmed, case-insensitive equality. Regex entries
    match when they are found anywhere in the trimmed text.
    """

    def __init__(self, global_entries: Optional[Iterable[Any]] = None,
                 by_entity_type: Optional[Dict[str, Iterable[Any]]] = None,
                 by_language: Optional[Dict[str, Iterable[Any]]] = None):
        self._strings: Dict[str, set] = {}
        self._patterns: Dict[str, List["regex.Pattern"]] = {}

        if global_entries is None:
            global_entries = DEFAULT_GLOBAL_DENY
        if by_entity_type is None:
            by_entity_type = {
                k: [{"regex": p} for p in v] for k, v in DEFAULT_ENTITY_TYPE_DENY.items()
            }

        for entry in global_entries:
            self.add_pattern(entry, "global")
        for entity_type, entries in (by_entity_type or {}).items():
            for entry in entries:
                self.add_pattern(entry, entity_type)
        for language, entries in (by_language or {}).items():
            for entry in entries:
                self.add_pattern(entry, f"lang:{language.lower()}")

    def add_pattern(self, pattern: Any, scope: str = "global"):
        """
        Add an entry.

        Args:
            pattern: A literal string, a compiled regex, or {"regex": str}
            scope: "global", an entity type (e.g. "PERSON"), or "lang:<code>"
        """
        parsed = parse_deny_entry(pattern)
        if isinstance(parsed, str):
            self._strings.setdefault(scope, set()).add(parsed.strip().lower())
        else:
            self._patterns.setdefault(scope, []).append(parsed)

    def _scope_matches(self, scope: str, trimmed: str, lowered: str) -> bool:
        if lowered in self._strings.get(scope, ()):
            return True
        return any(safe_search(p, trimmed) is not None for p in self._patterns.get(scope, ()))

    def is_denied(self, text: str, entity_type: str, language: Optional[str] = None) -> bool:
        """Check text against the global, entity-type and language scopes."""
        trimmed = text.strip()
        lowered = trimmed.lower()
        if self._scope_matches("global", trimmed, lowered):
            return True
        if self._scope_matches(entity_type, trimmed, lowered):
            return True
        if language and self._scope_matches(f"lang:{language.lower()}", trimmed, lowered):
            return True
        return False

    def load_from_config(self, config: Dict[str, Any]):
        """Add the entries of a config dict to this list."""
        for entry in config.get("global", []):
            self.add_pattern(entry, "global")
        for entity_type, entries in config.get("byEntityType", {}).items():
            for entry in entries:
                self.add_pattern(entry, entity_type)
        for language, entries in config.get("byLanguage", {}).items():
            for entry in entries:
                self.add_pattern(entry, f"lang:{language.lower()}")

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "DenyList":
        """
        Build from a config dict:
            {"global": [...], "byEntityType": {...}, "byLanguage": {...}}
        """
        return cls(
            global_entries=config.get("global", []),
            by_entity_type=config.get("byEntityType", {}),
            by_language=config.get("byLanguage", {}),
        )


_deny_list: Optional[DenyList] = None


def get_deny_list() -> DenyList:
    """Get the process-wide deny list (defaults on first use)."""
    global _deny_list
    if _deny_list is None:
        _deny_list = DenyList()
    return _deny_list


def set_deny_list(deny_list: DenyList):
    global _deny_list
    _deny_list = deny_list


def reset_deny_list():
    global _deny_list
    _deny_list = None


# =============================================================================
# CONTEXT WORDS
# =============================================================================

@dataclass(frozen=True)
class ContextWord:
    word: str
    weight: float = 1.0
    polarity: str = "positive"  # or "negative"


def _pos(word: str, weight: float = 1.0) -> ContextWord:
    return ContextWord(word, weight, "positive")


def _neg(word: str, weight: float = 0.8) -> ContextWord:
    return ContextWord(word, weight, "negative")


# Entity type -> language -> words
CONTEXT_WORDS: Dict[str, Dict[str, List[ContextWord]]] = {
    "PERSON": {
        "en": [_pos("mr"), _pos("mrs"), _pos("ms"), _pos("dr"), _pos("name", 0.9),
               _pos("dear", 0.7), _pos("signed", 0.6), _neg("ltd", 1.0), _neg("inc", 1.0)],
        "de": [_pos("herr"), _pos("frau"), _pos("name", 0.9), _pos("vorname", 0.9),
               _pos("nachname", 0.9), _pos("geehrte", 0.7),
               _pos("geehrter", 0.7), _neg("gmbh", 1.0), _neg("ag", 0.8)],
        "fr": [_pos("monsieur"), _pos("madame"), _pos("nom", 0.9), _pos("prénom", 0.9),
               _neg("sàrl", 1.0), _neg("sa", 0.6)],
        "it": [_pos("signor"), _pos("signora"), _pos("nome", 0.9), _pos("cognome", 0.9)],
    },
    "IBAN": {
        "en": [_pos("iban"), _pos("account", 0.8), _pos("bank", 0.7)],
        "de": [_pos("iban"), _pos("konto", 0.8), _pos("bank", 0.7), _pos("zahlbar", 0.6)],
        "fr": [_pos("iban"), _pos("compte", 0.8), _pos("banque", 0.7)],
        "it": [_pos("iban"), _pos("conto", 0.8), _pos("banca", 0.7)],
    },
    "PHONE": {
        "en": [_pos("phone"), _pos("tel"), _pos("mobile"), _pos("fax", 0.7)],
        "de": [_pos("telefon"), _pos("tel"), _pos("natel"), _pos("handy"), _pos("fax", 0.7)],
        "fr": [_pos("téléphone"), _pos("tél"), _pos("portable"), _pos("fax", 0.7)],
        "it": [_pos("telefono"), _pos("tel"), _pos("cellulare")],
    },
    "EMAIL": {
        "en": [_pos("email"), _pos("e-mail"), _pos("contact", 0.7), _neg("example.com", 0.9)],
        "de": [_pos("email"), _pos("e-mail"), _pos("kontakt", 0.7)],
        "fr": [_pos("courriel"), _pos("e-mail"), _pos("contact", 0.7)],
        "it": [_pos("email"), _pos("posta", 0.7)],
    },
    "DATE": {
        "en": [_pos("born"), _pos("date of birth"), _pos("dob")],
        "de": [_pos("geboren"), _pos("geburtsdatum")],
        "fr": [_pos("né"), _pos("née"), _pos("date de naissance")],
        "it": [_pos("nato"), _pos("nata"), _pos("data di nascita")],
    },
}


def get_global_context_words(entity_type: str, language: Optional[str] = None) -> List[ContextWord]:
    """Context words for a type; all languages when none is given."""
    by_language = CONTEXT_WORDS.get(entity_type, {})
    if language:
        return list(by_language.get(language.lower(), []))
    words: List[ContextWord] = []
    for entries in by_language.values():
        words.extend(entries)
    return words


# =============================================================================
# CONTEXT ENHANCER
# =============================================================================

class ContextEnhancer:
    """
    Adjusts confidence from words found around an entity.

    The net adjustment never exceeds `similarity_factor` in either direction.
    A positive hit lifts the score to at least `min_score_with_context`.
    """

    def __init__(self, window_size: int = 100, similarity_factor: float = 0.35,
                 min_score_with_context: float = 0.4, preceding_weight: float = 1.2,
                 following_weight: float = 0.8,
                 per_entity_window: Optional[Dict[str, int]] = None):
        self.window_size = window_size
        self.similarity_factor = similarity_factor
        self.min_score_with_context = min_score_with_context
        self.preceding_weight = preceding_weight
        self.following_weight = following_weight
        self.per_entity_window = {
            "PERSON": 150, "IBAN": 40, "EMAIL": 50, "PHONE": 60, "SWISS_AVS": 60,
        }
        if per_entity_window:
            self.per_entity_window.update(per_entity_window)

    def enhance(self, entity: Entity, text: str, context_words: List[ContextWord]) -> Entity:
        """
        Return the entity with its confidence adjusted in place.

        metadata["contextWords"] lists the words found and
        metadata["contextBoost"] the applied delta.
        """
        if not context_words:
            return entity

        window = self.per_entity_window.get(entity.entity_type, self.window_size)
        preceding = text[max(0, entity.start - window):entity.start].lower()
        following = text[entity.end:entity.end + window].lower()

        found = []
        positive = 0.0
        negative = 0.0
        for cw in context_words:
            word = compile_pattern(rf"(?<!\w){regex.escape(cw.word.lower())}(?!\w)")
            in_preceding = safe_search(word, preceding) is not None
            in_following = safe_search(word, following) is not None
            if not (in_preceding or in_following):
                continue
            found.append(cw.word)
            contribution = 0.0
            if in_preceding:
                contribution += cw.weight * self.preceding_weight
            if in_following:
                contribution += cw.weight * self.following_weight
            contribution = min(contribution, cw.weight * 2)
            if cw.polarity == "positive":
                positive += contribution
            else:
                negative += contribution

        if not found:
            return entity

        max_direction = max(self.preceding_weight, self.following_weight)
        capped_pos = min(positive / max_direction * self.similarity_factor, self.similarity_factor)
        capped_neg = min(negative / max_direction * self.similarity_factor, self.similarity_factor)
        net = capped_pos - capped_neg

        original = entity.confidence
        new_confidence = original + net
        if capped_pos > 0 and net > 0:
            new_confidence = max(new_confidence, self.min_score_with_context)
        entity.confidence = clamp_confidence(new_confidence)
        entity.metadata["contextWords"] = found
        entity.metadata["contextBoost"] = round(entity.confidence - original, 4)
        return entity
