"""
Per-document token bookkeeping.

A session hands out one "[TYPE_N]" token per distinct (type, text) pair, so
repeated mentions of the same value share a token. Numbering restarts with
every reset(); use one session per document.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from ..entities import Entity

# Type names coming from Presidio, spaCy or older configs
TYPE_ALIASES: Dict[str, str] = {
    "PERSON_NAME": "PERSON",
    "PER": "PERSON",
    "STREET_ADDRESS": "ADDRESS",
    "ORG": "ORGANIZATION",
    "PHONE_NUMBER": "PHONE",
    "EMAIL_ADDRESS": "EMAIL",
    "IBAN_CODE": "IBAN",
    "DATE_TIME": "DATE",
    "LOC": "LOCATION",
    "GPE": "LOCATION",
    "AVS": "SWISS_AVS",
}


def normalize_entity_type(entity_type: str) -> str:
    """Upper-case the type and resolve aliases."""
    key = entity_type.strip().upper()
    return TYPE_ALIASES.get(key, key)


def normalize_entity_text(text: str) -> str:
    """Dedup key for a value: trimmed, single-spaced, case-folded."""
    return " ".join(text.split()).casefold()


@dataclass
class AddressEntry:
    """
    Mapping record for a grouped address.

    Attributes:
        placeholder: Token that replaced the address
        entity_type: SWISS_ADDRESS, EU_ADDRESS or ADDRESS
        original_text: The full address span
        start: Start offset in the source text
        end: End offset in the source text
        components: street, number, postal, city and country (None if unmatched)
        confidence: Group confidence
        pattern_matched: Layout the linker recognised (SWISS, EU, ...)
        scoring_factors: Confidence breakdown from the linker
        flagged_for_review: Whether the group awaits review
        auto_anonymize: Whether the group cleared the auto-anonymize threshold
    """
    placeholder: str
    entity_type: str
    original_text: str
    start: int
    end: int
    components: Dict[str, Optional[str]] = field(default_factory=dict)
    confidence: float = 0.0
    pattern_matched: Optional[str] = None
    scoring_factors: List[Dict[str, Any]] = field(default_factory=list)
    flagged_for_review: bool = False
    auto_anonymize: bool = False

    @classmethod
    def from_entity(cls, entity: Entity, placeholder: str) -> "AddressEntry":
        breakdown = entity.metadata.get("breakdown") or {}
        components = {key: breakdown.get(key) for key in ("street", "number", "postal", "city", "country")}
        return cls(
            placeholder=placeholder,
            entity_type=entity.entity_type,
            original_text=entity.text,
            start=entity.start,
            end=entity.end,
            components=components,
            confidence=entity.confidence,
            pattern_matched=entity.metadata.get("patternMatched"),
            scoring_factors=list(entity.metadata.get("scoringFactors") or []),
            flagged_for_review=entity.flagged_for_review,
            auto_anonymize=bool(entity.metadata.get("autoAnonymize")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "placeholder": self.placeholder,
            "type": self.entity_type,
            "originalText": self.original_text,
            "start": self.start,
            "end": self.end,
            "components": dict(self.components),
            "confidence": round(self.confidence, 4),
            "patternMatched": self.pattern_matched,
            "scoringFactors": self.scoring_factors,
            "flaggedForReview": self.flagged_for_review,
            "autoAnonymize": self.auto_anonymize,
        }


class AnonymizationSession:
    """
    Token state for one document.

    Attributes:
        counters: Last number issued per normalized type
        token_of: (type, normalized text) -> token
        address_entries: Grouped addresses registered in this session
        anonymized_ranges: (start, end, token) for every replaced span
        redaction_applied: Whether apply_anonymization() ran with this session
    """

    def __init__(self):
        self.counters: Dict[str, int] = {}
        self.token_of: Dict[Tuple[str, str], str] = {}
        self.address_entries: List[AddressEntry] = []
        self.anonymized_ranges: List[Tuple[int, int, str]] = []
        self.redaction_applied = False

    def get_or_create_token(self, text: str, entity_type: str) -> str:
        """
        Return the token for a value, minting "[TYPE_N]" on first sight.

        Args:
            text: Original value
            entity_type: Entity type (aliases are resolved)

        Returns:
            The token, e.g. "[PERSON_1]"
        """
        norm_type = normalize_entity_type(entity_type)
        key = (norm_type, normalize_entity_text(text))
        token = self.token_of.get(key)
        if token is None:
            self.counters[norm_type] = self.counters.get(norm_type, 0) + 1
            token = f"[{norm_type}_{self.counters[norm_type]}]"
            self.token_of[key] = token
        return token

    def find_token(self, text: str, entity_type: str) -> Optional[str]:
        """Existing token for a value, or None."""
        return self.token_of.get((normalize_entity_type(entity_type), normalize_entity_text(text)))

    def register_grouped_address(self, entity: Entity, token: Optional[str] = None) -> str:
        """
        Record a grouped address and mark its range as anonymized.

        Returns:
            The address token
        """
        if token is None:
            token = self.get_or_create_token(entity.text, entity.entity_type)
        existing = self.address_entry_at(entity.start, entity.end)
        if existing is None:
            self.address_entries.append(AddressEntry.from_entity(entity, token))
        self.mark_anonymized(entity.start, entity.end, token)
        return token

    def address_entry_at(self, start: int, end: int) -> Optional[AddressEntry]:
        for entry in self.address_entries:
            if entry.start == start and entry.end == end:
                return entry
        return None

    def mark_anonymized(self, start: int, end: int, token: str = "") -> None:
        if (start, end, token) not in self.anonymized_ranges:
            self.anonymized_ranges.append((start, end, token))

    def is_range_anonymized(self, start: int, end: int) -> bool:
        """True if [start, end) overlaps any range already replaced."""
        return any(start < r_end and r_start < end for r_start, r_end, _ in self.anonymized_ranges)

    def replaced_token(self, start: int, end: int) -> Optional[str]:
        """Token recorded for exactly [start, end), if any."""
        for r_start, r_end, token in self.anonymized_ranges:
            if r_start == start and r_end == end and token:
                return token
        return None

    def reset(self) -> None:
        """Forget all tokens so numbering restarts at 1."""
        self.counters.clear()
        self.token_of.clear()
        self.address_entries.clear()
        self.anonymized_ranges.clear()
        self.redaction_applied = False


# =============================================================================
# DEFAULT SESSION
# =============================================================================

_session: Optional[AnonymizationSession] = None


def get_session() -> AnonymizationSession:
    """Get or create the module-wide default session."""
    global _session
    if _session is None:
        _session = AnonymizationSession()
    return _session


def get_or_create_token(text: str, entity_type: str) -> str:
    """Token from the default session."""
    return get_session().get_or_create_token(text, entity_type)


def reset_anonymization_session() -> None:
    """Reset the default session; call once per new document."""
    get_session().reset()
