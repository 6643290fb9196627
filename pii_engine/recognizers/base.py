"""
Pattern recognizers.

A recognizer is a named bundle of regex patterns with a base score per
pattern, an optional checksum validator, language/country applicability and
deny-list exceptions. BaseRecognizer is the reusable default implementation;
the registry accepts any object with the same methods (see
PresidioRecognizerAdapter).
"""

import logging
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from presidio_analyzer import Pattern

from ..entities import Entity, EntitySource
from ..exceptions import ConfigurationError, RecognizerFailure
from ..safe_regex import DEFAULT_FLAGS, compile_pattern, safe_finditer
from .context import ContextWord, get_deny_list, get_global_context_words, parse_deny_entry

logger = logging.getLogger(__name__)


class Specificity(IntEnum):
    """Tie-break dimension: country-specific beats regional beats global."""
    GLOBAL = 1
    REGION = 2
    COUNTRY = 3

    @classmethod
    def parse(cls, value) -> "Specificity":
        if isinstance(value, Specificity):
            return value
        try:
            return cls[str(value).upper()]
        except KeyError:
            raise ConfigurationError(f"Unknown specificity: {value!r}") from None


class PatternDefinition(Pattern):
    """
    A presidio Pattern that also names the entity type it detects.

    Args:
        name: Pattern name (defaults to the entity type)
        regex: Unanchored regular expression; flags are applied by the engine
        score: Base confidence, strictly between 0 and 1
        entity_type: Entity type tag (e.g. "IBAN")
        is_weak_pattern: Pattern is prone to false positives
    """

    def __init__(self, name: Optional[str], regex: str, score: float,
                 entity_type: str, is_weak_pattern: bool = False):
        if not isinstance(score, (int, float)) or not 0.0 < float(score) < 1.0:
            raise ConfigurationError(
                f"Pattern '{name or entity_type}': score must be between 0 and 1 "
                f"(exclusive), got {score!r}"
            )
        super().__init__(name=name or entity_type, regex=regex, score=float(score))
        self.entity_type = entity_type
        self.is_weak_pattern = is_weak_pattern

    def to_dict(self) -> Dict:
        data = super().to_dict()
        data["entity_type"] = self.entity_type
        data["is_weak_pattern"] = self.is_weak_pattern
        return data

    def __repr__(self):
        return (f"PatternDefinition(name={self.name!r}, entity_type={self.entity_type!r}, "
                f"score={self.score}, weak={self.is_weak_pattern})")


@dataclass
class RecognizerConfig:
    """Declarative configuration of a BaseRecognizer."""
    name: str
    supported_languages: Iterable[str]
    supported_countries: Iterable[str]
    patterns: Sequence[PatternDefinition]
    priority: int = 50
    specificity: Specificity = Specificity.COUNTRY
    context_words: List[str] = field(default_factory=list)
    deny_patterns: List = field(default_factory=list)
    validator: Optional[Callable[[str], bool]] = None
    use_global_context: bool = True
    use_global_deny_list: bool = True


class BaseRecognizer:
    """
    Regex recognizer with deny-list and validator support.

    Subclasses usually only supply a RecognizerConfig and, when different
    patterns need different checks, override validate_match().
    """

    def __init__(self, config: RecognizerConfig):
        if not config.name:
            raise ConfigurationError("Recognizer name must not be empty")
        if not config.patterns:
            raise ConfigurationError(f"Recognizer '{config.name}' has no patterns")
        self.config = config
        self._languages = {lang.lower() for lang in config.supported_languages}
        self._countries = {country.upper() for country in config.supported_countries}
        self._deny = [parse_deny_entry(p) for p in config.deny_patterns]
        self._specificity = Specificity.parse(config.specificity)

    # ------------------------------------------------------------------
    # Identity and applicability
    # ------------------------------------------------------------------

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def priority(self) -> int:
        return self.config.priority

    @property
    def specificity(self) -> Specificity:
        return self._specificity

    @property
    def patterns(self) -> Sequence[PatternDefinition]:
        return self.config.patterns

    @property
    def entity_types(self) -> List[str]:
        seen: List[str] = []
        for p in self.config.patterns:
            if p.entity_type not in seen:
                seen.append(p.entity_type)
        return seen

    @property
    def supported_languages(self) -> List[str]:
        return sorted(self._languages)

    @property
    def supported_countries(self) -> List[str]:
        return sorted(self._countries)

    def supports_language(self, language: str) -> bool:
        return language.lower() in self._languages

    def supports_country(self, country: str) -> bool:
        # "*" marks recognizers that apply to any country
        return "*" in self._countries or country.upper() in self._countries

    def supports_entity_type(self, entity_type: str) -> bool:
        return any(p.entity_type == entity_type for p in self.config.patterns)

    def get_pattern(self, name: str) -> Optional[PatternDefinition]:
        for p in self.config.patterns:
            if p.name == name:
                return p
        return None

    def get_context_words(self, entity_type: Optional[str] = None,
                          language: Optional[str] = None) -> List[ContextWord]:
        """Own context words plus the global ones for the entity type."""
        words = [ContextWord(w) for w in self.config.context_words]
        if self.config.use_global_context:
            for et in ([entity_type] if entity_type else self.entity_types):
                words.extend(get_global_context_words(et, language))
        return words

    # ------------------------------------------------------------------
    # Matching
    # ------------------------------------------------------------------

    def _compiled(self, pattern: PatternDefinition):
        # Compiled once, on first use
        if pattern.compiled_regex is None:
            pattern.compiled_regex = compile_pattern(pattern.regex, DEFAULT_FLAGS)
            pattern.compiled_with_flags = DEFAULT_FLAGS
        return pattern.compiled_regex

    def is_denied(self, text: str, entity_type: str, language: Optional[str] = None) -> bool:
        """Own deny list first, then the global deny list if enabled."""
        trimmed = text.strip()
        lowered = trimmed.lower()
        for entry in self._deny:
            if isinstance(entry, str):
                if entry.strip().lower() == lowered:
                    return True
            elif entry.search(trimmed) is not None:
                return True
        if self.config.use_global_deny_list:
            return get_deny_list().is_denied(trimmed, entity_type, language)
        return False

    def validate_match(self, text: str, pattern: PatternDefinition) -> Optional[bool]:
        """
        Validate a match.

        Returns:
            None when no validator applies, otherwise the validator verdict
        """
        if self.config.validator is None:
            return None
        return bool(self.config.validator(text))

    def analyze(self, text: str, language: Optional[str] = None) -> List[Entity]:
        """
        Run every pattern over text.

        Args:
            text: Document text
            language: Optional language code; unsupported languages yield []

        Returns:
            Matches with confidence = pattern base score and source RULE
        """
        if language and not self.supports_language(language):
            return []

        matches: List[Entity] = []
        for pattern in self.config.patterns:
            for m in safe_finditer(self._compiled(pattern), text):
                match_text = m.group(0)
                if not match_text.strip():
                    continue
                if self.is_denied(match_text, pattern.entity_type, language):
                    continue
                try:
                    validation = self.validate_match(match_text, pattern)
                except Exception as e:
                    raise RecognizerFailure(self.name, f"validator raised {e!r}", e) from e
                if validation is False:
                    continue
                matches.append(Entity(
                    entity_type=pattern.entity_type,
                    text=match_text,
                    start=m.start(),
                    end=m.end(),
                    confidence=pattern.score,
                    source=EntitySource.RULE,
                    recognizer=self.name,
                    pattern_name=pattern.name,
                    validation_passed=validation,
                    metadata={"isWeakPattern": pattern.is_weak_pattern},
                ))
        return matches

    def __repr__(self):
        return (f"{type(self).__name__}(name={self.name!r}, priority={self.priority}, "
                f"specificity={self.specificity.name})")
