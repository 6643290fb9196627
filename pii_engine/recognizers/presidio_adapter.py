"""
Adapter for presidio recognizers.

Presidio's predefined recognizers (credit cards, IP addresses, ...) come
with tuned patterns and checksum validators. The adapter exposes them
through the registry contract: pattern matching runs through the bounded
regex evaluator, presidio's validate_result/invalidate_result decide
acceptance, and the reported score is the pattern's base score (presidio
itself promotes validated matches to 1.0).
"""

import logging
from typing import Dict, Iterable, List, Optional

from presidio_analyzer import EntityRecognizer, PatternRecognizer

from ..entities import Entity, EntitySource, clamp_confidence
from ..exceptions import RecognizerFailure
from ..safe_regex import DEFAULT_FLAGS, compile_pattern, safe_finditer
from .base import Specificity
from .context import ContextWord, get_deny_list, get_global_context_words

logger = logging.getLogger(__name__)

# presidio entity names -> engine entity names
PRESIDIO_TYPE_MAP: Dict[str, str] = {
    "CREDIT_CARD": "CREDIT_CARD",
    "IP_ADDRESS": "IP_ADDRESS",
    "EMAIL_ADDRESS": "EMAIL",
    "PHONE_NUMBER": "PHONE",
    "IBAN_CODE": "IBAN",
    "DATE_TIME": "DATE",
    "PERSON": "PERSON",
    "LOCATION": "LOCATION",
}

# Score never reaches 1.0
_MAX_BASE_SCORE = 0.99


class PresidioRecognizerAdapter:
    """
    Wrap a presidio EntityRecognizer so the registry can run it.

    Args:
        recognizer: The presidio recognizer
        name: Registry name (defaults to the presidio name)
        supported_languages: Languages to accept (presidio recognizers are
            registered per language; regex-only ones work for any)
        supported_countries: Countries to accept
        priority: Registry priority
        specificity: Registry tie-break
        type_map: Overrides for PRESIDIO_TYPE_MAP
    """

    def __init__(self, recognizer: EntityRecognizer, name: Optional[str] = None,
                 supported_languages: Iterable[str] = ("de", "fr", "it", "en"),
                 supported_countries: Iterable[str] = ("CH", "DE", "FR", "IT", "AT"),
                 priority: int = 40, specificity: Specificity = Specificity.GLOBAL,
                 type_map: Optional[Dict[str, str]] = None,
                 use_global_deny_list: bool = True):
        self.recognizer = recognizer
        self._name = name or recognizer.name
        self._languages = {lang.lower() for lang in supported_languages}
        self._countries = {c.upper() for c in supported_countries}
        self._priority = priority
        self._specificity = Specificity.parse(specificity)
        self._type_map = dict(PRESIDIO_TYPE_MAP)
        if type_map:
            self._type_map.update(type_map)
        self.use_global_deny_list = use_global_deny_list

    @property
    def name(self) -> str:
        return self._name

    @property
    def priority(self) -> int:
        return self._priority

    @property
    def specificity(self) -> Specificity:
        return self._specificity

    @property
    def entity_types(self) -> List[str]:
        return [self._map_type(e) for e in self.recognizer.supported_entities]

    def _map_type(self, presidio_type: str) -> str:
        return self._type_map.get(presidio_type, presidio_type)

    def supports_language(self, language: str) -> bool:
        return language.lower() in self._languages

    def supports_country(self, country: str) -> bool:
        # "*" marks recognizers that apply to any country
        return "*" in self._countries or country.upper() in self._countries

    def get_context_words(self, entity_type: Optional[str] = None,
                          language: Optional[str] = None) -> List[ContextWord]:
        words = [ContextWord(w) for w in (self.recognizer.context or [])]
        for et in ([entity_type] if entity_type else self.entity_types):
            words.extend(get_global_context_words(et, language))
        return words

    def is_denied(self, text: str, entity_type: str, language: Optional[str] = None) -> bool:
        if not self.use_global_deny_list:
            return False
        return get_deny_list().is_denied(text, entity_type, language)

    def analyze(self, text: str, language: Optional[str] = None) -> List[Entity]:
        if language and not self.supports_language(language):
            return []
        if isinstance(self.recognizer, PatternRecognizer):
            return self._analyze_patterns(text, language)
        return self._analyze_generic(text, language)

    def _analyze_patterns(self, text: str, language: Optional[str]) -> List[Entity]:
        presidio_type = self.recognizer.supported_entities[0]
        entity_type = self._map_type(presidio_type)
        matches: List[Entity] = []

        for pattern in self.recognizer.patterns:
            compiled = compile_pattern(pattern.regex, DEFAULT_FLAGS)
            for m in safe_finditer(compiled, text):
                match_text = m.group(0)
                if not match_text.strip() or self.is_denied(match_text, entity_type, language):
                    continue
                try:
                    validated = self.recognizer.validate_result(match_text)
                    invalidated = self.recognizer.invalidate_result(match_text)
                except Exception as e:
                    raise RecognizerFailure(self.name, f"validator raised {e!r}", e) from e
                if validated is False or invalidated is True:
                    continue
                matches.append(Entity(
                    entity_type=entity_type,
                    text=match_text,
                    start=m.start(),
                    end=m.end(),
                    confidence=min(pattern.score, _MAX_BASE_SCORE),
                    source=EntitySource.RULE,
                    recognizer=self.name,
                    pattern_name=pattern.name,
                    validation_passed=validated,
                    metadata={"isWeakPattern": "weak" in pattern.name.lower()},
                ))
        return matches

    def _analyze_generic(self, text: str, language: Optional[str]) -> List[Entity]:
        results = self.recognizer.analyze(text, self.recognizer.supported_entities, None)
        matches: List[Entity] = []
        for result in results or []:
            if result.end <= result.start:
                continue
            entity_type = self._map_type(result.entity_type)
            match_text = text[result.start:result.end]
            if self.is_denied(match_text, entity_type, language):
                continue
            explanation = result.analysis_explanation
            score = result.score
            if explanation is not None and explanation.original_score is not None:
                score = explanation.original_score
            matches.append(Entity(
                entity_type=entity_type,
                text=match_text,
                start=result.start,
                end=result.end,
                confidence=clamp_confidence(min(score, _MAX_BASE_SCORE)),
                source=EntitySource.RULE,
                recognizer=self.name,
                pattern_name=explanation.pattern_name if explanation else None,
                validation_passed=explanation.validation_result if explanation else None,
                metadata={"isWeakPattern": False},
            ))
        return matches

    def __repr__(self):
        return f"PresidioRecognizerAdapter(name={self.name!r}, wraps={type(self.recognizer).__name__})"
