"""
Recognizer registry.

Holds every recognizer, filters them by country, language and entity type,
runs them in a deterministic order with per-recognizer failure isolation,
and applies the global confidence adjustments.
"""

import logging
import threading
import time
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, List, Optional

from ..entities import Entity, clamp_confidence
from ..exceptions import DuplicateRecognizerError, EmptyRegistryError, RecognizerFailure

logger = logging.getLogger(__name__)


@dataclass
class RegistryConfig:
    """
    Global registry settings.

    Attributes:
        low_confidence_multiplier: Applied to weak patterns and low-score types
        low_score_entity_names: Entity types that always get the multiplier
        enabled_countries: Allow-list of countries (empty = all)
        enabled_languages: Allow-list of languages (empty = all)
        enabled_recognizers: Allow-list of recognizer names (empty = all)
    """
    low_confidence_multiplier: float = 0.4
    low_score_entity_names: List[str] = field(default_factory=list)
    enabled_countries: List[str] = field(default_factory=list)
    enabled_languages: List[str] = field(default_factory=list)
    enabled_recognizers: List[str] = field(default_factory=list)

    @classmethod
    def from_settings(cls, settings: Dict[str, Any]) -> "RegistryConfig":
        """Build from the "registry" section of DetectionConfig."""
        known = {k: v for k, v in settings.items() if k in cls.__dataclass_fields__}
        return cls(**known)


@dataclass
class RecognizerFilter:
    country: Optional[str] = None
    language: Optional[str] = None
    entity_type: Optional[str] = None


@dataclass
class RecognizerError:
    name: str
    error: str

    def to_dict(self) -> Dict[str, str]:
        return {"name": self.name, "error": self.error}


@dataclass
class AnalysisResult:
    """Result of RecognizerRegistry.analyze()."""
    matches: List[Entity]
    recognizers_used: List[str]
    recognizer_errors: List[RecognizerError]
    analysis_time_ms: float


def _sort_key(recognizer) -> tuple:
    # priority desc, specificity desc, name asc
    return (-int(recognizer.priority), -int(recognizer.specificity), recognizer.name)


class RecognizerRegistry:
    """
    Registry of recognizers.

    Mostly read after startup. Registration and configuration changes take a
    lock; analyze() takes a snapshot of both and runs without it.
    """

    def __init__(self, config: Optional[RegistryConfig] = None):
        self._recognizers: Dict[str, Any] = {}
        self._config = config or RegistryConfig()
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, recognizer) -> None:
        """
        Register a recognizer.

        Raises:
            DuplicateRecognizerError: If the name is already registered
        """
        with self._lock:
            if recognizer.name in self._recognizers:
                raise DuplicateRecognizerError(recognizer.name)
            self._recognizers[recognizer.name] = recognizer
        logger.info("Registered recognizer %s (priority %s)", recognizer.name, recognizer.priority)

    def register_all(self, recognizers: Iterable) -> None:
        for recognizer in recognizers:
            self.register(recognizer)

    def unregister(self, name: str) -> bool:
        with self._lock:
            return self._recognizers.pop(name, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._recognizers.clear()

    def is_empty(self) -> bool:
        return not self._recognizers

    def __len__(self) -> int:
        return len(self._recognizers)

    def __contains__(self, name: str) -> bool:
        return name in self._recognizers

    def registered_names(self) -> List[str]:
        return sorted(self._recognizers)

    def ensure_initialized(self) -> None:
        """
        Raises:
            EmptyRegistryError: If no recognizer has been registered
        """
        if not self._recognizers:
            raise EmptyRegistryError()

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def get_config(self) -> RegistryConfig:
        with self._lock:
            return replace(self._config)

    def configure(self, **changes) -> RegistryConfig:
        """Update global settings (e.g. configure(enabled_countries=["CH"]))."""
        with self._lock:
            unknown = set(changes) - set(RegistryConfig.__dataclass_fields__)
            if unknown:
                raise ValueError(f"Unknown registry settings: {sorted(unknown)}")
            self._config = replace(self._config, **changes)
            return replace(self._config)

    def reset_config(self) -> None:
        with self._lock:
            self._config = RegistryConfig()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _snapshot(self):
        with self._lock:
            return list(self._recognizers.values()), replace(self._config)

    def get(self, name: str):
        self.ensure_initialized()
        return self._recognizers.get(name)

    def get_all(self) -> List:
        self.ensure_initialized()
        recognizers, _ = self._snapshot()
        return sorted(recognizers, key=_sort_key)

    def get_by_country(self, country: str) -> List:
        return self.get_filtered(RecognizerFilter(country=country))

    def get_by_language(self, language: str) -> List:
        return self.get_filtered(RecognizerFilter(language=language))

    def get_by_entity_type(self, entity_type: str) -> List:
        return self.get_filtered(RecognizerFilter(entity_type=entity_type))

    def get_filtered(self, flt: Optional[RecognizerFilter] = None) -> List:
        """
        Recognizers matching the filter and the global allow-lists, sorted by
        priority desc, specificity desc, then name.
        """
        self.ensure_initialized()
        recognizers, config = self._snapshot()
        return self._filter(recognizers, config, flt or RecognizerFilter())

    @staticmethod
    def _filter(recognizers: List, config: RegistryConfig, flt: RecognizerFilter) -> List:
        enabled_countries = {c.upper() for c in config.enabled_countries}
        enabled_languages = {lang.lower() for lang in config.enabled_languages}
        enabled_names = set(config.enabled_recognizers)

        selected = []
        for r in recognizers:
            if flt.country and not r.supports_country(flt.country):
                continue
            if flt.language and not r.supports_language(flt.language):
                continue
            if flt.entity_type and flt.entity_type not in r.entity_types:
                continue
            if enabled_names and r.name not in enabled_names:
                continue
            if enabled_countries and not any(r.supports_country(c) for c in enabled_countries):
                continue
            if enabled_languages and not any(r.supports_language(lang) for lang in enabled_languages):
                continue
            selected.append(r)
        return sorted(selected, key=_sort_key)

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    def analyze(self, text: str, flt: Optional[RecognizerFilter] = None) -> AnalysisResult:
        """
        Run every applicable recognizer over text.

        A recognizer that raises (or returns an Exception) is recorded in
        recognizer_errors and the remaining recognizers still run.
        """
        self.ensure_initialized()
        start = time.perf_counter()
        recognizers, config = self._snapshot()
        flt = flt or RecognizerFilter()
        low_score_types = set(config.low_score_entity_names)

        matches: List[Entity] = []
        used: List[str] = []
        errors: List[RecognizerError] = []

        for recognizer in self._filter(recognizers, config, flt):
            try:
                found = recognizer.analyze(text, flt.language)
                if isinstance(found, Exception):
                    raise found
            except Exception as e:
                failure = e if isinstance(e, RecognizerFailure) else RecognizerFailure(
                    recognizer.name, str(e) or type(e).__name__, e)
                logger.warning("Recognizer %s failed: %s", recognizer.name, failure)
                errors.append(RecognizerError(recognizer.name, str(failure)))
                continue

            used.append(recognizer.name)
            for match in found:
                if flt.entity_type and match.entity_type != flt.entity_type:
                    continue
                confidence = match.confidence
                if match.metadata.get("isWeakPattern"):
                    confidence *= config.low_confidence_multiplier
                if match.entity_type in low_score_types:
                    confidence *= config.low_confidence_multiplier
                match.confidence = clamp_confidence(confidence)
                matches.append(match)

        elapsed = (time.perf_counter() - start) * 1000
        logger.debug("Registry analysis: %d matches from %d recognizers in %.1fms",
                     len(matches), len(used), elapsed)
        return AnalysisResult(matches, used, errors, elapsed)


# =============================================================================
# PROCESS-WIDE REGISTRY
# =============================================================================

_registry: Optional[RecognizerRegistry] = None
_registry_lock = threading.Lock()


def get_registry() -> RecognizerRegistry:
    """Get the process-wide registry (empty until init_registry() is called)."""
    global _registry
    with _registry_lock:
        if _registry is None:
            _registry = RecognizerRegistry()
        return _registry


def init_registry(recognizers: Optional[Iterable] = None, include_defaults: bool = True,
                  config: Optional[RegistryConfig] = None) -> RecognizerRegistry:
    """
    Create and populate the process-wide registry.

    Args:
        recognizers: Extra recognizers to register
        include_defaults: Register the built-in recognizers and packaged YAML
        config: Registry settings
    """
    global _registry
    if include_defaults:
        from .builtin import create_default_registry
        registry = create_default_registry(registry_config=config)
    else:
        registry = RecognizerRegistry(config)
    if recognizers:
        registry.register_all(recognizers)
    with _registry_lock:
        _registry = registry
    return registry


def reset_registry() -> None:
    global _registry
    with _registry_lock:
        _registry = None
