"""
Address linking: proximity grouping, pattern classification and scoring.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from ..detection_config import DEFAULT_ADDRESS_SETTINGS
from .classifier import CITY, COUNTRY, NUMBER, POSTAL_CODE, STREET, AddressComponent

logger = logging.getLogger(__name__)


class AddressPattern(str, Enum):
    SWISS = "SWISS"              # street [number], postal city
    EU = "EU"                    # street, postal, city and country
    ALTERNATIVE = "ALTERNATIVE"  # postal city before the street
    PARTIAL = "PARTIAL"          # some but not all of the above
    NONE = "NONE"


# Base confidence per pattern
PATTERN_CONFIDENCE = {
    AddressPattern.SWISS: 0.85,
    AddressPattern.EU: 0.85,
    AddressPattern.ALTERNATIVE: 0.75,
    AddressPattern.PARTIAL: 0.5,
}

EXTRA_COMPONENT_BONUS = 0.02
STREET_NUMBER_BONUS = 0.05
POSTAL_CITY_BONUS = 0.05

# A second one of these starts a new address
_UNIQUE_TYPES = frozenset({STREET, POSTAL_CODE, CITY})


@dataclass
class LinkedAddress:
    """
    A group of components recognised as one address.

    Attributes:
        components: Components in document order
        pattern: Matched address layout
        start: Start of the first component
        end: End of the last component
        text: Document text from start to end
        confidence: Pattern confidence plus bonuses, capped at 1.0
        scoring_factors: One entry per contribution to the confidence
    """
    components: List[AddressComponent]
    pattern: AddressPattern
    start: int
    end: int
    text: str
    confidence: float
    scoring_factors: List[Dict[str, Any]] = field(default_factory=list)

    def component_of(self, component_type: str) -> Optional[AddressComponent]:
        return next((c for c in self.components if c.component_type == component_type), None)

    @property
    def breakdown(self) -> Dict[str, Optional[str]]:
        """Text per component kind; None when the address has no such part."""
        result = {}
        for key, component_type in (("street", STREET), ("number", NUMBER), ("postal", POSTAL_CODE),
                                    ("city", CITY), ("country", COUNTRY)):
            component = self.component_of(component_type)
            result[key] = component.text if component else None
        return result

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "start": self.start,
            "end": self.end,
            "pattern": self.pattern.value,
            "confidence": round(self.confidence, 4),
            "breakdown": self.breakdown,
            "scoringFactors": list(self.scoring_factors),
        }


class AddressLinker:
    """
    Group address components that sit close together.

    Args:
        max_distance: Largest gap between neighbouring components
        multiline_distance: Largest gap when the gap crosses a line break
        min_components: Smallest group that can form an address
        max_components: Largest group; further components start a new one
    """

    def __init__(self, max_distance: int = 50, multiline_distance: int = 100,
                 min_components: int = 2, max_components: int = 6):
        self.max_distance = max_distance
        self.multiline_distance = multiline_distance
        self.min_components = min_components
        self.max_components = max_components

    @classmethod
    def from_settings(cls, settings: Optional[Dict[str, Any]] = None) -> "AddressLinker":
        """Build from the "address" config section."""
        merged = {**DEFAULT_ADDRESS_SETTINGS, **(settings or {})}
        return cls(
            max_distance=merged["max_component_distance"],
            multiline_distance=merged["max_component_distance_multiline"],
            min_components=merged["min_components"],
            max_components=merged["max_components"],
        )

    def link(self, components: List[AddressComponent], text: str) -> List[LinkedAddress]:
        """
        Group components and keep the groups that look like addresses.

        Returns:
            Linked addresses in document order (pattern NONE is dropped)
        """
        linked = []
        for group in self.group_by_proximity(components, text):
            pattern = self.detect_pattern(group)
            if pattern == AddressPattern.NONE:
                continue
            confidence, factors = self.score(pattern, group)
            start, end = group[0].start, group[-1].end
            linked.append(LinkedAddress(
                components=group,
                pattern=pattern,
                start=start,
                end=end,
                text=text[start:end],
                confidence=confidence,
                scoring_factors=factors,
            ))
        logger.debug("Address linker: %d components -> %d addresses", len(components), len(linked))
        return linked

    def group_by_proximity(self, components: List[AddressComponent],
                           text: str) -> List[List[AddressComponent]]:
        ordered = sorted(components, key=lambda c: (c.start, c.end))
        groups: List[List[AddressComponent]] = []
        current: List[AddressComponent] = []

        for component in ordered:
            if not current:
                current = [component]
                continue
            previous = current[-1]
            gap = component.start - previous.end
            if gap < 0:
                # Overlapping duplicate of the previous component
                continue
            between = text[previous.end:component.start]
            threshold = self.multiline_distance if "\n" in between or "\r" in between \
                else self.max_distance
            seen_types = {c.component_type for c in current}
            starts_new = (
                gap > threshold
                or len(current) >= self.max_components
                or (component.component_type in _UNIQUE_TYPES and component.component_type in seen_types)
            )
            if starts_new:
                if len(current) >= self.min_components:
                    groups.append(current)
                current = [component]
            else:
                current.append(component)

        if len(current) >= self.min_components:
            groups.append(current)
        return groups

    @staticmethod
    def detect_pattern(components: List[AddressComponent]) -> AddressPattern:
        types = [c.component_type for c in components]
        has_street = STREET in types
        has_number = NUMBER in types
        has_postal = POSTAL_CODE in types
        has_city = CITY in types
        has_country = COUNTRY in types

        if has_street and has_postal and has_city:
            if has_country:
                return AddressPattern.EU
            if types.index(STREET) < types.index(POSTAL_CODE):
                return AddressPattern.SWISS
            return AddressPattern.ALTERNATIVE
        if (has_street or has_number) and (has_postal or has_city):
            return AddressPattern.PARTIAL
        if has_postal and has_city:
            return AddressPattern.PARTIAL
        return AddressPattern.NONE

    def score(self, pattern: AddressPattern, components: List[AddressComponent]):
        """
        Confidence for a linked group.

        Returns:
            (confidence, scoring_factors)
        """
        types = {c.component_type for c in components}
        base = PATTERN_CONFIDENCE.get(pattern, 0.0)
        factors = [{"name": "pattern", "value": base, "description": f"{pattern.value} layout"}]
        confidence = base

        extra = len(components) - self.min_components
        if extra > 0:
            bonus = extra * EXTRA_COMPONENT_BONUS
            confidence += bonus
            factors.append({"name": "extraComponents", "value": round(bonus, 4),
                            "description": f"{extra} component(s) beyond the minimum"})
        if STREET in types and NUMBER in types:
            confidence += STREET_NUMBER_BONUS
            factors.append({"name": "streetNumber", "value": STREET_NUMBER_BONUS,
                            "description": "street with house number"})
        if POSTAL_CODE in types and CITY in types:
            confidence += POSTAL_CITY_BONUS
            factors.append({"name": "postalCity", "value": POSTAL_CITY_BONUS,
                            "description": "postal code with city"})

        return min(confidence, 1.0), factors
