"""
Address component classification.

Finds the pieces of postal addresses (street, house number, postal code,
city, country) in Swiss and EU formats so that the linker can regroup them
into whole addresses. Component text is matched case-sensitively: street
and place names are expected to be capitalised as in a postal block.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import regex

from ..entities import Entity, EntitySource
from ..safe_regex import compile_pattern, safe_finditer, safe_search
from .swiss_postal import SwissPostalDatabase, get_postal_db

logger = logging.getLogger(__name__)

STREET = "STREET"
NUMBER = "NUMBER"
POSTAL_CODE = "POSTAL_CODE"
CITY = "CITY"
COUNTRY = "COUNTRY"

COMPONENT_TYPES = (STREET, NUMBER, POSTAL_CODE, CITY, COUNTRY)

# Case-sensitive matching throughout; (?i:...) marks the case-free parts
_FLAGS = 0

_UPPER = "A-ZÄÖÜÉÈÀÂÊÎÔÛÇ"
_LOWER = "a-zäöüßéèàâêîôûçëïœ"
_NAME_WORD = rf"[{_UPPER}][{_LOWER}'’-]*[{_LOWER}]"

_STREET_DE = compile_pattern(
    rf"(?<![\w-])(?:[{_UPPER}][{_LOWER}-]{{2,}}(?:strasse|straße|str\.|weg|gasse|platz|allee|ring|damm)"
    rf"|[{_UPPER}][{_LOWER}]+[ -](?:Strasse|Straße|Weg|Gasse|Platz|Allee|Ring|Damm))(?![\w])",
    _FLAGS,
)

_STREET_ROMANCE = compile_pattern(
    rf"(?<![\w-])(?:[Rr]ue|[Aa]venue|[Bb]oulevard|[Cc]hemin|[Pp]lace|[Rr]oute|[Aa]llée|[Ii]mpasse"
    rf"|[Qq]uai|[Vv]iale|[Vv]ia|[Pp]iazza|[Cc]orso|[Vv]icolo|[Ll]argo)"
    rf"[ \t]+(?:(?:de[ \t]+la|du|des|de|della|delle|del|dei|di)[ \t]+|de[ \t]+l['’]|d['’])?"
    rf"{_NAME_WORD}(?:[ \t]+(?:{_NAME_WORD}|de|du|des|la|le|di|del))*?(?=[ \t]*(?:\d|,|\n|$))",
    regex.MULTILINE,
)

_STREET_EN = compile_pattern(
    rf"(?<![\w-]){_NAME_WORD}(?:[ \t]+{_NAME_WORD})*[ \t]+(?:Street|Road|Lane|Drive|Court|Way)(?!\w)",
    _FLAGS,
)

_NUMBER_AFTER = compile_pattern(r"\A[ \t]*,?[ \t]*(\d{1,4}[a-zA-Z]?(?:[ \t]*[-–][ \t]*\d{1,4}[a-zA-Z]?)?)(?![\w.,]\d)(?!\w)", _FLAGS)
_NUMBER_BEFORE = compile_pattern(r"(?<![\w.,'])(\d{1,4}[a-zA-Z]?),?[ \t]+\Z", _FLAGS)

_SWISS_POSTAL = compile_pattern(
    rf"(?<![\w.,'/-])(?:(?P<prefix>CH)[-\s]?)?(?P<code>[1-9]\d{{3}})(?![\w.,'/-]\d)(?!\w)"
    rf"(?:(?=[ \t]+[{_UPPER}])|(?(prefix)|(?!)))",
    _FLAGS,
)

_EU_POSTAL = compile_pattern(
    rf"(?<![\w.,'/-])(?:(?P<prefix>[DFAI])-)?(?P<code>\d{{5}})(?![\w.,'/-]\d)(?!\w)"
    rf"(?:(?=[ \t]+[{_UPPER}])|(?(prefix)|(?!)))",
    _FLAGS,
)

_CITY_AFTER_POSTAL = compile_pattern(
    rf"\A[ \t]+((?:St\.[ \t]?)?[{_UPPER}][{_LOWER}]+(?:-[{_UPPER}{_LOWER}][{_LOWER}]+)*)", _FLAGS)


@dataclass
class AddressComponent:
    """
    One address component found in the text.

    Attributes:
        component_type: STREET, NUMBER, POSTAL_CODE, CITY or COUNTRY
        text: Matched text
        start: Start offset in the document
        end: End offset in the document (exclusive)
        confidence: Confidence of the component itself
        source: Where the component came from (classifier or an entity)
        canton: Canton code(s) for Swiss postal codes
        entity: Existing pipeline entity this component was taken from
    """
    component_type: str
    text: str
    start: int
    end: int
    confidence: float = 0.7
    source: EntitySource = EntitySource.RULE
    canton: Optional[str] = None
    entity: Optional[Entity] = field(default=None, repr=False)

    def overlaps(self, other: "AddressComponent") -> bool:
        return self.start < other.end and other.start < self.end

    def to_entity(self) -> Entity:
        """Entity view of the component (reuses the originating entity)."""
        if self.entity is not None:
            return self.entity.copy()
        metadata: Dict[str, Any] = {"componentType": self.component_type, "isAddressComponent": True}
        if self.canton:
            metadata["canton"] = self.canton
        return Entity(
            entity_type=self.component_type,
            text=self.text,
            start=self.start,
            end=self.end,
            confidence=self.confidence,
            source=self.source,
            recognizer="AddressClassifier",
            metadata=metadata,
        )

    @classmethod
    def from_entity(cls, entity: Entity) -> "AddressComponent":
        return cls(
            component_type=entity.entity_type,
            text=entity.text,
            start=entity.start,
            end=entity.end,
            confidence=entity.confidence,
            source=entity.source,
            canton=entity.metadata.get("canton"),
            entity=entity,
        )


class AddressClassifier:
    """
    Classify address components in text.

    Args:
        max_component_distance: Search window for house numbers around streets
        component_confidence: Confidence given to every component found
        postal_db: Postal code and place name reference data
    """

    def __init__(self, max_component_distance: int = 50, component_confidence: float = 0.7,
                 postal_db: Optional[SwissPostalDatabase] = None):
        self.max_component_distance = max_component_distance
        self.component_confidence = component_confidence
        self.postal_db = postal_db or get_postal_db()

    def classify_components(self, text: str) -> List[AddressComponent]:
        """
        Find all address components, sorted by position.

        Streets are found first, then postal codes, house numbers, cities and
        countries; a later component never overlaps an earlier one.
        """
        components: List[AddressComponent] = []
        self._add_all(components, self._find_streets(text))
        self._add_all(components, self._find_postal_codes(text))
        streets = [c for c in components if c.component_type == STREET]
        self._add_all(components, self._find_numbers(text, streets, components))
        postals = [c for c in components if c.component_type == POSTAL_CODE]
        self._add_all(components, self._find_cities(text, postals))
        self._add_all(components, self._find_countries(text))
        components.sort(key=lambda c: (c.start, c.end))
        logger.debug("Address classifier found %d components", len(components))
        return components

    def _component(self, component_type: str, text: str, start: int, end: int,
                   canton: Optional[str] = None) -> AddressComponent:
        return AddressComponent(component_type, text[start:end], start, end,
                                confidence=self.component_confidence, canton=canton)

    @staticmethod
    def _add_all(components: List[AddressComponent], found: List[AddressComponent]) -> None:
        for candidate in found:
            if not any(candidate.overlaps(c) for c in components):
                components.append(candidate)

    # ------------------------------------------------------------------
    # Component finders
    # ------------------------------------------------------------------

    def _find_streets(self, text: str) -> List[AddressComponent]:
        found: List[AddressComponent] = []
        for pattern in (_STREET_DE, _STREET_ROMANCE, _STREET_EN):
            for match in safe_finditer(pattern, text):
                if match.end() - match.start() < 5:
                    continue
                candidate = self._component(STREET, text, match.start(), match.end())
                if not any(candidate.overlaps(c) for c in found):
                    found.append(candidate)
        return found

    def _find_numbers(self, text: str, streets: List[AddressComponent],
                      taken: List[AddressComponent]) -> List[AddressComponent]:
        """House numbers directly after a street, or before a French street."""
        found: List[AddressComponent] = []
        for street in streets:
            window_end = min(len(text), street.end + self.max_component_distance)
            after = safe_search(_NUMBER_AFTER, text[street.end:window_end])
            if after:
                number = self._component(NUMBER, text, street.end + after.start(1),
                                         street.end + after.end(1))
                # "rue de la Gare, 1003 Lausanne": that number is the postal code
                if not any(number.overlaps(c) for c in taken):
                    found.append(number)
                    continue
            window_start = max(0, street.start - 8)
            before = safe_search(_NUMBER_BEFORE, text[window_start:street.start])
            if before:
                start = window_start + before.start(1)
                found.append(self._component(NUMBER, text, start, window_start + before.end(1)))
        return found

    def _find_postal_codes(self, text: str) -> List[AddressComponent]:
        found: List[AddressComponent] = []
        for match in safe_finditer(_SWISS_POSTAL, text):
            canton = self.postal_db.get_canton(match.group("code"))
            if canton is None:
                continue
            found.append(self._component(POSTAL_CODE, text, match.start(), match.end(), canton))
        for match in safe_finditer(_EU_POSTAL, text):
            candidate = self._component(POSTAL_CODE, text, match.start(), match.end())
            if not any(candidate.overlaps(c) for c in found):
                found.append(candidate)
        return found

    def _find_cities(self, text: str, postals: List[AddressComponent]) -> List[AddressComponent]:
        found: List[AddressComponent] = []
        for postal in postals:
            match = safe_search(_CITY_AFTER_POSTAL, text[postal.end:postal.end + 50])
            if match:
                start = postal.end + match.start(1)
                end = postal.end + match.end(1)
                # Prefer the full known name ("St. Gallen", "Biel/Bienne")
                known = safe_search(self.postal_db.city_pattern, text[start:start + 30])
                if known and known.start() == 0:
                    end = max(end, start + known.end())
                found.append(self._component(CITY, text, start, end))

        for match in safe_finditer(self.postal_db.city_pattern, text):
            if not match.group()[0].isupper():
                continue
            candidate = self._component(CITY, text, match.start(), match.end())
            if not any(candidate.overlaps(c) for c in found):
                found.append(candidate)
        return found

    def _find_countries(self, text: str) -> List[AddressComponent]:
        found: List[AddressComponent] = []
        for match in safe_finditer(self.postal_db.country_pattern, text):
            if match.group()[0].isupper():
                found.append(self._component(COUNTRY, text, match.start(), match.end()))
        return found
