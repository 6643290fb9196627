"""
Address relationship pass: regroup address fragments into whole addresses.

Context metadata:
    reads   frontmatterEnd
    writes  addressFragmentsRejected, addressGroupsRejected, addressGroupsCreated
"""

import logging
from typing import Any, Dict, List, Optional

from ..address.classifier import POSTAL_CODE, AddressClassifier, AddressComponent
from ..address.linker import AddressLinker, AddressPattern, LinkedAddress
from ..detection_config import DEFAULT_ADDRESS_SETTINGS
from ..entities import ADDRESS_COMPONENT_TYPES, ADDRESS_TYPES, Entity, EntitySource, PipelineContext
from .detection_pipeline import DetectionPass

logger = logging.getLogger(__name__)

# Types an address group replaces when they overlap it
REPLACEABLE_TYPES = ADDRESS_TYPES | ADDRESS_COMPONENT_TYPES

# Whole-address types a recognizer may emit directly
FRAGMENT_ADDRESS_TYPES = frozenset({"ADDRESS", "SWISS_ADDRESS", "EU_ADDRESS"})


def address_type_for(linked: LinkedAddress) -> str:
    """SWISS_ADDRESS, EU_ADDRESS or ADDRESS, from the postal code and layout."""
    postal = linked.component_of(POSTAL_CODE)
    digits = "".join(ch for ch in postal.text if ch.isdigit()) if postal else ""
    if postal and ("CH" in postal.text.upper() or len(digits) == 4):
        return "SWISS_ADDRESS"
    if linked.pattern == AddressPattern.SWISS:
        return "SWISS_ADDRESS"
    if linked.pattern == AddressPattern.EU or linked.breakdown["country"] or len(digits) == 5:
        return "EU_ADDRESS"
    return "ADDRESS"


class AddressRelationshipPass(DetectionPass):
    """
    Group street, number, postal code, city and country into one entity.

    Components come from the address classifier plus any component-typed
    entities already in the list (weak pattern matches excluded). Fragments
    inside a group, and address-typed entities overlapping it, are removed.

    Args:
        settings: Overrides for the "address" config section
        classifier: Component classifier
        linker: Component linker
    """

    name = "AddressRelationship"
    order = 40

    def __init__(self, settings: Optional[Dict[str, Any]] = None,
                 classifier: Optional[AddressClassifier] = None,
                 linker: Optional[AddressLinker] = None):
        self.settings = {**DEFAULT_ADDRESS_SETTINGS, **(settings or {})}
        self.classifier = classifier or AddressClassifier(
            max_component_distance=self.settings["max_component_distance"],
            component_confidence=self.settings["component_confidence"],
        )
        self.linker = linker or AddressLinker.from_settings(self.settings)
        self.enabled = True

    async def execute(self, text: str, entities: List[Entity],
                      context: PipelineContext) -> List[Entity]:
        frontmatter_end = context.metadata.get("frontmatterEnd") or 0
        if frontmatter_end:
            entities = [e for e in entities if e.start >= frontmatter_end]
        entities = self._drop_overgrown_fragments(entities, context)

        components = self._collect_components(text, entities, frontmatter_end)
        linked = self.linker.link(components, text)

        groups: List[Entity] = []
        rejected = 0
        for address in linked:
            reason = self._rejection_reason(address.text)
            if reason:
                rejected += 1
                logger.debug("Rejected address group at [%d, %d): %s",
                             address.start, address.end, reason)
                continue
            groups.append(self._to_entity(address))

        context.metadata["addressGroupsRejected"] = \
            context.metadata.get("addressGroupsRejected", 0) + rejected
        context.metadata["addressGroupsCreated"] = len(groups)
        if not groups:
            return entities

        kept = [e for e in entities if not self._is_replaced(e, groups)]
        return kept + groups

    # ------------------------------------------------------------------
    # Components
    # ------------------------------------------------------------------

    def _collect_components(self, text: str, entities: List[Entity],
                            frontmatter_end: int) -> List[AddressComponent]:
        components = [c for c in self.classifier.classify_components(text)
                      if c.start >= frontmatter_end]
        for entity in entities:
            if entity.entity_type not in ADDRESS_COMPONENT_TYPES:
                continue
            if entity.metadata.get("isWeakPattern"):
                continue
            candidate = AddressComponent.from_entity(entity)
            clash = next((c for c in components if c.overlaps(candidate)), None)
            if clash is None:
                components.append(candidate)
            elif clash.entity is None and clash.component_type == candidate.component_type \
                    and clash.start == candidate.start and clash.end == candidate.end:
                # Same component seen by both: keep the entity (id, source)
                components[components.index(clash)] = candidate
        components.sort(key=lambda c: (c.start, c.end))
        return components

    # ------------------------------------------------------------------
    # Groups
    # ------------------------------------------------------------------

    def _rejection_reason(self, span_text: str,
                          max_paragraph_breaks: Optional[int] = None) -> Optional[str]:
        if max_paragraph_breaks is None:
            max_paragraph_breaks = self.settings["max_paragraph_breaks"]
        if len(span_text) > self.settings["max_span_chars"]:
            return "span too long"
        if self.settings["reject_heading_marker"] and "#" in span_text:
            return "contains a heading marker"
        if span_text.count("\n\n") > max_paragraph_breaks:
            return "spans several paragraphs"
        return None

    def _drop_overgrown_fragments(self, entities: List[Entity],
                                  context: PipelineContext) -> List[Entity]:
        """Remove recognizer-made address spans that fail the grouping guard."""
        kept: List[Entity] = []
        rejected = 0
        for entity in entities:
            if entity.entity_type in FRAGMENT_ADDRESS_TYPES \
                    and entity.source != EntitySource.MANUAL \
                    and not entity.metadata.get("isGroupedAddress"):
                # A single fragment never legitimately crosses a blank line
                reason = self._rejection_reason(entity.text, max_paragraph_breaks=0)
                if reason:
                    rejected += 1
                    logger.debug("Dropped %s at [%d, %d): %s", entity.entity_type,
                                 entity.start, entity.end, reason)
                    continue
            kept.append(entity)
        context.metadata["addressFragmentsRejected"] = \
            context.metadata.get("addressFragmentsRejected", 0) + rejected
        return kept

    def _to_entity(self, address: LinkedAddress) -> Entity:
        component_entities = [c.to_entity() for c in address.components]
        sources = {c.source for c in address.components}
        source = next(iter(sources)) if len(sources) == 1 else EntitySource.HYBRID
        confidence = address.confidence
        return Entity(
            entity_type=address_type_for(address),
            text=address.text,
            start=address.start,
            end=address.end,
            confidence=confidence,
            source=source,
            recognizer="AddressRelationship",
            pattern_name=address.pattern.value,
            components=component_entities,
            metadata={
                "isGroupedAddress": True,
                "patternMatched": address.pattern.value,
                "componentCount": len(component_entities),
                "scoringFactors": address.scoring_factors,
                "breakdown": address.breakdown,
                "autoAnonymize": confidence >= self.settings["auto_anonymize_threshold"],
            },
        )

    @staticmethod
    def _is_replaced(entity: Entity, groups: List[Entity]) -> bool:
        if entity.source == EntitySource.MANUAL:
            return False
        for group in groups:
            if group.contains(entity):
                return True
            if entity.entity_type in REPLACEABLE_TYPES and group.overlaps(entity):
                return True
        return False
