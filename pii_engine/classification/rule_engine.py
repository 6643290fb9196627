"""
Document-type rules: confidence boosts, suppression, required types and
position-zone adjustments.

Both tables are plain data and can be replaced per RuleEngine instance.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..entities import Entity, clamp_confidence
from .document_classifier import DocumentClassification, DocumentType

logger = logging.getLogger(__name__)

HEADER_RATIO = 0.2
FOOTER_RATIO = 0.8

# Address subtypes fall back to the ADDRESS rules
_ADDRESS_SUBTYPES = ("SWISS_ADDRESS", "EU_ADDRESS")


@dataclass
class DocumentTypeRules:
    """
    Attributes:
        required_types: Entity types such a document is expected to contain
        boosted_types: Entity types whose confidence is raised
        suppressed_types: Entity types always sent to review, never boosted
        confidence_boosts: Delta per boosted type (default delta otherwise)
    """
    required_types: List[str] = field(default_factory=list)
    boosted_types: List[str] = field(default_factory=list)
    suppressed_types: List[str] = field(default_factory=list)
    confidence_boosts: Dict[str, float] = field(default_factory=dict)


def _boosts(**deltas: float) -> DocumentTypeRules:
    return DocumentTypeRules(boosted_types=list(deltas), confidence_boosts=dict(deltas))


DEFAULT_DOCUMENT_RULES: Dict[DocumentType, DocumentTypeRules] = {
    DocumentType.INVOICE: DocumentTypeRules(
        required_types=["AMOUNT", "DATE"],
        boosted_types=["AMOUNT", "IBAN", "VAT_NUMBER", "PAYMENT_REF"],
        suppressed_types=["LICENSE_PLATE"],
        confidence_boosts={"AMOUNT": 0.15, "IBAN": 0.2, "VAT_NUMBER": 0.15, "PAYMENT_REF": 0.15},
    ),
    DocumentType.LETTER: _boosts(PERSON=0.1, ADDRESS=0.1),
    DocumentType.CONTRACT: DocumentTypeRules(
        required_types=["DATE"],
        boosted_types=["PERSON", "ORGANIZATION", "DATE"],
        confidence_boosts={"PERSON": 0.15, "ORGANIZATION": 0.15, "DATE": 0.1},
    ),
    DocumentType.MEDICAL: _boosts(SWISS_AVS=0.25, PERSON=0.15),
    DocumentType.LEGAL: _boosts(PERSON=0.15, ORGANIZATION=0.15),
    DocumentType.CORRESPONDENCE: _boosts(EMAIL=0.1, PHONE=0.1),
    DocumentType.FORM: _boosts(PERSON=0.1, DATE=0.1),
    DocumentType.REPORT: _boosts(PERSON=0.1, ORGANIZATION=0.1),
    DocumentType.UNKNOWN: DocumentTypeRules(),
}

# document type -> entity type -> zone -> delta
DEFAULT_POSITION_ADJUSTMENTS: Dict[DocumentType, Dict[str, Dict[str, float]]] = {
    DocumentType.INVOICE: {
        "INVOICE_NUMBER": {"header": 0.1},
        "AMOUNT": {"body": 0.05},
        "IBAN": {"footer": 0.1},
        "PAYMENT_REF": {"footer": 0.1},
    },
    DocumentType.LETTER: {
        "SENDER": {"header": 0.15},
        "SIGNATURE": {"footer": 0.15},
        "SALUTATION_NAME": {"header": 0.1, "body": 0.1},
    },
    DocumentType.CONTRACT: {
        "PARTY": {"header": 0.1},
        "SIGNATURE": {"footer": 0.15},
    },
    DocumentType.REPORT: {
        "AUTHOR": {"header": 0.15},
    },
}

# Bonus for entities found in "Label: value" fields
DEFAULT_LABELED_FIELD_BONUS: Dict[DocumentType, float] = {
    DocumentType.FORM: 0.1,
}


def position_zone(start: int, text_length: int):
    """
    Returns:
        (zone, ratio) where zone is header, body or footer
    """
    ratio = start / text_length if text_length else 0.0
    if ratio < HEADER_RATIO:
        return "header", ratio
    if ratio > FOOTER_RATIO:
        return "footer", ratio
    return "body", ratio


@dataclass
class RuleResult:
    """Outcome of RuleEngine.apply_rules()."""
    entities: List[Entity]
    boosted: int = 0
    suppressed: int = 0
    missing_required_types: List[str] = field(default_factory=list)


class RuleEngine:
    """
    Apply document-type rules to entities.

    Args:
        rules: Rule table per document type (defaults to DEFAULT_DOCUMENT_RULES)
        position_adjustments: Zone delta table (defaults to DEFAULT_POSITION_ADJUSTMENTS)
        boosted_default_delta: Delta for boosted types without an explicit one
        labeled_field_bonus: Bonus per document type for labeled-field entities
    """

    def __init__(self, rules: Optional[Dict[DocumentType, DocumentTypeRules]] = None,
                 position_adjustments: Optional[Dict[DocumentType, Dict[str, Dict[str, float]]]] = None,
                 boosted_default_delta: float = 0.05,
                 labeled_field_bonus: Optional[Dict[DocumentType, float]] = None):
        self.rules = dict(DEFAULT_DOCUMENT_RULES)
        if rules:
            self.rules.update(rules)
        self.position_adjustments = position_adjustments if position_adjustments is not None \
            else DEFAULT_POSITION_ADJUSTMENTS
        self.boosted_default_delta = boosted_default_delta
        self.labeled_field_bonus = labeled_field_bonus if labeled_field_bonus is not None \
            else DEFAULT_LABELED_FIELD_BONUS

    def get_rules(self, doc_type: DocumentType) -> DocumentTypeRules:
        return self.rules.get(doc_type) or self.rules.get(DocumentType.UNKNOWN) or DocumentTypeRules()

    @staticmethod
    def _resolve_type(entity_type: str, known: List[str]) -> str:
        if entity_type not in known and entity_type in _ADDRESS_SUBTYPES:
            return "ADDRESS"
        return entity_type

    def apply_rules(self, entities: List[Entity],
                    classification: DocumentClassification) -> RuleResult:
        """
        Boost, suppress and check required types. Entities are updated in place;
        an entity is boosted at most once.
        """
        rules = self.get_rules(classification.type)
        result = RuleResult(entities)

        for entity in entities:
            suppressed_type = self._resolve_type(entity.entity_type, rules.suppressed_types)
            if suppressed_type in rules.suppressed_types:
                entity.flagged_for_review = True
                entity.metadata["reviewRequired"] = True
                entity.metadata["suppressedBy"] = classification.type.value
                result.suppressed += 1
                continue

            boosted_type = self._resolve_type(entity.entity_type, rules.boosted_types)
            if boosted_type not in rules.boosted_types or "typeBoostApplied" in entity.metadata:
                continue
            delta = rules.confidence_boosts.get(boosted_type, self.boosted_default_delta)
            entity.confidence = clamp_confidence(entity.confidence + delta)
            entity.metadata["typeBoostApplied"] = delta
            result.boosted += 1

        present = {self._resolve_type(e.entity_type, rules.required_types) for e in entities}
        result.missing_required_types = [t for t in rules.required_types if t not in present]
        if result.missing_required_types:
            logger.debug("%s document lacks expected types: %s",
                         classification.type.value, result.missing_required_types)
        return result

    def apply_position_adjustments(self, entities: List[Entity], text: str,
                                   classification: DocumentClassification) -> List[Entity]:
        """Record position zone and apply the zone deltas for the document type."""
        table = self.position_adjustments.get(classification.type, {})
        labeled_bonus = self.labeled_field_bonus.get(classification.type, 0.0)
        length = len(text)

        for entity in entities:
            zone, ratio = position_zone(entity.start, length)
            entity.metadata["positionZone"] = zone
            entity.metadata["positionRatio"] = round(ratio, 2)
            entity.metadata["documentType"] = classification.type.value
            entity.metadata["documentConfidence"] = round(classification.confidence, 2)
            if "positionAdjustment" in entity.metadata:
                continue

            entity_type = self._resolve_type(entity.entity_type, list(table))
            delta = table.get(entity_type, {}).get(zone, 0.0)
            if entity.metadata.get("isLabeledField"):
                delta += labeled_bonus
            if delta:
                entity.confidence = clamp_confidence(entity.confidence + delta)
                entity.metadata["positionAdjustment"] = delta
        return entities
