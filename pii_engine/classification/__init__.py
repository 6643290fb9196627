"""Document type classification and the document-type rule engine."""

from .document_classifier import (
    ClassificationFeature,
    DocumentClassification,
    DocumentClassifier,
    DocumentType,
)
from .rule_engine import (
    DEFAULT_DOCUMENT_RULES,
    DEFAULT_POSITION_ADJUSTMENTS,
    DocumentTypeRules,
    RuleEngine,
    RuleResult,
    position_zone,
)

__all__ = [
    "ClassificationFeature",
    "DocumentClassification",
    "DocumentClassifier",
    "DocumentType",
    "DEFAULT_DOCUMENT_RULES",
    "DEFAULT_POSITION_ADJUSTMENTS",
    "DocumentTypeRules",
    "RuleEngine",
    "RuleResult",
    "position_zone",
]
