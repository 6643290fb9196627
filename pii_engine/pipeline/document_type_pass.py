"""
Document type passes.

DocumentTypePass (order 5) classifies the document before any detection so
that later passes can read the type. Entities only exist after the
high-recall pass, so DocumentRulesPass (order 50) applies the rule table and
position adjustments to them.

Context metadata:
    writes  documentType, documentClassification, documentLanguage (DocumentType)
    reads   documentClassification (DocumentRules)
    writes  missingRequiredTypes, typeBoostedCount (DocumentRules)
"""

import logging
from typing import Any, Dict, List, Optional

from ..classification.document_classifier import DocumentClassification, DocumentClassifier
from ..classification.rule_engine import RuleEngine
from ..detection_config import DEFAULT_DOCUMENT_SETTINGS
from ..entities import Entity, PipelineContext
from .detection_pipeline import DetectionPass

logger = logging.getLogger(__name__)


def _store_classification(context: PipelineContext, classification: DocumentClassification) -> None:
    context.metadata["documentType"] = classification.type.value
    context.metadata["documentClassification"] = classification
    context.metadata["documentLanguage"] = classification.language


class _DocumentPassBase(DetectionPass):
    def __init__(self, settings: Optional[Dict[str, Any]] = None,
                 classifier: Optional[DocumentClassifier] = None,
                 rule_engine: Optional[RuleEngine] = None):
        self.settings = {**DEFAULT_DOCUMENT_SETTINGS, **(settings or {})}
        self.classifier = classifier or DocumentClassifier(
            min_confidence=self.settings["classifier_min_confidence"])
        self.rule_engine = rule_engine or RuleEngine()
        self.enabled = True

    def _rules_apply(self, classification: DocumentClassification) -> bool:
        return self.settings["apply_confidence_boosts"] and \
            classification.confidence >= self.settings["min_classification_confidence"]

    def _apply(self, text: str, entities: List[Entity], context: PipelineContext,
               classification: DocumentClassification) -> List[Entity]:
        if not entities or not self._rules_apply(classification):
            return entities
        result = self.rule_engine.apply_rules(entities, classification)
        self.rule_engine.apply_position_adjustments(result.entities, text, classification)
        context.metadata["missingRequiredTypes"] = result.missing_required_types
        context.metadata["typeBoostedCount"] = \
            context.metadata.get("typeBoostedCount", 0) + result.boosted
        return result.entities


class DocumentTypePass(_DocumentPassBase):
    """Classify the document and store the result in the context."""

    name = "DocumentType"
    order = 5

    async def execute(self, text: str, entities: List[Entity],
                      context: PipelineContext) -> List[Entity]:
        classification = self.classifier.classify(text)
        _store_classification(context, classification)
        logger.debug("Document %s classified as %s (%.2f)", context.document_id,
                     classification.type.value, classification.confidence)
        return self._apply(text, entities, context, classification)


class DocumentRulesPass(_DocumentPassBase):
    """Apply the stored classification's rules to the detected entities."""

    name = "DocumentRules"
    order = 50

    async def execute(self, text: str, entities: List[Entity],
                      context: PipelineContext) -> List[Entity]:
        classification = context.metadata.get("documentClassification")
        if not isinstance(classification, DocumentClassification):
            classification = self.classifier.classify(text)
            _store_classification(context, classification)
        return self._apply(text, entities, context, classification)
