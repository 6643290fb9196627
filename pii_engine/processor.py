"""
Document Processor - detection followed by anonymization for one document
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .anonymization.engine import Mapping, apply_anonymization, generate_mapping
from .anonymization.session import AnonymizationSession
from .detection_config import DetectionConfig
from .entities import DetectionResult
from .ml.inference import InferenceBackend
from .pipeline.address_relationship_pass import AddressRelationshipPass
from .pipeline.detection_pipeline import DetectionPipeline, PipelineConfig
from .pipeline.document_type_pass import DocumentRulesPass, DocumentTypePass
from .pipeline.high_recall_pass import HighRecallPass
from .preprocessing.text_normalizer import normalize_text
from .recognizers.builtin import create_default_registry
from .recognizers.registry import RecognizerRegistry

logger = logging.getLogger(__name__)


def create_default_pipeline(registry: Optional[RecognizerRegistry] = None,
                            inference: Optional[InferenceBackend] = None,
                            config: Optional[DetectionConfig] = None) -> DetectionPipeline:
    """
    Build the standard four-pass pipeline.

    Args:
        registry: Recognizer registry (default: a fresh one with the built-ins)
        inference: Optional ML backend
        config: Settings source; the packaged defaults when None

    Returns:
        DetectionPipeline with DocumentType, HighRecall, AddressRelationship
        and DocumentRules registered
    """
    def section(name: str) -> Optional[Dict[str, Any]]:
        return config.get_section(name) if config else None

    if registry is None:
        registry = create_default_registry(config)

    pipeline = DetectionPipeline(PipelineConfig.from_detection_config(config))
    pipeline.register_pass(DocumentTypePass(section("document")))
    pipeline.register_pass(HighRecallPass(registry=registry, inference=inference,
                                          settings=section("high_recall")))
    pipeline.register_pass(AddressRelationshipPass(section("address")))
    pipeline.register_pass(DocumentRulesPass(section("document")))
    return pipeline


@dataclass
class ProcessingResult:
    """
    Attributes:
        redacted_text: Text with selected entities replaced by tokens
        mapping: Token table for the document
        detection: Full detection result, flagged entities included
    """
    redacted_text: str
    mapping: Mapping
    detection: DetectionResult

    def to_dict(self) -> Dict[str, Any]:
        return {
            "redactedText": self.redacted_text,
            "mapping": self.mapping.to_dict(),
            "detection": self.detection.to_dict(),
        }


class DocumentProcessor:
    """
    Detect and anonymize PII in converted document text.

    Each call to process() starts from a fresh token numbering, so documents
    never share tokens. Use one processor per concurrent document.

    Args:
        pipeline: Detection pipeline (default: create_default_pipeline())
        session: Token session (default: a private one)
        normalize: Run normalize_text() before detection
        protect_code_blocks: Leave fenced and inline code untouched
    """

    def __init__(self, pipeline: Optional[DetectionPipeline] = None,
                 session: Optional[AnonymizationSession] = None,
                 normalize: bool = False,
                 protect_code_blocks: bool = False):
        self.pipeline = pipeline or create_default_pipeline()
        self.session = session or AnonymizationSession()
        self.normalize = normalize
        self.protect_code_blocks = protect_code_blocks

    async def process(self, text: str, filename: str,
                      document_id: Optional[str] = None,
                      language: Optional[str] = None,
                      selection: Optional[Dict[str, bool]] = None,
                      metadata: Optional[Dict[str, Any]] = None) -> ProcessingResult:
        """
        Detect, anonymize and build the mapping for one document.

        Args:
            text: Document text from the converter
            filename: Name recorded in the mapping
            document_id: Id for logs (uuid4 when omitted)
            language: Language code (detected when omitted)
            selection: Entity id -> selected, overriding the pipeline's choice
            metadata: Initial context metadata, e.g. a known "frontmatterEnd"

        Returns:
            ProcessingResult
        """
        if self.normalize:
            text = normalize_text(text)

        self.session.reset()
        detection = await self.pipeline.process(text, document_id=document_id,
                                             language=language, metadata=metadata)

        if selection:
            for entity in detection.entities:
                if entity.id in selection:
                    entity.selected = bool(selection[entity.id])

        redacted = apply_anonymization(text, detection.entities, session=self.session,
                                       protect_code_blocks=self.protect_code_blocks)
        mapping = generate_mapping(
            filename,
            detection.selected_entities,
            all_entities=detection.entities,
            session=self.session,
            document_type=detection.document_type,
        )
        logger.info("Processed %s: %d entities, %d anonymized",
                    filename, len(detection.entities), mapping.statistics.anonymized)
        return ProcessingResult(redacted_text=redacted, mapping=mapping, detection=detection)

    def process_sync(self, text: str, filename: str,
                     document_id: Optional[str] = None,
                     language: Optional[str] = None,
                     selection: Optional[Dict[str, bool]] = None,
                     metadata: Optional[Dict[str, Any]] = None) -> ProcessingResult:
        """Synchronous process() for callers without an event loop."""
        return asyncio.run(self.process(text, filename, document_id, language, selection, metadata))
