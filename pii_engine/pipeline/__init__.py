"""Multi-pass detection pipeline and the built-in passes."""

from .address_relationship_pass import AddressRelationshipPass, address_type_for
from .detection_pipeline import (
    DetectionPass,
    DetectionPipeline,
    PipelineConfig,
    PipelineState,
    deduplicate_entities,
)
from .document_type_pass import DocumentRulesPass, DocumentTypePass
from .high_recall_pass import HighRecallPass, merge_entities, overlap_ratio

__all__ = [
    "AddressRelationshipPass",
    "address_type_for",
    "DetectionPass",
    "DetectionPipeline",
    "PipelineConfig",
    "PipelineState",
    "deduplicate_entities",
    "DocumentRulesPass",
    "DocumentTypePass",
    "HighRecallPass",
    "merge_entities",
    "overlap_ratio",
]
