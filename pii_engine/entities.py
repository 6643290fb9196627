"""
Core data types shared by recognizers, passes and the anonymization layer.
"""

import copy
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class EntitySource(str, Enum):
    """Where an entity came from."""
    ML = "ML"
    RULE = "RULE"
    HYBRID = "HYBRID"   # Built from components of mixed origin
    BOTH = "BOTH"       # ML and rule detections merged into one span
    MANUAL = "MANUAL"   # Added by a reviewer


# Component sub-types produced by the address classifier
ADDRESS_COMPONENT_TYPES = frozenset({"STREET", "NUMBER", "POSTAL_CODE", "CITY", "COUNTRY"})

# Types that represent (parts of) postal addresses
ADDRESS_TYPES = frozenset({"ADDRESS", "SWISS_ADDRESS", "EU_ADDRESS", "LOCATION"})


def _new_id() -> str:
    return str(uuid.uuid4())


@dataclass
class Entity:
    """
    A detected PII span.

    Offsets are half-open character offsets into the (normalized) document
    text. The same type is used for raw recognizer matches and for the
    entities flowing through the pipeline.

    Attributes:
        entity_type: The type of PII (e.g., "IBAN", "SWISS_AVS", "EMAIL")
        text: The detected text
        start: Start position in the source text
        end: End position in the source text (exclusive)
        confidence: Detection confidence score (0.0 to 1.0)
        source: ML, RULE, HYBRID, BOTH or MANUAL
        recognizer: Name of the recognizer that produced the match
        pattern_name: Name of the pattern that matched (optional)
        validation_passed: True when a checksum validator accepted the match
        metadata: Free-form data (position zone, boosts, grouping info)
        components: Address components owned by a grouped address
        id: Unique id, stable across passes
        selected: Whether the entity will be anonymized
        flagged_for_review: Low-confidence entities awaiting a decision
    """
    entity_type: str
    text: str
    start: int
    end: int
    confidence: float
    source: EntitySource = EntitySource.RULE
    recognizer: Optional[str] = None
    pattern_name: Optional[str] = None
    validation_passed: Optional[bool] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    components: List["Entity"] = field(default_factory=list)
    id: str = field(default_factory=_new_id)
    selected: bool = True
    flagged_for_review: bool = False

    def __post_init__(self):
        if self.start < 0 or self.end <= self.start:
            raise ValueError(
                f"Invalid entity span [{self.start}, {self.end}) for {self.entity_type}"
            )
        if not isinstance(self.source, EntitySource):
            self.source = EntitySource(self.source)
        self.confidence = clamp_confidence(self.confidence)

    @property
    def length(self) -> int:
        return self.end - self.start

    def overlaps(self, other: "Entity") -> bool:
        return self.start < other.end and other.start < self.end

    def overlap_length(self, other: "Entity") -> int:
        return max(0, min(self.end, other.end) - max(self.start, other.start))

    def contains(self, other: "Entity") -> bool:
        return other.start >= self.start and other.end <= self.end

    def copy(self) -> "Entity":
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "type": self.entity_type,
            "text": self.text,
            "start": self.start,
            "end": self.end,
            "confidence": round(self.confidence, 4),
            "source": self.source.value,
            "recognizer": self.recognizer,
            "patternName": self.pattern_name,
            "validationPassed": self.validation_passed,
            "selected": self.selected,
            "flaggedForReview": self.flagged_for_review,
            "metadata": dict(self.metadata),
        }
        if self.components:
            data["components"] = [c.to_dict() for c in self.components]
        return data


# Recognizers emit the same structure the pipeline carries
RecognizerMatch = Entity


def clamp_confidence(value: float) -> float:
    """Clamp a score into [0, 1]."""
    return max(0.0, min(1.0, float(value)))


@dataclass
class PassResult:
    """Per-pass bookkeeping recorded in the pipeline context."""
    pass_name: str
    entities_added: int = 0
    entities_modified: int = 0
    entities_removed: int = 0
    duration_ms: float = 0.0
    skipped: bool = False
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "passName": self.pass_name,
            "entitiesAdded": self.entities_added,
            "entitiesModified": self.entities_modified,
            "entitiesRemoved": self.entities_removed,
            "durationMs": round(self.duration_ms, 3),
            "skipped": self.skipped,
            "error": self.error,
        }


@dataclass
class PipelineContext:
    """
    State shared by the passes of one process() call.

    Metadata keys written by the built-in passes:
        documentType, documentClassification, documentLanguage (DocumentType)
        frontmatterEnd, recognizerErrors, recognizersUsed, mlFallback,
        denyListFiltered (HighRecall)
        addressGroupsRejected (AddressRelationship)
        missingRequiredTypes (DocumentRules)
    """
    document_id: str
    language: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    pass_results: List[PassResult] = field(default_factory=list)
    start_time: float = field(default_factory=time.perf_counter)
    config: Dict[str, Any] = field(default_factory=dict)


@dataclass
class DetectionResult:
    """Output of DetectionPipeline.process()."""
    entities: List[Entity]
    document_type: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def selected_entities(self) -> List[Entity]:
        return [e for e in self.entities if e.selected]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entities": [e.to_dict() for e in self.entities],
            "documentType": self.document_type,
            "metadata": {
                key: value.to_dict() if hasattr(value, "to_dict") else value
                for key, value in self.metadata.items()
            },
        }
