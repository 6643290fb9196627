"""
Multi-pass detection pipeline.

Passes run strictly one after another in ascending `order`. Each pass gets
the text, a working copy of the entity list and the shared PipelineContext,
and returns the new entity list. A failing pass is isolated: its changes are
discarded and the next pass runs on the list as it was before.
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, List, Optional

from ..detection_config import DEFAULT_PIPELINE_SETTINGS, DetectionConfig
from ..entities import DetectionResult, Entity, EntitySource, PassResult, PipelineContext
from ..exceptions import ConfigurationError, PassFailure
from ..preprocessing.language import detect_language

logger = logging.getLogger(__name__)


class PipelineState(Enum):
    CREATED = "created"
    PROCESSING = "processing"
    COMPLETED = "completed"


@dataclass
class PipelineConfig:
    """
    Attributes:
        auto_anonymize_threshold: Entities below this are flagged for review
            and not selected
        default_language: Used when no language is given or detected
        deduplicate: Resolve overlapping entities after the last pass
    """
    auto_anonymize_threshold: float = 0.6
    default_language: str = "de"
    deduplicate: bool = True

    @classmethod
    def from_settings(cls, settings: Dict[str, Any]) -> "PipelineConfig":
        known = {k: v for k, v in settings.items() if k in cls.__dataclass_fields__}
        return cls(**known)

    @classmethod
    def from_detection_config(cls, config: Optional[DetectionConfig]) -> "PipelineConfig":
        settings = config.get_section("pipeline") if config else DEFAULT_PIPELINE_SETTINGS
        return cls.from_settings(settings)


class DetectionPass:
    """
    Base class for passes.

    Subclassing is optional: the pipeline accepts any object with `name`,
    `order`, `enabled` and an async `execute(text, entities, context)`.
    """

    name: str = "Pass"
    order: int = 100
    enabled: bool = True

    async def execute(self, text: str, entities: List[Entity],
                      context: PipelineContext) -> List[Entity]:
        raise NotImplementedError

    def __repr__(self):
        return f"{type(self).__name__}(name={self.name!r}, order={self.order}, enabled={self.enabled})"


def _count_changes(before: List[Entity], after: List[Entity]) -> Dict[str, int]:
    before_by_id = {e.id: e for e in before}
    after_ids = set()
    added = modified = 0
    for entity in after:
        after_ids.add(entity.id)
        previous = before_by_id.get(entity.id)
        if previous is None:
            added += 1
        elif previous.to_dict() != entity.to_dict():
            modified += 1
    removed = sum(1 for entity_id in before_by_id if entity_id not in after_ids)
    return {"added": added, "modified": modified, "removed": removed}


def deduplicate_entities(entities: List[Entity]) -> List[Entity]:
    """
    Resolve overlaps: scan by start (longer first on ties); an overlapping
    entity replaces the kept one only with a higher confidence. MANUAL
    entities are never replaced and always replace.
    """
    ordered = sorted(entities, key=lambda e: (e.start, -(e.end - e.start)))
    result: List[Entity] = []
    last_end = -1
    for entity in ordered:
        if entity.start >= last_end or not result:
            result.append(entity)
            last_end = entity.end
            continue
        kept = result[-1]
        if kept.source == EntitySource.MANUAL:
            continue
        if entity.source == EntitySource.MANUAL or entity.confidence > kept.confidence:
            result[-1] = entity
            last_end = entity.end
    return result


class DetectionPipeline:
    """
    Ordered list of detection passes.

    Usage:
        pipeline = DetectionPipeline()
        pipeline.register_pass(HighRecallPass(registry))
        result = await pipeline.process(text)
    """

    def __init__(self, config: Optional[PipelineConfig] = None):
        self.config = config or PipelineConfig()
        self._passes: List[Any] = []
        self.state = PipelineState.CREATED

    # ------------------------------------------------------------------
    # Pass management
    # ------------------------------------------------------------------

    def register_pass(self, detection_pass) -> None:
        """Add a pass; ties in `order` keep registration order."""
        self._passes.append(detection_pass)
        # sorted() is stable
        self._passes = sorted(self._passes, key=lambda p: p.order)
        logger.info("Registered pass %s (order %s)", detection_pass.name, detection_pass.order)

    def remove_pass(self, name: str) -> bool:
        remaining = [p for p in self._passes if p.name != name]
        removed = len(remaining) != len(self._passes)
        self._passes = remaining
        return removed

    def get_passes(self) -> List[Any]:
        return list(self._passes)

    def get_pass(self, name: str):
        for p in self._passes:
            if p.name == name:
                return p
        return None

    def configure(self, **changes) -> PipelineConfig:
        self.config = replace(self.config, **changes)
        return self.config

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    async def process(self, text: str, document_id: Optional[str] = None,
                      language: Optional[str] = None,
                      metadata: Optional[Dict[str, Any]] = None) -> DetectionResult:
        """
        Run every pass over text.

        Args:
            text: Normalized document text
            document_id: Id for logs and results (uuid4 when omitted)
            language: Language code (detected when omitted)
            metadata: Initial context metadata (e.g. {"frontmatterEnd": 120})

        Returns:
            DetectionResult; always complete, even when passes fail
        """
        self.state = PipelineState.PROCESSING
        context = PipelineContext(
            document_id=document_id or str(uuid.uuid4()),
            language=language or detect_language(text, self.config.default_language),
            metadata=dict(metadata or {}),
            config={
                "auto_anonymize_threshold": self.config.auto_anonymize_threshold,
                "default_language": self.config.default_language,
            },
        )

        entities: List[Entity] = []
        for detection_pass in self._passes:
            if not detection_pass.enabled:
                context.pass_results.append(PassResult(detection_pass.name, skipped=True))
                logger.debug("Skipping disabled pass %s", detection_pass.name)
                continue
            entities = await self._run_pass(detection_pass, text, entities, context)

        if self.config.deduplicate:
            entities = deduplicate_entities(entities)
        entities.sort(key=lambda e: (e.start, e.end))
        self._flag_for_review(entities)

        result = DetectionResult(
            entities=entities,
            document_type=str(context.metadata.get("documentType", "UNKNOWN")),
            metadata=self._result_metadata(entities, context),
        )
        self.state = PipelineState.COMPLETED
        logger.debug("Pipeline complete: %d entities in %.1fms",
                     len(entities), result.metadata["totalDurationMs"])
        return result

    def process_sync(self, text: str, document_id: Optional[str] = None,
                     language: Optional[str] = None,
                     metadata: Optional[Dict[str, Any]] = None) -> DetectionResult:
        """Synchronous process() for callers without an event loop."""
        return asyncio.run(self.process(text, document_id, language, metadata))

    async def _run_pass(self, detection_pass, text: str, entities: List[Entity],
                        context: PipelineContext) -> List[Entity]:
        working = [e.copy() for e in entities]
        started = time.perf_counter()
        try:
            updated = await detection_pass.execute(text, working, context)
        except ConfigurationError:
            # Wiring errors are fatal, not pass failures
            raise
        except Exception as e:
            failure = PassFailure(detection_pass.name, e)
            duration = (time.perf_counter() - started) * 1000
            logger.error("%s", failure)
            context.pass_results.append(PassResult(
                detection_pass.name, duration_ms=duration, error=str(failure)))
            return entities

        valid = self._drop_invalid(updated or [], text, detection_pass.name)
        duration = (time.perf_counter() - started) * 1000
        changes = _count_changes(entities, valid)
        context.pass_results.append(PassResult(
            detection_pass.name,
            entities_added=changes["added"],
            entities_modified=changes["modified"],
            entities_removed=changes["removed"],
            duration_ms=duration,
        ))
        logger.debug("Pass %s: %d entities (+%d ~%d -%d) in %.1fms", detection_pass.name,
                     len(valid), changes["added"], changes["modified"], changes["removed"], duration)
        return valid

    @staticmethod
    def _drop_invalid(entities: List[Entity], text: str, pass_name: str) -> List[Entity]:
        valid = []
        for entity in entities:
            if 0 <= entity.start < entity.end <= len(text):
                valid.append(entity)
            else:
                logger.warning("Pass %s produced %s with invalid span [%d, %d); dropped",
                               pass_name, entity.entity_type, entity.start, entity.end)
        return valid

    def _flag_for_review(self, entities: List[Entity]) -> None:
        threshold = self.config.auto_anonymize_threshold
        for entity in entities:
            if entity.source == EntitySource.MANUAL:
                entity.flagged_for_review = False
                entity.selected = True
                continue
            entity.flagged_for_review = entity.confidence < threshold \
                or bool(entity.metadata.get("reviewRequired"))
            entity.selected = not entity.flagged_for_review

    @staticmethod
    def _result_metadata(entities: List[Entity], context: PipelineContext) -> Dict[str, Any]:
        counts: Dict[str, int] = {}
        for entity in entities:
            counts[entity.entity_type] = counts.get(entity.entity_type, 0) + 1
        metadata = dict(context.metadata)
        metadata.update({
            "documentId": context.document_id,
            "language": context.language,
            "totalDurationMs": (time.perf_counter() - context.start_time) * 1000,
            "passResults": [r.to_dict() for r in context.pass_results],
            "passTimings": {r.pass_name: r.duration_ms for r in context.pass_results},
            "entityCounts": counts,
            "flaggedCount": sum(1 for e in entities if e.flagged_for_review),
        })
        return metadata
