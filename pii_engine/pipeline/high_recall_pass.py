"""
High-recall pass: rule-based recognizers plus the optional ML backend.

Context metadata:
    reads   frontmatterEnd (optional, detected when absent)
    writes  frontmatterEnd, recognizersUsed, recognizerErrors, mlFallback,
            mlFallbackReason, denyListFiltered, contextBoosted, propagatedCount
"""

import logging
from typing import Any, Dict, List, Optional

from ..detection_config import DEFAULT_HIGH_RECALL_SETTINGS
from ..entities import Entity, EntitySource, PipelineContext
from ..ml.inference import InferenceBackend, map_ml_entity_type
from ..preprocessing.text_normalizer import detect_frontmatter_end
from ..recognizers.context import ContextEnhancer, DenyList, get_deny_list
from ..recognizers.registry import RecognizerFilter, RecognizerRegistry, get_registry
from ..safe_regex import find_fuzzy_occurrences
from .detection_pipeline import DetectionPass

logger = logging.getLogger(__name__)


def overlap_ratio(a: Entity, b: Entity) -> float:
    """Overlap length relative to the shorter span."""
    shorter = min(a.length, b.length)
    if shorter <= 0:
        return 0.0
    return a.overlap_length(b) / shorter


def merge_entities(entities: List[Entity], candidates: List[Entity], text: str,
                   overlap_threshold: float = 0.0) -> List[Entity]:
    """
    Merge candidates into entities.

    Overlap means overlap_ratio > overlap_threshold. For overlapping spans:
    MANUAL entities win unchanged; different sources merge into the union
    span with the higher confidence and source BOTH; the same source keeps
    the more confident entity.
    """
    merged = list(entities)
    for candidate in candidates:
        overlapping = [e for e in merged
                       if e.overlaps(candidate) and overlap_ratio(e, candidate) > overlap_threshold]
        if not overlapping:
            merged.append(candidate)
            continue
        best = max(overlapping, key=lambda e: overlap_ratio(e, candidate))

        if best.source == EntitySource.MANUAL:
            continue
        index = next(i for i, e in enumerate(merged) if e is best)
        if candidate.source == EntitySource.MANUAL:
            merged[index] = candidate
            continue

        if best.source != candidate.source:
            winner, other = (best, candidate) if best.confidence >= candidate.confidence \
                else (candidate, best)
            start = min(best.start, candidate.start)
            end = max(best.end, candidate.end)
            # Keep the rule side's recognizer so its context words still apply
            rule_side = candidate if best.source == EntitySource.ML else best
            merged[index] = Entity(
                entity_type=winner.entity_type,
                text=text[start:end],
                start=start,
                end=end,
                confidence=winner.confidence,
                source=EntitySource.BOTH,
                recognizer=rule_side.recognizer or other.recognizer,
                pattern_name=rule_side.pattern_name,
                validation_passed=best.validation_passed if best.validation_passed is not None
                else candidate.validation_passed,
                metadata={**other.metadata, **winner.metadata,
                          "mergedSources": [best.source.value, candidate.source.value]},
                id=best.id,
            )
        elif candidate.confidence > best.confidence:
            merged[index] = candidate
    return merged


class HighRecallPass(DetectionPass):
    """
    Collect candidates from the recognizer registry and the ML backend.

    Args:
        registry: Recognizer registry (default: the process-wide one)
        inference: Optional ML backend; rule-only when None or not ready
        settings: Overrides for the "high_recall" config section
        context_enhancer: Confidence adjustment from surrounding words
        deny_list: Deny list for ML and carried-over entities (default: global)
    """

    name = "HighRecall"
    order = 10

    def __init__(self, registry: Optional[RecognizerRegistry] = None,
                 inference: Optional[InferenceBackend] = None,
                 settings: Optional[Dict[str, Any]] = None,
                 context_enhancer: Optional[ContextEnhancer] = None,
                 deny_list: Optional[DenyList] = None):
        self.registry = registry
        self.inference = inference
        self.settings = {**DEFAULT_HIGH_RECALL_SETTINGS, **(settings or {})}
        self.context_enhancer = context_enhancer or ContextEnhancer()
        self.deny_list = deny_list
        self.enabled = True

    def _registry(self) -> RecognizerRegistry:
        return self.registry if self.registry is not None else get_registry()

    async def execute(self, text: str, entities: List[Entity],
                      context: PipelineContext) -> List[Entity]:
        frontmatter_end = context.metadata.get("frontmatterEnd")
        if frontmatter_end is None:
            frontmatter_end = detect_frontmatter_end(text)
        context.metadata["frontmatterEnd"] = frontmatter_end

        ml_entities = await self._run_ml(text, context)
        rule_entities = self._run_rules(text, context)

        merged = merge_entities(entities, ml_entities, text, self.settings["overlap_threshold"])
        merged = merge_entities(merged, rule_entities, text, self.settings["overlap_threshold"])

        if frontmatter_end:
            merged = [e for e in merged if e.start >= frontmatter_end]

        if self.settings["apply_deny_list"]:
            merged = self._apply_deny_list(merged, context)

        if self.settings["context_enhancement"]:
            self._enhance(merged, text, context)

        if self.settings["propagate_repeated"]:
            merged.extend(self._propagate(merged, text, frontmatter_end))
            context.metadata["propagatedCount"] = sum(
                1 for e in merged if "propagatedFrom" in e.metadata)

        logger.debug("HighRecall: %d ML, %d rule, %d after merge",
                     len(ml_entities), len(rule_entities), len(merged))
        return merged

    # ------------------------------------------------------------------
    # Sources
    # ------------------------------------------------------------------

    async def _run_ml(self, text: str, context: PipelineContext) -> List[Entity]:
        if self.inference is None:
            context.metadata["mlFallback"] = True
            context.metadata["mlFallbackReason"] = "no ML backend configured"
            return []

        result = await self.inference.infer(text)
        context.metadata["mlFallback"] = result.fallback
        context.metadata["mlFallbackReason"] = result.reason
        if result.fallback:
            return []

        found = []
        for prediction in result.predictions:
            entity_type = map_ml_entity_type(prediction.entity_label)
            if entity_type == "UNKNOWN" or prediction.score < self.settings["ml_threshold"]:
                continue
            span = text[prediction.start:prediction.end]
            if len(span.strip()) < self.settings["min_match_length"]:
                continue
            found.append(Entity(
                entity_type=entity_type,
                text=span,
                start=prediction.start,
                end=prediction.end,
                confidence=prediction.score,
                source=EntitySource.ML,
                recognizer="ml",
                metadata={"mlEntityGroup": prediction.entity_label, "mlScore": prediction.score},
            ))
        return found

    def _run_rules(self, text: str, context: PipelineContext) -> List[Entity]:
        analysis = self._registry().analyze(text, RecognizerFilter(language=context.language))
        context.metadata["recognizersUsed"] = list(analysis.recognizers_used)
        context.metadata["recognizerErrors"] = [e.to_dict() for e in analysis.recognizer_errors]
        min_length = self.settings["min_match_length"]
        return [m for m in analysis.matches if len(m.text.strip()) >= min_length]

    # ------------------------------------------------------------------
    # Filtering and enrichment
    # ------------------------------------------------------------------

    def _apply_deny_list(self, entities: List[Entity], context: PipelineContext) -> List[Entity]:
        deny_list = self.deny_list or get_deny_list()
        filtered: Dict[str, int] = dict(context.metadata.get("denyListFiltered", {}))
        kept = []
        for entity in entities:
            if entity.source != EntitySource.MANUAL and \
                    deny_list.is_denied(entity.text, entity.entity_type, context.language):
                filtered[entity.entity_type] = filtered.get(entity.entity_type, 0) + 1
                continue
            kept.append(entity)
        context.metadata["denyListFiltered"] = filtered
        return kept

    def _enhance(self, entities: List[Entity], text: str, context: PipelineContext) -> None:
        registry = self._registry()
        boosted: Dict[str, int] = {}
        for entity in entities:
            if entity.source not in (EntitySource.RULE, EntitySource.BOTH) or not entity.recognizer:
                continue
            recognizer = registry.get(entity.recognizer)
            if recognizer is None:
                continue
            before = entity.confidence
            words = recognizer.get_context_words(entity.entity_type, context.language)
            self.context_enhancer.enhance(entity, text, words)
            if entity.confidence > before:
                boosted[entity.entity_type] = boosted.get(entity.entity_type, 0) + 1
        context.metadata["contextBoosted"] = boosted

    def _propagate(self, entities: List[Entity], text: str, frontmatter_end: int) -> List[Entity]:
        """Find further occurrences of confident entities, tolerating formatting drift."""
        added: List[Entity] = []
        seen = set()
        occupied = [(e.start, e.end) for e in entities]
        for entity in sorted(entities, key=lambda e: e.start):
            if entity.confidence < self.settings["propagation_min_confidence"]:
                continue
            key = (entity.entity_type, entity.text.strip().lower())
            if key in seen:
                continue
            seen.add(key)
            for start, end in find_fuzzy_occurrences(text, entity.text):
                if start < frontmatter_end:
                    continue
                if any(start < o_end and o_start < end for o_start, o_end in occupied):
                    continue
                occupied.append((start, end))
                added.append(Entity(
                    entity_type=entity.entity_type,
                    text=text[start:end],
                    start=start,
                    end=end,
                    confidence=entity.confidence,
                    source=entity.source,
                    recognizer=entity.recognizer,
                    pattern_name=entity.pattern_name,
                    metadata={"propagatedFrom": entity.id},
                ))
        return added
