"""Tests for the high-recall pass and rule/ML merging."""

import asyncio

import pytest

from pii_engine.entities import Entity, EntitySource, PipelineContext
from pii_engine.ml import InferenceBackend
from pii_engine.pipeline import DetectionPipeline, HighRecallPass, merge_entities, overlap_ratio
from pii_engine.recognizers import DenyList, EmailRecognizer, RecognizerRegistry, Specificity

TEXT = "Kontakt: Hans Muster, hans@example.com\nGruss HANS MUSTER"


def _prediction(text, word, label, score=0.9):
    start = text.index(word)
    return {"word": word, "entity_group": label, "score": score,
            "start": start, "end": start + len(word)}


def _ml(*predictions):
    """Backend whose model returns fixed predictions for the first chunk."""
    async def run(text):
        return [_prediction(text, *p) for p in predictions if p[0] in text]
    return InferenceBackend(run)


def _execute(recall_pass, text=TEXT, entities=None, language="de"):
    context = PipelineContext(document_id="doc", language=language)
    found = asyncio.run(recall_pass.execute(text, list(entities or []), context))
    return found, context


class _ExplodingRecognizer:
    name = "Exploding"
    priority = 10
    specificity = Specificity.GLOBAL
    entity_types = ["FOO"]

    def supports_language(self, language):
        return True

    def supports_country(self, country):
        return True

    def analyze(self, text, language=None):
        raise RuntimeError("boom")


# -- merge_entities --

def _entity(start, end, confidence, source, entity_type="PERSON", text=TEXT):
    return Entity(entity_type, text[start:end], start, end, confidence, source=source)


def test_overlap_ratio_uses_shorter_span():
    a = _entity(9, 20, 0.5, EntitySource.ML)
    b = _entity(14, 20, 0.5, EntitySource.RULE)
    assert overlap_ratio(a, b) == pytest.approx(1.0)
    assert overlap_ratio(a, _entity(22, 38, 0.5, EntitySource.RULE)) == 0.0


def test_different_sources_merge_to_union():
    ml = _entity(9, 13, 0.8, EntitySource.ML)
    rule = _entity(9, 20, 0.55, EntitySource.RULE)
    merged = merge_entities([ml], [rule], TEXT)
    assert len(merged) == 1
    both = merged[0]
    assert (both.start, both.end, both.text) == (9, 20, "Hans Muster")
    assert both.source == EntitySource.BOTH
    assert both.confidence == pytest.approx(0.8)
    assert both.id == ml.id
    assert both.metadata["mergedSources"] == ["ML", "RULE"]


def test_same_source_keeps_more_confident():
    weak = _entity(9, 20, 0.5, EntitySource.RULE)
    strong = _entity(14, 20, 0.7, EntitySource.RULE)
    assert merge_entities([weak], [strong], TEXT) == [strong]
    assert merge_entities([strong], [weak], TEXT) == [strong]


def test_manual_always_wins():
    manual = _entity(9, 20, 0.2, EntitySource.MANUAL)
    rule = _entity(9, 20, 0.99, EntitySource.RULE)
    assert merge_entities([manual], [rule], TEXT) == [manual]
    assert merge_entities([rule], [manual], TEXT) == [manual]


def test_overlap_threshold():
    a = _entity(9, 20, 0.5, EntitySource.ML)
    b = _entity(18, 25, 0.5, EntitySource.RULE)
    assert len(merge_entities([a], [b], TEXT, overlap_threshold=0.5)) == 2
    assert len(merge_entities([a], [b], TEXT, overlap_threshold=0.0)) == 1


# -- Rule-only operation --

def test_rule_only_without_backend(registry):
    found, context = _execute(HighRecallPass(registry))
    emails = [e for e in found if e.entity_type == "EMAIL"]
    assert [(e.start, e.end, e.source) for e in emails] == [(22, 38, EntitySource.RULE)]
    assert context.metadata["mlFallback"] is True
    assert context.metadata["mlFallbackReason"] == "no ML backend configured"
    assert "EmailRecognizer" in context.metadata["recognizersUsed"]


def test_context_words_boost_rule_matches(registry):
    text = "Zahlbar auf IBAN CH93 0076 2011 6238 5295 7"
    found, context = _execute(HighRecallPass(registry), text)
    iban = [e for e in found if e.entity_type == "IBAN"][0]
    assert "iban" in iban.metadata["contextWords"]
    assert iban.metadata["contextBoost"] > 0
    assert context.metadata["contextBoosted"]["IBAN"] == 1


def test_recognizer_errors_are_recorded():
    registry = RecognizerRegistry()
    registry.register_all([EmailRecognizer(), _ExplodingRecognizer()])
    found, context = _execute(HighRecallPass(registry))
    assert [e["name"] for e in context.metadata["recognizerErrors"]] == ["Exploding"]
    assert [e.entity_type for e in found] == ["EMAIL"]


# -- ML blending --

def test_ml_and_rule_detections_merge(registry):
    backend = _ml(("hans@example.com", "EMAIL", 0.95), ("Hans Muster", "PER"))
    found, context = _execute(HighRecallPass(registry, inference=backend))
    assert context.metadata["mlFallback"] is False

    email = [e for e in found if e.entity_type == "EMAIL"][0]
    assert email.source == EntitySource.BOTH
    assert email.recognizer == "EmailRecognizer"
    assert email.confidence >= 0.95

    people = sorted((e for e in found if e.entity_type == "PERSON"), key=lambda e: e.start)
    assert people[0].text == "Hans Muster"
    assert people[0].source == EntitySource.ML


def test_low_scores_and_unknown_labels_dropped(registry):
    backend = _ml(("Hans Muster", "PER", 0.2), ("Gruss", "MISC"), ("HANS MUSTER", "B-PER"))
    recall_pass = HighRecallPass(registry, inference=backend,
                                 settings={"propagate_repeated": False})
    found, _ = _execute(recall_pass)
    people = [e.text for e in found if e.entity_type == "PERSON"]
    assert people == ["HANS MUSTER"]


def test_short_ml_spans_dropped(registry):
    text = "Filiale ZH in Bern"
    backend = _ml(("ZH", "LOC"), ("Bern", "LOC"))
    found, _ = _execute(HighRecallPass(registry, inference=backend), text)
    assert [e.text for e in found if e.source == EntitySource.ML] == ["Bern"]


def test_backend_failure_keeps_rule_results(registry):
    async def broken(text):
        raise RuntimeError("model crashed")

    found, context = _execute(HighRecallPass(registry, inference=InferenceBackend(broken)))
    assert context.metadata["mlFallback"] is True
    assert "model crashed" in context.metadata["mlFallbackReason"]
    assert any(e.entity_type == "EMAIL" for e in found)


# -- Filtering and propagation --

def test_frontmatter_is_never_detected(registry):
    text = "---\nauthor: anna@example.com\n---\nMail: hans@example.com"
    found, context = _execute(HighRecallPass(registry), text)
    body_start = text.index("Mail")
    assert context.metadata["frontmatterEnd"] == body_start
    assert all(e.start >= body_start for e in found)
    assert [e.text for e in found if e.entity_type == "EMAIL"] == ["hans@example.com"]


def test_deny_list_filters_and_counts(registry):
    deny_list = DenyList(global_entries=["hans@example.com"], by_entity_type={})
    found, context = _execute(HighRecallPass(registry, deny_list=deny_list))
    assert not any(e.entity_type == "EMAIL" for e in found)
    assert context.metadata["denyListFiltered"] == {"EMAIL": 1}


def test_manual_entities_survive_deny_list_and_merge(registry):
    manual = Entity("PERSON", "hans@example.com", 22, 38, 1.0, source=EntitySource.MANUAL)
    deny_list = DenyList(global_entries=["hans@example.com"], by_entity_type={})
    found, _ = _execute(HighRecallPass(registry, deny_list=deny_list), entities=[manual])
    at_span = [e for e in found if e.start == 22]
    assert len(at_span) == 1
    assert at_span[0].source == EntitySource.MANUAL


def test_repeated_values_are_propagated(registry):
    backend = _ml(("Hans Muster", "PER"))
    found, context = _execute(HighRecallPass(registry, inference=backend))
    people = sorted((e for e in found if e.entity_type == "PERSON"), key=lambda e: e.start)
    assert [e.text for e in people] == ["Hans Muster", "HANS MUSTER"]
    assert people[1].metadata["propagatedFrom"] == people[0].id
    assert context.metadata["propagatedCount"] >= 1


def test_settings_can_disable_enrichment(registry):
    backend = _ml(("Hans Muster", "PER"))
    recall_pass = HighRecallPass(registry, inference=backend,
                                 settings={"propagate_repeated": False,
                                           "context_enhancement": False})
    found, _ = _execute(recall_pass)
    assert [e.text for e in found if e.entity_type == "PERSON"] == ["Hans Muster"]
    email = [e for e in found if e.entity_type == "EMAIL"][0]
    assert "contextWords" not in email.metadata


def test_inside_pipeline(registry):
    pipeline = DetectionPipeline()
    pipeline.register_pass(HighRecallPass(registry))
    result = pipeline.process_sync("Kontakt: hans@example.com")
    assert [e.entity_type for e in result.selected_entities] == ["EMAIL"]
