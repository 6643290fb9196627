"""Tests for document classification, the rule engine and the document passes."""

import pytest

from pii_engine.classification import (
    DocumentClassification,
    DocumentClassifier,
    DocumentType,
    RuleEngine,
    position_zone,
)
from pii_engine.classification.document_classifier import keyword_weight
from pii_engine.entities import Entity
from pii_engine.pipeline import (
    AddressRelationshipPass,
    DetectionPipeline,
    DocumentRulesPass,
    DocumentTypePass,
    HighRecallPass,
)
from pii_engine.processor import create_default_pipeline

LETTER = (
    "Sehr geehrte Frau Meier\n"
    "\n"
    "anbei erhalten Sie die Unterlagen.\n"
    "\n"
    "Mit freundlichen Grüssen\n"
    "Hans Muster"
)


def _classification(doc_type, confidence=0.8):
    return DocumentClassification(doc_type, confidence, "de")


def _entity(entity_type, confidence, start=0, end=4, **kwargs):
    return Entity(entity_type, "x" * (end - start), start, end, confidence, **kwargs)


# -- Classifier --

def test_invoice_is_recognized(invoice_text):
    classification = DocumentClassifier().classify(invoice_text)
    assert classification.type == DocumentType.INVOICE
    assert classification.language == "de"
    assert 0.4 <= classification.confidence <= 1.0
    assert 0 < len(classification.features) <= 10
    assert classification.to_dict()["type"] == "INVOICE"


def test_letter_is_recognized():
    classification = DocumentClassifier().classify(LETTER)
    assert classification.type == DocumentType.LETTER
    assert any(f.name == "position:signature_end" for f in classification.features)


def test_text_without_signals_is_unknown():
    classification = DocumentClassifier().classify("Lorem ipsum dolor sit amet")
    assert classification.type == DocumentType.UNKNOWN
    assert classification.confidence == 0.0
    assert classification.secondary_type is None


def test_minimum_confidence_gives_unknown(invoice_text):
    assert DocumentClassifier(min_confidence=0.99).classify(invoice_text).type == DocumentType.UNKNOWN


def test_classification_is_deterministic(invoice_text):
    classifier = DocumentClassifier()
    assert classifier.classify(invoice_text).to_dict() == classifier.classify(invoice_text).to_dict()


def test_is_type(invoice_text):
    classifier = DocumentClassifier()
    assert classifier.is_type(invoice_text, DocumentType.INVOICE, min_confidence=0.3)
    assert not classifier.is_type(invoice_text, DocumentType.LETTER, min_confidence=0.0)


def test_keyword_weight_grows_with_length_and_count():
    assert keyword_weight("rechnungsnummer", 1) > keyword_weight("iva", 1)
    assert keyword_weight("total", 3) > keyword_weight("total", 1)


# -- Rule engine --

def test_position_zone():
    assert position_zone(0, 100) == ("header", 0.0)
    assert position_zone(50, 100) == ("body", 0.5)
    assert position_zone(90, 100) == ("footer", 0.9)
    assert position_zone(5, 0)[0] == "header"


def test_invoice_boosts_and_suppression():
    amount = _entity("AMOUNT", 0.5)
    iban = _entity("IBAN", 0.6)
    plate = _entity("LICENSE_PLATE", 0.9)
    result = RuleEngine().apply_rules([amount, iban, plate], _classification(DocumentType.INVOICE))

    assert amount.confidence == pytest.approx(0.65)
    assert iban.confidence == pytest.approx(0.8)
    assert plate.confidence == pytest.approx(0.9)
    assert plate.flagged_for_review and plate.metadata["reviewRequired"]
    assert (result.boosted, result.suppressed) == (2, 1)
    assert result.missing_required_types == ["DATE"]


def test_boost_applies_once():
    amount = _entity("AMOUNT", 0.5)
    engine = RuleEngine()
    engine.apply_rules([amount], _classification(DocumentType.INVOICE))
    engine.apply_rules([amount], _classification(DocumentType.INVOICE))
    assert amount.confidence == pytest.approx(0.65)


def test_address_subtypes_use_address_rules():
    address = _entity("SWISS_ADDRESS", 0.7)
    RuleEngine().apply_rules([address], _classification(DocumentType.LETTER))
    assert address.confidence == pytest.approx(0.8)


def test_unknown_type_changes_nothing():
    person = _entity("PERSON", 0.5)
    result = RuleEngine().apply_rules([person], _classification(DocumentType.UNKNOWN))
    assert person.confidence == 0.5
    assert result.boosted == 0 and result.missing_required_types == []


def test_custom_rule_table():
    from pii_engine.classification import DocumentTypeRules

    engine = RuleEngine(rules={DocumentType.REPORT: DocumentTypeRules(boosted_types=["EMAIL"])},
                        boosted_default_delta=0.2)
    email = _entity("EMAIL", 0.5)
    engine.apply_rules([email], _classification(DocumentType.REPORT))
    assert email.confidence == pytest.approx(0.7)


def test_position_adjustments():
    text = "x" * 100
    iban = _entity("IBAN", 0.6, 90, 98)
    amount = _entity("AMOUNT", 0.5, 50, 60)
    header_iban = _entity("IBAN", 0.6, 5, 10)
    engine = RuleEngine()
    engine.apply_position_adjustments([iban, amount, header_iban], text,
                                      _classification(DocumentType.INVOICE))

    assert iban.confidence == pytest.approx(0.7)
    assert iban.metadata["positionZone"] == "footer"
    assert amount.confidence == pytest.approx(0.55)
    assert header_iban.confidence == pytest.approx(0.6)
    assert header_iban.metadata["documentType"] == "INVOICE"


def test_labeled_field_bonus_on_forms():
    field = _entity("PERSON", 0.5, 50, 60, metadata={"isLabeledField": True})
    RuleEngine().apply_position_adjustments([field], "x" * 100, _classification(DocumentType.FORM))
    assert field.confidence == pytest.approx(0.6)


# -- Document passes --

def _baseline(registry):
    pipeline = DetectionPipeline()
    pipeline.register_pass(HighRecallPass(registry))
    pipeline.register_pass(AddressRelationshipPass())
    return pipeline


def test_invoice_context_raises_financial_entities(registry, invoice_text):
    baseline = _baseline(registry).process_sync(invoice_text)
    boosted = create_default_pipeline(registry).process_sync(invoice_text)

    assert baseline.document_type == "UNKNOWN"
    assert boosted.document_type == "INVOICE"

    def by_type(result, entity_type):
        return [e for e in result.entities if e.entity_type == entity_type]

    base_iban, doc_iban = by_type(baseline, "IBAN")[0], by_type(boosted, "IBAN")[0]
    assert doc_iban.confidence > base_iban.confidence
    assert doc_iban.confidence == pytest.approx(1.0)
    assert doc_iban.metadata["positionZone"] == "footer"

    assert [e.confidence for e in by_type(baseline, "AMOUNT")] == pytest.approx([0.5, 0.5])
    assert [e.confidence for e in by_type(boosted, "AMOUNT")] == pytest.approx([0.7, 0.7])
    assert all(e.selected for e in by_type(boosted, "AMOUNT"))
    assert not any(e.selected for e in by_type(baseline, "AMOUNT"))
    assert boosted.metadata["missingRequiredTypes"] == []


def test_document_type_pass_stores_classification(invoice_text):
    pipeline = DetectionPipeline()
    pipeline.register_pass(DocumentTypePass())
    result = pipeline.process_sync(invoice_text)
    assert result.document_type == "INVOICE"
    assert result.metadata["documentLanguage"] == "de"
    assert result.to_dict()["metadata"]["documentClassification"]["type"] == "INVOICE"


def test_rules_pass_classifies_when_needed(registry, invoice_text):
    pipeline = DetectionPipeline()
    pipeline.register_pass(HighRecallPass(registry))
    pipeline.register_pass(DocumentRulesPass())
    result = pipeline.process_sync(invoice_text)
    assert result.document_type == "INVOICE"
    assert result.metadata["typeBoostedCount"] > 0


def test_low_classification_confidence_skips_rules(registry, invoice_text):
    pipeline = DetectionPipeline()
    pipeline.register_pass(DocumentTypePass())
    pipeline.register_pass(HighRecallPass(registry))
    pipeline.register_pass(DocumentRulesPass(settings={"min_classification_confidence": 0.99}))
    result = pipeline.process_sync(invoice_text)
    assert result.document_type == "INVOICE"
    assert "missingRequiredTypes" not in result.metadata
    assert all("typeBoostApplied" not in e.metadata for e in result.entities)
