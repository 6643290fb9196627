"""Tests for declarative (YAML) recognizer loading."""

import pytest

from pii_engine.exceptions import SchemaValidationError
from pii_engine.recognizers import (
    RecognizerRegistry,
    Specificity,
    get_registry,
    load_recognizers_from_file,
    load_recognizers_from_yaml,
    validate_yaml_config,
)
from pii_engine.recognizers.builtin import DEFAULT_YAML_PATH

VALID_BATCH = r"""
version: 1
recognizers:
  - name: PolicyNumberRecognizer
    supportedLanguages: [de, en]
    supportedCountries: [CH]
    priority: 60
    specificity: region
    contextWords: [Police]
    denyPatterns: ["POL-0000", {regex: '^POL-9'}]
    patterns:
      - name: policy
        regex: '\bPOL-\d{4}\b'
        score: 0.5
        entityType: POLICY_NUMBER
  - name: MemberRecognizer
    supportedLanguages: [de]
    supportedCountries: [CH]
    patterns:
      - regex: '\bM\d{6}\b'
        score: 0.3
        entityType: MEMBER_ID
        isWeakPattern: true
"""


def test_valid_batch_is_registered():
    registry = RecognizerRegistry()
    names = load_recognizers_from_yaml(VALID_BATCH, registry)
    assert names == ["PolicyNumberRecognizer", "MemberRecognizer"]

    policy = registry.get("PolicyNumberRecognizer")
    assert policy.priority == 60
    assert policy.specificity == Specificity.REGION
    assert policy.entity_types == ["POLICY_NUMBER"]

    member = registry.get("MemberRecognizer")
    assert member.priority == 50
    assert member.specificity == Specificity.COUNTRY


def test_loaded_recognizer_applies_deny_patterns():
    registry = RecognizerRegistry()
    load_recognizers_from_yaml(VALID_BATCH, registry)
    result = registry.analyze("POL-0000 POL-9123 POL-4711")
    assert [m.text for m in result.matches if m.entity_type == "POLICY_NUMBER"] == ["POL-4711"]


def test_weak_yaml_pattern_is_downweighted():
    registry = RecognizerRegistry()
    load_recognizers_from_yaml(VALID_BATCH, registry)
    match = [m for m in registry.analyze("Mitglied M123456").matches
             if m.entity_type == "MEMBER_ID"][0]
    assert match.confidence == pytest.approx(0.3 * 0.4)


def test_parsed_dict_is_accepted():
    registry = RecognizerRegistry()
    data = {"recognizers": [{
        "name": "Dict",
        "supportedLanguages": ["en"],
        "supportedCountries": ["US"],
        "patterns": [{"regex": r"\bX\d\b", "score": 0.5, "entityType": "X"}],
    }]}
    assert load_recognizers_from_yaml(data, registry) == ["Dict"]


# -- Rejected batches --

def test_error_paths_are_reported():
    batch = r"""
recognizers:
  - name: Good
    supportedLanguages: [de]
    supportedCountries: [CH]
    patterns:
      - {regex: '\d+', score: 0.5, entityType: NUM}
  - name: Bad
    supportedLanguages: []
    supportedCountries: [CH]
    specificity: planet
    patterns:
      - {regex: '\d+', score: 1.5, entityType: NUM}
      - {regex: '(', score: 0.5}
"""
    report = validate_yaml_config(batch)
    assert not report.valid
    assert report.recognizer_count == 2
    joined = "\n".join(report.errors)
    assert "recognizers[1].supportedLanguages" in joined
    assert "recognizers[1].specificity" in joined
    assert "recognizers[1].patterns[0].score" in joined
    assert "recognizers[1].patterns[1].regex" in joined
    assert "recognizers[1].patterns[1].entityType" in joined
    assert "recognizers[0]" not in joined


def test_invalid_batch_registers_nothing():
    registry = RecognizerRegistry()
    batch = r"""
recognizers:
  - name: Good
    supportedLanguages: [de]
    supportedCountries: [CH]
    patterns:
      - {regex: '\d+', score: 0.5, entityType: NUM}
  - name: Bad
    supportedLanguages: [de]
    supportedCountries: [CH]
    patterns:
      - {regex: '\d+', score: 0, entityType: NUM}
"""
    with pytest.raises(SchemaValidationError) as info:
        load_recognizers_from_yaml(batch, registry)
    assert any("recognizers[1].patterns[0].score" in e for e in info.value.errors)
    assert registry.is_empty()


def test_duplicate_names_within_batch():
    batch = {"recognizers": [
        {"name": "Twice", "supportedLanguages": ["de"], "supportedCountries": ["CH"],
         "patterns": [{"regex": "a", "score": 0.5, "entityType": "A"}]},
        {"name": "Twice", "supportedLanguages": ["de"], "supportedCountries": ["CH"],
         "patterns": [{"regex": "b", "score": 0.5, "entityType": "B"}]},
    ]}
    report = validate_yaml_config(batch)
    assert report.errors == ["recognizers[1].name: duplicate of recognizers[0] ('Twice')"]


def test_name_already_in_registry():
    registry = RecognizerRegistry()
    load_recognizers_from_yaml(VALID_BATCH, registry)
    with pytest.raises(SchemaValidationError):
        load_recognizers_from_yaml(VALID_BATCH, registry)
    assert len(registry) == 2


def test_malformed_yaml_and_root():
    assert not validate_yaml_config("recognizers: [unclosed").valid
    assert validate_yaml_config("- just a list").errors == \
        ["<root>: must be a mapping with a 'recognizers' list"]
    assert validate_yaml_config("version: 1").errors == ["recognizers: required list"]


def test_default_target_is_global_registry():
    load_recognizers_from_yaml(VALID_BATCH)
    assert "PolicyNumberRecognizer" in get_registry()


# -- Packaged definitions --

def test_packaged_file_is_valid():
    registry = RecognizerRegistry()
    names = load_recognizers_from_file(DEFAULT_YAML_PATH, registry)
    assert "SwissLicensePlateRecognizer" in names
    assert "InvoiceNumberRecognizer" in names


def test_packaged_recognizers_detect(registry):
    text = "Rechnungsnummer: RE-2024-001\nSehr geehrte Frau Meier\nKennzeichen ZH 12345"
    found = {(m.entity_type, m.text) for m in registry.analyze(text).matches}
    assert ("INVOICE_NUMBER", "RE-2024-001") in found
    assert ("PERSON", "Meier") in found
    assert ("LICENSE_PLATE", "ZH 12345") in found


@pytest.mark.parametrize("label", ["Rechnung Nr.", "Rechnung-Nr.", "Rechnungsnr:", "Rechnung Nummer"])
def test_invoice_number_labels(registry, label):
    found = {(m.entity_type, m.text) for m in registry.analyze(f"{label} 2024-0815").matches}
    assert ("INVOICE_NUMBER", "2024-0815") in found
