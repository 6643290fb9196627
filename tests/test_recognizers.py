"""Tests for recognizers, the deny list, context words and the registry."""

import pytest

from pii_engine.entities import Entity, EntitySource
from pii_engine.exceptions import ConfigurationError, DuplicateRecognizerError, EmptyRegistryError
from pii_engine.recognizers import (
    AmountRecognizer,
    BaseRecognizer,
    ContextEnhancer,
    ContextWord,
    DateRecognizer,
    DenyList,
    EmailRecognizer,
    IbanRecognizer,
    PatternDefinition,
    RecognizerConfig,
    RecognizerFilter,
    RecognizerRegistry,
    Specificity,
    SwissAvsRecognizer,
    get_deny_list,
    get_registry,
    init_registry,
)


def _recognizer(name, priority=50, specificity=Specificity.COUNTRY, regex=r"\bfoo\b",
                entity_type="FOO", score=0.5, weak=False, **kwargs):
    return BaseRecognizer(RecognizerConfig(
        name=name,
        supported_languages=["de", "en"],
        supported_countries=["CH"],
        patterns=[PatternDefinition(None, regex, score, entity_type, is_weak_pattern=weak)],
        priority=priority,
        specificity=specificity,
        **kwargs,
    ))


class _ExplodingRecognizer:
    name = "Exploding"
    priority = 99
    specificity = Specificity.COUNTRY
    entity_types = ["FOO"]

    def supports_language(self, language):
        return True

    def supports_country(self, country):
        return True

    def analyze(self, text, language=None):
        raise RuntimeError("boom")


# -- Pattern definitions --

@pytest.mark.parametrize("score", [0, 1, 1.5, -0.1])
def test_pattern_score_must_be_open_unit_interval(score):
    with pytest.raises(ConfigurationError):
        PatternDefinition("p", r"\d", score, "X")


def test_recognizer_needs_patterns():
    with pytest.raises(ConfigurationError):
        BaseRecognizer(RecognizerConfig("Empty", ["de"], ["CH"], patterns=[]))


# -- Built-in recognizers --

def test_email_exact_offsets(registry):
    text = "Contact: john.doe@example.com"
    emails = [m for m in registry.analyze(text).matches if m.entity_type == "EMAIL"]
    assert len(emails) == 1
    email = emails[0]
    assert (email.start, email.end) == (9, 29)
    assert email.text == "john.doe@example.com"
    assert email.source == EntitySource.RULE
    assert email.confidence == pytest.approx(0.6)


def test_iban_requires_valid_checksum():
    recognizer = IbanRecognizer()
    assert [m.text for m in recognizer.analyze("IBAN CH93 0076 2011 6238 5295 7")] == \
        ["CH93 0076 2011 6238 5295 7"]
    assert recognizer.analyze("IBAN CH93 0076 2011 6238 5295 8") == []


def test_avs_recognizer():
    matches = SwissAvsRecognizer().analyze("AHV-Nr. 756.1234.5678.97")
    assert [(m.entity_type, m.validation_passed) for m in matches] == [("SWISS_AVS", True)]
    assert matches[0].confidence == pytest.approx(0.7)


def test_date_recognizer_rejects_impossible_dates():
    texts = [m.text for m in DateRecognizer().analyze("am 15.01.2024 und 31.02.2024")]
    assert texts == ["15.01.2024"]


def test_amount_recognizer():
    texts = [m.text for m in AmountRecognizer().analyze("Total CHF 1'200.00 und 45.50 EUR")]
    assert texts == ["CHF 1'200.00", "45.50 EUR"]


def test_unsupported_language_yields_nothing():
    recognizer = _recognizer("Foo")
    assert recognizer.analyze("foo", language="it") == []
    assert len(recognizer.analyze("foo", language="de")) == 1


# -- Deny list --

def test_global_deny_list_removes_table_headers():
    deny_list = get_deny_list()
    assert deny_list.is_denied(" Betrag ", "PERSON")
    assert deny_list.is_denied("Müller AG", "PERSON")
    assert not deny_list.is_denied("Müller", "PERSON")


def test_deny_list_scopes():
    deny_list = DenyList(global_entries=[], by_entity_type={})
    deny_list.add_pattern("Kunde", "PERSON")
    deny_list.add_pattern({"regex": "^Test"}, "lang:de")
    assert deny_list.is_denied("kunde", "PERSON")
    assert not deny_list.is_denied("kunde", "EMAIL")
    assert deny_list.is_denied("Testwert", "EMAIL", language="de")
    assert not deny_list.is_denied("Testwert", "EMAIL", language="fr")


def test_recognizer_deny_patterns():
    recognizer = _recognizer("Foo", regex=r"\b\w+foo\b",
                             deny_patterns=["barfoo", {"regex": "^baz"}])
    texts = [m.text for m in recognizer.analyze("barfoo bazfoo quxfoo")]
    assert texts == ["quxfoo"]


# -- Context enhancement --

def test_positive_context_raises_confidence():
    text = "IBAN: CH93 0076 2011 6238 5295 7"
    entity = Entity("IBAN", text[6:], 6, len(text), 0.6)
    ContextEnhancer().enhance(entity, text, [ContextWord("iban")])
    assert entity.confidence > 0.6
    assert entity.metadata["contextWords"] == ["iban"]


def test_negative_context_lowers_confidence():
    text = "Firma Muster GmbH"
    entity = Entity("PERSON", "Muster", 6, 12, 0.6)
    ContextEnhancer().enhance(entity, text, [ContextWord("gmbh", 1.0, "negative")])
    assert entity.confidence < 0.6


def test_context_adjustment_is_capped():
    text = "iban iban iban account bank X"
    entity = Entity("IBAN", "X", len(text) - 1, len(text), 0.5)
    enhancer = ContextEnhancer()
    words = [ContextWord("iban"), ContextWord("account"), ContextWord("bank")]
    enhancer.enhance(entity, text, words)
    assert entity.confidence == pytest.approx(0.5 + enhancer.similarity_factor)


def test_context_words_match_whole_words_only():
    text = "Vertrag vom Montag: Frau Anna Keller"
    start = text.index("Anna")
    entity = Entity("PERSON", "Anna Keller", start, len(text), 0.6)
    ContextEnhancer().enhance(entity, text, [ContextWord("frau"), ContextWord("ag", 0.8, "negative")])
    assert entity.metadata["contextWords"] == ["frau"]
    assert entity.confidence > 0.6

    hotel = "Hotel 044 123 45 67"
    phone = Entity("PHONE", hotel[6:], 6, len(hotel), 0.5)
    ContextEnhancer().enhance(phone, hotel, [ContextWord("tel")])
    assert phone.confidence == 0.5
    assert "contextWords" not in phone.metadata


# -- Registry --

def test_duplicate_name_rejected():
    registry = RecognizerRegistry()
    registry.register(_recognizer("Foo"))
    with pytest.raises(DuplicateRecognizerError):
        registry.register(_recognizer("Foo"))


def test_empty_registry_is_a_configuration_error():
    with pytest.raises(EmptyRegistryError):
        RecognizerRegistry().analyze("text")
    with pytest.raises(ConfigurationError):
        get_registry().get_all()


def test_sort_order_priority_specificity_name():
    registry = RecognizerRegistry()
    registry.register_all([
        _recognizer("Zeta"),
        _recognizer("Alpha"),
        _recognizer("Global", specificity=Specificity.GLOBAL),
        _recognizer("Urgent", priority=90, specificity=Specificity.GLOBAL),
    ])
    names = [r.name for r in registry.get_filtered()]
    assert names == ["Urgent", "Alpha", "Zeta", "Global"]
    # Stable when sorted again
    assert [r.name for r in registry.get_filtered()] == names


def test_failing_recognizer_is_isolated():
    registry = RecognizerRegistry()
    registry.register_all([_recognizer("Foo"), _ExplodingRecognizer()])
    result = registry.analyze("a foo b")
    assert [m.text for m in result.matches] == ["foo"]
    assert [e.name for e in result.recognizer_errors] == ["Exploding"]
    assert result.recognizers_used == ["Foo"]


def test_weak_patterns_get_the_low_confidence_multiplier():
    registry = RecognizerRegistry()
    registry.register(_recognizer("Weak", score=0.5, weak=True))
    match = registry.analyze("foo").matches[0]
    assert match.confidence == pytest.approx(0.2)


def test_low_score_entity_types():
    registry = RecognizerRegistry()
    registry.register(_recognizer("Foo", score=0.5))
    registry.configure(low_score_entity_names=["FOO"], low_confidence_multiplier=0.5)
    assert registry.analyze("foo").matches[0].confidence == pytest.approx(0.25)
    registry.reset_config()
    assert registry.analyze("foo").matches[0].confidence == pytest.approx(0.5)


def test_unknown_setting_rejected():
    with pytest.raises(ValueError):
        RecognizerRegistry().configure(no_such_setting=True)


def test_filters():
    registry = RecognizerRegistry()
    registry.register_all([_recognizer("Foo"), EmailRecognizer()])
    assert [r.name for r in registry.get_filtered(RecognizerFilter(entity_type="EMAIL"))] == \
        ["EmailRecognizer"]
    assert [r.name for r in registry.get_by_country("FR")] == ["EmailRecognizer"]
    registry.configure(enabled_recognizers=["Foo"])
    assert [r.name for r in registry.get_filtered()] == ["Foo"]
    assert len(registry.get_all()) == 2


def test_init_registry_replaces_global_registry():
    registry = init_registry([_recognizer("Custom")])
    assert get_registry() is registry
    assert "Custom" in registry
    assert "EmailRecognizer" in registry
    assert "SwissLicensePlateRecognizer" in registry


# -- Presidio adapter --

def test_presidio_credit_cards_need_a_valid_checksum():
    from presidio_analyzer.predefined_recognizers import CreditCardRecognizer

    from pii_engine.recognizers import PresidioRecognizerAdapter

    adapter = PresidioRecognizerAdapter(CreditCardRecognizer(), name="CreditCardRecognizer",
                                        supported_countries=("*",))
    assert adapter.entity_types == ["CREDIT_CARD"]
    assert adapter.supports_country("JP")
    assert not adapter.supports_language("es")

    matches = adapter.analyze("Karte 4111 1111 1111 1111, alt 4111 1111 1111 1112", "de")
    assert [(m.entity_type, m.text, m.start) for m in matches] == \
        [("CREDIT_CARD", "4111 1111 1111 1111", 6)]
    assert matches[0].source == EntitySource.RULE
    assert matches[0].validation_passed is True
    assert matches[0].confidence < 1.0
    assert adapter.analyze("Karte 4111 1111 1111 1111", "es") == []


def test_presidio_entity_recognizers_are_wrapped():
    from presidio_analyzer import AnalysisExplanation, EntityRecognizer, RecognizerResult

    from pii_engine.recognizers import PresidioRecognizerAdapter

    class CustomerNameRecognizer(EntityRecognizer):
        def load(self):
            pass

        def analyze(self, text, entities, nlp_artifacts=None):
            explanation = AnalysisExplanation(recognizer=self.name, original_score=0.45,
                                              pattern_name="customer_name", validation_result=True)
            name = text.index("Hans")
            return [
                RecognizerResult("PERSON", 0, 5, 0.9),
                RecognizerResult("PERSON", name, name + 11, 0.85, analysis_explanation=explanation),
                RecognizerResult("PHONE_NUMBER", 3, 3, 0.9),
            ]

    recognizer = CustomerNameRecognizer(supported_entities=["PERSON", "PHONE_NUMBER"],
                                        name="CustomerName", supported_language="de")
    adapter = PresidioRecognizerAdapter(recognizer)
    assert adapter.name == "CustomerName"
    assert adapter.entity_types == ["PERSON", "PHONE"]

    matches = adapter.analyze("Kunde Hans Muster", "de")
    assert [(m.entity_type, m.text) for m in matches] == [("PERSON", "Hans Muster")]
    assert matches[0].confidence == pytest.approx(0.45)
    assert matches[0].pattern_name == "customer_name"
    assert matches[0].validation_passed is True
    assert matches[0].recognizer == "CustomerName"

    unfiltered = PresidioRecognizerAdapter(recognizer, use_global_deny_list=False)
    assert [m.text for m in unfiltered.analyze("Kunde Hans Muster", "de")] == ["Kunde", "Hans Muster"]
