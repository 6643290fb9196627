"""
Built-in recognizers for Swiss and EU documents.

Scores stay in the 0.3-0.7 band: a match is evidence, not proof, and later
passes (context words, document type, address grouping) move it up or down.
"""

import logging
from pathlib import Path
from typing import Iterable, List, Optional, Union

from presidio_analyzer.predefined_recognizers import CreditCardRecognizer, IpRecognizer

from ..detection_config import DEFAULT_REGISTRY_SETTINGS, DetectionConfig
from .base import BaseRecognizer, PatternDefinition, RecognizerConfig, Specificity
from .countries import create_swiss_recognizers
from .presidio_adapter import PresidioRecognizerAdapter
from .registry import RecognizerRegistry, RegistryConfig
from .validators import (
    is_valid_iban,
    is_valid_phone,
    is_valid_vat_number,
    validate_date,
    validate_email,
)
from .yaml_loader import load_recognizers_from_file

logger = logging.getLogger(__name__)

ALL_LANGUAGES = ("de", "fr", "it", "en")
EU_COUNTRIES = ("CH", "DE", "FR", "IT", "AT", "LI", "BE", "NL", "LU", "ES", "PT")

DEFAULT_YAML_PATH = Path(__file__).resolve().parent.parent / "data" / "recognizers.yaml"

# City name, case-sensitive inside an otherwise case-insensitive pattern
_CITY = r"(?-i:[A-ZÄÖÜ][a-zäöüéèàâêîôûç]+(?:-[A-ZÄÖÜ][a-zäöüéèàâêîôûç]+)*)"


class EmailRecognizer(BaseRecognizer):
    def __init__(self):
        super().__init__(RecognizerConfig(
            name="EmailRecognizer",
            supported_languages=ALL_LANGUAGES,
            supported_countries=("*",),
            specificity=Specificity.GLOBAL,
            patterns=[
                PatternDefinition("email", r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b",
                                  0.6, "EMAIL"),
            ],
            validator=validate_email,
        ))


class IbanRecognizer(BaseRecognizer):
    def __init__(self):
        super().__init__(RecognizerConfig(
            name="IbanRecognizer",
            supported_languages=ALL_LANGUAGES,
            supported_countries=EU_COUNTRIES,
            specificity=Specificity.REGION,
            patterns=[
                PatternDefinition(
                    "iban",
                    r"\b[A-Z]{2}\d{2}(?:\s?[A-Z0-9]{4}){2,7}(?:\s?[A-Z0-9]{1,4})?\b",
                    0.6, "IBAN"),
            ],
            validator=is_valid_iban,
        ))


class PhoneRecognizer(BaseRecognizer):
    """International numbers for CH/DE/FR/IT/AT and Swiss national format."""

    def __init__(self):
        super().__init__(RecognizerConfig(
            name="PhoneRecognizer",
            supported_languages=ALL_LANGUAGES,
            supported_countries=("CH", "DE", "FR", "IT", "AT"),
            specificity=Specificity.REGION,
            patterns=[
                PatternDefinition(
                    "phone_international",
                    r"(?<![\w.+])(?:\+|00)(?:41|49|33|39|43)[\s.-]?(?:\(?\d{1,4}\)?[\s.-]?)?"
                    r"\d{2,4}[\s.-]?\d{2,4}[\s.-]?\d{2,4}(?!\d)",
                    0.5, "PHONE"),
                PatternDefinition(
                    "phone_ch_national",
                    r"(?<![\w.])0\d{2}[\s.-]?\d{3}[\s.-]?\d{2}[\s.-]?\d{2}(?!\d)",
                    0.5, "PHONE"),
            ],
            validator=is_valid_phone,
        ))


class VatNumberRecognizer(BaseRecognizer):
    def __init__(self):
        super().__init__(RecognizerConfig(
            name="VatNumberRecognizer",
            supported_languages=ALL_LANGUAGES,
            supported_countries=("CH", "DE", "FR", "IT", "AT"),
            specificity=Specificity.REGION,
            patterns=[
                PatternDefinition(
                    "vat_che",
                    r"\bCHE[-\s]?\d{3}[.\s]?\d{3}[.\s]?\d{3}(?:\s*(?:MWST|TVA|IVA))?\b",
                    0.6, "VAT_NUMBER"),
                PatternDefinition(
                    "vat_eu",
                    r"\b(?:DE\s?\d{9}|FR\s?[0-9A-Z]{2}\s?\d{9}|IT\s?\d{11}|ATU\s?\d{8})\b",
                    0.5, "VAT_NUMBER"),
            ],
            validator=is_valid_vat_number,
        ))


class DateRecognizer(BaseRecognizer):
    """European numeric dates, ISO dates and German/French month names."""

    def __init__(self):
        super().__init__(RecognizerConfig(
            name="DateRecognizer",
            supported_languages=ALL_LANGUAGES,
            supported_countries=("*",),
            specificity=Specificity.GLOBAL,
            patterns=[
                PatternDefinition(
                    "date_numeric",
                    r"\b(?:0?[1-9]|[12]\d|3[01])[./-](?:0?[1-9]|1[0-2])[./-](?:19|20)?\d{2}\b",
                    0.5, "DATE"),
                PatternDefinition(
                    "date_iso",
                    r"\b(?:19|20)\d{2}-(?:0[1-9]|1[0-2])-(?:0[1-9]|[12]\d|3[01])\b",
                    0.5, "DATE"),
                PatternDefinition(
                    "date_de_month",
                    r"\b(?:0?[1-9]|[12]\d|3[01])\.?\s*(?:Januar|Jänner|Februar|März|April|Mai|Juni|"
                    r"Juli|August|September|Oktober|November|Dezember)\s+(?:19|20)\d{2}\b",
                    0.5, "DATE"),
                PatternDefinition(
                    "date_fr_month",
                    r"\b(?:1er|0?[1-9]|[12]\d|3[01])\s+(?:janvier|février|mars|avril|mai|juin|"
                    r"juillet|août|septembre|octobre|novembre|décembre)\s+(?:19|20)\d{2}\b",
                    0.5, "DATE"),
            ],
            validator=validate_date,
        ))


class AmountRecognizer(BaseRecognizer):
    def __init__(self):
        super().__init__(RecognizerConfig(
            name="AmountRecognizer",
            supported_languages=ALL_LANGUAGES,
            supported_countries=("CH", "DE", "FR", "IT", "AT", "LI"),
            specificity=Specificity.REGION,
            patterns=[
                PatternDefinition(
                    "amount_prefix",
                    r"(?<!\w)(?:CHF|EUR|€|Fr\.?)\s*(?:\d{1,3}(?:['’\s.,]\d{3})+|\d+)(?:[.,](?:\d{2}|–|-))?(?!\d)",
                    0.5, "AMOUNT"),
                PatternDefinition(
                    "amount_suffix",
                    r"(?<![\w.,'])\d{1,3}(?:['’.]\d{3})*[.,]\d{2}\s?(?:CHF|EUR|€)(?!\w)",
                    0.5, "AMOUNT"),
            ],
        ))


class AddressFragmentRecognizer(BaseRecognizer):
    """
    Address fragments: postal code + city, street + house number.

    Fragments are regrouped into full addresses by the address pass.
    """

    def __init__(self):
        super().__init__(RecognizerConfig(
            name="AddressFragmentRecognizer",
            supported_languages=ALL_LANGUAGES,
            supported_countries=("CH", "DE", "FR", "IT", "AT", "LI"),
            specificity=Specificity.REGION,
            patterns=[
                PatternDefinition(
                    "swiss_postal_city",
                    rf"(?<![\d.,/-])\b(?:CH[-\s]?)?[1-9]\d{{3}}[ \t]+{_CITY}",
                    0.5, "SWISS_ADDRESS"),
                PatternDefinition(
                    "street_de",
                    r"\b(?-i:[A-ZÄÖÜ][a-zäöüß]+)(?:strasse|straße|str\.|gasse|weg|platz|allee|ring)"
                    r"[ \t]+\d{1,4}[a-z]?\b",
                    0.5, "ADDRESS"),
                PatternDefinition(
                    "street_fr",
                    r"\b(?:\d{1,4}[a-z]?,?\s+)?(?:rue|avenue|boulevard|chemin|place|route|allée|"
                    r"impasse|quai)\s+(?:de\s+la\s+|de\s+l'|du\s+|des\s+|de\s+|d')?"
                    r"(?-i:[A-ZÉÈ][\w'-]+)(?:\s+(?-i:[A-ZÉÈ][\w'-]+))*",
                    0.5, "ADDRESS"),
                PatternDefinition(
                    "postal_code_bare", r"\b[1-9]\d{3}\b", 0.3, "POSTAL_CODE",
                    is_weak_pattern=True),
            ],
        ))


def create_presidio_recognizers() -> List[PresidioRecognizerAdapter]:
    """Credit cards and IP addresses from presidio's predefined recognizers."""
    return [
        PresidioRecognizerAdapter(CreditCardRecognizer(), name="CreditCardRecognizer",
                                  supported_countries=("*",)),
        PresidioRecognizerAdapter(IpRecognizer(), name="IpAddressRecognizer",
                                  supported_countries=("*",)),
    ]


def create_default_recognizers() -> List:
    """All recognizers implemented in code."""
    recognizers = [
        EmailRecognizer(),
        IbanRecognizer(),
        PhoneRecognizer(),
        VatNumberRecognizer(),
        DateRecognizer(),
        AmountRecognizer(),
        AddressFragmentRecognizer(),
    ]
    recognizers.extend(create_swiss_recognizers())
    recognizers.extend(create_presidio_recognizers())
    return recognizers


def create_default_registry(config: Optional[DetectionConfig] = None,
                            yaml_paths: Optional[Iterable[Union[str, Path]]] = None,
                            registry_config: Optional[RegistryConfig] = None,
                            include_packaged_yaml: bool = True) -> RecognizerRegistry:
    """
    Build a registry with the built-in recognizers.

    Args:
        config: Settings source for the "registry" section
        yaml_paths: Extra declarative recognizer files
        registry_config: Explicit registry settings (overrides config)
        include_packaged_yaml: Also load pii_engine/data/recognizers.yaml
    """
    if registry_config is None:
        settings = config.get_section("registry") if config else DEFAULT_REGISTRY_SETTINGS
        registry_config = RegistryConfig.from_settings(settings)

    registry = RecognizerRegistry(registry_config)
    registry.register_all(create_default_recognizers())

    paths = [DEFAULT_YAML_PATH] if include_packaged_yaml else []
    paths.extend(Path(p) for p in (yaml_paths or []))
    for path in paths:
        load_recognizers_from_file(path, registry)

    logger.info("Default registry ready with %d recognizers", len(registry))
    return registry
