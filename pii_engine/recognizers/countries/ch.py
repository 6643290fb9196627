"""
Swiss recognizers: AVS/AHV social security numbers and QR/ESR payment
references.
"""

from typing import List

from ..base import BaseRecognizer, PatternDefinition, RecognizerConfig, Specificity
from ..validators import is_valid_payment_reference, is_valid_swiss_avs

SWISS_LANGUAGES = ("de", "fr", "it", "en")


class SwissAvsRecognizer(BaseRecognizer):
    """
    Swiss AVS/AHV number: 756.XXXX.XXXX.XX with an EAN-13 check digit.

    The dotted form is how the number is printed on insurance cards and
    payslips; the compact form shows up in exports and scores lower.
    """

    def __init__(self):
        super().__init__(RecognizerConfig(
            name="SwissAvsRecognizer",
            supported_languages=SWISS_LANGUAGES,
            supported_countries=("CH",),
            priority=70,
            specificity=Specificity.COUNTRY,
            patterns=[
                PatternDefinition("avs_formatted", r"\b756[.\s]\d{4}[.\s]\d{4}[.\s]\d{2}\b",
                                  0.7, "SWISS_AVS"),
                PatternDefinition("avs_compact", r"\b756\d{10}\b", 0.6, "SWISS_AVS"),
            ],
            context_words=[
                # de
                "AHV", "AHV-Nr", "AHV-Nummer", "Sozialversicherungsnummer", "Versichertennummer",
                # fr
                "AVS", "No AVS", "numéro AVS", "assurance sociale",
                # it
                "numero AVS", "assicurazione",
                # en
                "social security", "SSN", "insurance number",
            ],
            validator=is_valid_swiss_avs,
        ))


class SwissPaymentReferenceRecognizer(BaseRecognizer):
    """QR-bill / ESR reference: 27 digits, recursive mod-10 check digit."""

    def __init__(self):
        super().__init__(RecognizerConfig(
            name="SwissPaymentReferenceRecognizer",
            supported_languages=SWISS_LANGUAGES,
            supported_countries=("CH",),
            priority=60,
            specificity=Specificity.COUNTRY,
            patterns=[
                PatternDefinition("qr_reference", r"\b\d{2}(?:\s?\d{5}){5}\b", 0.5, "PAYMENT_REF"),
            ],
            context_words=["Referenz", "Référence", "Riferimento", "Reference", "QR"],
            validator=is_valid_payment_reference,
        ))


def create_swiss_recognizers() -> List[BaseRecognizer]:
    return [SwissAvsRecognizer(), SwissPaymentReferenceRecognizer()]
