"""Country-specific recognizers."""

from .ch import SwissAvsRecognizer, SwissPaymentReferenceRecognizer, create_swiss_recognizers

__all__ = [
    "SwissAvsRecognizer",
    "SwissPaymentReferenceRecognizer",
    "create_swiss_recognizers",
]
