"""Address component classification and linking."""

from .classifier import COMPONENT_TYPES, AddressClassifier, AddressComponent
from .linker import AddressLinker, AddressPattern, LinkedAddress
from .swiss_postal import EU_COUNTRIES, SWISS_CITIES, SwissPostalDatabase, get_postal_db

__all__ = [
    "COMPONENT_TYPES",
    "AddressClassifier",
    "AddressComponent",
    "AddressLinker",
    "AddressPattern",
    "LinkedAddress",
    "EU_COUNTRIES",
    "SWISS_CITIES",
    "SwissPostalDatabase",
    "get_postal_db",
]
