"""Token-based anonymization and mapping generation."""

from .engine import (
    MAPPING_VERSION,
    Mapping,
    MappingEntry,
    MappingStatistics,
    apply_anonymization,
    generate_mapping,
    restore_text,
)
from .session import (
    TYPE_ALIASES,
    AddressEntry,
    AnonymizationSession,
    get_or_create_token,
    get_session,
    normalize_entity_text,
    normalize_entity_type,
    reset_anonymization_session,
)

__all__ = [
    "MAPPING_VERSION",
    "Mapping",
    "MappingEntry",
    "MappingStatistics",
    "apply_anonymization",
    "generate_mapping",
    "restore_text",
    "TYPE_ALIASES",
    "AddressEntry",
    "AnonymizationSession",
    "get_or_create_token",
    "get_session",
    "normalize_entity_text",
    "normalize_entity_type",
    "reset_anonymization_session",
]
