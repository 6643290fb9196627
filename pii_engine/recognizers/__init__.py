"""
Recognizers: pattern detectors, their registry and declarative loading.
"""

from .base import BaseRecognizer, PatternDefinition, RecognizerConfig, Specificity
from .builtin import (
    AddressFragmentRecognizer,
    AmountRecognizer,
    DateRecognizer,
    EmailRecognizer,
    IbanRecognizer,
    PhoneRecognizer,
    VatNumberRecognizer,
    create_default_recognizers,
    create_default_registry,
)
from .context import (
    CONTEXT_WORDS,
    ContextEnhancer,
    ContextWord,
    DenyList,
    get_deny_list,
    get_global_context_words,
    reset_deny_list,
    set_deny_list,
)
from .countries import SwissAvsRecognizer, SwissPaymentReferenceRecognizer
from .presidio_adapter import PresidioRecognizerAdapter
from .registry import (
    AnalysisResult,
    RecognizerError,
    RecognizerFilter,
    RecognizerRegistry,
    RegistryConfig,
    get_registry,
    init_registry,
    reset_registry,
)
from .yaml_loader import (
    ValidationReport,
    load_recognizers_from_file,
    load_recognizers_from_yaml,
    validate_yaml_config,
)

__all__ = [
    "BaseRecognizer",
    "PatternDefinition",
    "RecognizerConfig",
    "Specificity",
    "AddressFragmentRecognizer",
    "AmountRecognizer",
    "DateRecognizer",
    "EmailRecognizer",
    "IbanRecognizer",
    "PhoneRecognizer",
    "VatNumberRecognizer",
    "SwissAvsRecognizer",
    "SwissPaymentReferenceRecognizer",
    "PresidioRecognizerAdapter",
    "create_default_recognizers",
    "create_default_registry",
    "CONTEXT_WORDS",
    "ContextEnhancer",
    "ContextWord",
    "DenyList",
    "get_deny_list",
    "get_global_context_words",
    "reset_deny_list",
    "set_deny_list",
    "AnalysisResult",
    "RecognizerError",
    "RecognizerFilter",
    "RecognizerRegistry",
    "RegistryConfig",
    "get_registry",
    "init_registry",
    "reset_registry",
    "ValidationReport",
    "load_recognizers_from_file",
    "load_recognizers_from_yaml",
    "validate_yaml_config",
]
