"""
PII Engine - PII detection and anonymization for converted document text

Rule-based recognizers (Presidio, python-stdnum, phonenumbers) with an
optional NER backend, multi-pass refinement and token-based anonymization.
"""

from .detection_config import VERSION
__version__ = VERSION

# Lazy imports so that importing the package does not load Presidio or spaCy
_lazy_imports = {
    "DocumentProcessor": ".processor",
    "ProcessingResult": ".processor",
    "create_default_pipeline": ".processor",
    "DetectionPipeline": ".pipeline",
    "Entity": ".entities",
    "EntitySource": ".entities",
    "DetectionResult": ".entities",
    "AnonymizationSession": ".anonymization",
    "apply_anonymization": ".anonymization",
    "generate_mapping": ".anonymization",
    "restore_text": ".anonymization",
    "init_registry": ".recognizers",
    "get_registry": ".recognizers",
}


def __getattr__(name):
    """Lazy import for heavy modules."""
    if name in _lazy_imports:
        import importlib
        module = importlib.import_module(_lazy_imports[name], __package__)
        return getattr(module, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = list(_lazy_imports)
