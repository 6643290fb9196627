"""
Declarative recognizers.

New regex recognizers can be added without code changes by describing
them in YAML:

    version: 1
    recognizers:
      - name: SwissLicensePlateRecognizer
        supportedLanguages: [de, fr, it]
        supportedCountries: [CH]
        priority: 55
        specificity: country
        contextWords: [Kennzeichen, plaque]
        denyPatterns: ["ZH 0", {regex: "^AG\\s?1$"}]
        patterns:
          - name: plate
            regex: "\\b(?:ZH|BE|LU)\\s?\\d{1,6}\\b"
            score: 0.4
            entityType: LICENSE_PLATE
            isWeakPattern: true

A batch is validated as a whole. Any error (with its path, e.g.
recognizers[1].patterns[0].score) rejects the batch before anything is
registered.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import regex
import yaml

from ..exceptions import SchemaValidationError
from ..safe_regex import DEFAULT_FLAGS
from .base import BaseRecognizer, PatternDefinition, RecognizerConfig, Specificity
from .registry import RecognizerRegistry, get_registry

logger = logging.getLogger(__name__)

SPECIFICITY_VALUES = {"country": Specificity.COUNTRY, "region": Specificity.REGION,
                      "global": Specificity.GLOBAL}

_BOOL_KEYS = ("useGlobalContext", "useGlobalDenyList")


@dataclass
class ValidationReport:
    valid: bool
    errors: List[str] = field(default_factory=list)
    recognizer_count: int = 0


def _parse_source(source: Union[str, Dict[str, Any]]) -> Any:
    if isinstance(source, (dict, list)):
        return source
    return yaml.safe_load(source)


def _is_str_list(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(v, str) for v in value)


def _validate_pattern(pattern: Any, path: str, errors: List[str]):
    if not isinstance(pattern, dict):
        errors.append(f"{path}: must be a mapping")
        return

    expr = pattern.get("regex")
    if not isinstance(expr, str) or not expr:
        errors.append(f"{path}.regex: required non-empty string")
    else:
        try:
            regex.compile(expr, DEFAULT_FLAGS)
        except regex.error as e:
            errors.append(f"{path}.regex: does not compile ({e})")

    score = pattern.get("score")
    if isinstance(score, bool) or not isinstance(score, (int, float)):
        errors.append(f"{path}.score: required number")
    elif not 0.0 < score < 1.0:
        errors.append(f"{path}.score: must be between 0 and 1 (exclusive), got {score}")

    if not isinstance(pattern.get("entityType"), str) or not pattern.get("entityType"):
        errors.append(f"{path}.entityType: required non-empty string")
    if "name" in pattern and not isinstance(pattern["name"], str):
        errors.append(f"{path}.name: must be a string")
    if "isWeakPattern" in pattern and not isinstance(pattern["isWeakPattern"], bool):
        errors.append(f"{path}.isWeakPattern: must be a boolean")


def _validate_recognizer(entry: Any, path: str, errors: List[str]):
    if not isinstance(entry, dict):
        errors.append(f"{path}: must be a mapping")
        return

    if not isinstance(entry.get("name"), str) or not entry.get("name"):
        errors.append(f"{path}.name: required non-empty string")

    for key in ("supportedLanguages", "supportedCountries"):
        value = entry.get(key)
        if not _is_str_list(value) or not value:
            errors.append(f"{path}.{key}: required non-empty list of strings")

    patterns = entry.get("patterns")
    if not isinstance(patterns, list) or not patterns:
        errors.append(f"{path}.patterns: required non-empty list")
    else:
        for j, pattern in enumerate(patterns):
            _validate_pattern(pattern, f"{path}.patterns[{j}]", errors)

    if "priority" in entry and (isinstance(entry["priority"], bool)
                                or not isinstance(entry["priority"], int)):
        errors.append(f"{path}.priority: must be an integer")
    if "specificity" in entry and str(entry["specificity"]).lower() not in SPECIFICITY_VALUES:
        errors.append(f"{path}.specificity: must be one of country, region, global")
    if "contextWords" in entry and not _is_str_list(entry["contextWords"]):
        errors.append(f"{path}.contextWords: must be a list of strings")

    deny = entry.get("denyPatterns", [])
    if not isinstance(deny, list):
        errors.append(f"{path}.denyPatterns: must be a list")
    else:
        for j, item in enumerate(deny):
            if isinstance(item, str):
                continue
            if isinstance(item, dict) and isinstance(item.get("regex"), str):
                try:
                    regex.compile(item["regex"])
                except regex.error as e:
                    errors.append(f"{path}.denyPatterns[{j}].regex: does not compile ({e})")
                continue
            errors.append(f"{path}.denyPatterns[{j}]: must be a string or {{regex: str}}")

    for key in _BOOL_KEYS:
        if key in entry and not isinstance(entry[key], bool):
            errors.append(f"{path}.{key}: must be a boolean")


def validate_yaml_config(source: Union[str, Dict[str, Any]],
                         registry: Optional[RecognizerRegistry] = None) -> ValidationReport:
    """
    Validate a recognizer batch without registering anything.

    Args:
        source: YAML text or an already parsed dict
        registry: When given, names already registered count as duplicates

    Returns:
        ValidationReport with every error found
    """
    try:
        data = _parse_source(source)
    except yaml.YAMLError as e:
        return ValidationReport(False, [f"<root>: invalid YAML ({e})"])

    errors: List[str] = []
    if not isinstance(data, dict):
        return ValidationReport(False, ["<root>: must be a mapping with a 'recognizers' list"])

    recognizers = data.get("recognizers")
    if not isinstance(recognizers, list):
        return ValidationReport(False, ["recognizers: required list"])

    seen: Dict[str, int] = {}
    for i, entry in enumerate(recognizers):
        path = f"recognizers[{i}]"
        _validate_recognizer(entry, path, errors)
        name = entry.get("name") if isinstance(entry, dict) else None
        if isinstance(name, str) and name:
            if name in seen:
                errors.append(f"{path}.name: duplicate of recognizers[{seen[name]}] ('{name}')")
            else:
                seen[name] = i
            if registry is not None and name in registry:
                errors.append(f"{path}.name: '{name}' is already registered")

    return ValidationReport(not errors, errors, len(recognizers))


def _build_recognizer(entry: Dict[str, Any]) -> BaseRecognizer:
    patterns = [
        PatternDefinition(
            name=p.get("name"),
            regex=p["regex"],
            score=p["score"],
            entity_type=p["entityType"],
            is_weak_pattern=p.get("isWeakPattern", False),
        )
        for p in entry["patterns"]
    ]
    return BaseRecognizer(RecognizerConfig(
        name=entry["name"],
        supported_languages=entry["supportedLanguages"],
        supported_countries=entry["supportedCountries"],
        patterns=patterns,
        priority=entry.get("priority", 50),
        specificity=SPECIFICITY_VALUES[str(entry.get("specificity", "country")).lower()],
        context_words=list(entry.get("contextWords", [])),
        deny_patterns=list(entry.get("denyPatterns", [])),
        use_global_context=entry.get("useGlobalContext", True),
        use_global_deny_list=entry.get("useGlobalDenyList", True),
    ))


def load_recognizers_from_yaml(source: Union[str, Dict[str, Any]],
                               registry: Optional[RecognizerRegistry] = None) -> List[str]:
    """
    Validate and register a recognizer batch.

    Args:
        source: YAML text or parsed dict
        registry: Target registry (default: the process-wide one)

    Returns:
        Names of the registered recognizers

    Raises:
        SchemaValidationError: If any definition is invalid; nothing is
            registered in that case
    """
    registry = registry if registry is not None else get_registry()
    report = validate_yaml_config(source, registry)
    if not report.valid:
        raise SchemaValidationError(report.errors)

    data = _parse_source(source)
    recognizers = [_build_recognizer(entry) for entry in data["recognizers"]]
    registry.register_all(recognizers)
    names = [r.name for r in recognizers]
    logger.info("Loaded %d declarative recognizers", len(names))
    return names


def load_recognizers_from_file(path: Union[str, Path],
                               registry: Optional[RecognizerRegistry] = None) -> List[str]:
    """Load a YAML recognizer file (see load_recognizers_from_yaml)."""
    with open(path, 'r', encoding='utf-8') as f:
        return load_recognizers_from_yaml(f.read(), registry)
