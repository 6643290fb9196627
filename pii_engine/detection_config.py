#!/usr/bin/env python3
"""
Detection Config - Manages engine settings with JSON persistence
"""

import json
import logging
import os
from pathlib import Path
from datetime import datetime
from typing import Dict, Any, Optional

logger = logging.getLogger(__name__)

# Engine version - single source of truth
VERSION = "0.9.0"

# Environment variable that overrides the config file location
CONFIG_ENV_VAR = "PII_ENGINE_CONFIG"

# Recognizer registry: global confidence adjustments and allow-lists.
# Empty allow-lists mean "no restriction".
DEFAULT_REGISTRY_SETTINGS = {
    "low_confidence_multiplier": 0.4,  # Applied to weak patterns and low-score types
    "low_score_entity_names": [],
    "enabled_countries": [],
    "enabled_languages": [],
    "enabled_recognizers": [],
}

# Pipeline post-processing
DEFAULT_PIPELINE_SETTINGS = {
    "auto_anonymize_threshold": 0.6,  # Below this an entity is flagged for review
    "default_language": "de",         # Used when language detection finds nothing
    "deduplicate": True,
}

# High-recall pass (rule + ML blending)
DEFAULT_HIGH_RECALL_SETTINGS = {
    "ml_threshold": 0.3,
    "min_match_length": 3,
    "overlap_threshold": 0.0,         # Share of the shorter span; 0.0 = any overlap
    "apply_deny_list": True,
    "context_enhancement": True,
    "propagate_repeated": True,
    "propagation_min_confidence": 0.5,
}

# Address grouping. The guard values (span, heading marker, paragraph breaks)
# are heuristics kept tunable rather than fixed.
DEFAULT_ADDRESS_SETTINGS = {
    "max_component_distance": 50,
    "max_component_distance_multiline": 100,
    "min_components": 2,
    "max_components": 6,
    "max_span_chars": 100,
    "reject_heading_marker": True,
    "max_paragraph_breaks": 1,
    "component_confidence": 0.7,     # Confidence of classifier-found components
    "auto_anonymize_threshold": 0.8, # Grouped addresses at or above this need no review
}

# Document classification and rule engine
DEFAULT_DOCUMENT_SETTINGS = {
    "min_classification_confidence": 0.4,  # Rules only apply at or above this
    "classifier_min_confidence": 0.25,     # Below this the type is UNKNOWN
    "apply_confidence_boosts": True,
}

# Optional ML backend
DEFAULT_ML_SETTINGS = {
    "timeout_seconds": 30.0,
    "max_retries": 3,
    "initial_retry_delay_ms": 100,
    "max_retry_delay_ms": 5000,
    "chunk_tokens": 512,
    "chunk_overlap": 50,
}

DEFAULT_REGEX_SETTINGS = {
    "timeout_ms": 100,
}

DEFAULT_SECTIONS: Dict[str, Dict[str, Any]] = {
    "registry": DEFAULT_REGISTRY_SETTINGS,
    "pipeline": DEFAULT_PIPELINE_SETTINGS,
    "high_recall": DEFAULT_HIGH_RECALL_SETTINGS,
    "address": DEFAULT_ADDRESS_SETTINGS,
    "document": DEFAULT_DOCUMENT_SETTINGS,
    "ml": DEFAULT_ML_SETTINGS,
    "regex": DEFAULT_REGEX_SETTINGS,
}


def _default_config_path() -> Path:
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path)
    return Path.home() / ".pii_engine" / "detection_config.json"


class DetectionConfig:
    """
    Manages engine settings with persistence.

    Settings are grouped in sections (registry, pipeline, high_recall, address,
    document, ml, regex). Saved values are merged over the defaults so that
    keys added in newer versions always get a value.
    """

    def __init__(self, config_path: str = None):
        """
        Initialize config manager

        Args:
            config_path: Path to config file (default: ~/.pii_engine/detection_config.json,
                or the path in $PII_ENGINE_CONFIG)
        """
        if config_path:
            self.config_path = Path(config_path)
        else:
            self.config_path = _default_config_path()

        self.config: Dict[str, Any] = {
            name: dict(defaults) for name, defaults in DEFAULT_SECTIONS.items()
        }
        self.config["created_at"] = datetime.now().isoformat()
        self.config["updated_at"] = datetime.now().isoformat()

        self._load_config()

    def _load_config(self):
        """Load config from file if it exists"""
        if not self.config_path.exists():
            return
        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                saved = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            logger.warning("Ignoring unreadable config %s: %s", self.config_path, e)
            return

        if not isinstance(saved, dict):
            logger.warning("Ignoring config %s: top level is not an object", self.config_path)
            return

        # Merge with defaults (in case new settings were added)
        for name, defaults in DEFAULT_SECTIONS.items():
            section = saved.get(name, {})
            if isinstance(section, dict):
                self.config[name] = {**defaults, **section}
        self.config["created_at"] = saved.get("created_at", self.config["created_at"])
        self.config["updated_at"] = saved.get("updated_at", self.config["updated_at"])

    def save(self):
        """Save config to file"""
        self.config["updated_at"] = datetime.now().isoformat()
        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.config_path, 'w', encoding='utf-8') as f:
            json.dump(self.config, f, indent=2)

    def get_section(self, name: str) -> Dict[str, Any]:
        """
        Get a copy of one settings section

        Args:
            name: Section name (e.g., "registry", "address")

        Returns:
            Dict of settings, defaults included
        """
        if name not in DEFAULT_SECTIONS:
            raise KeyError(f"Unknown config section: {name}")
        return dict(self.config[name])

    def get(self, section: str, key: str, default: Any = None) -> Any:
        """Get a single setting"""
        return self.config.get(section, {}).get(key, default)

    def set_value(self, section: str, key: str, value: Any, persist: bool = True):
        """
        Set a single setting

        Args:
            section: Section name
            key: Setting name
            value: New value
            persist: Write the file immediately
        """
        if section not in DEFAULT_SECTIONS:
            raise KeyError(f"Unknown config section: {section}")
        self.config[section][key] = value
        self.config["updated_at"] = datetime.now().isoformat()
        if persist:
            self.save()

    def reset_to_defaults(self):
        """Reset all sections to defaults"""
        for name, defaults in DEFAULT_SECTIONS.items():
            self.config[name] = dict(defaults)
        self.save()

    def to_dict(self) -> Dict[str, Any]:
        return json.loads(json.dumps(self.config))


# Global instance
_config_instance: Optional[DetectionConfig] = None


def get_config() -> DetectionConfig:
    """Get the global config instance"""
    global _config_instance
    if _config_instance is None:
        _config_instance = DetectionConfig()
    return _config_instance


def reset_config():
    """Drop the global config instance (next get_config() reloads from disk)"""
    global _config_instance
    _config_instance = None
