"""Tests for DetectionConfig persistence and defaults."""

import json

import pytest

from pii_engine.detection_config import (
    DEFAULT_ADDRESS_SETTINGS,
    VERSION,
    DetectionConfig,
    get_config,
    reset_config,
)


def test_defaults_without_file(tmp_path):
    config = DetectionConfig(str(tmp_path / "missing.json"))
    assert config.get("pipeline", "auto_anonymize_threshold") == 0.6
    assert config.get_section("address") == DEFAULT_ADDRESS_SETTINGS
    assert config.get("document", "min_classification_confidence") == 0.4


def test_saved_values_merge_over_defaults(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"address": {"max_span_chars": 150}}), encoding="utf-8")

    config = DetectionConfig(str(path))
    address = config.get_section("address")
    assert address["max_span_chars"] == 150
    # Keys missing from the file still get their default
    assert address["min_components"] == DEFAULT_ADDRESS_SETTINGS["min_components"]


def test_unreadable_file_is_ignored(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{not json", encoding="utf-8")
    config = DetectionConfig(str(path))
    assert config.get("regex", "timeout_ms") == 100


def test_set_value_persists(tmp_path):
    path = tmp_path / "config.json"
    config = DetectionConfig(str(path))
    config.set_value("high_recall", "ml_threshold", 0.5)

    reloaded = DetectionConfig(str(path))
    assert reloaded.get("high_recall", "ml_threshold") == 0.5


def test_unknown_section_rejected(tmp_path):
    config = DetectionConfig(str(tmp_path / "c.json"))
    with pytest.raises(KeyError):
        config.get_section("nope")
    with pytest.raises(KeyError):
        config.set_value("nope", "key", 1)


def test_reset_to_defaults(tmp_path):
    config = DetectionConfig(str(tmp_path / "c.json"))
    config.set_value("pipeline", "deduplicate", False)
    config.reset_to_defaults()
    assert config.get("pipeline", "deduplicate") is True


def test_global_instance_uses_env_path(tmp_path):
    config = get_config()
    assert config.config_path == tmp_path / "detection_config.json"
    assert get_config() is config
    reset_config()
    assert get_config() is not config


def test_version_is_exported():
    import pii_engine

    assert pii_engine.__version__ == VERSION
