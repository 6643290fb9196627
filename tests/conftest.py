"""
Shared fixtures: every test starts with fresh process-wide state.
"""

import pytest

from pii_engine.anonymization import reset_anonymization_session
from pii_engine.detection_config import reset_config
from pii_engine.recognizers import create_default_registry, reset_deny_list, reset_registry


@pytest.fixture(autouse=True)
def clean_globals(tmp_path, monkeypatch):
    monkeypatch.setenv("PII_ENGINE_CONFIG", str(tmp_path / "detection_config.json"))
    reset_config()
    reset_deny_list()
    reset_registry()
    reset_anonymization_session()
    yield
    reset_config()
    reset_deny_list()
    reset_registry()
    reset_anonymization_session()


@pytest.fixture
def registry():
    return create_default_registry()


INVOICE_TEXT = (
    "Rechnung Nr. 2024-0815\n"
    "Rechnungsdatum: 15.01.2024\n"
    "\n"
    "Menge Einzelpreis Betrag\n"
    "1 Beratung CHF 1'200.00\n"
    "\n"
    "Gesamtbetrag: CHF 1'200.00\n"
    "MwSt 8.1% inklusive\n"
    "Zahlbar innert 30 Tagen auf IBAN CH93 0076 2011 6238 5295 7\n"
)


@pytest.fixture
def invoice_text():
    return INVOICE_TEXT
