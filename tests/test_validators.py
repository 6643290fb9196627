"""Tests for checksum and format validators."""

from pii_engine.recognizers.validators import (
    avs_check_digit,
    format_avs,
    is_valid_payment_reference,
    is_valid_swiss_avs,
    validate_date,
    validate_email,
    validate_iban,
    validate_phone,
    validate_swiss_postal_code,
    validate_vat_number,
)


# -- IBAN --

def test_valid_swiss_iban():
    valid, country, meta = validate_iban("CH93 0076 2011 6238 5295 7")
    assert valid is True
    assert country == "CH"
    assert meta["compact"] == "CH9300762011623852957"


def test_iban_with_bad_checksum():
    assert validate_iban("CH93 0076 2011 6238 5295 8") == (False, None, None)


# -- AVS --

def test_avs_check_digit_and_format():
    assert avs_check_digit("756.1234.5678.9") == "7"
    assert format_avs("7561234567897") == "756.1234.5678.97"


def test_avs_validation():
    assert is_valid_swiss_avs("756.1234.5678.97")
    assert not is_valid_swiss_avs("756.1234.5678.98")
    assert not is_valid_swiss_avs("123.1234.5678.97")


# -- Phone --

def test_swiss_mobile_numbers():
    valid, region, meta = validate_phone("+41 79 123 45 67")
    assert valid and region == "CH"
    assert meta["e164"] == "+41791234567"
    assert validate_phone("0041 79 123 45 67")[0]


def test_short_phone_is_invalid():
    assert validate_phone("+41 12")[0] is False


# -- VAT, payment references, postal codes --

def test_swiss_uid_with_suffix():
    assert validate_vat_number("CHE-100.155.212 MWST") == (True, "CH")


def test_eu_vat_number():
    assert validate_vat_number("DE136695976") == (True, "DE")


def test_qr_reference():
    assert is_valid_payment_reference("21 00000 00003 13947 14300 09017")
    assert not is_valid_payment_reference("21 00000 00003 13947 14300 09018")


def test_swiss_postal_code():
    assert validate_swiss_postal_code("8001")
    assert validate_swiss_postal_code("CH-8001")
    assert not validate_swiss_postal_code("0999")
    assert not validate_swiss_postal_code("800")


# -- Dates and emails --

def test_calendar_dates():
    assert validate_date("15.01.2024")
    assert validate_date("2024-01-15")
    assert validate_date("15. Januar 2024")
    assert validate_date("15 janvier 2024")
    assert not validate_date("31.02.2024")
    assert not validate_date("30 février 2024")


def test_email_structure():
    assert validate_email("john.doe@example.com")
    assert not validate_email("a..b@example.com")
    assert not validate_email("john@localhost")
    assert not validate_email("john@-example.com")
