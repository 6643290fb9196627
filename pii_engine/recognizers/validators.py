"""
PII Validation using External Libraries

Checksum and format validators used by the recognizers to reject pattern
matches that only look like PII.

Libraries used:
- python-stdnum: IBAN, Swiss AVS (EAN-13), Swiss UID/VAT, EU VAT, ESR/QR references
- phonenumbers: International phone number validation

Usage:
    from pii_engine.recognizers.validators import validate_iban, is_valid_swiss_avs

    valid, country, meta = validate_iban("CH93 0076 2011 6238 5295 7")
    is_valid_swiss_avs("756.1234.5678.97")
"""

import re
from datetime import date
from typing import Optional, Tuple, Dict, Any

import phonenumbers
from phonenumbers import NumberParseException
from stdnum import ean, iban as stdnum_iban
from stdnum.ch import esr, ssn, uid
from stdnum.eu import vat as eu_vat
from stdnum.exceptions import ValidationError


# =============================================================================
# IBAN VALIDATION
# =============================================================================

def validate_iban(value: str) -> Tuple[bool, Optional[str], Optional[Dict[str, Any]]]:
    """
    Validate an IBAN using the python-stdnum library.

    Args:
        value: The IBAN string to validate (with or without spaces)

    Returns:
        Tuple of (is_valid, country_code, metadata)
        - is_valid: True if the IBAN passes the ISO 13616 mod-97 check
        - country_code: Two-letter country code (e.g., "CH", "DE")
        - metadata: Dict with compact and formatted forms
    """
    clean = value.replace(" ", "").replace("-", "").upper()
    try:
        compact = stdnum_iban.validate(clean)
    except ValidationError:
        return False, None, None
    return True, compact[:2], {
        "compact": compact,
        "formatted": stdnum_iban.format(compact),
    }


def is_valid_iban(value: str) -> bool:
    return validate_iban(value)[0]


# =============================================================================
# SWISS AVS / AHV (social security number)
# =============================================================================
# 13 digits, prefix 756 (ISO country code of Switzerland), EAN-13 check digit.

AVS_PREFIX = "756"


def avs_check_digit(body: str) -> str:
    """
    Compute the EAN-13 check digit for the first 12 AVS digits.

    Args:
        body: 12 digits (separators allowed)

    Returns:
        Single check digit as a string
    """
    digits = re.sub(r"\D", "", body)
    if len(digits) != 12:
        raise ValueError("AVS body must have 12 digits")
    return ean.calc_check_digit(digits)


def format_avs(value: str) -> str:
    """Format as 756.XXXX.XXXX.XX"""
    return ssn.format(value)


def validate_swiss_avs(value: str) -> Tuple[bool, Optional[Dict[str, Any]]]:
    """
    Validate a Swiss AVS number (756.XXXX.XXXX.XX).

    Returns:
        Tuple of (is_valid, metadata)
    """
    try:
        compact = ssn.validate(value)
    except ValidationError:
        return False, None
    return True, {"compact": compact, "formatted": ssn.format(compact)}


def is_valid_swiss_avs(value: str) -> bool:
    return validate_swiss_avs(value)[0]


# =============================================================================
# PHONE NUMBER VALIDATION
# =============================================================================

def validate_phone(
    phone: str,
    default_region: str = "CH"
) -> Tuple[bool, Optional[str], Optional[Dict[str, Any]]]:
    """
    Validate a phone number using the phonenumbers library.

    Args:
        phone: The phone number string
        default_region: Region used when the number has no country prefix

    Returns:
        Tuple of (is_valid, country_code, metadata)
    """
    candidate = phone.strip()
    # 0041 44 ... is written with an international call prefix
    if candidate.startswith("00"):
        candidate = "+" + candidate[2:]
    try:
        parsed = phonenumbers.parse(candidate, default_region)
    except NumberParseException:
        return False, None, None

    if not phonenumbers.is_valid_number(parsed):
        return False, None, None

    return True, phonenumbers.region_code_for_number(parsed), {
        "e164": phonenumbers.format_number(parsed, phonenumbers.PhoneNumberFormat.E164),
        "international": phonenumbers.format_number(
            parsed, phonenumbers.PhoneNumberFormat.INTERNATIONAL),
        "country_code": parsed.country_code,
    }


def is_valid_phone(value: str) -> bool:
    return validate_phone(value)[0]


# =============================================================================
# VAT / UID NUMBERS
# =============================================================================

_VAT_SUFFIX = re.compile(r"\s*(?:MWST|TVA|IVA)\s*$", re.IGNORECASE)


def validate_vat_number(value: str) -> Tuple[bool, Optional[str]]:
    """
    Validate a Swiss UID (CHE-123.456.789 MWST) or an EU VAT number.

    Returns:
        Tuple of (is_valid, country_code)
    """
    number = _VAT_SUFFIX.sub("", value).strip()
    if number.upper().startswith("CHE"):
        return uid.is_valid(number), "CH"
    try:
        compact = eu_vat.validate(number)
    except ValidationError:
        return False, None
    return True, compact[:2]


def is_valid_vat_number(value: str) -> bool:
    return validate_vat_number(value)[0]


# =============================================================================
# SWISS PAYMENT REFERENCES
# =============================================================================

def is_valid_payment_reference(value: str) -> bool:
    """QR / ESR reference: 27 digits with a recursive mod-10 check digit."""
    return esr.is_valid(value)


# =============================================================================
# DATES
# =============================================================================

MONTH_NAMES = {
    # German
    "januar": 1, "jänner": 1, "februar": 2, "märz": 3, "april": 4, "mai": 5, "juni": 6,
    "juli": 7, "august": 8, "september": 9, "oktober": 10, "november": 11, "dezember": 12,
    # French
    "janvier": 1, "février": 2, "mars": 3, "avril": 4, "juin": 6, "juillet": 7,
    "août": 8, "septembre": 9, "octobre": 10, "novembre": 11, "décembre": 12,
    # Italian
    "gennaio": 1, "febbraio": 2, "marzo": 3, "aprile": 4, "maggio": 5, "giugno": 6,
    "luglio": 7, "agosto": 8, "settembre": 9, "ottobre": 10, "dicembre": 12,
    # English
    "january": 1, "february": 2, "march": 3, "may": 5, "june": 6, "july": 7,
    "october": 10, "december": 12,
}

_ISO_DATE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")
_NUMERIC_DATE = re.compile(r"^(\d{1,2})[\s./-](\d{1,2})[\s./-](\d{2}|\d{4})$")
_NAMED_DATE = re.compile(r"^(\d{1,2})\.?\s*([^\W\d_]+)\s*(\d{2}|\d{4})$")


def _expand_year(year: int) -> int:
    if year < 100:
        return 2000 + year if year < 50 else 1900 + year
    return year


def _is_calendar_date(year: int, month: int, day: int) -> bool:
    try:
        date(_expand_year(year), month, day)
    except ValueError:
        return False
    return True


def validate_date(value: str) -> bool:
    """
    Check that a detected date is a real calendar date.

    Accepts 15.01.2024, 15/1/24, 2024-01-15, "15. Januar 2024",
    "15 janvier 2024". Unknown shapes are accepted so the pattern decides.
    """
    text = value.strip()

    m = _ISO_DATE.match(text)
    if m:
        return _is_calendar_date(int(m.group(1)), int(m.group(2)), int(m.group(3)))

    m = _NUMERIC_DATE.match(text)
    if m:
        return _is_calendar_date(int(m.group(3)), int(m.group(2)), int(m.group(1)))

    m = _NAMED_DATE.match(text)
    if m:
        month = MONTH_NAMES.get(m.group(2).lower())
        if month is None:
            return False
        return _is_calendar_date(int(m.group(3)), month, int(m.group(1)))

    return True


# =============================================================================
# EMAIL
# =============================================================================

def validate_email(value: str) -> bool:
    """Structural email check (no DNS or public-suffix lookups)."""
    if value.count("@") != 1:
        return False
    local, domain = value.split("@")
    if not local or not domain or ".." in value:
        return False
    if local.startswith(".") or local.endswith("."):
        return False
    labels = domain.split(".")
    if len(labels) < 2 or any(not label for label in labels):
        return False
    if any(label.startswith("-") or label.endswith("-") for label in labels):
        return False
    return labels[-1].isalpha() and len(labels[-1]) >= 2


# =============================================================================
# SWISS POSTAL CODES
# =============================================================================

def validate_swiss_postal_code(value: str) -> bool:
    """Swiss postal codes are 4 digits in 1000-9999 (optional CH- prefix)."""
    code = re.sub(r"^CH[-\s]?", "", value.strip().upper())
    return bool(re.fullmatch(r"\d{4}", code)) and 1000 <= int(code) <= 9999
