from __future__ import annotations

import logging
import re
from dataclasses import dataclass


logger = logging.getLogger(__name__)


FORMAT = "FORMAT"
UNKNOWN_COUNTRY = "UNKNOWN_COUNTRY"
LENGTH = "LENGTH"
CHECKSUM = "CHECKSUM"

ERROR_REASONS = (FORMAT, UNKNOWN_COUNTRY, LENGTH, CHECKSUM)

IBAN_LENGTHS = {
    "AD": 24, "AE": 23, "AL": 28, "AT": 20, "AZ": 28, "BA": 20, "BE": 16,
    "BG": 22, "BH": 22, "BI": 27, "BR": 29, "BY": 28, "CH": 21, "CR": 22,
    "CY": 28, "CZ": 24, "DE": 22, "DJ": 27, "DK": 18, "DO": 28, "EE": 20,
    "EG": 29, "ES": 24, "FI": 18, "FK": 18, "FO": 18, "FR": 27, "GB": 22,
    "GE": 22, "GI": 23, "GL": 18, "GR": 27, "GT": 28, "HR": 21, "HU": 28,
    "IE": 22, "IL": 23, "IQ": 23, "IS": 26, "IT": 27, "JO": 30, "KW": 30,
    "KZ": 20, "LB": 28, "LC": 32, "LI": 21, "LT": 20, "LU": 20, "LV": 21,
    "LY": 25, "MC": 27, "MD": 24, "ME": 22, "MK": 19, "MN": 20, "MR": 27,
    "MT": 31, "MU": 30, "NI": 28, "NL": 18, "NO": 15, "OM": 23, "PK": 24,
    "PL": 28, "PS": 29, "PT": 25, "QA": 29, "RO": 24, "RS": 22, "RU": 33,
    "SA": 24, "SC": 31, "SD": 18, "SE": 24, "SI": 19, "SK": 24, "SM": 27,
    "SO": 23, "ST": 25, "SV": 28, "TL": 23, "TN": 24, "TR": 26, "UA": 29,
    "VA": 22, "VG": 24, "XK": 20, "YE": 30,
}

# (offset, length) of the domestic bank code inside the electronic IBAN.
BANK_CODE_POSITIONS = {
    "DE": (4, 8),
    "AT": (4, 5),
    "CH": (4, 5),
    "FR": (4, 5),
    "IT": (5, 5),
    "ES": (4, 4),
    "NL": (4, 4),
}

_IBAN_PATTERN = re.compile(r"^([A-Z]{2})([0-9]{2})([A-Z0-9]+)$")
_NON_ALNUM = re.compile(r"[^A-Za-z0-9]")

_MESSAGES = {
    FORMAT: "IBAN must start with a 2-letter country code followed by 2 check digits.",
    UNKNOWN_COUNTRY: "Unknown IBAN country code: {country}.",
    LENGTH: "Wrong IBAN length for {country}: expected {expected} characters, got {actual}.",
    CHECKSUM: "IBAN checksum is invalid. Please check the entered IBAN.",
}


@dataclass(frozen=True)
class IbanValidation:
    is_valid: bool
    error_reason: str | None = None
    formatted: str = ""
    electronic: str = ""
    country_code: str | None = None
    national_bank_code: str | None = None

    @property
    def message(self) -> str | None:
        if self.error_reason is None:
            return None
        template = _MESSAGES[self.error_reason]
        return template.format(
            country=self.country_code or "",
            expected=IBAN_LENGTHS.get(self.country_code or "", 0),
            actual=len(self.electronic),
        )


def normalize_iban(raw_value: str | None) -> str:
    return _NON_ALNUM.sub("", str(raw_value or "")).upper()


def format_iban(iban: str | None) -> str:
    """Group the cleaned IBAN in blocks of four: ``DE89 3704 0044 0532 0130 00``."""
    cleaned = normalize_iban(iban)
    return " ".join(cleaned[index : index + 4] for index in range(0, len(cleaned), 4))


def _to_digits(value: str) -> str:
    return "".join(str(ord(char) - 55) if char.isalpha() else char for char in value)


def mod97(digits: str) -> int:
    """ISO 7064 mod-97-10 over a decimal string, nine then seven digits at a time."""
    if not digits:
        return 0
    remainder = int(digits[:9]) % 97
    for offset in range(9, len(digits), 7):
        remainder = int(f"{remainder}{digits[offset : offset + 7]}") % 97
    return remainder


def compute_check_digits(country_code: str, bban: str) -> str:
    rearranged = f"{normalize_iban(bban)}{country_code.upper()}00"
    return f"{98 - mod97(_to_digits(rearranged)):02d}"


def extract_bank_code(iban: str, country_code: str | None) -> str | None:
    position = BANK_CODE_POSITIONS.get(country_code or "")
    if position is None:
        return None
    start, length = position
    if len(iban) < start + length:
        return None
    return iban[start : start + length]


def validate_iban(raw_value: str | None) -> IbanValidation:
    iban = normalize_iban(raw_value)
    if not iban:
        # IBAN is optional wherever it is collected; presence is the caller's concern.
        return IbanValidation(is_valid=True)

    formatted = format_iban(iban)
    match = _IBAN_PATTERN.match(iban)
    if not match:
        return IbanValidation(
            is_valid=False,
            error_reason=FORMAT,
            formatted=formatted,
            electronic=iban,
        )

    country_code, check_digits, rest = match.groups()
    expected_length = IBAN_LENGTHS.get(country_code)
    if expected_length is None:
        return IbanValidation(
            is_valid=False,
            error_reason=UNKNOWN_COUNTRY,
            formatted=formatted,
            electronic=iban,
            country_code=country_code,
        )

    bank_code = extract_bank_code(iban, country_code)
    if len(iban) != expected_length:
        return IbanValidation(
            is_valid=False,
            error_reason=LENGTH,
            formatted=formatted,
            electronic=iban,
            country_code=country_code,
            national_bank_code=bank_code,
        )

    if mod97(_to_digits(f"{rest}{country_code}{check_digits}")) != 1:
        return IbanValidation(
            is_valid=False,
            error_reason=CHECKSUM,
            formatted=formatted,
            electronic=iban,
            country_code=country_code,
            national_bank_code=bank_code,
        )

    return IbanValidation(
        is_valid=True,
        formatted=formatted,
        electronic=iban,
        country_code=country_code,
        national_bank_code=bank_code,
    )


def is_valid_iban(raw_value: str | None) -> bool:
    return validate_iban(raw_value).is_valid


def validate_iban_logged(raw_value: str | None, context: str = "unknown") -> IbanValidation:
    result = validate_iban(raw_value)
    if not result.electronic:
        return result
    if result.is_valid:
        logger.info("[%s] IBAN validation successful: %s (%s)", context, result.country_code, result.formatted)
    else:
        logger.warning("[%s] IBAN validation failed: %s", context, result.error_reason)
    return result
