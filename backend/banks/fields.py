from __future__ import annotations

from rest_framework import serializers

from .iban import CHECKSUM, FORMAT, LENGTH, UNKNOWN_COUNTRY, validate_iban


_ERROR_CODES = {
    FORMAT: "invalid_iban_format",
    UNKNOWN_COUNTRY: "unknown_country",
    LENGTH: "invalid_length",
    CHECKSUM: "invalid_checksum",
}


class IbanField(serializers.CharField):
    """Serializer field that validates an IBAN and stores its compact form.

    Blank values pass through unless the field is declared with
    ``allow_blank=False``.
    """

    default_error_messages = {
        "invalid_iban_format": "Enter a valid IBAN.",
        "unknown_country": "Unknown IBAN country code.",
        "invalid_length": "IBAN has the wrong length for its country.",
        "invalid_checksum": "IBAN checksum is invalid.",
    }

    def __init__(self, **kwargs):
        kwargs.setdefault("max_length", 64)
        kwargs.setdefault("allow_blank", True)
        super().__init__(**kwargs)

    def to_internal_value(self, data):
        value = super().to_internal_value(data)
        validation = validate_iban(value)
        if not validation.is_valid:
            self.fail(_ERROR_CODES[validation.error_reason])
        return validation.electronic
