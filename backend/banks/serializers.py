from django.conf import settings
from rest_framework import serializers


class BankSerializer(serializers.Serializer):
    name = serializers.CharField(source="full_name")
    shortName = serializers.CharField(source="short_name")
    bic = serializers.CharField()
    city = serializers.CharField()


class BicBankSerializer(serializers.Serializer):
    name = serializers.CharField(source="full_name")
    shortName = serializers.CharField(source="short_name")
    bankSortCode = serializers.CharField(source="sort_code")
    city = serializers.CharField()


class BankSearchResultSerializer(serializers.Serializer):
    sortCode = serializers.CharField(source="sort_code")
    name = serializers.CharField(source="full_name")
    shortName = serializers.CharField(source="short_name")
    bic = serializers.CharField()
    city = serializers.CharField()
    displayName = serializers.CharField(source="display_name")
    fullDisplayName = serializers.CharField(source="full_display_name")


def serialize_iban_lookup(result, *, include_query: bool = False) -> dict:
    payload = {
        "found": result.found,
        "iban": result.formatted_iban,
        "bankSortCode": result.sort_code,
        "bank": BankSerializer(result.entry).data if result.entry is not None else None,
    }
    if include_query:
        payload["iban"] = result.query
        payload["formatted"] = result.formatted_iban
    if result.error_reason:
        payload["errorReason"] = result.error_reason
        payload["error"] = result.error
    return payload


def serialize_validation(validation) -> dict:
    return {
        "isValid": validation.is_valid,
        "errorReason": validation.error_reason,
        "message": validation.message,
        "formatted": validation.formatted,
        "normalizedIban": validation.formatted or None,
        "countryCode": validation.country_code,
        "nationalBankCode": validation.national_bank_code,
    }


def serialize_status(status) -> dict:
    payload = {
        "available": status.available,
        "totalBanks": status.total_entries,
        "uniqueBics": status.unique_bics,
        "lastUpdate": status.last_updated_at.isoformat() if status.last_updated_at else None,
    }
    # Driver messages can name hosts and roles; the registry log keeps them.
    if status.error and settings.DEBUG:
        payload["error"] = status.error
    return payload


class BankLookupResponseSerializer(serializers.Serializer):
    success = serializers.BooleanField()
    found = serializers.BooleanField()
    iban = serializers.CharField(required=False)
    bankSortCode = serializers.CharField(allow_null=True)
    bank = BankSerializer(allow_null=True)


class BicLookupResponseSerializer(serializers.Serializer):
    success = serializers.BooleanField()
    found = serializers.BooleanField()
    bic = serializers.CharField()
    bank = BicBankSerializer()


class BankSearchResponseSerializer(serializers.Serializer):
    success = serializers.BooleanField()
    results = BankSearchResultSerializer(many=True)
    count = serializers.IntegerField()
    query = serializers.CharField()
    message = serializers.CharField(required=False)


class RegistryStatusSerializer(serializers.Serializer):
    available = serializers.BooleanField()
    totalBanks = serializers.IntegerField()
    uniqueBics = serializers.IntegerField()
    lastUpdate = serializers.DateTimeField(allow_null=True)
    error = serializers.CharField(required=False)


class RegistryStatusResponseSerializer(serializers.Serializer):
    success = serializers.BooleanField()
    bankDatabase = RegistryStatusSerializer()


class BatchLookupRequestSerializer(serializers.Serializer):
    ibans = serializers.ListField(child=serializers.CharField(allow_blank=True), max_length=100)


class BatchLookupResponseSerializer(serializers.Serializer):
    success = serializers.BooleanField()
    results = serializers.ListField(child=serializers.DictField())
    processed = serializers.IntegerField()


class ValidateIbanRequestSerializer(serializers.Serializer):
    iban = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class ValidateIbanResponseSerializer(serializers.Serializer):
    isValid = serializers.BooleanField()
    errorReason = serializers.CharField(allow_null=True)
    message = serializers.CharField(allow_null=True)
    formatted = serializers.CharField(allow_blank=True)
    normalizedIban = serializers.CharField(allow_null=True)
    countryCode = serializers.CharField(allow_null=True)
    nationalBankCode = serializers.CharField(allow_null=True)


class BankErrorSerializer(serializers.Serializer):
    detail = serializers.CharField()
    code = serializers.CharField()
    reason = serializers.CharField(required=False)
