from __future__ import annotations


class BankLookupError(Exception):
    status_code = 400
    code = "bank_lookup_error"


class InvalidIbanError(BankLookupError):
    code = "invalid_iban"

    def __init__(self, validation):
        self.validation = validation
        super().__init__(validation.message or "Invalid IBAN.")


class InvalidSortCodeError(BankLookupError):
    code = "invalid_sort_code"


class InvalidBicError(BankLookupError):
    code = "invalid_bic"


class BatchSizeError(BankLookupError):
    code = "invalid_batch"


class RegistryUnavailableError(BankLookupError):
    status_code = 500
    code = "registry_unavailable"


class BankImportError(Exception):
    pass
