from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from django.db import DatabaseError

from .exceptions import (
    BatchSizeError,
    InvalidBicError,
    InvalidIbanError,
    InvalidSortCodeError,
    RegistryUnavailableError,
)
from .iban import IbanValidation, validate_iban, validate_iban_logged
from .models import BankDirectoryEntry
from .registry import BankRegistry, RegistryStatus


logger = logging.getLogger(__name__)

BIC_PATTERN = re.compile(r"^[A-Z]{4}[A-Z]{2}[A-Z0-9]{2}([A-Z0-9]{3})?$")

DEFAULT_SEARCH_LIMIT = 10


@dataclass
class BankLookupResult:
    found: bool
    query: str = ""
    formatted_iban: str = ""
    sort_code: str | None = None
    entry: BankDirectoryEntry | None = None
    error_reason: str | None = None
    error: str | None = None


class BankLookupService:
    """Answers IBAN, sort code, BIC and name queries against the bank registry."""

    def __init__(
        self,
        registry: BankRegistry,
        *,
        registry_country: str = "DE",
        sort_code_length: int = 8,
        search_min_length: int = 2,
        search_max_limit: int = 50,
        batch_max_size: int = 100,
    ):
        self.registry = registry
        self.registry_country = registry_country.upper()
        self.sort_code_length = sort_code_length
        self.search_min_length = search_min_length
        self.search_max_limit = search_max_limit
        self.batch_max_size = batch_max_size
        self._sort_code_pattern = re.compile(rf"^\d{{{sort_code_length}}}$")

    def validate(self, iban: str | None) -> IbanValidation:
        return validate_iban_logged(iban, context="validate-iban")

    def _query(self, lookup, *args):
        try:
            return lookup(*args)
        except DatabaseError as exc:
            logger.error("Bank registry query failed: %s", exc)
            raise RegistryUnavailableError("Bank registry is unavailable.") from exc

    def resolve_by_iban(self, iban: str | None) -> BankLookupResult:
        validation = validate_iban(iban)
        if not validation.is_valid:
            raise InvalidIbanError(validation)

        result = BankLookupResult(
            found=False,
            query=str(iban or ""),
            formatted_iban=validation.formatted,
        )
        if validation.country_code != self.registry_country or not validation.national_bank_code:
            return result

        entry = self._query(self.registry.find_by_sort_code, validation.national_bank_code)
        if entry is None:
            return result
        result.found = True
        result.sort_code = entry.sort_code
        result.entry = entry
        return result

    def resolve_by_sort_code(self, sort_code: str) -> BankLookupResult:
        code = str(sort_code or "").strip()
        if not self._sort_code_pattern.match(code):
            raise InvalidSortCodeError(
                f"Sort code must have exactly {self.sort_code_length} digits."
            )
        entry = self._query(self.registry.find_by_sort_code, code)
        return BankLookupResult(
            found=entry is not None,
            query=code,
            sort_code=code,
            entry=entry,
        )

    def resolve_by_bic(self, bic: str) -> BankLookupResult:
        normalized = str(bic or "").strip().upper()
        if not BIC_PATTERN.match(normalized):
            raise InvalidBicError("BIC must have 8 or 11 characters.")
        entry = self._query(self.registry.find_by_bic, normalized)
        return BankLookupResult(
            found=entry is not None,
            query=normalized,
            sort_code=entry.sort_code if entry else None,
            entry=entry,
        )

    def clamp_limit(self, limit) -> int:
        try:
            value = int(limit)
        except (TypeError, ValueError):
            value = DEFAULT_SEARCH_LIMIT
        return max(1, min(value, self.search_max_limit))

    def search_by_name(self, term: str | None, limit=DEFAULT_SEARCH_LIMIT) -> list[BankDirectoryEntry]:
        term = str(term or "").strip()
        if len(term) < self.search_min_length:
            return []
        return self._query(self.registry.search_by_name, term, self.clamp_limit(limit))

    def batch_resolve_by_iban(self, ibans) -> list[BankLookupResult]:
        if not isinstance(ibans, (list, tuple)) or not ibans:
            raise BatchSizeError("A non-empty list of IBANs is required.")
        if len(ibans) > self.batch_max_size:
            raise BatchSizeError(f"At most {self.batch_max_size} IBANs are allowed per request.")

        results = []
        for iban in ibans:
            raw = "" if iban is None else str(iban)
            try:
                results.append(self.resolve_by_iban(raw))
            except InvalidIbanError as exc:
                results.append(
                    BankLookupResult(
                        found=False,
                        query=raw,
                        error_reason=exc.validation.error_reason,
                        error=str(exc),
                    )
                )
            except RegistryUnavailableError as exc:
                results.append(
                    BankLookupResult(found=False, query=raw, error_reason=exc.code, error=str(exc))
                )
        return results

    def status(self) -> RegistryStatus:
        return self.registry.status()
