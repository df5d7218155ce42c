from __future__ import annotations

import csv
import logging
import time
from dataclasses import asdict, dataclass
from pathlib import Path

from django.db import DatabaseError, transaction
from django.utils import timezone

from .csv_utils import DEFAULT_ENCODING, ENTRY_FIELDS, extract_entry, map_headers, read_csv, to_row_dict
from .exceptions import BankImportError
from .models import SEARCH_FIELDS, BankDirectoryEntry
from .registry import BankRegistry


logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 1000

_UPDATE_FIELDS = [field for field in ENTRY_FIELDS if field != "sort_code"] + ["updated_at", *SEARCH_FIELDS]


@dataclass
class ImportReport:
    imported_count: int
    total_banks: int
    unique_bics: int
    banks_with_bic: int
    skipped_rows: int = 0
    dry_run: bool = False
    duration: float = 0.0

    def as_dict(self) -> dict:
        return asdict(self)


def _build_entry(now, values) -> BankDirectoryEntry:
    entry = BankDirectoryEntry(updated_at=now, **values)
    entry.fill_search_fields()
    return entry


def _bic_counts(entries) -> tuple[int, int]:
    bics = [entry["bic"] for entry in entries if entry["bic"]]
    return len(bics), len(set(bics))


def _batched(items, size):
    for start in range(0, len(items), size):
        yield items[start : start + size]


class BankDirectoryImporter:
    """Replace the bank registry with the content of a directory feed.

    The delete and the batched upserts run in one transaction, so readers see
    either the previous directory or the new one.
    """

    def __init__(
        self,
        registry: BankRegistry,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        encoding: str = DEFAULT_ENCODING,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1.")
        self.registry = registry
        self.batch_size = batch_size
        self.encoding = encoding

    def _read(self, source):
        if isinstance(source, (str, Path)):
            path = Path(source)
            if not path.exists():
                raise BankImportError(f"Bank directory file not found: {path}")
            with path.open("rb") as handle:
                return read_csv(handle, self.encoding)
        return read_csv(source, self.encoding)

    def parse(self, source) -> tuple[list[dict[str, str]], int]:
        try:
            headers, rows = self._read(source)
        except (LookupError, UnicodeDecodeError, csv.Error) as exc:
            raise BankImportError(f"Bank directory file could not be decoded: {exc}") from exc

        if not headers:
            raise BankImportError("Bank directory file is empty.")
        header_map = map_headers(headers)
        if "sort_code" not in header_map:
            raise BankImportError("Bank directory file has no sort code column.")

        entries: dict[str, dict[str, str]] = {}
        skipped = 0
        for row in rows:
            entry = extract_entry(to_row_dict(headers, row), header_map)
            if entry is None:
                skipped += 1
                continue
            # Repeated sort codes collapse onto one entry, last row wins.
            entries[entry["sort_code"]] = entry
        return list(entries.values()), skipped

    def run(self, source, *, dry_run: bool = False) -> ImportReport:
        started = time.monotonic()
        logger.info("Starting bank directory import from %s", source)
        entries, skipped = self.parse(source)
        logger.info("Parsed %d bank records (%d rows skipped)", len(entries), skipped)

        if dry_run:
            banks_with_bic, unique_bics = _bic_counts(entries)
            report = ImportReport(
                imported_count=0,
                total_banks=len(entries),
                unique_bics=unique_bics,
                banks_with_bic=banks_with_bic,
                skipped_rows=skipped,
                dry_run=True,
                duration=time.monotonic() - started,
            )
            logger.info("Dry run finished: %s", report.as_dict())
            return report

        try:
            self.registry.ensure_schema()
            imported = self._replace_entries(entries)
        except DatabaseError as exc:
            logger.error("Bank directory import failed and was rolled back: %s", exc)
            raise BankImportError(f"Bank directory import failed: {exc}") from exc

        # The table was replaced wholesale, so the written entries are the registry.
        banks_with_bic, unique_bics = _bic_counts(entries)
        report = ImportReport(
            imported_count=imported,
            total_banks=len(entries),
            unique_bics=unique_bics,
            banks_with_bic=banks_with_bic,
            skipped_rows=skipped,
            duration=time.monotonic() - started,
        )
        logger.info("Bank directory import finished: %s", report.as_dict())
        return report

    def _replace_entries(self, entries: list[dict[str, str]]) -> int:
        now = timezone.now()
        imported = 0
        with transaction.atomic(using=self.registry.using):
            deleted, _ = self.registry.entries.all().delete()
            logger.info("Cleared %d existing bank records", deleted)
            for batch in _batched(entries, self.batch_size):
                BankDirectoryEntry.objects.using(self.registry.using).bulk_create(
                    [_build_entry(now, entry) for entry in batch],
                    update_conflicts=True,
                    unique_fields=["sort_code"],
                    update_fields=_UPDATE_FIELDS,
                )
                imported += len(batch)
                logger.debug("Imported %d/%d bank records", imported, len(entries))
        return imported
