from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from django.db import DatabaseError, connections
from django.db.models import Case, Count, IntegerField, Max, Q, Value, When

from .models import BankDirectoryEntry, search_key


logger = logging.getLogger(__name__)

SEARCH_HARD_LIMIT = 50


@dataclass
class RegistryStatus:
    available: bool
    total_entries: int = 0
    unique_bics: int = 0
    last_updated_at: datetime | None = None
    error: str = ""


class BankRegistry:
    """Read side of the bank directory, bound to one Django database alias.

    Writes belong to ``BankDirectoryImporter``; nothing on the request path
    modifies entries.
    """

    def __init__(self, using: str = "default", search_hard_limit: int = SEARCH_HARD_LIMIT):
        self.using = using
        self.search_hard_limit = search_hard_limit

    def __repr__(self) -> str:
        return f"BankRegistry(using={self.using!r})"

    @property
    def entries(self):
        return BankDirectoryEntry.objects.using(self.using)

    def _with_bic(self):
        return self.entries.exclude(bic="")

    def find_by_sort_code(self, sort_code: str) -> BankDirectoryEntry | None:
        code = str(sort_code or "").strip()
        if not code:
            return None
        return self._with_bic().filter(sort_code=code).first()

    def find_by_bic(self, bic: str) -> BankDirectoryEntry | None:
        normalized = str(bic or "").strip().upper()
        if not normalized:
            return None
        # BIC is not unique across sort codes; lowest sort code wins.
        return self.entries.filter(bic=normalized).order_by("sort_code").first()

    def search_by_name(self, term: str, limit: int = 10) -> list[BankDirectoryEntry]:
        key = search_key(term)
        if not key:
            return []
        limit = max(1, min(int(limit), self.search_hard_limit))
        queryset = (
            self._with_bic()
            .filter(
                Q(search_full_name__contains=key)
                | Q(search_short_name__contains=key)
                | Q(search_city__contains=key)
            )
            .annotate(
                match_rank=Case(
                    When(search_short_name__startswith=key, then=Value(1)),
                    When(search_full_name__startswith=key, then=Value(2)),
                    default=Value(3),
                    output_field=IntegerField(),
                )
            )
            .order_by("match_rank", "full_name", "sort_code")
        )
        return list(queryset[:limit])

    def status(self) -> RegistryStatus:
        try:
            stats = self.entries.aggregate(
                total=Count("sort_code"),
                unique_bics=Count("bic", distinct=True, filter=~Q(bic="")),
                last_updated_at=Max("updated_at"),
            )
        except DatabaseError as exc:
            logger.error("Bank registry status query failed: %s", exc)
            return RegistryStatus(available=False, error=str(exc))
        return RegistryStatus(
            available=True,
            total_entries=stats["total"] or 0,
            unique_bics=stats["unique_bics"] or 0,
            last_updated_at=stats["last_updated_at"],
        )

    def ensure_schema(self) -> bool:
        """Create the directory table and its indices when missing; True if created."""
        connection = connections[self.using]
        table_name = BankDirectoryEntry._meta.db_table
        with connection.cursor() as cursor:
            existing_tables = connection.introspection.table_names(cursor)
        if table_name in existing_tables:
            return False
        logger.info("Creating bank directory table %s on %r", table_name, self.using)
        with connection.schema_editor() as editor:
            editor.create_model(BankDirectoryEntry)
        return True

    def close(self) -> None:
        connections[self.using].close()
