from django.db import models
from django.utils import timezone


SEARCH_FIELDS = ("search_full_name", "search_short_name", "search_city")


def search_key(value) -> str:
    return str(value or "").strip().casefold()


class BankDirectoryEntry(models.Model):
    sort_code = models.CharField(max_length=8, primary_key=True)
    flag = models.CharField(max_length=1, blank=True)
    full_name = models.CharField(max_length=255, blank=True, db_index=True)
    short_name = models.CharField(max_length=100, blank=True)
    postal_code = models.CharField(max_length=10, blank=True)
    city = models.CharField(max_length=100, blank=True)
    head_office_indicator = models.CharField(max_length=5, blank=True)
    bic = models.CharField(max_length=11, blank=True, db_index=True)
    checksum_method = models.CharField(max_length=2, blank=True)
    record_number = models.CharField(max_length=10, blank=True)
    change_marker = models.CharField(max_length=1, blank=True)
    deletion_marker = models.CharField(max_length=1, blank=True)
    successor_sort_code = models.CharField(max_length=8, blank=True)
    updated_at = models.DateTimeField(default=timezone.now, db_index=True)
    # Casefolded copies for name search; the database folds case for ASCII only.
    search_full_name = models.CharField(max_length=255, blank=True, editable=False)
    search_short_name = models.CharField(max_length=100, blank=True, editable=False)
    search_city = models.CharField(max_length=100, blank=True, editable=False)

    class Meta:
        ordering = ["sort_code"]
        verbose_name = "Bank directory entry"
        verbose_name_plural = "Bank directory entries"

    @property
    def display_name(self) -> str:
        return f"{self.short_name} ({self.city})"

    @property
    def full_display_name(self) -> str:
        return f"{self.full_name} - {self.city}"

    def fill_search_fields(self):
        self.search_full_name = search_key(self.full_name)[:255]
        self.search_short_name = search_key(self.short_name)[:100]
        self.search_city = search_key(self.city)[:100]

    def save(self, *args, **kwargs):
        self.fill_search_fields()
        super().save(*args, **kwargs)

    def __str__(self):
        return f"{self.sort_code} {self.short_name or self.full_name}"
