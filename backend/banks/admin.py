from django.contrib import admin

from .models import BankDirectoryEntry


@admin.register(BankDirectoryEntry)
class BankDirectoryEntryAdmin(admin.ModelAdmin):
    list_display = ("sort_code", "short_name", "bic", "postal_code", "city", "updated_at")
    list_filter = ("head_office_indicator", "deletion_marker")
    search_fields = ("sort_code", "bic", "full_name", "short_name", "city")
    ordering = ("sort_code",)

    # The importer owns every write.
    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
