from django.apps import AppConfig
from django.conf import settings


class BanksConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "banks"
    verbose_name = "Bank registry"

    registry = None
    lookup_service = None

    def ready(self):
        from .registry import BankRegistry
        from .services import BankLookupService

        self.registry = BankRegistry(
            using=settings.BANK_REGISTRY_DATABASE,
            search_hard_limit=settings.BANK_SEARCH_MAX_LIMIT,
        )
        self.lookup_service = BankLookupService(
            self.registry,
            registry_country=settings.BANK_REGISTRY_COUNTRY,
            sort_code_length=settings.BANK_SORT_CODE_LENGTH,
            search_max_limit=settings.BANK_SEARCH_MAX_LIMIT,
            batch_max_size=settings.BANK_BATCH_LOOKUP_MAX_SIZE,
        )
