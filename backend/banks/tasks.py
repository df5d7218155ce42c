from __future__ import annotations

from celery import shared_task
from django.apps import apps
from django.conf import settings

from .importer import BankDirectoryImporter


@shared_task
def import_bank_directory(path: str | None = None) -> dict:
    registry = apps.get_app_config("banks").registry
    importer = BankDirectoryImporter(
        registry,
        batch_size=settings.BANK_IMPORT_BATCH_SIZE,
        encoding=settings.BANK_DIRECTORY_ENCODING,
    )
    try:
        report = importer.run(path or settings.BANK_DIRECTORY_FILE)
    finally:
        registry.close()
    return report.as_dict()
