from __future__ import annotations

from django.apps import apps
from django.conf import settings
from django.core.management.base import BaseCommand, CommandError

from banks.exceptions import BankImportError
from banks.importer import BankDirectoryImporter


class Command(BaseCommand):
    help = "Replace the bank registry with the content of a national bank directory file."

    def add_arguments(self, parser):
        parser.add_argument(
            "path",
            nargs="?",
            default=None,
            help="Semicolon-delimited directory file (defaults to BANK_DIRECTORY_FILE).",
        )
        parser.add_argument(
            "--encoding",
            default=None,
            help="Source encoding (defaults to BANK_DIRECTORY_ENCODING).",
        )
        parser.add_argument(
            "--batch-size",
            type=int,
            default=None,
            help="Rows per insert statement (defaults to BANK_IMPORT_BATCH_SIZE).",
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Parse and report without writing to the registry.",
        )

    def handle(self, *args, **options):
        path = options["path"] or settings.BANK_DIRECTORY_FILE
        batch_size = options["batch_size"] or settings.BANK_IMPORT_BATCH_SIZE
        encoding = options["encoding"] or settings.BANK_DIRECTORY_ENCODING
        if batch_size < 1:
            raise CommandError("--batch-size must be >= 1.")

        importer = BankDirectoryImporter(
            apps.get_app_config("banks").registry,
            batch_size=batch_size,
            encoding=encoding,
        )
        try:
            report = importer.run(path, dry_run=options["dry_run"])
        except BankImportError as exc:
            raise CommandError(str(exc)) from exc

        if report.dry_run:
            self.stdout.write(
                self.style.WARNING(
                    f"Dry run complete: {report.total_banks} bank(s) parsed, "
                    f"{report.banks_with_bic} with BIC, {report.unique_bics} unique BIC(s), "
                    f"{report.skipped_rows} row(s) skipped."
                )
            )
            return

        self.stdout.write(
            self.style.SUCCESS(
                f"Imported {report.imported_count} bank(s) from {path} "
                f"(total {report.total_banks}, {report.banks_with_bic} with BIC, "
                f"{report.unique_bics} unique BIC(s), {report.skipped_rows} row(s) skipped)."
            )
        )
