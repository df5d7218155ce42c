from django.db import migrations, models


def fill_search_fields(apps, schema_editor):
    BankDirectoryEntry = apps.get_model("banks", "BankDirectoryEntry")
    db_alias = schema_editor.connection.alias
    entries = list(BankDirectoryEntry.objects.using(db_alias).all())
    for entry in entries:
        entry.search_full_name = (entry.full_name or "").strip().casefold()[:255]
        entry.search_short_name = (entry.short_name or "").strip().casefold()[:100]
        entry.search_city = (entry.city or "").strip().casefold()[:100]
    BankDirectoryEntry.objects.using(db_alias).bulk_update(
        entries,
        ["search_full_name", "search_short_name", "search_city"],
        batch_size=1000,
    )


class Migration(migrations.Migration):

    dependencies = [
        ("banks", "0001_initial"),
    ]

    operations = [
        migrations.AddField(
            model_name="bankdirectoryentry",
            name="search_full_name",
            field=models.CharField(blank=True, default="", editable=False, max_length=255),
            preserve_default=False,
        ),
        migrations.AddField(
            model_name="bankdirectoryentry",
            name="search_short_name",
            field=models.CharField(blank=True, default="", editable=False, max_length=100),
            preserve_default=False,
        ),
        migrations.AddField(
            model_name="bankdirectoryentry",
            name="search_city",
            field=models.CharField(blank=True, default="", editable=False, max_length=100),
            preserve_default=False,
        ),
        migrations.RunPython(fill_search_fields, migrations.RunPython.noop),
    ]
