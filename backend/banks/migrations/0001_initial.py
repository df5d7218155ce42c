from django.db import migrations, models
import django.utils.timezone


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="BankDirectoryEntry",
            fields=[
                ("sort_code", models.CharField(max_length=8, primary_key=True, serialize=False)),
                ("flag", models.CharField(blank=True, max_length=1)),
                ("full_name", models.CharField(blank=True, db_index=True, max_length=255)),
                ("short_name", models.CharField(blank=True, max_length=100)),
                ("postal_code", models.CharField(blank=True, max_length=10)),
                ("city", models.CharField(blank=True, max_length=100)),
                ("head_office_indicator", models.CharField(blank=True, max_length=5)),
                ("bic", models.CharField(blank=True, db_index=True, max_length=11)),
                ("checksum_method", models.CharField(blank=True, max_length=2)),
                ("record_number", models.CharField(blank=True, max_length=10)),
                ("change_marker", models.CharField(blank=True, max_length=1)),
                ("deletion_marker", models.CharField(blank=True, max_length=1)),
                ("successor_sort_code", models.CharField(blank=True, max_length=8)),
                (
                    "updated_at",
                    models.DateTimeField(db_index=True, default=django.utils.timezone.now),
                ),
            ],
            options={
                "verbose_name": "Bank directory entry",
                "verbose_name_plural": "Bank directory entries",
                "ordering": ["sort_code"],
            },
        ),
    ]
