import django.core.validators
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Medicine",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(help_text="Medicine name (e.g., Paracetamol 500mg)", max_length=200)),
                (
                    "description",
                    models.TextField(blank=True, default="", help_text="Optional description of the medicine"),
                ),
                (
                    "category",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Category name (e.g., Antibiotics, Pain Relief)",
                        max_length=100,
                    ),
                ),
                (
                    "manufacturer",
                    models.CharField(blank=True, default="", help_text="Manufacturer of the medicine", max_length=200),
                ),
                (
                    "reorder_level",
                    models.PositiveIntegerField(
                        default=0,
                        help_text="Stock below this quantity is reported as low stock",
                        validators=[django.core.validators.MinValueValidator(0)],
                    ),
                ),
                (
                    "is_active",
                    models.BooleanField(default=True, help_text="Inactive medicines cannot be added to new batches"),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "verbose_name": "Medicine",
                "verbose_name_plural": "Medicines",
                "ordering": ["name"],
                "indexes": [
                    models.Index(fields=["name"], name="medicine_name_idx"),
                    models.Index(fields=["is_active"], name="medicine_active_idx"),
                ],
            },
        ),
    ]
