from decimal import Decimal

import django.core.validators
import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("medicines", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Batch",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "batch_number",
                    models.CharField(
                        help_text="Globally unique batch number (immutable once set)", max_length=100, unique=True
                    ),
                ),
                (
                    "bill_id",
                    models.CharField(blank=True, default="", help_text="External bill reference", max_length=100),
                ),
                (
                    "overall_price",
                    models.DecimalField(
                        decimal_places=2, default=Decimal("0.00"), help_text="Sum of line item totals", max_digits=14
                    ),
                ),
                (
                    "miscellaneous_amount",
                    models.DecimalField(
                        decimal_places=2,
                        default=Decimal("0.00"),
                        help_text="Extra cost not attributable to a line item",
                        max_digits=12,
                        validators=[django.core.validators.MinValueValidator(Decimal("0.00"))],
                    ),
                ),
                ("attachments", models.JSONField(blank=True, default=list, help_text="Opaque document URLs")),
                (
                    "is_draft",
                    models.BooleanField(default=True, help_text="Drafts are not part of the stock in circulation"),
                ),
                ("draft_note", models.TextField(blank=True, default="")),
                (
                    "finalized_at",
                    models.DateTimeField(blank=True, help_text="Set once, when the draft is finalized", null=True),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("version", models.PositiveIntegerField(default=1, help_text="Incremented on every write")),
                (
                    "created_by",
                    models.ForeignKey(
                        help_text="User who created the batch",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="created_batches",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Batch",
                "verbose_name_plural": "Batches",
                "ordering": ["-created_at", "-id"],
                "indexes": [
                    models.Index(fields=["is_draft", "-created_at"], name="batch_draft_created_idx"),
                    models.Index(fields=["bill_id"], name="batch_bill_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="BatchMedicine",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("medicine_name", models.CharField(max_length=200)),
                ("quantity", models.PositiveIntegerField(default=0, help_text="Remaining units in this batch")),
                (
                    "price",
                    models.DecimalField(
                        decimal_places=2,
                        help_text="Unit sale price",
                        max_digits=12,
                        validators=[django.core.validators.MinValueValidator(Decimal("0.00"))],
                    ),
                ),
                ("expiry_date", models.DateField(blank=True, null=True)),
                ("date_of_purchase", models.DateField(blank=True, null=True)),
                ("reorder_level", models.PositiveIntegerField(default=0)),
                (
                    "total_amount",
                    models.DecimalField(
                        decimal_places=2,
                        default=Decimal("0.00"),
                        help_text="quantity x price at the last write",
                        max_digits=14,
                    ),
                ),
                ("position", models.PositiveIntegerField(default=0)),
                (
                    "batch",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="medicines",
                        to="inventory.batch",
                    ),
                ),
                (
                    "medicine",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="batch_lines",
                        to="medicines.medicine",
                    ),
                ),
            ],
            options={
                "verbose_name": "Batch Medicine",
                "verbose_name_plural": "Batch Medicines",
                "ordering": ["batch", "position", "id"],
                "indexes": [
                    models.Index(fields=["medicine", "expiry_date"], name="batch_line_medicine_exp_idx"),
                    models.Index(fields=["expiry_date"], name="batch_line_expiry_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(fields=("batch", "medicine"), name="unique_medicine_per_batch"),
                ],
            },
        ),
        migrations.CreateModel(
            name="DiscardRecord",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("batch_number", models.CharField(max_length=100)),
                ("medicine_name", models.CharField(max_length=200)),
                (
                    "quantity_discarded",
                    models.PositiveIntegerField(validators=[django.core.validators.MinValueValidator(1)]),
                ),
                ("price_per_unit", models.DecimalField(decimal_places=2, max_digits=12)),
                (
                    "total_value",
                    models.DecimalField(
                        decimal_places=2, help_text="quantity_discarded x price_per_unit", max_digits=14
                    ),
                ),
                ("expiry_date", models.DateField(blank=True, null=True)),
                ("discarded_at", models.DateTimeField(auto_now_add=True)),
                ("reason", models.CharField(default="Expired", max_length=255)),
                (
                    "batch",
                    models.ForeignKey(
                        db_constraint=False,
                        on_delete=django.db.models.deletion.DO_NOTHING,
                        related_name="discard_records",
                        to="inventory.batch",
                    ),
                ),
                (
                    "discarded_by",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="discard_records",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "medicine",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="discard_records",
                        to="medicines.medicine",
                    ),
                ),
            ],
            options={
                "verbose_name": "Discard Record",
                "verbose_name_plural": "Discard Records",
                "ordering": ["-discarded_at", "-id"],
                "indexes": [
                    models.Index(fields=["medicine", "-discarded_at"], name="discard_medicine_idx"),
                    models.Index(fields=["discarded_by", "-discarded_at"], name="discard_user_idx"),
                    models.Index(fields=["-discarded_at"], name="discard_at_idx"),
                ],
            },
        ),
    ]
