import django.core.serializers.json
import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("inventory", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="ActivityLog",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "batch_number",
                    models.CharField(help_text="Batch number at the time of the mutation", max_length=100),
                ),
                (
                    "action",
                    models.CharField(
                        choices=[
                            ("CREATED", "Created"),
                            ("FINALIZED", "Finalized"),
                            ("UPDATED", "Updated"),
                            ("DELETED", "Deleted"),
                        ],
                        help_text="Kind of mutation",
                        max_length=10,
                    ),
                ),
                (
                    "details",
                    models.CharField(help_text="Human readable summary of the mutation", max_length=500),
                ),
                ("timestamp", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "changes",
                    models.JSONField(
                        blank=True,
                        default=list,
                        encoder=django.core.serializers.json.DjangoJSONEncoder,
                        help_text="Field level changes: [{field, old_value, new_value}]",
                    ),
                ),
                (
                    "batch",
                    models.ForeignKey(
                        db_constraint=False,
                        help_text="Batch the entry refers to (kept after the batch is deleted)",
                        on_delete=django.db.models.deletion.DO_NOTHING,
                        related_name="activity_logs",
                        to="inventory.batch",
                    ),
                ),
                (
                    "owner",
                    models.ForeignKey(
                        help_text="User who performed the mutation",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="batch_activity_logs",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Activity Log",
                "verbose_name_plural": "Activity Logs",
                "ordering": ["-timestamp", "-id"],
                "indexes": [
                    models.Index(fields=["batch", "-timestamp"], name="activity_batch_ts_idx"),
                    models.Index(fields=["batch_number", "-timestamp"], name="activity_number_ts_idx"),
                    models.Index(fields=["owner", "-timestamp"], name="activity_owner_ts_idx"),
                    models.Index(fields=["-timestamp"], name="activity_ts_idx"),
                ],
            },
        ),
    ]
