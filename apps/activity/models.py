"""
Activity log models for the pharmacy stock service.

This module defines the append-only audit trail of batch mutations.
"""
from django.conf import settings
from django.core.serializers.json import DjangoJSONEncoder
from django.db import models
from django.utils import timezone


class ImmutableRecordError(Exception):
    """Raised when code tries to modify or remove an append-only record."""


class AppendOnlyQuerySet(models.QuerySet):
    def update(self, **kwargs):
        raise ImmutableRecordError(f"{self.model.__name__} records cannot be updated.")

    def delete(self):
        raise ImmutableRecordError(f"{self.model.__name__} records cannot be deleted.")


class AppendOnlyModel(models.Model):
    """
    Base class for records that are written once and never changed.

    Rows reference their batch without a database constraint, so they stay
    queryable after the batch itself is deleted.
    """

    objects = AppendOnlyQuerySet.as_manager()

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ImmutableRecordError(f"{self.__class__.__name__} records cannot be updated.")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ImmutableRecordError(f"{self.__class__.__name__} records cannot be deleted.")


class ActivityLog(AppendOnlyModel):
    """
    One entry per mutating batch operation.
    """
    ACTION_CREATED = "CREATED"
    ACTION_FINALIZED = "FINALIZED"
    ACTION_UPDATED = "UPDATED"
    ACTION_DELETED = "DELETED"

    ACTION_CHOICES = [
        (ACTION_CREATED, "Created"),
        (ACTION_FINALIZED, "Finalized"),
        (ACTION_UPDATED, "Updated"),
        (ACTION_DELETED, "Deleted"),
    ]

    DETAILS_MAX_LENGTH = 500

    batch = models.ForeignKey(
        "inventory.Batch",
        on_delete=models.DO_NOTHING,
        db_constraint=False,
        related_name="activity_logs",
        help_text="Batch the entry refers to (kept after the batch is deleted)"
    )
    batch_number = models.CharField(
        max_length=100,
        help_text="Batch number at the time of the mutation"
    )
    action = models.CharField(
        max_length=10,
        choices=ACTION_CHOICES,
        help_text="Kind of mutation"
    )
    details = models.CharField(
        max_length=DETAILS_MAX_LENGTH,
        help_text="Human readable summary of the mutation"
    )
    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="batch_activity_logs",
        help_text="User who performed the mutation"
    )
    timestamp = models.DateTimeField(default=timezone.now)
    changes = models.JSONField(
        default=list,
        blank=True,
        encoder=DjangoJSONEncoder,
        help_text="Field level changes: [{field, old_value, new_value}]"
    )

    class Meta:
        verbose_name = "Activity Log"
        verbose_name_plural = "Activity Logs"
        ordering = ['-timestamp', '-id']
        indexes = [
            models.Index(fields=['batch', '-timestamp'], name='activity_batch_ts_idx'),
            models.Index(fields=['batch_number', '-timestamp'], name='activity_number_ts_idx'),
            models.Index(fields=['owner', '-timestamp'], name='activity_owner_ts_idx'),
            models.Index(fields=['-timestamp'], name='activity_ts_idx'),
        ]

    def __str__(self):
        return f"{self.batch_number} {self.action} @ {self.timestamp:%Y-%m-%d %H:%M}"
