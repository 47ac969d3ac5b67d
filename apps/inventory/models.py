"""
Inventory models for the pharmacy stock service.

This module defines purchase batches, their medicine line items and the
immutable records left behind by the discard workflow.
"""
from decimal import Decimal

from django.conf import settings
from django.db import models
from django.core.validators import MinValueValidator

from apps.activity.models import AppendOnlyModel
from apps.medicines.models import Medicine


class Batch(models.Model):
    """
    Purchase batch.

    A batch starts as a draft and is finalized exactly once. Only finalized
    batches count as stock in circulation.
    """
    batch_number = models.CharField(
        max_length=100,
        unique=True,
        help_text="Globally unique batch number (immutable once set)"
    )
    bill_id = models.CharField(
        max_length=100,
        blank=True,
        default="",
        help_text="External bill reference"
    )
    overall_price = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        default=Decimal("0.00"),
        help_text="Sum of line item totals"
    )
    miscellaneous_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
        validators=[MinValueValidator(Decimal("0.00"))],
        help_text="Extra cost not attributable to a line item"
    )
    attachments = models.JSONField(
        default=list,
        blank=True,
        help_text="Opaque document URLs"
    )
    is_draft = models.BooleanField(
        default=True,
        help_text="Drafts are not part of the stock in circulation"
    )
    draft_note = models.TextField(blank=True, default="")
    finalized_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Set once, when the draft is finalized"
    )
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='created_batches',
        help_text="User who created the batch"
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    version = models.PositiveIntegerField(
        default=1,
        help_text="Incremented on every write"
    )

    class Meta:
        verbose_name = "Batch"
        verbose_name_plural = "Batches"
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['is_draft', '-created_at'], name='batch_draft_created_idx'),
            models.Index(fields=['bill_id'], name='batch_bill_idx'),
        ]

    def __str__(self):
        state = "draft" if self.is_draft else "finalized"
        return f"Batch {self.batch_number} ({state})"

    @property
    def is_finalized(self):
        return not self.is_draft


class BatchMedicine(models.Model):
    """
    Medicine line item owned by a batch.

    Name and reorder level are snapshots taken when the line is written.
    """
    batch = models.ForeignKey(
        Batch,
        on_delete=models.CASCADE,
        related_name='medicines'
    )
    medicine = models.ForeignKey(
        Medicine,
        on_delete=models.PROTECT,
        related_name='batch_lines'
    )
    medicine_name = models.CharField(max_length=200)
    quantity = models.PositiveIntegerField(
        default=0,
        help_text="Remaining units in this batch"
    )
    price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.00"))],
        help_text="Unit sale price"
    )
    expiry_date = models.DateField(null=True, blank=True)
    date_of_purchase = models.DateField(null=True, blank=True)
    reorder_level = models.PositiveIntegerField(default=0)
    total_amount = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        default=Decimal("0.00"),
        help_text="quantity x price at the last write"
    )
    position = models.PositiveIntegerField(default=0)

    class Meta:
        verbose_name = "Batch Medicine"
        verbose_name_plural = "Batch Medicines"
        ordering = ['batch', 'position', 'id']
        constraints = [
            models.UniqueConstraint(fields=['batch', 'medicine'], name='unique_medicine_per_batch'),
        ]
        indexes = [
            models.Index(fields=['medicine', 'expiry_date'], name='batch_line_medicine_exp_idx'),
            models.Index(fields=['expiry_date'], name='batch_line_expiry_idx'),
        ]

    def __str__(self):
        return f"{self.medicine_name} x {self.quantity} ({self.batch.batch_number})"

    def stock_value(self):
        return self.quantity * self.price


class DiscardRecord(AppendOnlyModel):
    """
    Units removed from a batch by the discard workflow.

    One record per batch touched by a discard. Records outlive their batch.
    """
    batch = models.ForeignKey(
        Batch,
        on_delete=models.DO_NOTHING,
        db_constraint=False,
        related_name='discard_records'
    )
    batch_number = models.CharField(max_length=100)
    medicine = models.ForeignKey(
        Medicine,
        on_delete=models.PROTECT,
        related_name='discard_records'
    )
    medicine_name = models.CharField(max_length=200)
    quantity_discarded = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    price_per_unit = models.DecimalField(max_digits=12, decimal_places=2)
    total_value = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        help_text="quantity_discarded x price_per_unit"
    )
    expiry_date = models.DateField(null=True, blank=True)
    discarded_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='discard_records'
    )
    discarded_at = models.DateTimeField(auto_now_add=True)
    reason = models.CharField(max_length=255, default="Expired")

    class Meta:
        verbose_name = "Discard Record"
        verbose_name_plural = "Discard Records"
        ordering = ['-discarded_at', '-id']
        indexes = [
            models.Index(fields=['medicine', '-discarded_at'], name='discard_medicine_idx'),
            models.Index(fields=['discarded_by', '-discarded_at'], name='discard_user_idx'),
            models.Index(fields=['-discarded_at'], name='discard_at_idx'),
        ]

    def __str__(self):
        return f"Discarded {self.quantity_discarded} x {self.medicine_name} from {self.batch_number}"
