"""
Medicine models for the pharmacy stock service.

This module defines the medicine catalog: canonical identity, name and the
reorder threshold used by low-stock detection.
"""
from django.db import models
from django.core.validators import MinValueValidator


class ActiveMedicineQuerySet(models.QuerySet):
    def active(self):
        return self.filter(is_active=True)


class Medicine(models.Model):
    """
    Medicine catalog entry.

    Medicines are never deleted, only deactivated, so that batch line items
    keep a valid reference.
    """
    name = models.CharField(
        max_length=200,
        help_text="Medicine name (e.g., Paracetamol 500mg)"
    )
    description = models.TextField(
        blank=True,
        default="",
        help_text="Optional description of the medicine"
    )
    category = models.CharField(
        max_length=100,
        blank=True,
        default="",
        help_text="Category name (e.g., Antibiotics, Pain Relief)"
    )
    manufacturer = models.CharField(
        max_length=200,
        blank=True,
        default="",
        help_text="Manufacturer of the medicine"
    )
    reorder_level = models.PositiveIntegerField(
        default=0,
        validators=[MinValueValidator(0)],
        help_text="Stock below this quantity is reported as low stock"
    )
    is_active = models.BooleanField(
        default=True,
        help_text="Inactive medicines cannot be added to new batches"
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = ActiveMedicineQuerySet.as_manager()

    class Meta:
        verbose_name = "Medicine"
        verbose_name_plural = "Medicines"
        ordering = ['name']
        indexes = [
            models.Index(fields=['name'], name='medicine_name_idx'),
            models.Index(fields=['is_active'], name='medicine_active_idx'),
        ]

    def __str__(self):
        return f"{self.name} (#{self.id})"
