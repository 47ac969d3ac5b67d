"""
User models for the pharmacy stock service.

This module defines the custom User model with role-based access control.
Roles: Admin, Manager, Pharmacist
"""
from django.contrib.auth.models import AbstractUser
from django.db import models


class User(AbstractUser):
    """
    Custom User model extending Django's AbstractUser.

    The authenticated user is the actor recorded on batches, activity log
    entries and discard records.

    Roles:
    - ADMIN: Full system access, including batch deletion
    - MANAGER: Can create, update, finalize batches and discard stock
    - PHARMACIST: Read-only access to stock data
    """
    ROLE_ADMIN = "ADMIN"
    ROLE_MANAGER = "MANAGER"
    ROLE_PHARMACIST = "PHARMACIST"

    ROLE_CHOICES = [
        (ROLE_ADMIN, "Admin"),
        (ROLE_MANAGER, "Manager"),
        (ROLE_PHARMACIST, "Pharmacist"),
    ]

    role = models.CharField(
        max_length=20,
        choices=ROLE_CHOICES,
        default=ROLE_MANAGER,
        help_text="User role determines access level"
    )
    phone_number = models.CharField(
        max_length=20,
        blank=True,
        null=True,
        help_text="Contact phone number"
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "User"
        verbose_name_plural = "Users"
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.username} ({self.get_role_display()})"

    def is_admin(self):
        """Check if user is an admin."""
        return self.is_superuser or self.role == self.ROLE_ADMIN

    def is_manager(self):
        """Check if user is a manager."""
        return self.role == self.ROLE_MANAGER

    def is_pharmacist(self):
        """Check if user is a pharmacist."""
        return self.role == self.ROLE_PHARMACIST
