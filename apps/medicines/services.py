import logging

from django.core.exceptions import ValidationError
from django.db import transaction

from .models import Medicine

logger = logging.getLogger(__name__)


class MedicineService:
    EDITABLE_FIELDS = ("name", "description", "category", "manufacturer", "reorder_level", "is_active")

    @staticmethod
    def _clean_reorder_level(value):
        try:
            value = int(value)
        except (TypeError, ValueError):
            raise ValidationError({"reorder_level": "Reorder level must be an integer."})
        if value < 0:
            raise ValidationError({"reorder_level": "Reorder level must be non-negative."})
        return value

    @staticmethod
    def create_medicine(*, medicine_data):
        """
        Create a catalog entry.
        """
        name = str(medicine_data.get("name") or "").strip()
        if not name:
            raise ValidationError({"name": "Medicine name is required."})

        data = {key: medicine_data[key] for key in MedicineService.EDITABLE_FIELDS if key in medicine_data}
        data["name"] = name
        if "reorder_level" in data:
            data["reorder_level"] = MedicineService._clean_reorder_level(data["reorder_level"])

        medicine = Medicine(**data)
        medicine.full_clean()
        medicine.save()
        logger.info("Medicine %s created (%s)", medicine.id, medicine.name)
        return medicine

    @staticmethod
    def _duplicate_key(name, category):
        return (name.strip().lower(), str(category or "").strip().lower())

    @staticmethod
    def create_medicines(*, items):
        """
        Create many catalog entries in one transaction.

        Rows are reported by line number (1-based). Invalid rows go to
        ``failed``; rows whose name and category match an existing medicine or
        an earlier row go to ``duplicates``. The valid rows are still created.
        """
        if not isinstance(items, (list, tuple)) or not items:
            raise ValidationError({"medicines": "Medicines list is required and cannot be empty."})

        existing = {
            MedicineService._duplicate_key(name, category)
            for name, category in Medicine.objects.values_list("name", "category")
        }
        first_seen = {}
        results = {"created": [], "failed": [], "duplicates": []}

        with transaction.atomic():
            for line_number, item in enumerate(items, start=1):
                if not isinstance(item, dict):
                    results["failed"].append({
                        "line": line_number,
                        "name": "",
                        "errors": {"detail": ["Invalid medicine entry."]},
                    })
                    continue

                name = str(item.get("name") or "").strip()
                key = MedicineService._duplicate_key(name, item.get("category"))
                if name and key in first_seen:
                    results["duplicates"].append({
                        "line": line_number,
                        "name": name,
                        "error": f"Duplicate of line {first_seen[key]}.",
                    })
                    continue
                if name and key in existing:
                    results["duplicates"].append({
                        "line": line_number,
                        "name": name,
                        "error": "A medicine with this name and category already exists.",
                    })
                    continue

                try:
                    medicine = MedicineService.create_medicine(medicine_data=item)
                except ValidationError as exc:
                    errors = exc.message_dict if hasattr(exc, "message_dict") else {"detail": exc.messages}
                    results["failed"].append({"line": line_number, "name": name, "errors": errors})
                    continue

                first_seen[key] = line_number
                results["created"].append(medicine)

        logger.info(
            "Bulk medicine import: %s created, %s failed, %s duplicates",
            len(results["created"]), len(results["failed"]), len(results["duplicates"]),
        )
        return results

    @staticmethod
    def update_medicine(medicine, *, medicine_data):
        """
        Edit catalog fields.

        Line items already in batches keep their own name/reorder snapshots.
        """
        for key in MedicineService.EDITABLE_FIELDS:
            if key not in medicine_data:
                continue
            value = medicine_data[key]
            if key == "name":
                value = (value or "").strip()
                if not value:
                    raise ValidationError({"name": "Medicine name is required."})
            if key == "reorder_level":
                value = MedicineService._clean_reorder_level(value)
            setattr(medicine, key, value)
        medicine.save()
        return medicine

    @staticmethod
    def deactivate(medicine):
        with transaction.atomic():
            medicine = Medicine.objects.select_for_update().get(pk=medicine.pk)
            if medicine.is_active:
                medicine.is_active = False
                medicine.save(update_fields=["is_active", "updated_at"])
                logger.info("Medicine %s deactivated", medicine.id)
        return medicine
