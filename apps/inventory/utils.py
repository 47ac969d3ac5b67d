"""
Helper functions for the batch store.
"""
from django.utils import timezone
from django.utils.crypto import get_random_string


def generate_batch_number():
    """
    Build a system batch number, e.g. ``B-20250114-7K2QX9``.
    """
    stamp = timezone.localdate().strftime("%Y%m%d")
    suffix = get_random_string(6, allowed_chars="ABCDEFGHJKLMNPQRSTUVWXYZ23456789")
    return f"B-{stamp}-{suffix}"


def line_state(line):
    return {
        "medicine_id": line.medicine_id,
        "medicine_name": line.medicine_name,
        "quantity": line.quantity,
        "price": line.price,
        "expiry_date": line.expiry_date,
        "date_of_purchase": line.date_of_purchase,
        "reorder_level": line.reorder_level,
        "total_amount": line.total_amount,
    }


def batch_state(batch, lines=None):
    """
    Plain dict view of a batch used for diffing before and after a write.
    """
    if lines is None:
        lines = batch.medicines.order_by("position", "id")
    return {
        "bill_id": batch.bill_id,
        "miscellaneous_amount": batch.miscellaneous_amount,
        "overall_price": batch.overall_price,
        "draft_note": batch.draft_note,
        "attachments": list(batch.attachments or []),
        "medicines": [line_state(line) for line in lines],
    }
