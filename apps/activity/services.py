"""
Activity log services.

Append-only recording of batch mutations plus the newest-first read API.
The log has no update or delete operation.
"""
import logging
from decimal import Decimal

from django.utils.text import Truncator

from pharmacy_stock.pagination import paginate
from .models import ActivityLog

logger = logging.getLogger(__name__)


def format_money(amount):
    return f"{Decimal(amount or 0):.2f}"


def format_date(value):
    return value.isoformat() if value else "not set"


def _json_value(value):
    if isinstance(value, Decimal):
        return format_money(value)
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return value


def _line_snapshot(line):
    return {
        "medicine_id": line["medicine_id"],
        "medicine_name": line["medicine_name"],
        "quantity": line["quantity"],
        "price": format_money(line["price"]),
        "expiry_date": _json_value(line.get("expiry_date")),
        "total_value": format_money(line["total_amount"]),
    }


def _describe_medicine_changes(old_lines, new_lines):
    changes = []
    summary = []

    if len(old_lines) != len(new_lines):
        changes.append({"field": "medicines_count", "old_value": len(old_lines), "new_value": len(new_lines)})
        summary.append(f"medicines count {len(old_lines)} -> {len(new_lines)}")

    old_map = {line["medicine_id"]: line for line in old_lines}
    new_map = {line["medicine_id"]: line for line in new_lines}

    for medicine_id, line in new_map.items():
        if medicine_id not in old_map:
            changes.append({"field": "medicine_added", "old_value": None, "new_value": _line_snapshot(line)})
            summary.append(
                f'medicine "{line["medicine_name"]}" added ({line["quantity"]} units @ {format_money(line["price"])}, '
                f'expiry {format_date(line.get("expiry_date"))})'
            )

    for medicine_id, line in old_map.items():
        if medicine_id not in new_map:
            changes.append({"field": "medicine_removed", "old_value": _line_snapshot(line), "new_value": None})
            summary.append(f'medicine "{line["medicine_name"]}" removed ({line["quantity"]} units)')

    for medicine_id, new_line in new_map.items():
        old_line = old_map.get(medicine_id)
        if old_line is None:
            continue

        parts = []
        if old_line["quantity"] != new_line["quantity"]:
            difference = new_line["quantity"] - old_line["quantity"]
            changes.append({
                "field": f"medicine.{medicine_id}.quantity",
                "old_value": old_line["quantity"],
                "new_value": new_line["quantity"],
            })
            parts.append(f"quantity {old_line['quantity']} -> {new_line['quantity']} ({difference:+d} units)")
        if Decimal(old_line["price"]) != Decimal(new_line["price"]):
            changes.append({
                "field": f"medicine.{medicine_id}.price",
                "old_value": format_money(old_line["price"]),
                "new_value": format_money(new_line["price"]),
            })
            parts.append(f"unit price {format_money(old_line['price'])} -> {format_money(new_line['price'])}")
        if old_line.get("expiry_date") != new_line.get("expiry_date"):
            changes.append({
                "field": f"medicine.{medicine_id}.expiry_date",
                "old_value": _json_value(old_line.get("expiry_date")),
                "new_value": _json_value(new_line.get("expiry_date")),
            })
            parts.append(
                f"expiry {format_date(old_line.get('expiry_date'))} -> {format_date(new_line.get('expiry_date'))}"
            )
        if old_line.get("date_of_purchase") != new_line.get("date_of_purchase"):
            changes.append({
                "field": f"medicine.{medicine_id}.date_of_purchase",
                "old_value": _json_value(old_line.get("date_of_purchase")),
                "new_value": _json_value(new_line.get("date_of_purchase")),
            })
            parts.append("purchase date changed")
        if old_line.get("reorder_level") != new_line.get("reorder_level"):
            changes.append({
                "field": f"medicine.{medicine_id}.reorder_level",
                "old_value": old_line.get("reorder_level"),
                "new_value": new_line.get("reorder_level"),
            })
            parts.append(f"reorder level {old_line.get('reorder_level')} -> {new_line.get('reorder_level')}")
        if Decimal(old_line["total_amount"]) != Decimal(new_line["total_amount"]):
            changes.append({
                "field": f"medicine.{medicine_id}.total_amount",
                "old_value": format_money(old_line["total_amount"]),
                "new_value": format_money(new_line["total_amount"]),
            })

        if parts:
            summary.append(f'medicine "{new_line["medicine_name"]}": ' + ", ".join(parts))

    return changes, summary


def describe_batch_update(old_state, new_state):
    """
    Compute the field-level diff between two batch states.

    States are plain dicts (see ``apps.inventory.utils.batch_state``).
    Returns ``(summary, changes)``.
    """
    changes = []
    summary = []

    if old_state["bill_id"] != new_state["bill_id"]:
        changes.append({"field": "bill_id", "old_value": old_state["bill_id"], "new_value": new_state["bill_id"]})
        summary.append(f"bill ID {old_state['bill_id'] or 'none'} -> {new_state['bill_id']}")

    if Decimal(old_state["miscellaneous_amount"]) != Decimal(new_state["miscellaneous_amount"]):
        changes.append({
            "field": "miscellaneous_amount",
            "old_value": format_money(old_state["miscellaneous_amount"]),
            "new_value": format_money(new_state["miscellaneous_amount"]),
        })
        summary.append(
            f"miscellaneous amount {format_money(old_state['miscellaneous_amount'])} -> "
            f"{format_money(new_state['miscellaneous_amount'])}"
        )

    medicine_changes, medicine_summary = _describe_medicine_changes(old_state["medicines"], new_state["medicines"])
    changes.extend(medicine_changes)
    summary.extend(medicine_summary)

    if Decimal(old_state["overall_price"]) != Decimal(new_state["overall_price"]):
        changes.append({
            "field": "overall_price",
            "old_value": format_money(old_state["overall_price"]),
            "new_value": format_money(new_state["overall_price"]),
        })
        summary.append(
            f"overall price {format_money(old_state['overall_price'])} -> {format_money(new_state['overall_price'])}"
        )

    if old_state["draft_note"] != new_state["draft_note"]:
        changes.append({
            "field": "draft_note",
            "old_value": old_state["draft_note"] or "none",
            "new_value": new_state["draft_note"] or "none",
        })
        summary.append("draft note updated")

    if list(old_state["attachments"]) != list(new_state["attachments"]):
        old_count = len(old_state["attachments"])
        new_count = len(new_state["attachments"])
        changes.append({"field": "attachments", "old_value": old_count, "new_value": new_count})
        summary.append(f"attachments updated ({old_count} -> {new_count} files)")

    text = "Batch updated: " + "; ".join(summary) if summary else "Batch updated"
    return text, changes


class ActivityLogService:
    """
    Write-only append API plus newest-first queries.
    """

    @staticmethod
    def record(*, batch, action, details, owner, changes=None):
        if action not in dict(ActivityLog.ACTION_CHOICES):
            raise ValueError(f"Unknown activity action: {action}")
        entry = ActivityLog.objects.create(
            batch_id=batch.pk,
            batch_number=batch.batch_number,
            action=action,
            details=Truncator(details).chars(ActivityLog.DETAILS_MAX_LENGTH),
            owner=owner,
            changes=changes or [],
        )
        logger.debug("Activity %s recorded for batch %s", action, batch.batch_number)
        return entry

    @staticmethod
    def log_batch_created(batch, owner, line_count):
        state = "draft" if batch.is_draft else "finalized"
        return ActivityLogService.record(
            batch=batch,
            action=ActivityLog.ACTION_CREATED,
            details=f"Batch created as {state} with {line_count} medicines",
            owner=owner,
        )

    @staticmethod
    def log_batch_finalized(batch, owner, line_count):
        return ActivityLogService.record(
            batch=batch,
            action=ActivityLog.ACTION_FINALIZED,
            details=f"Batch finalized with {line_count} medicines",
            owner=owner,
        )

    @staticmethod
    def log_batch_updated(batch, owner, old_state, new_state, note=None):
        summary, changes = describe_batch_update(old_state, new_state)
        if note:
            summary = f"{note}. {summary}"
        return ActivityLogService.record(
            batch=batch,
            action=ActivityLog.ACTION_UPDATED,
            details=summary,
            owner=owner,
            changes=changes,
        )

    @staticmethod
    def log_batch_deleted(batch, owner, line_count):
        return ActivityLogService.record(
            batch=batch,
            action=ActivityLog.ACTION_DELETED,
            details=(
                f"Batch deleted with {line_count} medicines "
                f"(total value: {format_money(batch.overall_price)})"
            ),
            owner=owner,
        )

    @staticmethod
    def query_by_batch(batch_id=None, batch_number=None, action=None, page=1, page_size=None):
        if batch_id is None and not batch_number:
            raise ValueError("batch_id or batch_number is required")

        queryset = ActivityLog.objects.select_related("owner")
        if batch_id is not None:
            queryset = queryset.filter(batch_id=batch_id)
        if batch_number:
            queryset = queryset.filter(batch_number=batch_number)
        if action:
            queryset = queryset.filter(action=action)

        logs, pagination = paginate(queryset.order_by("-timestamp", "-id"), page, page_size)
        return {"logs": logs, "pagination": pagination}

    @staticmethod
    def query_all(action=None, owner=None, page=1, page_size=None):
        queryset = ActivityLog.objects.select_related("owner")
        if action:
            queryset = queryset.filter(action=action)
        if owner is not None:
            queryset = queryset.filter(owner=owner)

        logs, pagination = paginate(queryset.order_by("-timestamp", "-id"), page, page_size)
        return {"logs": logs, "pagination": pagination}
