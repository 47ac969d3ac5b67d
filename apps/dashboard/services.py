"""
Stock aggregation services.

All reports are computed on demand from one StockSnapshot: the active
catalog plus every line item of every finalized batch, read inside a single
transaction. Nothing here writes.

Expiry classes, relative to today's local date:
    expired        expiry_date < today
    expiring_soon  today <= expiry_date < today + STOCK_EXPIRY_WINDOW_DAYS
    ok             everything else
"""
from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import connection, transaction
from django.utils import timezone

from apps.inventory.exceptions import MedicineNotFound
from apps.inventory.models import BatchMedicine
from apps.medicines.models import Medicine
from pharmacy_stock.pagination import paginate

logger = logging.getLogger(__name__)

GRANULARITIES = ("week", "month")
DEFAULT_PERIODS = {"week": 8, "month": 12}
MAX_PERIODS = 120
SORT_ORDERS = ("asc", "desc")
STOCK_SORT_FIELDS = ("medicine_name", "total_quantity", "total_value", "batch_count")
EXPIRED_SORT_FIELDS = ("earliest_expiry_date",) + STOCK_SORT_FIELDS
SEARCH_FIELDS = ("medicine_name", "batch__batch_number", "batch__bill_id")
CENT = Decimal("0.01")


def format_stock_value(amount):
    """
    Short display form used by the dashboard cards, e.g. 12.3K.
    """
    amount = Decimal(amount or 0)
    if amount >= 1000:
        return f"{amount / 1000:.1f}K"
    return f"{amount:.2f}"


def _week_start(day):
    return day - timedelta(days=day.weekday())


def _month_start(day):
    return day.replace(day=1)


def _shift_month(day, months):
    month_index = day.year * 12 + (day.month - 1) + months
    return date(month_index // 12, month_index % 12 + 1, 1)


def _line_value(line):
    return (line["quantity"] * line["price"]).quantize(CENT)


def _matches(line, search):
    if not search:
        return True
    needle = search.strip().lower()
    return any(needle in (line[key] or "").lower() for key in SEARCH_FIELDS)


def _sort_rows(rows, sort_by, sort_order, allowed):
    if sort_by not in allowed:
        raise ValidationError({"sort_by": f"Sort field must be one of: {', '.join(allowed)}."})
    if sort_order not in SORT_ORDERS:
        raise ValidationError({"sort_order": "Sort order must be asc or desc."})

    def key(row):
        value = row[sort_by]
        if isinstance(value, str):
            value = value.casefold()
        return (value, row["medicine_id"])

    rows.sort(key=key, reverse=sort_order == "desc")
    return rows


@dataclass
class StockSnapshot:
    """
    One consistent read of the data every report needs.
    """

    today: date
    medicines: list = field(default_factory=list)
    lines: list = field(default_factory=list)

    LINE_FIELDS = (
        "medicine_id",
        "medicine_name",
        "quantity",
        "price",
        "expiry_date",
        "date_of_purchase",
        "reorder_level",
        "batch_id",
        "batch__batch_number",
        "batch__bill_id",
        "batch__created_at",
    )

    @classmethod
    def take(cls, today=None):
        outermost = not connection.in_atomic_block
        with transaction.atomic():
            if outermost and connection.vendor == "postgresql":
                with connection.cursor() as cursor:
                    cursor.execute("SET TRANSACTION ISOLATION LEVEL REPEATABLE READ")

            medicines = list(
                Medicine.objects.order_by("name", "id").values("id", "name", "reorder_level", "is_active")
            )
            lines = list(
                BatchMedicine.objects.filter(batch__is_draft=False)
                .order_by("expiry_date", "batch__created_at", "batch_id")
                .values(*cls.LINE_FIELDS)
            )
        return cls(today=today or timezone.localdate(), medicines=medicines, lines=lines)

    def active_medicines(self):
        return [medicine for medicine in self.medicines if medicine["is_active"]]

    def catalog_entry(self, medicine_id):
        for medicine in self.medicines:
            if medicine["id"] == medicine_id:
                return medicine
        return None

    def expiry_class(self, expiry_date):
        if expiry_date is None:
            return "ok"
        if expiry_date < self.today:
            return "expired"
        if expiry_date < self.today + timedelta(days=settings.STOCK_EXPIRY_WINDOW_DAYS):
            return "expiring_soon"
        return "ok"


class StockAggregationService:
    """
    Low stock, expiry, dashboard, trend and per-medicine stock reports.
    """

    @staticmethod
    def _snapshot(snapshot):
        return snapshot if snapshot is not None else StockSnapshot.take()

    @staticmethod
    def _totals_by_medicine(snapshot):
        totals = defaultdict(int)
        batches = defaultdict(list)
        for line in snapshot.lines:
            totals[line["medicine_id"]] += line["quantity"]
            if line["quantity"] > 0:
                batches[line["medicine_id"]].append({
                    "batch_number": line["batch__batch_number"],
                    "quantity": line["quantity"],
                })
        return totals, batches

    @staticmethod
    def low_stock_report(snapshot=None):
        """
        Active medicines whose finalized stock is below the catalog reorder level.
        """
        snapshot = StockAggregationService._snapshot(snapshot)
        totals, batches = StockAggregationService._totals_by_medicine(snapshot)

        rows = []
        for medicine in snapshot.active_medicines():
            total = totals.get(medicine["id"], 0)
            if total < medicine["reorder_level"]:
                rows.append({
                    "medicine_id": medicine["id"],
                    "medicine_name": medicine["name"],
                    "total_quantity": total,
                    "reorder_level": medicine["reorder_level"],
                    "shortfall": medicine["reorder_level"] - total,
                    "batches": batches.get(medicine["id"], []),
                })
        rows.sort(key=lambda row: (-row["shortfall"], row["medicine_name"]))
        return rows

    @staticmethod
    def _group_expiry(snapshot):
        groups = {"expired": {}, "expiring_soon": {}}
        ok = {"line_items": 0, "quantity": 0}

        for line in snapshot.lines:
            if line["quantity"] <= 0:
                continue
            expiry_class = snapshot.expiry_class(line["expiry_date"])
            if expiry_class == "ok":
                ok["line_items"] += 1
                ok["quantity"] += line["quantity"]
                continue

            group = groups[expiry_class].setdefault(line["medicine_id"], {
                "medicine_id": line["medicine_id"],
                "medicine_name": line["medicine_name"],
                "total_quantity": 0,
                "batches": [],
            })
            group["total_quantity"] += line["quantity"]
            group["batches"].append({
                "batch_number": line["batch__batch_number"],
                "quantity": line["quantity"],
                "expiry_date": line["expiry_date"],
                "days_until_expiry": (line["expiry_date"] - snapshot.today).days,
            })
        return groups, ok

    @staticmethod
    def expiry_report(snapshot=None):
        snapshot = StockAggregationService._snapshot(snapshot)
        groups, ok = StockAggregationService._group_expiry(snapshot)

        def ordered(grouped):
            rows = list(grouped.values())
            for row in rows:
                row["batches"].sort(key=lambda item: (item["expiry_date"], item["batch_number"]))
            rows.sort(key=lambda row: (row["batches"][0]["expiry_date"], row["medicine_name"]))
            return rows

        return {
            "today": snapshot.today,
            "window_days": settings.STOCK_EXPIRY_WINDOW_DAYS,
            "expired": ordered(groups["expired"]),
            "expiring_soon": ordered(groups["expiring_soon"]),
            "ok": ok,
        }

    @staticmethod
    def dashboard_stats(snapshot=None):
        """
        Summary cards, all derived from the same snapshot in one pass.
        """
        snapshot = StockAggregationService._snapshot(snapshot)

        totals = defaultdict(int)
        expired = set()
        expiring_soon = set()
        stock_value = Decimal("0.00")
        total_items = 0

        for line in snapshot.lines:
            total_items += 1
            totals[line["medicine_id"]] += line["quantity"]
            stock_value += line["quantity"] * line["price"]
            if line["quantity"] <= 0:
                continue
            expiry_class = snapshot.expiry_class(line["expiry_date"])
            if expiry_class == "expired":
                expired.add(line["medicine_id"])
            elif expiry_class == "expiring_soon":
                expiring_soon.add(line["medicine_id"])

        low_stock = sum(
            1 for medicine in snapshot.active_medicines()
            if totals.get(medicine["id"], 0) < medicine["reorder_level"]
        )

        return {
            "total_items": total_items,
            "low_stock": low_stock,
            "near_expiry": len(expiring_soon),
            "already_expired": len(expired),
            "stock_value": stock_value,
            "stock_value_display": format_stock_value(stock_value),
        }

    @staticmethod
    def trend_series(granularity, periods=None, snapshot=None):
        """
        Quantity in finalized batches bucketed by batch creation week or month.

        Buckets are contiguous, oldest first, and end with the current
        week/month. Empty buckets are reported as zero.
        """
        if granularity not in GRANULARITIES:
            raise ValidationError({"granularity": f"Granularity must be one of: {', '.join(GRANULARITIES)}."})
        if periods is None:
            periods = DEFAULT_PERIODS[granularity]
        if isinstance(periods, bool) or not isinstance(periods, int) or not 1 <= periods <= MAX_PERIODS:
            raise ValidationError({"periods": f"Periods must be an integer between 1 and {MAX_PERIODS}."})

        snapshot = StockAggregationService._snapshot(snapshot)

        if granularity == "week":
            bucket_of = _week_start
            last = _week_start(snapshot.today)
            starts = [last - timedelta(weeks=offset) for offset in range(periods - 1, -1, -1)]
        else:
            bucket_of = _month_start
            last = _month_start(snapshot.today)
            starts = [_shift_month(last, -offset) for offset in range(periods - 1, -1, -1)]

        quantity_by_bucket = defaultdict(int)
        for line in snapshot.lines:
            created = timezone.localtime(line["batch__created_at"]).date()
            quantity_by_bucket[bucket_of(created)] += line["quantity"]

        series = []
        for start in starts:
            if granularity == "week":
                iso_year, iso_week, _ = start.isocalendar()
                label = f"{iso_year}-W{iso_week:02d}"
            else:
                label = start.strftime("%Y-%m")
            series.append({
                "period_start": start,
                "label": label,
                "quantity": quantity_by_bucket.get(start, 0),
            })

        logger.debug("Trend series %s x %s built from %s line items", granularity, periods, len(snapshot.lines))
        return series

    @staticmethod
    def top_stocked(limit=5, snapshot=None):
        snapshot = StockAggregationService._snapshot(snapshot)

        totals = {}
        for line in snapshot.lines:
            row = totals.setdefault(line["medicine_id"], {
                "medicine_id": line["medicine_id"],
                "medicine_name": line["medicine_name"],
                "total_quantity": 0,
            })
            row["total_quantity"] += line["quantity"]

        rows = [row for row in totals.values() if row["total_quantity"] > 0]
        rows.sort(key=lambda row: (-row["total_quantity"], row["medicine_name"]))
        return rows[:max(int(limit), 0)]

    @staticmethod
    def _batch_entry(snapshot, line):
        return {
            "batch_id": line["batch_id"],
            "batch_number": line["batch__batch_number"],
            "bill_id": line["batch__bill_id"],
            "quantity": line["quantity"],
            "price": line["price"],
            "total_amount": _line_value(line),
            "expiry_date": line["expiry_date"],
            "date_of_purchase": line["date_of_purchase"],
            "expiry_status": snapshot.expiry_class(line["expiry_date"]),
            "created_at": line["batch__created_at"],
        }

    @staticmethod
    def medicine_stock_list(search=None, sort_by="medicine_name", sort_order="asc", page=1, page_size=None,
                            snapshot=None):
        """
        Per-medicine stock across finalized batches with batch drill-down.

        ``search`` matches medicine name, batch number or bill ID of a line;
        only matching lines are counted. The summary covers every matching
        medicine, not just the current page.
        """
        snapshot = StockAggregationService._snapshot(snapshot)

        grouped = {}
        for line in snapshot.lines:
            if not _matches(line, search):
                continue
            medicine_id = line["medicine_id"]
            row = grouped.get(medicine_id)
            if row is None:
                catalog = snapshot.catalog_entry(medicine_id)
                row = grouped[medicine_id] = {
                    "medicine_id": medicine_id,
                    "medicine_name": catalog["name"] if catalog else line["medicine_name"],
                    "reorder_level": catalog["reorder_level"] if catalog else line["reorder_level"],
                    "total_quantity": 0,
                    "total_value": Decimal("0.00"),
                    "batch_count": 0,
                    "expired_batches": 0,
                    "expiring_soon_batches": 0,
                    "prices": [],
                    "batches": [],
                }
            entry = StockAggregationService._batch_entry(snapshot, line)
            row["total_quantity"] += line["quantity"]
            row["total_value"] += entry["total_amount"]
            row["batch_count"] += 1
            row["prices"].append(line["price"])
            if line["quantity"] > 0 and entry["expiry_status"] != "ok":
                row[f"{entry['expiry_status']}_batches"] += 1
            row["batches"].append(entry)

        rows = list(grouped.values())
        for row in rows:
            prices = row.pop("prices")
            row["average_price"] = (sum(prices) / len(prices)).quantize(CENT)
            row["status"] = "low_stock" if row["total_quantity"] < row["reorder_level"] else "in_stock"
            row["batches"].sort(key=lambda item: (item["created_at"], item["batch_id"]), reverse=True)
        _sort_rows(rows, sort_by, sort_order, STOCK_SORT_FIELDS)

        summary = {
            "total_medicines": len(rows),
            "low_stock_medicines": sum(1 for row in rows if row["status"] == "low_stock"),
            "total_batches": sum(row["batch_count"] for row in rows),
            "total_value": sum((row["total_value"] for row in rows), Decimal("0.00")),
            "expired_medicines": sum(1 for row in rows if row["expired_batches"]),
            "expiring_soon_medicines": sum(1 for row in rows if row["expiring_soon_batches"]),
        }
        medicines, pagination = paginate(rows, page, page_size)
        return {"medicines": medicines, "summary": summary, "pagination": pagination}

    @staticmethod
    def medicine_stock_detail(medicine_id, page=1, page_size=None, snapshot=None):
        """
        Every finalized batch line of one medicine, newest batch first.
        """
        snapshot = StockAggregationService._snapshot(snapshot)
        try:
            catalog = snapshot.catalog_entry(int(medicine_id))
        except (TypeError, ValueError):
            catalog = None
        if catalog is None:
            raise MedicineNotFound(medicine_id)

        entries = [
            StockAggregationService._batch_entry(snapshot, line)
            for line in snapshot.lines
            if line["medicine_id"] == catalog["id"]
        ]
        entries.sort(key=lambda item: (item["created_at"], item["batch_id"]), reverse=True)

        total_quantity = sum(entry["quantity"] for entry in entries)
        total_value = sum((entry["total_amount"] for entry in entries), Decimal("0.00"))
        in_stock = [entry for entry in entries if entry["quantity"] > 0]
        expired = sum(1 for entry in in_stock if entry["expiry_status"] == "expired")
        expiring_soon = sum(1 for entry in in_stock if entry["expiry_status"] == "expiring_soon")

        if total_quantity < catalog["reorder_level"]:
            status = "low_stock"
        elif expired:
            status = "has_expired"
        elif expiring_soon:
            status = "has_expiring"
        else:
            status = "ok"

        page_entries, pagination = paginate(entries, page, page_size)
        return {
            "medicine_id": catalog["id"],
            "medicine_name": catalog["name"],
            "is_active": catalog["is_active"],
            "entries": page_entries,
            "summary": {
                "total_batches": len(entries),
                "total_quantity": total_quantity,
                "total_value": total_value,
                "average_price": (total_value / total_quantity).quantize(CENT) if total_quantity else Decimal("0.00"),
                "reorder_level": catalog["reorder_level"],
                "expired_batches": expired,
                "expiring_soon_batches": expiring_soon,
                "status": status,
            },
            "pagination": pagination,
        }

    @staticmethod
    def expired_medicines(search=None, sort_by="earliest_expiry_date", sort_order="asc", page=1, page_size=None,
                          snapshot=None):
        """
        Expired stock still on hand, grouped by medicine, searchable and paginated.
        """
        snapshot = StockAggregationService._snapshot(snapshot)

        grouped = {}
        for line in snapshot.lines:
            if line["quantity"] <= 0 or snapshot.expiry_class(line["expiry_date"]) != "expired":
                continue
            if not _matches(line, search):
                continue
            row = grouped.setdefault(line["medicine_id"], {
                "medicine_id": line["medicine_id"],
                "medicine_name": line["medicine_name"],
                "total_quantity": 0,
                "total_value": Decimal("0.00"),
                "batch_count": 0,
                "earliest_expiry_date": line["expiry_date"],
                "prices": [],
                "batches": [],
            })
            value = _line_value(line)
            row["total_quantity"] += line["quantity"]
            row["total_value"] += value
            row["batch_count"] += 1
            row["earliest_expiry_date"] = min(row["earliest_expiry_date"], line["expiry_date"])
            row["prices"].append(line["price"])
            row["batches"].append({
                "batch_id": line["batch_id"],
                "batch_number": line["batch__batch_number"],
                "bill_id": line["batch__bill_id"],
                "quantity": line["quantity"],
                "price": line["price"],
                "total_amount": value,
                "expiry_date": line["expiry_date"],
                "days_expired": (snapshot.today - line["expiry_date"]).days,
            })

        rows = list(grouped.values())
        for row in rows:
            prices = row.pop("prices")
            row["average_price"] = (sum(prices) / len(prices)).quantize(CENT)
            row["batches"].sort(key=lambda item: (item["expiry_date"], item["batch_number"]))
        _sort_rows(rows, sort_by, sort_order, EXPIRED_SORT_FIELDS)

        summary = {
            "total_expired_medicines": len(rows),
            "total_expired_quantity": sum(row["total_quantity"] for row in rows),
            "total_expired_value": sum((row["total_value"] for row in rows), Decimal("0.00")),
            "total_batches_affected": sum(row["batch_count"] for row in rows),
        }
        medicines, pagination = paginate(rows, page, page_size)
        return {"medicines": medicines, "summary": summary, "pagination": pagination}
