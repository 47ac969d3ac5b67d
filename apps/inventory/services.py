"""
Batch lifecycle and discard services.

Every mutation runs in one database transaction together with its activity
log entry. Batch rows are locked with SELECT ... FOR UPDATE and written with
a version-conditional UPDATE, so a stale read-modify-write surfaces as
WriteConflict instead of silently overwriting newer state.

Batch states:
    Draft -> Finalized (one way, via finalize or add_to_stock)
"""
import logging
from datetime import date, datetime
from decimal import Decimal, InvalidOperation

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.db.models import Count, F, Q, Sum
from django.utils import timezone
from django.utils.dateparse import parse_date

from apps.activity.services import ActivityLogService
from apps.medicines.models import Medicine
from pharmacy_stock.pagination import paginate
from .exceptions import (
    AlreadyFinalized,
    BatchNotFound,
    DuplicateBatchNumber,
    InsufficientStock,
    MedicineNotFound,
    WriteConflict,
)
from .models import Batch, BatchMedicine, DiscardRecord
from .utils import batch_state, generate_batch_number, line_state

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def retry_on_conflict(func, *args, attempts=None, **kwargs):
    """
    Call ``func`` again when it raises WriteConflict.

    Must be called outside of any open transaction so each attempt reads
    fresh state. Other errors propagate immediately.
    """
    attempts = attempts or settings.STOCK_CONFLICT_RETRIES
    for attempt in range(1, attempts + 1):
        try:
            return func(*args, **kwargs)
        except WriteConflict as exc:
            if attempt >= attempts or "expected_version" in exc.context:
                raise
            logger.warning("Write conflict on %s (attempt %s/%s), retrying",
                           exc.context.get("batch_number"), attempt, attempts)


def _clean_decimal(value, field, label=None):
    name = label or field.replace("_", " ")
    if value is None or value == "":
        raise ValidationError({field: f"{name.capitalize()} is required."})
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError({field: f"{name.capitalize()} must be a number."})
    if not number.is_finite():
        raise ValidationError({field: f"{name.capitalize()} must be a number."})
    if number < 0:
        raise ValidationError({field: f"{name.capitalize()} cannot be negative."})
    return number.quantize(CENT)


def _clean_int(value, field, label=None):
    name = label or field.replace("_", " ")
    if isinstance(value, bool):
        raise ValidationError({field: f"{name.capitalize()} must be an integer."})
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        raise ValidationError({field: f"{name.capitalize()} must be an integer."})
    if number < 0:
        raise ValidationError({field: f"{name.capitalize()} cannot be negative."})
    return number


def _clean_date(value, field, label=None):
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    parsed = None
    try:
        parsed = parse_date(str(value))
    except ValueError:
        pass
    if parsed is None:
        name = label or field.replace("_", " ")
        raise ValidationError({field: f"{name.capitalize()} must be a date (YYYY-MM-DD)."})
    return parsed


def _clean_attachments(value):
    if value is None:
        return []
    if not isinstance(value, (list, tuple)) or not all(isinstance(url, str) for url in value):
        raise ValidationError({"attachments": "Attachments must be a list of URLs."})
    return [url.strip() for url in value if url.strip()]


def _clean_bill_id(value):
    bill_id = str(value or "").strip()
    if len(bill_id) > Batch._meta.get_field("bill_id").max_length:
        raise ValidationError({"bill_id": "Bill ID is too long."})
    return bill_id


class BatchService:
    """
    Batch store: draft -> finalize state machine, update with diff, delete.
    """

    UPDATABLE_FIELDS = ("medicines", "miscellaneous_amount", "attachments", "draft_note", "bill_id")

    @staticmethod
    def _clean_lines(items, existing=None):
        """
        Normalize line item input into plain dicts.

        Lines for medicines already in the batch may omit fields; the
        stored values are kept for anything not supplied.
        """
        existing = existing or {}
        if items is None:
            items = []
        if not isinstance(items, (list, tuple)):
            raise ValidationError({"medicines": "Medicines must be a list."})

        medicine_ids = []
        for index, item in enumerate(items, start=1):
            if not isinstance(item, dict):
                raise ValidationError({"medicines": f"Line {index}: invalid medicine entry."})
            medicine_id = item.get("medicine_id", item.get("medicine"))
            if isinstance(medicine_id, Medicine):
                medicine_id = medicine_id.pk
            try:
                medicine_id = int(medicine_id)
            except (TypeError, ValueError):
                raise ValidationError({"medicines": f"Line {index}: medicine_id is required."})
            if medicine_id in medicine_ids:
                raise ValidationError({"medicines": f"Medicine {medicine_id} appears more than once in the batch."})
            medicine_ids.append(medicine_id)

        catalog = Medicine.objects.in_bulk([pk for pk in medicine_ids if pk not in existing])

        lines = []
        for index, (medicine_id, item) in enumerate(zip(medicine_ids, items), start=1):
            if medicine_id in existing:
                base = line_state(existing[medicine_id])
            else:
                medicine = catalog.get(medicine_id)
                if medicine is None:
                    raise MedicineNotFound(medicine_id)
                if not medicine.is_active:
                    raise ValidationError({"medicines": f"Line {index}: medicine {medicine.name} is inactive."})
                base = {
                    "medicine_id": medicine.pk,
                    "medicine_name": medicine.name,
                    "quantity": None,
                    "price": None,
                    "expiry_date": None,
                    "date_of_purchase": None,
                    "reorder_level": medicine.reorder_level,
                }

            label = f"line {index} {{}}"
            quantity = item.get("quantity", base["quantity"])
            price = item.get("price", base["price"])
            quantity = _clean_int(quantity, "medicines", label.format("quantity"))
            price = _clean_decimal(price, "medicines", label.format("price"))
            reorder_level = _clean_int(
                item.get("reorder_level", base["reorder_level"]), "medicines", label.format("reorder level")
            )
            expiry_date = _clean_date(
                item.get("expiry_date", base["expiry_date"]), "medicines", label.format("expiry date")
            )
            date_of_purchase = _clean_date(
                item.get("date_of_purchase", base["date_of_purchase"]), "medicines", label.format("purchase date")
            )

            lines.append({
                "medicine_id": medicine_id,
                "medicine_name": base["medicine_name"],
                "quantity": quantity,
                "price": price,
                "expiry_date": expiry_date,
                "date_of_purchase": date_of_purchase,
                "reorder_level": reorder_level,
                "total_amount": (price * quantity).quantize(CENT),
            })
        return lines

    @staticmethod
    def _check_finalize_rules(lines):
        for line in lines:
            name = line["medicine_name"]
            if line["quantity"] < 0:
                raise ValidationError({"medicines": f"{name}: quantity cannot be negative."})
            if line["expiry_date"] is None:
                raise ValidationError({"medicines": f"{name}: expiry date is required."})
            if line["price"] <= 0:
                raise ValidationError({"medicines": f"{name}: price must be greater than zero."})

    @staticmethod
    def _lock_batch(batch_id):
        try:
            return Batch.objects.select_for_update().get(pk=batch_id)
        except (Batch.DoesNotExist, ValueError, TypeError):
            raise BatchNotFound(batch_id=batch_id)

    @staticmethod
    def _check_version(batch, expected_version):
        if expected_version is None:
            return
        expected = _clean_int(expected_version, "version")
        if expected != batch.version:
            logger.warning(
                "Stale write on batch %s: expected version %s, current %s",
                batch.batch_number, expected, batch.version,
            )
            raise WriteConflict(batch.batch_number, expected_version=expected, current_version=batch.version)

    @staticmethod
    def _write_batch(batch, **fields):
        """
        Version-conditional write of batch columns.
        """
        now = timezone.now()
        updated = Batch.objects.filter(pk=batch.pk, version=batch.version).update(
            version=F("version") + 1,
            updated_at=now,
            **fields,
        )
        if updated != 1:
            logger.warning("Write conflict on batch %s at version %s", batch.batch_number, batch.version)
            raise WriteConflict(batch.batch_number)

        for key, value in fields.items():
            setattr(batch, key, value)
        batch.updated_at = now
        batch.version += 1
        return batch

    @staticmethod
    def _write_lines(batch, existing_lines, lines):
        existing_by_medicine = {line.medicine_id: line for line in existing_lines}
        kept = set()
        to_create = []

        for position, data in enumerate(lines):
            line = existing_by_medicine.get(data["medicine_id"])
            if line is None:
                to_create.append(BatchMedicine(batch=batch, position=position, **data))
                continue

            kept.add(line.pk)
            changed = line.position != position
            line.position = position
            for key, value in data.items():
                if getattr(line, key) != value:
                    setattr(line, key, value)
                    changed = True
            if changed:
                line.save()

        removed = [line.pk for line in existing_lines if line.pk not in kept]
        if removed:
            BatchMedicine.objects.filter(pk__in=removed).delete()
        if to_create:
            BatchMedicine.objects.bulk_create(to_create)

    @staticmethod
    def _create(*, actor, is_draft, batch_number=None, bill_id="", medicines=None,
                miscellaneous_amount=0, attachments=None, draft_note=""):
        batch_number = str(batch_number or "").strip() or generate_batch_number()
        if len(batch_number) > Batch._meta.get_field("batch_number").max_length:
            raise ValidationError({"batch_number": "Batch number is too long."})

        lines = BatchService._clean_lines(medicines)
        if not is_draft:
            BatchService._check_finalize_rules(lines)

        with transaction.atomic():
            if Batch.objects.filter(batch_number=batch_number).exists():
                raise DuplicateBatchNumber(batch_number)

            try:
                with transaction.atomic():
                    batch = Batch.objects.create(
                        batch_number=batch_number,
                        bill_id=_clean_bill_id(bill_id),
                        overall_price=sum((line["total_amount"] for line in lines), Decimal("0.00")),
                        miscellaneous_amount=_clean_decimal(miscellaneous_amount, "miscellaneous_amount"),
                        attachments=_clean_attachments(attachments),
                        is_draft=is_draft,
                        draft_note=str(draft_note or ""),
                        finalized_at=None if is_draft else timezone.now(),
                        created_by=actor,
                    )
            except IntegrityError:
                raise DuplicateBatchNumber(batch_number)

            BatchService._write_lines(batch, [], lines)
            ActivityLogService.log_batch_created(batch, actor, len(lines))

        logger.info(
            "Batch %s created as %s by user %s (%s medicines)",
            batch.batch_number, "draft" if is_draft else "finalized", actor.pk, len(lines),
        )
        return batch

    @staticmethod
    def create_draft(*, actor, batch_number=None, bill_id="", medicines=None,
                     miscellaneous_amount=0, attachments=None, draft_note=""):
        """
        Create a draft batch. Drafts are not counted as stock.
        """
        return BatchService._create(
            actor=actor,
            is_draft=True,
            batch_number=batch_number,
            bill_id=bill_id,
            medicines=medicines,
            miscellaneous_amount=miscellaneous_amount,
            attachments=attachments,
            draft_note=draft_note,
        )

    @staticmethod
    def add_to_stock(*, actor, batch_number=None, bill_id="", medicines=None,
                     miscellaneous_amount=0, attachments=None, draft_note=""):
        """
        Create a batch directly in finalized state.

        Finalize rules apply and a single CREATED entry is logged.
        """
        return BatchService._create(
            actor=actor,
            is_draft=False,
            batch_number=batch_number,
            bill_id=bill_id,
            medicines=medicines,
            miscellaneous_amount=miscellaneous_amount,
            attachments=attachments,
            draft_note=draft_note,
        )

    @staticmethod
    def finalize(*, actor, batch_id, expected_version=None):
        with transaction.atomic():
            batch = BatchService._lock_batch(batch_id)
            BatchService._check_version(batch, expected_version)
            if not batch.is_draft:
                raise AlreadyFinalized(batch.batch_number)

            lines = [line_state(line) for line in batch.medicines.order_by("position", "id")]
            BatchService._check_finalize_rules(lines)

            BatchService._write_batch(batch, is_draft=False, finalized_at=timezone.now())
            ActivityLogService.log_batch_finalized(batch, actor, len(lines))

        logger.info("Batch %s finalized by user %s", batch.batch_number, actor.pk)
        return batch

    @staticmethod
    def _apply_update(batch, existing_lines, patch, actor, note=None):
        """
        Apply a patch to a batch that is already locked.

        Shared by update() and the discard workflow so that every quantity
        change is diffed and logged the same way.
        """
        unknown = set(patch) - set(BatchService.UPDATABLE_FIELDS) - {"batch_number", "is_draft"}
        if unknown:
            raise ValidationError({field: "This field cannot be updated." for field in sorted(unknown)})

        if "batch_number" in patch and str(patch["batch_number"]).strip() != batch.batch_number:
            raise ValidationError({"batch_number": "Batch number cannot be changed."})
        if "is_draft" in patch and bool(patch["is_draft"]) != batch.is_draft:
            if batch.is_draft:
                raise ValidationError({"is_draft": "Use finalize to finalize a draft batch."})
            raise ValidationError({"is_draft": "A finalized batch cannot be moved back to draft."})

        old_state = batch_state(batch, existing_lines)

        fields = {}
        if "bill_id" in patch:
            fields["bill_id"] = _clean_bill_id(patch["bill_id"])
        if "miscellaneous_amount" in patch:
            fields["miscellaneous_amount"] = _clean_decimal(patch["miscellaneous_amount"], "miscellaneous_amount")
        if "attachments" in patch:
            fields["attachments"] = _clean_attachments(patch["attachments"])
        if "draft_note" in patch:
            fields["draft_note"] = str(patch["draft_note"] or "")

        if "medicines" in patch:
            existing = {line.medicine_id: line for line in existing_lines}
            lines = BatchService._clean_lines(patch["medicines"], existing=existing)
        else:
            lines = old_state["medicines"]

        if not batch.is_draft:
            BatchService._check_finalize_rules(lines)

        fields["overall_price"] = sum((line["total_amount"] for line in lines), Decimal("0.00"))

        new_state = dict(old_state, **fields)
        new_state["medicines"] = lines

        BatchService._write_batch(batch, **fields)
        if "medicines" in patch:
            BatchService._write_lines(batch, existing_lines, lines)

        ActivityLogService.log_batch_updated(batch, actor, old_state, new_state, note=note)
        return batch

    @staticmethod
    def update(*, actor, batch_id, patch, expected_version=None):
        """
        Partial or full update of a draft or finalized batch.
        """
        if not isinstance(patch, dict):
            raise ValidationError({"detail": "Update payload must be an object."})

        with transaction.atomic():
            batch = BatchService._lock_batch(batch_id)
            BatchService._check_version(batch, expected_version)
            existing_lines = list(batch.medicines.order_by("position", "id"))
            BatchService._apply_update(batch, existing_lines, patch, actor)

        logger.info("Batch %s updated by user %s", batch.batch_number, actor.pk)
        return batch

    @staticmethod
    def delete(*, actor, batch_id, expected_version=None):
        """
        Hard delete. The DELETED entry is written in the same transaction.
        """
        with transaction.atomic():
            batch = BatchService._lock_batch(batch_id)
            BatchService._check_version(batch, expected_version)

            ActivityLogService.log_batch_deleted(batch, actor, batch.medicines.count())

            _, deleted = Batch.objects.filter(pk=batch.pk, version=batch.version).delete()
            if not deleted.get(Batch._meta.label, 0):
                raise WriteConflict(batch.batch_number)

        logger.info("Batch %s deleted by user %s", batch.batch_number, actor.pk)
        return batch

    @staticmethod
    def get(batch_id):
        try:
            return Batch.objects.select_related("created_by").prefetch_related("medicines").get(pk=batch_id)
        except (Batch.DoesNotExist, ValueError, TypeError):
            raise BatchNotFound(batch_id=batch_id)

    @staticmethod
    def get_by_number(batch_number):
        try:
            return Batch.objects.select_related("created_by").prefetch_related("medicines").get(
                batch_number=batch_number
            )
        except Batch.DoesNotExist:
            raise BatchNotFound(batch_number=batch_number)

    @staticmethod
    def list(is_draft=None, search=None, page=1, page_size=None):
        queryset = Batch.objects.select_related("created_by").prefetch_related("medicines")
        if is_draft is not None:
            queryset = queryset.filter(is_draft=is_draft)
        if search:
            matching = BatchMedicine.objects.filter(medicine_name__icontains=search).values("batch_id")
            queryset = queryset.filter(
                Q(batch_number__icontains=search) | Q(bill_id__icontains=search) | Q(pk__in=matching)
            )

        batches, pagination = paginate(queryset.order_by("-created_at", "-id"), page, page_size)
        return {"batches": batches, "pagination": pagination}


class DiscardService:
    """
    Removes stock from finalized batches, earliest expiry first.
    """

    @staticmethod
    def _clean_quantity(quantity):
        if isinstance(quantity, bool):
            raise ValidationError({"quantity": "Quantity must be a positive integer."})
        try:
            quantity = int(str(quantity).strip())
        except (TypeError, ValueError):
            raise ValidationError({"quantity": "Quantity must be a positive integer."})
        if quantity <= 0:
            raise ValidationError({"quantity": "Quantity must be a positive integer."})
        return quantity

    @staticmethod
    def _candidates(medicine, batch_id=None):
        """
        Lock the eligible batches and return (batches by id, lines in discard order).
        """
        if batch_id is not None:
            batch = BatchService._lock_batch(batch_id)
            if batch.is_draft:
                raise ValidationError({"batch_id": "Stock cannot be discarded from a draft batch."})
            line = batch.medicines.filter(medicine=medicine).first()
            if line is None:
                raise MedicineNotFound(medicine.pk, batch_number=batch.batch_number)
            return {batch.pk: batch}, [line] if line.quantity > 0 else []

        holding = BatchMedicine.objects.filter(medicine=medicine, quantity__gt=0).values("batch_id")
        batches = {
            batch.pk: batch
            for batch in Batch.objects.select_for_update().filter(pk__in=holding, is_draft=False).order_by("pk")
        }
        lines = list(
            BatchMedicine.objects.filter(batch_id__in=list(batches), medicine=medicine, quantity__gt=0)
            .order_by(F("expiry_date").asc(nulls_last=True), "batch__created_at", "batch_id")
        )
        return batches, lines

    @staticmethod
    def discard(*, actor, medicine_id, quantity, reason=None, batch_id=None):
        """
        Discard ``quantity`` units of a medicine.

        Unscoped discards consume finalized batches in expiry order. The
        whole operation is all-or-nothing and returns one DiscardRecord
        per batch touched.
        """
        quantity = DiscardService._clean_quantity(quantity)
        reason = str(reason or "").strip() or settings.STOCK_DEFAULT_DISCARD_REASON

        try:
            medicine = Medicine.objects.get(pk=medicine_id)
        except (Medicine.DoesNotExist, ValueError, TypeError):
            raise MedicineNotFound(medicine_id)

        with transaction.atomic():
            batches, lines = DiscardService._candidates(medicine, batch_id=batch_id)

            available = sum(line.quantity for line in lines)
            if available < quantity:
                scope = next(iter(batches.values())).batch_number if batch_id is not None else None
                logger.warning(
                    "Insufficient stock to discard %s units of medicine %s (available %s)",
                    quantity, medicine.pk, available,
                )
                raise InsufficientStock(medicine.pk, quantity, available, batch_number=scope)

            records = []
            remaining = quantity
            for line in lines:
                if remaining == 0:
                    break
                taken = min(remaining, line.quantity)
                batch = batches[line.batch_id]

                existing_lines = list(batch.medicines.order_by("position", "id"))
                patch = {
                    "medicines": [
                        {
                            "medicine_id": item.medicine_id,
                            "quantity": item.quantity - taken if item.pk == line.pk else item.quantity,
                        }
                        for item in existing_lines
                    ]
                }
                BatchService._apply_update(
                    batch,
                    existing_lines,
                    patch,
                    actor,
                    note=f"Discarded {taken} units of {line.medicine_name} ({reason})",
                )

                records.append(DiscardRecord.objects.create(
                    batch_id=batch.pk,
                    batch_number=batch.batch_number,
                    medicine=medicine,
                    medicine_name=line.medicine_name,
                    quantity_discarded=taken,
                    price_per_unit=line.price,
                    total_value=(line.price * taken).quantize(CENT),
                    expiry_date=line.expiry_date,
                    discarded_by=actor,
                    reason=reason,
                ))
                remaining -= taken

        logger.info(
            "Discarded %s units of medicine %s across %s batches by user %s",
            quantity, medicine.pk, len(records), actor.pk,
        )
        return records

    @staticmethod
    def discard_history(search=None, medicine_id=None, user_id=None, date_from=None, date_to=None,
                        page=1, page_size=None):
        """
        Paginated discard records plus a summary over the whole filtered set.
        """
        queryset = DiscardRecord.objects.select_related("discarded_by")
        if search:
            queryset = queryset.filter(
                Q(medicine_name__icontains=search)
                | Q(batch_number__icontains=search)
                | Q(reason__icontains=search)
            )
        if medicine_id:
            queryset = queryset.filter(medicine_id=medicine_id)
        if user_id:
            queryset = queryset.filter(discarded_by_id=user_id)

        date_from = _clean_date(date_from, "date_from")
        date_to = _clean_date(date_to, "date_to")
        if date_from:
            queryset = queryset.filter(discarded_at__date__gte=date_from)
        if date_to:
            queryset = queryset.filter(discarded_at__date__lte=date_to)

        summary = queryset.aggregate(
            total_quantity=Sum("quantity_discarded"),
            total_value=Sum("total_value"),
            unique_medicines=Count("medicine", distinct=True),
            unique_users=Count("discarded_by", distinct=True),
        )
        summary["total_quantity"] = summary["total_quantity"] or 0
        summary["total_value"] = summary["total_value"] or Decimal("0.00")

        records, pagination = paginate(queryset.order_by("-discarded_at", "-id"), page, page_size)
        return {"records": records, "summary": summary, "pagination": pagination}
