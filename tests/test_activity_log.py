from datetime import date, timedelta
from decimal import Decimal

from django.test import TestCase
from django.utils import timezone

from apps.accounts.models import User
from apps.activity.models import ActivityLog, ImmutableRecordError
from apps.activity.services import ActivityLogService, describe_batch_update
from apps.inventory.services import BatchService
from apps.medicines.models import Medicine


def _state(**overrides):
    state = {
        "bill_id": "BILL-1",
        "miscellaneous_amount": Decimal("0.00"),
        "overall_price": Decimal("20.00"),
        "draft_note": "",
        "attachments": [],
        "medicines": [
            {
                "medicine_id": 1,
                "medicine_name": "Paracetamol",
                "quantity": 10,
                "price": Decimal("2.00"),
                "expiry_date": date(2026, 1, 31),
                "date_of_purchase": None,
                "reorder_level": 5,
                "total_amount": Decimal("20.00"),
            }
        ],
    }
    state.update(overrides)
    return state


class DescribeBatchUpdateTests(TestCase):
    def test_no_changes(self):
        summary, changes = describe_batch_update(_state(), _state())

        self.assertEqual(summary, "Batch updated")
        self.assertEqual(changes, [])

    def test_line_item_changes_are_keyed_by_medicine(self):
        new_line = dict(_state()["medicines"][0], quantity=7, price=Decimal("2.50"), total_amount=Decimal("17.50"))
        new_line["expiry_date"] = date(2026, 2, 28)

        summary, changes = describe_batch_update(
            _state(),
            _state(medicines=[new_line], overall_price=Decimal("17.50")),
        )

        by_field = {change["field"]: change for change in changes}
        self.assertEqual(by_field["medicine.1.quantity"]["old_value"], 10)
        self.assertEqual(by_field["medicine.1.quantity"]["new_value"], 7)
        self.assertEqual(by_field["medicine.1.price"]["new_value"], "2.50")
        self.assertEqual(by_field["medicine.1.expiry_date"]["new_value"], "2026-02-28")
        self.assertEqual(by_field["overall_price"]["old_value"], "20.00")
        self.assertIn("quantity 10 -> 7 (-3 units)", summary)

    def test_batch_level_fields(self):
        summary, changes = describe_batch_update(
            _state(),
            _state(
                bill_id="BILL-2",
                miscellaneous_amount=Decimal("4.00"),
                draft_note="call supplier",
                attachments=["https://files.example/bill.pdf"],
            ),
        )

        fields = [change["field"] for change in changes]
        self.assertEqual(fields, ["bill_id", "miscellaneous_amount", "draft_note", "attachments"])
        attachments = changes[-1]
        self.assertEqual((attachments["old_value"], attachments["new_value"]), (0, 1))
        self.assertIn("bill ID BILL-1 -> BILL-2", summary)

    def test_added_and_removed_medicines(self):
        added = dict(_state()["medicines"][0], medicine_id=2, medicine_name="Ibuprofen")

        _, changes = describe_batch_update(_state(), _state(medicines=[added]))

        fields = [change["field"] for change in changes]
        self.assertIn("medicine_added", fields)
        self.assertIn("medicine_removed", fields)
        self.assertNotIn("medicines_count", fields)


class ActivityLogServiceTests(TestCase):
    def setUp(self):
        self.manager = User.objects.create_user(
            username="log_manager",
            password="pass12345",
            role=User.ROLE_MANAGER,
        )
        self.medicine = Medicine.objects.create(name="Azithromycin", reorder_level=5)
        self.line = {
            "medicine_id": self.medicine.id,
            "quantity": 10,
            "price": "4.00",
            "expiry_date": timezone.localdate() + timedelta(days=200),
        }

    def test_each_mutation_appends_exactly_one_entry(self):
        batch = BatchService.create_draft(actor=self.manager, batch_number="L-1", medicines=[self.line])
        self.assertEqual(ActivityLog.objects.count(), 1)

        BatchService.update(actor=self.manager, batch_id=batch.pk, patch={"draft_note": "checked"})
        self.assertEqual(ActivityLog.objects.count(), 2)

        BatchService.finalize(actor=self.manager, batch_id=batch.pk)
        self.assertEqual(ActivityLog.objects.count(), 3)

        BatchService.delete(actor=self.manager, batch_id=batch.pk)
        self.assertEqual(ActivityLog.objects.count(), 4)

        actions = list(
            ActivityLog.objects.filter(batch_id=batch.pk).order_by("id").values_list("action", flat=True)
        )
        self.assertEqual(actions, ["CREATED", "UPDATED", "FINALIZED", "DELETED"])

    def test_queries_are_newest_first(self):
        batch = BatchService.create_draft(actor=self.manager, batch_number="L-2", medicines=[self.line])
        BatchService.update(actor=self.manager, batch_id=batch.pk, patch={"draft_note": "one"})
        BatchService.update(actor=self.manager, batch_id=batch.pk, patch={"draft_note": "two"})
        other = BatchService.create_draft(actor=self.manager, batch_number="L-3")

        by_batch = ActivityLogService.query_by_batch(batch_id=batch.pk)
        ids = [entry.id for entry in by_batch["logs"]]
        self.assertEqual(ids, sorted(ids, reverse=True))
        self.assertEqual(by_batch["pagination"]["total_items"], 3)

        everything = ActivityLogService.query_all()
        self.assertEqual(everything["logs"][0].batch_id, other.pk)
        self.assertEqual(everything["pagination"]["total_items"], 4)

        updates = ActivityLogService.query_all(action=ActivityLog.ACTION_UPDATED, page_size=1)
        self.assertEqual(len(updates["logs"]), 1)
        self.assertEqual(updates["pagination"]["total_pages"], 2)
        self.assertIn("two", str(updates["logs"][0].changes))

    def test_query_by_batch_requires_a_key(self):
        with self.assertRaises(ValueError):
            ActivityLogService.query_by_batch()

    def test_details_are_truncated(self):
        batch = BatchService.create_draft(actor=self.manager, batch_number="L-4")

        entry = ActivityLogService.record(
            batch=batch,
            action=ActivityLog.ACTION_UPDATED,
            details="x" * 2000,
            owner=self.manager,
        )

        entry.refresh_from_db()
        self.assertEqual(len(entry.details), ActivityLog.DETAILS_MAX_LENGTH)

    def test_unknown_action_is_rejected(self):
        batch = BatchService.create_draft(actor=self.manager, batch_number="L-5")

        with self.assertRaises(ValueError):
            ActivityLogService.record(batch=batch, action="ARCHIVED", details="", owner=self.manager)

    def test_entries_are_append_only(self):
        batch = BatchService.create_draft(actor=self.manager, batch_number="L-6")
        entry = ActivityLog.objects.get(batch_id=batch.pk)

        entry.details = "rewritten"
        with self.assertRaises(ImmutableRecordError):
            entry.save()
        with self.assertRaises(ImmutableRecordError):
            entry.delete()
        with self.assertRaises(ImmutableRecordError):
            ActivityLog.objects.filter(pk=entry.pk).update(details="rewritten")
        with self.assertRaises(ImmutableRecordError):
            ActivityLog.objects.all().delete()

        self.assertNotEqual(ActivityLog.objects.get(pk=entry.pk).details, "rewritten")
