from datetime import date, datetime, timedelta
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.test import TestCase, override_settings
from django.utils import timezone

from apps.accounts.models import User
from apps.dashboard.services import StockAggregationService, StockSnapshot, format_stock_value
from apps.inventory.exceptions import MedicineNotFound
from apps.inventory.models import Batch
from apps.inventory.services import BatchService, DiscardService
from apps.medicines.models import Medicine


class AggregationTestMixin:
    def setUp(self):
        self.manager = User.objects.create_user(
            username="report_manager",
            password="pass12345",
            role=User.ROLE_MANAGER,
        )
        self.today = timezone.localdate()

    def stock(self, batch_number, *lines, draft=False):
        medicines = [
            {
                "medicine_id": medicine.id,
                "quantity": quantity,
                "price": price,
                "expiry_date": self.today + timedelta(days=expires_in),
            }
            for medicine, quantity, price, expires_in in lines
        ]
        create = BatchService.create_draft if draft else BatchService.add_to_stock
        return create(actor=self.manager, batch_number=batch_number, medicines=medicines)


class LowStockReportTests(AggregationTestMixin, TestCase):
    def test_medicine_without_batches_is_low_stock(self):
        medicine = Medicine.objects.create(name="Metformin 500mg", reorder_level=50)

        rows = StockAggregationService.low_stock_report()

        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0]["medicine_id"], medicine.id)
        self.assertEqual(rows[0]["total_quantity"], 0)
        self.assertEqual(rows[0]["reorder_level"], 50)
        self.assertEqual(rows[0]["batches"], [])

    def test_zero_reorder_level_is_never_low(self):
        Medicine.objects.create(name="Saline", reorder_level=0)

        self.assertEqual(StockAggregationService.low_stock_report(), [])

    def test_threshold_is_strict_and_drafts_do_not_count(self):
        at_level = Medicine.objects.create(name="Aspirin", reorder_level=20)
        below = Medicine.objects.create(name="Losartan", reorder_level=30)
        self.stock("B-1", (at_level, 20, "1.00", 60), (below, 25, "1.00", 60))
        self.stock("D-1", (below, 100, "1.00", 60), draft=True)

        rows = StockAggregationService.low_stock_report()

        self.assertEqual([row["medicine_id"] for row in rows], [below.id])
        self.assertEqual(rows[0]["total_quantity"], 25)
        self.assertEqual(rows[0]["shortfall"], 5)
        self.assertEqual(rows[0]["batches"], [{"batch_number": "B-1", "quantity": 25}])

    def test_sums_across_batches_and_uses_current_reorder_level(self):
        medicine = Medicine.objects.create(name="Omeprazole", reorder_level=10)
        self.stock("B-1", (medicine, 6, "1.00", 60))
        self.stock("B-2", (medicine, 6, "1.00", 90))
        self.assertEqual(StockAggregationService.low_stock_report(), [])

        medicine.reorder_level = 15
        medicine.save()

        rows = StockAggregationService.low_stock_report()
        self.assertEqual(rows[0]["total_quantity"], 12)
        self.assertEqual(len(rows[0]["batches"]), 2)

    def test_inactive_medicines_are_ignored(self):
        Medicine.objects.create(name="Retired", reorder_level=100, is_active=False)

        self.assertEqual(StockAggregationService.low_stock_report(), [])


class ExpiryReportTests(AggregationTestMixin, TestCase):
    @override_settings(STOCK_EXPIRY_WINDOW_DAYS=10)
    def test_window_boundaries(self):
        expired = Medicine.objects.create(name="Expired med")
        today = Medicine.objects.create(name="Today med")
        last_soon = Medicine.objects.create(name="Day nine med")
        outside = Medicine.objects.create(name="Day ten med")
        self.stock(
            "B-1",
            (expired, 3, "1.00", -1),
            (today, 4, "1.00", 0),
            (last_soon, 5, "1.00", 9),
            (outside, 6, "1.00", 10),
        )

        report = StockAggregationService.expiry_report()

        self.assertEqual([row["medicine_id"] for row in report["expired"]], [expired.id])
        self.assertEqual(
            {row["medicine_id"] for row in report["expiring_soon"]},
            {today.id, last_soon.id},
        )
        self.assertEqual(report["ok"], {"line_items": 1, "quantity": 6})
        self.assertEqual(report["window_days"], 10)

    def test_groups_by_medicine_with_drill_down(self):
        medicine = Medicine.objects.create(name="Insulin")
        self.stock("B-1", (medicine, 4, "10.00", 2))
        self.stock("B-2", (medicine, 6, "10.00", 1))

        group = StockAggregationService.expiry_report()["expiring_soon"][0]

        self.assertEqual(group["total_quantity"], 10)
        self.assertEqual([item["batch_number"] for item in group["batches"]], ["B-2", "B-1"])
        self.assertEqual(group["batches"][0]["expiry_date"], self.today + timedelta(days=1))
        self.assertEqual(group["batches"][0]["quantity"], 6)

    def test_fully_discarded_and_draft_lines_are_excluded(self):
        discarded = Medicine.objects.create(name="Discarded")
        drafted = Medicine.objects.create(name="Drafted")
        self.stock("B-1", (discarded, 5, "1.00", -3))
        self.stock("D-1", (drafted, 5, "1.00", -3), draft=True)
        DiscardService.discard(actor=self.manager, medicine_id=discarded.id, quantity=5)

        report = StockAggregationService.expiry_report()

        self.assertEqual(report["expired"], [])
        self.assertEqual(report["expiring_soon"], [])


class DashboardStatsTests(AggregationTestMixin, TestCase):
    def test_stats_are_consistent_with_reports(self):
        low = Medicine.objects.create(name="Low", reorder_level=50)
        soon = Medicine.objects.create(name="Soon", reorder_level=0)
        gone = Medicine.objects.create(name="Gone", reorder_level=0)
        self.stock("B-1", (low, 10, "2.50", 100), (soon, 4, "3.00", 3))
        self.stock("B-2", (gone, 2, "7.00", -5), (soon, 1, "3.00", 5))
        self.stock("D-1", (low, 1000, "9.00", 100), draft=True)

        snapshot = StockSnapshot.take()
        stats = StockAggregationService.dashboard_stats(snapshot)

        self.assertEqual(stats["low_stock"], len(StockAggregationService.low_stock_report(snapshot)))
        self.assertEqual(stats["low_stock"], 1)
        self.assertEqual(stats["near_expiry"], 1)
        self.assertEqual(stats["already_expired"], 1)
        self.assertEqual(stats["total_items"], 4)
        self.assertEqual(stats["stock_value"], Decimal("54.00"))
        self.assertEqual(stats["stock_value_display"], "54.00")

    def test_stock_value_matches_quantity_times_price_after_discard(self):
        medicine = Medicine.objects.create(name="Valued", reorder_level=0)
        self.stock("B-1", (medicine, 100, "2.00", 5))
        DiscardService.discard(actor=self.manager, medicine_id=medicine.id, quantity=30)

        stats = StockAggregationService.dashboard_stats()
        self.assertEqual(stats["stock_value"], Decimal("140.00"))

    def test_snapshot_is_not_affected_by_later_writes(self):
        medicine = Medicine.objects.create(name="Stable", reorder_level=0)
        self.stock("B-1", (medicine, 10, "1.00", 60))
        snapshot = StockSnapshot.take()

        self.stock("B-2", (medicine, 90, "1.00", 60))

        self.assertEqual(StockAggregationService.dashboard_stats(snapshot)["stock_value"], Decimal("10.00"))
        self.assertEqual(StockAggregationService.dashboard_stats()["stock_value"], Decimal("100.00"))

    def test_format_stock_value(self):
        self.assertEqual(format_stock_value(Decimal("950")), "950.00")
        self.assertEqual(format_stock_value(Decimal("12345")), "12.3K")


class TrendSeriesTests(AggregationTestMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.medicine = Medicine.objects.create(name="Trend med", reorder_level=0)

    def stock_created_at(self, batch_number, quantity, created, draft=False):
        batch = self.stock(batch_number, (self.medicine, quantity, "1.00", 400), draft=draft)
        created_at = timezone.make_aware(datetime(created.year, created.month, created.day, 12, 0))
        Batch.objects.filter(pk=batch.pk).update(created_at=created_at)
        return batch

    def test_monthly_buckets_are_contiguous_and_zero_filled(self):
        self.stock_created_at("B-JAN", 10, date(2025, 1, 10))
        self.stock_created_at("B-MAR", 5, date(2025, 3, 2))
        self.stock_created_at("D-FEB", 50, date(2025, 2, 14), draft=True)

        snapshot = StockSnapshot.take(today=date(2025, 3, 15))
        series = StockAggregationService.trend_series("month", periods=3, snapshot=snapshot)

        self.assertEqual([bucket["label"] for bucket in series], ["2025-01", "2025-02", "2025-03"])
        self.assertEqual([bucket["quantity"] for bucket in series], [10, 0, 5])
        self.assertEqual(series[0]["period_start"], date(2025, 1, 1))

    def test_monthly_buckets_cross_year_boundary(self):
        self.stock_created_at("B-DEC", 7, date(2024, 12, 31))

        snapshot = StockSnapshot.take(today=date(2025, 1, 5))
        series = StockAggregationService.trend_series("month", periods=2, snapshot=snapshot)

        self.assertEqual([bucket["label"] for bucket in series], ["2024-12", "2025-01"])
        self.assertEqual([bucket["quantity"] for bucket in series], [7, 0])

    def test_weekly_buckets_start_on_monday(self):
        self.stock_created_at("B-W10", 8, date(2025, 3, 5))
        self.stock_created_at("B-W11", 2, date(2025, 3, 10))

        snapshot = StockSnapshot.take(today=date(2025, 3, 12))
        series = StockAggregationService.trend_series("week", periods=3, snapshot=snapshot)

        self.assertEqual(
            [bucket["period_start"] for bucket in series],
            [date(2025, 2, 24), date(2025, 3, 3), date(2025, 3, 10)],
        )
        self.assertEqual([bucket["label"] for bucket in series], ["2025-W09", "2025-W10", "2025-W11"])
        self.assertEqual([bucket["quantity"] for bucket in series], [0, 8, 2])

    def test_default_periods(self):
        self.assertEqual(len(StockAggregationService.trend_series("week")), 8)
        self.assertEqual(len(StockAggregationService.trend_series("month")), 12)

    def test_invalid_arguments(self):
        with self.assertRaises(ValidationError):
            StockAggregationService.trend_series("day")
        with self.assertRaises(ValidationError):
            StockAggregationService.trend_series("week", periods=0)


class TopStockedTests(AggregationTestMixin, TestCase):
    def test_orders_by_total_finalized_quantity(self):
        first = Medicine.objects.create(name="First")
        second = Medicine.objects.create(name="Second")
        third = Medicine.objects.create(name="Third")
        self.stock("B-1", (first, 30, "1.00", 60), (second, 50, "1.00", 60))
        self.stock("B-2", (first, 30, "1.00", 60), (third, 5, "1.00", 60))
        self.stock("D-1", (third, 500, "1.00", 60), draft=True)

        rows = StockAggregationService.top_stocked(limit=2)

        self.assertEqual([row["medicine_id"] for row in rows], [first.id, second.id])
        self.assertEqual(rows[0]["total_quantity"], 60)


class MedicineStockListTests(AggregationTestMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.amoxicillin = Medicine.objects.create(name="Amoxicillin", reorder_level=50)
        self.cetirizine = Medicine.objects.create(name="Cetirizine", reorder_level=5)
        self.stock("B-1", (self.amoxicillin, 10, "2.00", 60), (self.cetirizine, 8, "1.50", -2))
        self.stock("B-2", (self.amoxicillin, 30, "3.00", 5))
        self.stock("D-1", (self.amoxicillin, 500, "1.00", 60), draft=True)

    def test_totals_and_drill_down(self):
        result = StockAggregationService.medicine_stock_list()

        rows = {row["medicine_id"]: row for row in result["medicines"]}
        amoxicillin = rows[self.amoxicillin.id]
        self.assertEqual(amoxicillin["total_quantity"], 40)
        self.assertEqual(amoxicillin["total_value"], Decimal("110.00"))
        self.assertEqual(amoxicillin["average_price"], Decimal("2.50"))
        self.assertEqual(amoxicillin["batch_count"], 2)
        self.assertEqual(amoxicillin["status"], "low_stock")
        self.assertEqual(amoxicillin["expiring_soon_batches"], 1)
        self.assertEqual({item["batch_number"] for item in amoxicillin["batches"]}, {"B-1", "B-2"})
        self.assertEqual(rows[self.cetirizine.id]["status"], "in_stock")
        self.assertEqual(rows[self.cetirizine.id]["expired_batches"], 1)

        self.assertEqual(result["summary"]["total_medicines"], 2)
        self.assertEqual(result["summary"]["total_batches"], 3)
        self.assertEqual(result["summary"]["total_value"], Decimal("122.00"))
        self.assertEqual(result["summary"]["low_stock_medicines"], 1)
        self.assertEqual(result["summary"]["expired_medicines"], 1)

    def test_search_sort_and_pagination(self):
        by_batch = StockAggregationService.medicine_stock_list(search="b-2")
        self.assertEqual([row["medicine_id"] for row in by_batch["medicines"]], [self.amoxicillin.id])
        self.assertEqual(by_batch["medicines"][0]["total_quantity"], 30)

        ordered = StockAggregationService.medicine_stock_list(sort_by="total_value", sort_order="desc")
        self.assertEqual(
            [row["medicine_id"] for row in ordered["medicines"]],
            [self.amoxicillin.id, self.cetirizine.id],
        )

        first_page = StockAggregationService.medicine_stock_list(page=1, page_size=1)
        self.assertEqual(len(first_page["medicines"]), 1)
        self.assertEqual(first_page["pagination"]["total_pages"], 2)
        self.assertEqual(first_page["summary"]["total_medicines"], 2)

    def test_unknown_sort_field(self):
        with self.assertRaises(ValidationError):
            StockAggregationService.medicine_stock_list(sort_by="price")
        with self.assertRaises(ValidationError):
            StockAggregationService.medicine_stock_list(sort_order="sideways")


class MedicineStockDetailTests(AggregationTestMixin, TestCase):
    def test_entries_and_summary(self):
        medicine = Medicine.objects.create(name="Prednisolone", reorder_level=10)
        self.stock("B-1", (medicine, 4, "5.00", -1))
        self.stock("B-2", (medicine, 16, "2.50", 200))
        self.stock("D-1", (medicine, 99, "1.00", 200), draft=True)

        detail = StockAggregationService.medicine_stock_detail(medicine.id)

        self.assertEqual(detail["medicine_name"], "Prednisolone")
        self.assertEqual([entry["batch_number"] for entry in detail["entries"]], ["B-2", "B-1"])
        self.assertEqual(detail["entries"][1]["expiry_status"], "expired")
        summary = detail["summary"]
        self.assertEqual(summary["total_batches"], 2)
        self.assertEqual(summary["total_quantity"], 20)
        self.assertEqual(summary["total_value"], Decimal("60.00"))
        self.assertEqual(summary["average_price"], Decimal("3.00"))
        self.assertEqual(summary["expired_batches"], 1)
        self.assertEqual(summary["status"], "has_expired")

    def test_medicine_without_stock(self):
        medicine = Medicine.objects.create(name="Unstocked", reorder_level=3)

        detail = StockAggregationService.medicine_stock_detail(medicine.id)

        self.assertEqual(detail["entries"], [])
        self.assertEqual(detail["summary"]["total_quantity"], 0)
        self.assertEqual(detail["summary"]["status"], "low_stock")

    def test_unknown_medicine(self):
        with self.assertRaises(MedicineNotFound):
            StockAggregationService.medicine_stock_detail(424242)


class ExpiredMedicinesTests(AggregationTestMixin, TestCase):
    def test_groups_expired_lines_only(self):
        first = Medicine.objects.create(name="Ampicillin")
        second = Medicine.objects.create(name="Bisacodyl")
        self.stock("B-1", (first, 5, "2.00", -10), (second, 2, "4.00", -1))
        self.stock("B-2", (first, 3, "2.00", -3), (second, 9, "4.00", 30))
        self.stock("D-1", (first, 50, "2.00", -10), draft=True)

        result = StockAggregationService.expired_medicines()

        self.assertEqual([row["medicine_id"] for row in result["medicines"]], [first.id, second.id])
        row = result["medicines"][0]
        self.assertEqual(row["total_quantity"], 8)
        self.assertEqual(row["total_value"], Decimal("16.00"))
        self.assertEqual(row["earliest_expiry_date"], self.today - timedelta(days=10))
        self.assertEqual([item["days_expired"] for item in row["batches"]], [10, 3])
        self.assertEqual(result["summary"]["total_expired_quantity"], 10)
        self.assertEqual(result["summary"]["total_batches_affected"], 3)

    def test_search_and_pagination(self):
        first = Medicine.objects.create(name="Ampicillin")
        second = Medicine.objects.create(name="Bisacodyl")
        self.stock("B-1", (first, 5, "2.00", -10), (second, 2, "4.00", -1))

        found = StockAggregationService.expired_medicines(search="bisa")
        self.assertEqual([row["medicine_id"] for row in found["medicines"]], [second.id])

        paged = StockAggregationService.expired_medicines(sort_by="medicine_name", page=2, page_size=1)
        self.assertEqual([row["medicine_id"] for row in paged["medicines"]], [second.id])
        self.assertTrue(paged["pagination"]["has_prev_page"])
