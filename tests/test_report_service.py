"""Tests for sales reporting."""

import asyncio
from datetime import date, datetime
from decimal import Decimal

import pytest
import pytz

from storefront.models.report import ReportFilters, ReportItem, ReportOrder
from storefront.services.report_service import (
    ReportService, aggregate, apply_filters, month_range, normalize_payment_method,
    normalize_payment_status, week_range
)

DHAKA = pytz.timezone("Asia/Dhaka")


def order_row(order_id, created_at, total=None, total_amount=None, status="delivered",
              payment_method="Cash on Delivery", payment_status="paid"):
    return {
        "id": order_id,
        "order_number": f"ORD-{order_id}",
        "created_at": created_at,
        "status": status,
        "total": total,
        "total_amount": total_amount,
        "payment_method": payment_method,
        "payment_status": payment_status,
    }


def utc(*args):
    return datetime(*args, tzinfo=pytz.utc)


class TestNormalizers:
    @pytest.mark.parametrize("raw,expected", [
        ("bKash", "bKash"), ("BKASH payment", "bKash"), ("Cash on Delivery", "COD"),
        ("cod", "COD"), ("card", "Other"), (None, "Other"),
    ])
    def test_payment_method(self, raw, expected):
        assert normalize_payment_method(raw) == expected

    @pytest.mark.parametrize("raw,expected", [
        ("Paid", "paid"), ("success", "paid"), ("unpaid", "unpaid"), ("PENDING", "pending"),
        ("failed", "failed"), ("cancelled", "failed"), ("", "unknown"), (None, "unknown"),
    ])
    def test_payment_status(self, raw, expected):
        assert normalize_payment_status(raw) == expected

    def test_revenue_prefers_total(self):
        assert ReportOrder.from_row(order_row("a", utc(2026, 1, 1), 100, 90)).revenue == Decimal(100)
        assert ReportOrder.from_row(order_row("b", utc(2026, 1, 1), None, 90)).revenue == Decimal(90)
        assert ReportOrder.from_row(order_row("c", utc(2026, 1, 1), None, None)).revenue == Decimal(0)


class TestRanges:
    def test_week_starts_on_saturday(self):
        # 2026-10-16 is a Friday
        assert week_range(date(2026, 10, 16)) == (date(2026, 10, 10), date(2026, 10, 16))
        assert week_range(date(2026, 10, 17)) == (date(2026, 10, 17), date(2026, 10, 23))

    def test_month(self):
        assert month_range(date(2024, 2, 14)) == (date(2024, 2, 1), date(2024, 2, 29))


class TestAggregate:
    def test_dense_daily_breakdown(self):
        orders = [ReportOrder.from_row(order_row("a", utc(2026, 3, 2, 10), 500))]
        report = aggregate(orders, [], date(2026, 3, 1), date(2026, 3, 31), DHAKA)

        assert len(report.daily_breakdown) == 31
        assert report.daily_breakdown[0].date == "2026-03-01"
        assert report.daily_breakdown[-1].date == "2026-03-31"
        assert all(row.revenue >= 0 for row in report.daily_breakdown)
        assert sum(row.orders for row in report.daily_breakdown) == 1

    def test_days_follow_shop_timezone(self):
        # 20:00 UTC on the 1st is 02:00 on the 2nd in Dhaka
        orders = [ReportOrder.from_row(order_row("a", utc(2026, 3, 1, 20), 500))]
        report = aggregate(orders, [], date(2026, 3, 1), date(2026, 3, 2), DHAKA)
        assert [row.orders for row in report.daily_breakdown] == [0, 1]

    def test_summary_and_breakdowns(self):
        orders = [
            ReportOrder.from_row(order_row("a", utc(2026, 3, 1, 5), 1000)),
            ReportOrder.from_row(order_row("b", utc(2026, 3, 1, 6), None, 500, status="shipped",
                                           payment_method="bKash", payment_status="pending")),
            ReportOrder.from_row(order_row("c", utc(2026, 3, 2, 6), 300, status="processing",
                                           payment_method="card", payment_status="unpaid")),
        ]
        items = [
            ReportItem.from_row({"order_id": "a", "product_id": "p1", "product_name": "Hub",
                                 "quantity": 2, "total_price": 1000}),
            ReportItem.from_row({"order_id": "b", "product_id": "p2", "product_name": "Dock",
                                 "quantity": 5, "total_price": 500}),
            ReportItem.from_row({"order_id": "zzz", "product_id": "p9", "quantity": 99}),
        ]
        report = aggregate(orders, items, date(2026, 3, 1), date(2026, 3, 2), DHAKA)
        summary = report.summary

        assert summary.revenue == Decimal(1800)
        assert summary.orders == 3
        assert summary.items_sold == 7
        assert summary.delivered == 1
        assert summary.cod_orders == 1
        assert summary.bkash_orders == 1
        assert summary.paid_orders == 1
        assert summary.unpaid_orders == 2
        assert summary.avg_order_value == Decimal("600.00")

        assert [p.product_id for p in report.top_products] == ["p2", "p1"]
        assert report.daily_breakdown[0].items_sold == 7
        assert {r.method: r.orders for r in report.payment_breakdown} == {"COD": 1, "bKash": 1, "Other": 1}
        assert {r.status for r in report.status_breakdown} == {"delivered", "shipped", "processing"}

    def test_top_products_capped(self):
        orders = [ReportOrder.from_row(order_row("a", utc(2026, 3, 1), 100))]
        items = [
            ReportItem.from_row({"order_id": "a", "product_id": f"p{i}", "quantity": i, "total_price": i})
            for i in range(1, 26)
        ]
        report = aggregate(orders, items, date(2026, 3, 1), date(2026, 3, 1), DHAKA)
        assert len(report.top_products) == 20
        assert report.top_products[0].qty == 25

    def test_empty(self):
        report = aggregate([], [], date(2026, 3, 1), date(2026, 3, 7), DHAKA)
        assert report.summary.orders == 0
        assert report.summary.avg_order_value == Decimal(0)
        assert len(report.daily_breakdown) == 7


class TestFilters:
    def _orders(self):
        return [
            ReportOrder.from_row(order_row("a", utc(2026, 3, 1), 100, status="pending")),
            ReportOrder.from_row(order_row("b", utc(2026, 3, 1), 100, status="delivered",
                                           payment_method="bKash")),
            ReportOrder.from_row(order_row("c", utc(2026, 3, 1), 100, status="completed",
                                           payment_status="unpaid")),
        ]

    def test_sales_statuses_only_by_default(self):
        assert [o.id for o in apply_filters(self._orders())] == ["b", "c"]

    def test_include_non_sales(self):
        assert len(apply_filters(self._orders(), ReportFilters(include_non_sales=True))) == 3

    def test_payment_filters(self):
        assert [o.id for o in apply_filters(self._orders(), ReportFilters(payment_method="bkash"))] == ["b"]
        assert [o.id for o in apply_filters(self._orders(), ReportFilters(payment_status="unpaid"))] == ["c"]
        assert [o.id for o in apply_filters(self._orders(), ReportFilters(status="delivered"))] == ["b"]

    def test_color_rows_are_skipped(self):
        variant = order_row("d", utc(2026, 3, 1), 100)
        variant["color_name"] = "Red"
        orders = self._orders() + [ReportOrder.from_row(variant)]
        assert [o.id for o in apply_filters(orders, ReportFilters(include_non_sales=True))] == ["a", "b", "c"]


class TestReportService:
    def _seed(self, db):
        order = db.seed("orders", created_at=utc(2026, 3, 10, 8), status="delivered", total=None,
                        total_amount=Decimal(750), payment_method="bKash", payment_status="paid",
                        order_number="ORD-20260310-1000")
        db.seed("orders", created_at=utc(2026, 3, 11, 8), status="pending", total=Decimal(100),
                payment_method="Cash on Delivery", payment_status="pending", order_number="ORD-20260311-1000")
        db.seed("orders", created_at=utc(2026, 4, 1, 8), status="delivered", total=Decimal(999),
                payment_method="Cash on Delivery", payment_status="paid", order_number="ORD-20260401-1000")
        db.seed("order_items", order_id=order["id"], product_id="p1", product_name="Dock",
                quantity=3, total_price=Decimal(750))

    def test_monthly_live(self, db):
        self._seed(db)
        report = asyncio.run(ReportService(db).get_monthly_report(date(2026, 3, 5), use_snapshot=False))
        assert report.source == "live"
        assert report.summary.orders == 1
        assert report.summary.revenue == Decimal(750)
        assert report.summary.items_sold == 3
        assert len(report.daily_breakdown) == 31

    def test_snapshot_round_trip(self, db):
        self._seed(db)
        service = ReportService(db)
        live = asyncio.run(service.get_monthly_report(date(2026, 3, 5), use_snapshot=False))
        asyncio.run(service.save_monthly_snapshot(live))
        asyncio.run(service.save_monthly_snapshot(live))
        assert len(db.rows("monthly_reports")) == 1
        assert db.rows("monthly_reports")[0]["month"] == date(2026, 3, 1)

        stored = asyncio.run(service.get_monthly_report(date(2026, 3, 20)))
        assert stored.source == "snapshot"
        assert stored.summary == live.summary
        assert stored.top_products == live.top_products
        assert stored.daily_breakdown == live.daily_breakdown
        assert asyncio.run(service.list_snapshots()) == [date(2026, 3, 1)]

    def test_filtered_monthly_skips_snapshot(self, db):
        self._seed(db)
        service = ReportService(db)
        live = asyncio.run(service.get_monthly_report(date(2026, 3, 5), use_snapshot=False))
        asyncio.run(service.save_monthly_snapshot(live))

        report = asyncio.run(service.get_monthly_report(date(2026, 3, 5), ReportFilters(payment_method="cod")))
        assert report.source == "live"
        assert report.summary.orders == 0
        assert asyncio.run(service.get_monthly_report(date(2026, 3, 5), ReportFilters())).source == "snapshot"

    def test_weekly(self, db):
        self._seed(db)
        filters = ReportFilters(include_non_sales=True)
        report = asyncio.run(ReportService(db).get_weekly_report(date(2026, 3, 10), filters))
        assert report.period_start == date(2026, 3, 7)
        assert report.summary.orders == 2

    def test_export_excel(self, db):
        self._seed(db)
        service = ReportService(db)
        report = asyncio.run(service.get_daily_report(date(2026, 3, 10)))
        content = service.export_excel(report)
        # xlsx is a zip archive
        assert content[:2] == b"PK"
