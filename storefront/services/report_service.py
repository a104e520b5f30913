# storefront/services/report_service.py
import calendar
import io
import logging
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from operator import attrgetter
from typing import Dict, Iterable, List, Optional, Tuple
import pandas as pd
import pytz
from ..config import Config
from ..models.report import (
    BreakdownRow, PaymentBreakdownRow, Report, ReportFilters, ReportItem, ReportOrder,
    ReportSummary, StatusBreakdownRow, TopProductRow
)

logger = logging.getLogger(__name__)

SALES_STATUSES = ("processing", "shipped", "delivered", "completed")
DELIVERED_STATUSES = ("delivered", "completed")
UNPAID_STATUSES = ("unpaid", "pending", "unknown", "failed")
TOP_PRODUCTS_LIMIT = 20
WEEK_START = calendar.SATURDAY

def normalize_payment_method(method: Optional[str]) -> str:
    value = str(method or "").strip().lower()
    if "bkash" in value:
        return "bKash"
    if "cod" in value or "cash" in value:
        return "COD"
    return "Other"

def normalize_payment_status(status: Optional[str]) -> str:
    value = str(status or "").strip().lower()
    if not value:
        return "unknown"
    # "unpaid" contains "paid"
    if "unpaid" in value:
        return "unpaid"
    if "paid" in value or value == "success":
        return "paid"
    if "pending" in value:
        return "pending"
    if "fail" in value or "cancel" in value:
        return "failed"
    return value

def is_sales_status(status: Optional[str]) -> bool:
    return str(status or "").lower() in SALES_STATUSES

def day_range(day: date) -> Tuple[date, date]:
    return day, day

def week_range(day: date) -> Tuple[date, date]:
    """Saturday to Friday week containing the day"""
    start = day - timedelta(days=(day.weekday() - WEEK_START) % 7)
    return start, start + timedelta(days=6)

def month_range(day: date) -> Tuple[date, date]:
    start = day.replace(day=1)
    return start, start.replace(day=calendar.monthrange(start.year, start.month)[1])

def apply_filters(orders: Iterable[ReportOrder], filters: Optional[ReportFilters] = None) -> List[ReportOrder]:
    filters = filters or ReportFilters()
    result = []
    for order in orders:
        # color rows of a fan-out belong to their base order
        if order.color_name:
            continue
        if not filters.include_non_sales and not is_sales_status(order.status):
            continue
        if filters.status and filters.status.lower() != "all" and order.status != filters.status.lower():
            continue
        method = (filters.payment_method or "").lower()
        if method and method != "all" and normalize_payment_method(order.payment_method).lower() != method:
            continue
        payment_status = (filters.payment_status or "").lower()
        if (payment_status and payment_status != "all"
                and normalize_payment_status(order.payment_status) != payment_status):
            continue
        result.append(order)
    return result

def _local_day(moment: datetime, tz) -> date:
    if moment.tzinfo is None:
        moment = pytz.utc.localize(moment)
    return moment.astimezone(tz).date()

def _grouped(orders: List[ReportOrder], key) -> Dict[str, StatusBreakdownRow]:
    groups: Dict[str, StatusBreakdownRow] = {}
    for order in orders:
        name = key(order)
        row = groups.setdefault(name, StatusBreakdownRow(status=name))
        row.orders += 1
        row.revenue += order.revenue
    return groups

def aggregate(orders: List[ReportOrder], items: List[ReportItem],
              range_start: date, range_end: date, tz=None) -> Report:
    """Summarize filtered orders and their items over an inclusive date range.

    The daily breakdown has one row per calendar day in the range, in the
    shop timezone, including days without orders.
    """
    tz = tz or pytz.timezone(Config.TIMEZONE)
    order_ids = {o.id for o in orders}
    items = [i for i in items if i.order_id in order_ids]

    revenue = sum((o.revenue for o in orders), Decimal(0))
    items_sold = sum(i.quantity for i in items)
    count = len(orders)

    summary = ReportSummary(
        revenue=revenue,
        orders=count,
        items_sold=items_sold,
        delivered=sum(1 for o in orders if o.status in DELIVERED_STATUSES),
        cod_orders=sum(1 for o in orders if normalize_payment_method(o.payment_method) == "COD"),
        bkash_orders=sum(1 for o in orders if normalize_payment_method(o.payment_method) == "bKash"),
        paid_orders=sum(1 for o in orders if normalize_payment_status(o.payment_status) == "paid"),
        unpaid_orders=sum(1 for o in orders if normalize_payment_status(o.payment_status) in UNPAID_STATUSES),
        avg_order_value=(revenue / count).quantize(Decimal("0.01")) if count else Decimal(0),
    )

    days: Dict[str, BreakdownRow] = {}
    current = range_start
    while current <= range_end:
        key = current.isoformat()
        days[key] = BreakdownRow(date=key)
        current += timedelta(days=1)

    order_days: Dict[str, str] = {}
    for order in orders:
        key = _local_day(order.created_at, tz).isoformat()
        order_days[order.id] = key
        if key in days:
            days[key].orders += 1
            days[key].revenue += order.revenue

    products: Dict[str, TopProductRow] = {}
    for item in items:
        key = order_days.get(item.order_id)
        if key in days:
            days[key].items_sold += item.quantity
        row = products.setdefault(item.product_id, TopProductRow(
            product_id=item.product_id, product_name=item.product_name
        ))
        row.qty += item.quantity
        row.revenue += item.total_price
        row.product_name = item.product_name

    top_products = sorted(products.values(), key=lambda p: p.qty, reverse=True)[:TOP_PRODUCTS_LIMIT]

    methods: Dict[str, PaymentBreakdownRow] = {}
    for order in orders:
        name = normalize_payment_method(order.payment_method)
        row = methods.setdefault(name, PaymentBreakdownRow(method=name))
        row.orders += 1
        row.revenue += order.revenue

    by_orders = attrgetter("orders")

    return Report(
        period_start=range_start,
        period_end=range_end,
        summary=summary,
        daily_breakdown=list(days.values()),
        top_products=top_products,
        payment_breakdown=sorted(methods.values(), key=by_orders, reverse=True),
        status_breakdown=sorted(_grouped(orders, lambda o: o.status).values(), key=by_orders, reverse=True),
        payment_status_breakdown=sorted(
            _grouped(orders, lambda o: normalize_payment_status(o.payment_status)).values(),
            key=by_orders, reverse=True
        ),
    )

class ReportService:
    """Sales reports over persisted orders"""

    def __init__(self, db):
        self.db = db
        self.tz = pytz.timezone(Config.TIMEZONE)

    def today(self) -> date:
        return datetime.now(self.tz).date()

    async def get_daily_report(self, day: Optional[date] = None,
                               filters: Optional[ReportFilters] = None) -> Report:
        """Report for a single day"""
        return await self._generate_report(*day_range(day or self.today()), filters)

    async def get_weekly_report(self, day: Optional[date] = None,
                                filters: Optional[ReportFilters] = None) -> Report:
        """Report for the Saturday-start week containing the day"""
        return await self._generate_report(*week_range(day or self.today()), filters)

    async def get_monthly_report(self, day: Optional[date] = None, filters: Optional[ReportFilters] = None,
                                 use_snapshot: bool = True) -> Report:
        """Report for a calendar month; a stored snapshot is preferred when allowed"""
        start, end = month_range(day or self.today())
        # snapshots hold the unfiltered month only
        if use_snapshot and (filters is None or filters == ReportFilters()):
            snapshot = await self.get_snapshot(start)
            if snapshot is not None:
                return snapshot
        return await self._generate_report(start, end, filters)

    async def _generate_report(self, start: date, end: date,
                               filters: Optional[ReportFilters] = None) -> Report:
        window_start = self.tz.localize(datetime.combine(start, time.min))
        window_end = self.tz.localize(datetime.combine(end, time.max))

        rows = await self.db.select(
            "orders",
            {"created_at": ("between", (window_start, window_end))},
            columns=("id, order_number, created_at, status, total, total_amount, "
                     "payment_method, payment_status, color_name"),
            order_by="created_at",
        )
        orders = apply_filters((ReportOrder.from_row(r) for r in rows), filters)

        items: List[ReportItem] = []
        if orders:
            item_rows = await self.db.select(
                "order_items",
                {"order_id": ("in", [o.id for o in orders])},
                columns="order_id, product_id, product_name, quantity, total_price",
            )
            items = [ReportItem.from_row(r) for r in item_rows]

        report = aggregate(orders, items, start, end, self.tz)
        logger.info(f"Report {start} - {end}: {report.summary.orders} orders, revenue {report.summary.revenue}")
        return report

    async def save_monthly_snapshot(self, report: Report):
        """Store a monthly report, replacing any earlier snapshot of the month"""
        data = report.model_dump(mode="json")
        month = report.period_start.replace(day=1)
        await self.db.upsert("monthly_reports", {
            "month": month,
            "metrics": data["summary"],
            "breakdown": data["daily_breakdown"],
            "top_products": data["top_products"],
            "payment_breakdown": data["payment_breakdown"],
            "status_breakdown": data["status_breakdown"],
            "payment_status_breakdown": data["payment_status_breakdown"],
            "generated_at": datetime.now(pytz.utc),
        }, conflict="month")
        logger.info(f"Monthly snapshot stored for {month}")

    async def get_snapshot(self, month: date) -> Optional[Report]:
        rows = await self.db.select("monthly_reports", {"month": month.replace(day=1)}, limit=1)
        if not rows:
            return None
        row = rows[0]
        start, end = month_range(month)
        return Report(
            period_start=start,
            period_end=end,
            source="snapshot",
            summary=ReportSummary.model_validate(row.get("metrics") or {}),
            daily_breakdown=row.get("breakdown") or [],
            top_products=row.get("top_products") or [],
            payment_breakdown=row.get("payment_breakdown") or [],
            status_breakdown=row.get("status_breakdown") or [],
            payment_status_breakdown=row.get("payment_status_breakdown") or [],
        )

    async def list_snapshots(self, limit: int = 24) -> List[date]:
        rows = await self.db.select("monthly_reports", columns="month", order_by="month",
                                    descending=True, limit=limit)
        return [r["month"] for r in rows]

    def export_excel(self, report: Report) -> bytes:
        """Excel workbook with one sheet per report section"""
        data = report.model_dump(mode="json")

        output = io.BytesIO()
        with pd.ExcelWriter(output, engine='xlsxwriter') as writer:
            summary = data["summary"]
            pd.DataFrame({
                'Metric': ['Period', *summary.keys()],
                'Value': [f"{data['period_start']} - {data['period_end']}", *summary.values()],
            }).to_excel(writer, sheet_name='Summary', index=False)

            sheets = [
                ('Daily', data["daily_breakdown"], ['date', 'orders', 'revenue', 'items_sold']),
                ('Top Products', data["top_products"], ['product_id', 'product_name', 'qty', 'revenue']),
                ('Payment Methods', data["payment_breakdown"], ['method', 'orders', 'revenue']),
                ('Order Status', data["status_breakdown"], ['status', 'orders', 'revenue']),
                ('Payment Status', data["payment_status_breakdown"], ['status', 'orders', 'revenue']),
            ]
            for sheet_name, rows, columns in sheets:
                pd.DataFrame(rows, columns=columns).to_excel(writer, sheet_name=sheet_name, index=False)

        return output.getvalue()
