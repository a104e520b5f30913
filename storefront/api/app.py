"""FastAPI application exposing checkout, tracking and admin reporting."""
import logging
from contextlib import asynccontextmanager
from datetime import date
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.responses import JSONResponse, Response

from ..config import Config
from ..database.database import Database
from ..errors import (
    InvalidZone,
    OrderNotFound,
    PartialFanoutFailure,
    PersistenceError,
    RateLimited,
    StorefrontError,
    ValidationError,
)
from ..models.checkout import CheckoutRequest, QuoteRequest, TrackOrderRequest
from ..models.discount import Voucher
from ..models.product import ProductCreateRequest
from ..models.report import ReportFilters
from ..services.discount_service import DiscountService
from ..services.notification_service import NotificationService
from ..services.order_service import OrderService
from ..services.product_service import ProductService
from ..services.rate_limit_service import RateLimiter
from ..services.report_service import ReportService
from ..services.shipping_service import delivery_estimate

logger = logging.getLogger(__name__)

ERROR_STATUS_CODES = {
    ValidationError: 400,
    InvalidZone: 400,
    OrderNotFound: 404,
    RateLimited: 429,
}


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for", "")
    if forwarded.split(",")[0].strip():
        return forwarded.split(",")[0].strip()
    return request.headers.get("x-real-ip") or (request.client.host if request.client else "unknown")


def require_admin(authorization: str = Header("")):
    """Bearer ADMIN_API_KEY guard for admin endpoints"""
    token = authorization[7:].strip() if authorization.lower().startswith("bearer ") else ""
    if not Config.ADMIN_API_KEY or token != Config.ADMIN_API_KEY:
        raise HTTPException(status_code=401, detail="Unauthorized")


def report_filters(
    include_non_sales: bool = False,
    status: Optional[str] = None,
    payment_method: Optional[str] = None,
    payment_status: Optional[str] = None,
) -> ReportFilters:
    return ReportFilters(
        include_non_sales=include_non_sales,
        status=status,
        payment_method=payment_method,
        payment_status=payment_status,
    )


def create_app(db=None, notifier=None) -> FastAPI:
    """Build the application around a datastore and a notifier"""
    db = db if db is not None else Database()
    notifier = notifier if notifier is not None else NotificationService()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await db.connect()
        logger.info("Storefront API started")
        try:
            yield
        finally:
            if hasattr(notifier, "drain"):
                await notifier.drain()
            await db.close()

    app = FastAPI(title="Storefront API", lifespan=lifespan)
    app.state.db = db
    app.state.orders = OrderService(db, notifier)
    app.state.products = ProductService(db)
    app.state.discounts = DiscountService(db)
    app.state.reports = ReportService(db)
    app.state.limiter = RateLimiter(db)

    @app.exception_handler(StorefrontError)
    async def storefront_error_handler(request: Request, exc: StorefrontError) -> JSONResponse:
        """Map storefront errors to {ok: false, message} responses."""
        status_code = ERROR_STATUS_CODES.get(type(exc), 500)
        content = {"ok": False, "message": str(exc)}
        headers = None

        if isinstance(exc, ValidationError):
            content["errors"] = exc.errors
        elif isinstance(exc, RateLimited):
            headers = {"Retry-After": str(exc.retry_after)}
        elif isinstance(exc, PartialFanoutFailure):
            logger.error(f"Partial write needs manual cleanup: {exc.created_ids}")
            content["message"] = "Order could not be completed and needs manual review."
        elif isinstance(exc, PersistenceError):
            logger.error(f"Persistence failure on {request.url.path}: {exc}", exc_info=exc.cause)
            content["message"] = (
                "Failed to create order." if request.url.path.endswith("place-order") else "Database error."
            )

        return JSONResponse(status_code=status_code, content=content, headers=headers)

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(f"Unhandled error on {request.url.path}: {exc}", exc_info=exc)
        return JSONResponse(status_code=500, content={"ok": False, "message": "Something went wrong."})

    @app.get("/api/health")
    async def health_check():
        try:
            healthy = await app.state.db.ping()
        except Exception as e:
            logger.warning(f"Health check failed: {e}")
            healthy = False
        if not healthy:
            return JSONResponse(status_code=503, content={"ok": False, "status": "error"})
        return {"ok": True, "status": "ok"}

    @app.post("/api/place-order")
    async def place_order(body: CheckoutRequest, request: Request,
                          x_user_id: Optional[str] = Header(None)):
        """Validate, price and persist a checkout."""
        await app.state.limiter.hit(f"place-order:{client_ip(request)}")
        result = await app.state.orders.place_order(body, user_id=(x_user_id or "").strip() or None)
        return result.model_dump(mode="json", by_alias=True)

    @app.post("/api/quote")
    async def quote(body: QuoteRequest):
        """Price a cart without placing an order."""
        result = await app.state.orders.quote(body)
        estimate = delivery_estimate(body.delivery_location)
        return {
            "ok": True,
            "quote": result.model_dump(mode="json"),
            "delivery": estimate.model_dump(),
        }

    @app.post("/api/track-order")
    async def track_order(body: TrackOrderRequest, request: Request):
        await app.state.limiter.hit(f"track-order:{client_ip(request)}")
        order = await app.state.orders.track_order(body.order_number, body.contact)
        return {"ok": True, "order": order.model_dump(mode="json")}

    @app.get("/api/admin/reports", dependencies=[Depends(require_admin)])
    async def get_report(
        period: str = Query("daily", pattern="^(daily|weekly|monthly)$"),
        day: Optional[date] = None,
        use_snapshot: bool = True,
        filters: ReportFilters = Depends(report_filters),
    ):
        """Daily, weekly or monthly sales report."""
        report = await _load_report(period, day, use_snapshot, filters)
        return report.model_dump(mode="json")

    @app.post("/api/admin/reports/snapshot", dependencies=[Depends(require_admin)])
    async def save_snapshot(month: Optional[date] = None):
        """Compute the month live and store it as the month's snapshot."""
        reports: ReportService = app.state.reports
        report = await reports.get_monthly_report(month, use_snapshot=False)
        await reports.save_monthly_snapshot(report)
        return {"ok": True, "month": report.period_start.isoformat(), "report": report.model_dump(mode="json")}

    @app.get("/api/admin/reports/export", dependencies=[Depends(require_admin)])
    async def export_report(
        period: str = Query("monthly", pattern="^(daily|weekly|monthly)$"),
        day: Optional[date] = None,
        use_snapshot: bool = True,
        filters: ReportFilters = Depends(report_filters),
    ):
        """Download a report as an Excel workbook."""
        report = await _load_report(period, day, use_snapshot, filters)
        content = app.state.reports.export_excel(report)
        filename = f"report-{period}-{report.period_start.isoformat()}.xlsx"
        return Response(
            content=content,
            media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    @app.post("/api/admin/products", status_code=201, dependencies=[Depends(require_admin)])
    async def create_product(body: ProductCreateRequest):
        """Create a product, fanning out color variants when given."""
        product_ids = await app.state.products.create_product(body)
        return {"ok": True, "productIds": product_ids}

    @app.get("/api/admin/orders/{order_id}", dependencies=[Depends(require_admin)])
    async def get_order(order_id: str):
        order = await app.state.orders.get_order(order_id)
        if order is None:
            raise OrderNotFound(order_id)
        return {"ok": True, "order": order.model_dump(mode="json")}

    @app.get("/api/admin/vouchers", dependencies=[Depends(require_admin)])
    async def list_vouchers():
        """Vouchers that can currently be redeemed."""
        vouchers = await app.state.discounts.get_active_vouchers()
        return {"ok": True, "vouchers": [v.model_dump(mode="json") for v in vouchers]}

    @app.post("/api/admin/vouchers", status_code=201, dependencies=[Depends(require_admin)])
    async def create_voucher(body: Voucher):
        voucher_id = await app.state.discounts.create_voucher(body.model_dump(mode="json"))
        return {"ok": True, "id": voucher_id, "code": body.code}

    @app.delete("/api/admin/vouchers/{code}", dependencies=[Depends(require_admin)])
    async def deactivate_voucher(code: str):
        if not await app.state.discounts.deactivate_voucher(code):
            return JSONResponse(status_code=404, content={"ok": False, "message": "Voucher not found."})
        return {"ok": True}

    async def _load_report(period: str, day: Optional[date], use_snapshot: bool, filters: ReportFilters):
        reports: ReportService = app.state.reports
        if period == "weekly":
            return await reports.get_weekly_report(day, filters)
        if period == "monthly":
            return await reports.get_monthly_report(day, filters, use_snapshot=use_snapshot)
        return await reports.get_daily_report(day, filters)

    return app
