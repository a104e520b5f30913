# storefront/services/notification_service.py
import asyncio
import html
import logging
from typing import Any, Dict, Set
import aiohttp
from telegram import Bot
from telegram.error import TelegramError
from ..config import Config
from ..utils.formatters import format_currency

logger = logging.getLogger(__name__)

def render_invoice_html(order: Dict[str, Any]) -> str:
    """Minimal HTML invoice for the confirmation email"""
    rows = "".join(
        "<tr>"
        f"<td>{html.escape(str(item['product_name']))}"
        f"{' (' + html.escape(str(item['size'])) + ')' if item.get('size') else ''}</td>"
        f"<td>{item['quantity']}</td>"
        f"<td>{format_currency(item['unit_price'])}</td>"
        f"<td>{format_currency(item['total_price'])}</td>"
        "</tr>"
        for item in order.get("items", [])
    )
    return (
        f"<h2>Order #{html.escape(order['order_number'])}</h2>"
        f"<p>Thank you, {html.escape(order.get('customer_name') or 'customer')}.</p>"
        "<table><tr><th>Item</th><th>Qty</th><th>Price</th><th>Total</th></tr>"
        f"{rows}</table>"
        f"<p>Subtotal: {format_currency(order['subtotal'])}<br>"
        f"Discount: {format_currency(order['discount'])}<br>"
        f"Shipping: {format_currency(order['shipping_cost'])}<br>"
        f"<b>Total: {format_currency(order['total'])}</b></p>"
        f"<p>Payment: {html.escape(order.get('payment_method') or '')}<br>"
        f"Deliver to: {html.escape(order.get('address') or '')}</p>"
    )

class NotificationService:
    """Out-of-band order notifications; never affects the order itself"""

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()

    def notify_order_placed(self, order: Dict[str, Any]):
        """Schedule the invoice email and admin alert without waiting for them"""
        if order.get("email"):
            self._spawn(self.send_invoice_email(order), f"invoice {order['order_number']}")
        if Config.TELEGRAM_TOKEN and Config.ADMIN_IDS:
            self._spawn(self.send_admin_alert(order), f"admin alert {order['order_number']}")

    def _spawn(self, coro, label: str):
        task = asyncio.create_task(coro)
        self._tasks.add(task)

        def _done(t: asyncio.Task):
            self._tasks.discard(t)
            if t.cancelled():
                return
            error = t.exception()
            if error is not None:
                logger.error(f"Notification {label} failed: {error}", exc_info=error)

        task.add_done_callback(_done)

    async def drain(self):
        """Wait for scheduled notifications, e.g. on shutdown"""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def send_invoice_email(self, order: Dict[str, Any]) -> Dict[str, Any]:
        """Send the confirmation email through the Brevo HTTP API"""
        if not Config.BREVO_API_KEY:
            logger.warning("BREVO_API_KEY not set, invoice email skipped")
            return {"success": False, "error": "Email is not configured"}

        payload = {
            "sender": {"name": Config.MAIL_SENDER_NAME, "email": Config.MAIL_SENDER_EMAIL},
            "to": [{"email": order["email"], "name": order.get("customer_name") or order["email"]}],
            "subject": f"Order #{order['order_number']} Confirmation",
            "htmlContent": render_invoice_html(order),
        }
        headers = {
            "accept": "application/json",
            "api-key": Config.BREVO_API_KEY,
            "content-type": "application/json",
        }

        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(Config.BREVO_API_URL, json=payload, headers=headers) as response:
                    data = await response.json(content_type=None)
                    if response.status >= 400:
                        logger.error(f"Brevo API error {response.status}: {data}")
                        return {"success": False, "error": (data or {}).get("message", str(response.status))}
        except aiohttp.ClientError as e:
            logger.error(f"Invoice email for {order['order_number']} failed: {e}")
            return {"success": False, "error": str(e)}

        logger.info(f"Invoice email sent for {order['order_number']}")
        return {"success": True, "message_id": (data or {}).get("messageId")}

    async def send_admin_alert(self, order: Dict[str, Any]) -> int:
        """Tell every admin about a new order; returns how many were reached"""
        text = (
            "🛒 New order\n\n"
            f"🧾 Order: {order['order_number']}\n"
            f"👤 Customer: {order.get('customer_name') or '-'}\n"
            f"📞 Phone: {order.get('phone') or '-'}\n"
            f"💳 Payment: {order.get('payment_method')}\n"
            f"💰 Total: {format_currency(order['total'])}"
        )

        sent = 0
        async with Bot(Config.TELEGRAM_TOKEN) as bot:
            for admin_id in Config.ADMIN_IDS:
                try:
                    await bot.send_message(chat_id=admin_id, text=text)
                    sent += 1
                except TelegramError as e:
                    logger.error(f"Error notifying admin {admin_id}: {e}")
        return sent
