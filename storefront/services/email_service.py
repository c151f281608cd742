"""Email delivery with template rendering"""

import smtplib
import asyncio
from email.message import EmailMessage
from typing import Any, Dict, Optional
import logging
from pathlib import Path
from jinja2 import Environment, FileSystemLoader, select_autoescape

from storefront.core.config import settings
from storefront.utils.helpers import format_currency

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).parent.parent / "templates" / "emails"

class EmailService:
    """SMTP sender with Jinja2 templates"""

    def __init__(self):
        self.smtp_host = settings.SMTP_HOST
        self.smtp_port = settings.SMTP_PORT
        self.smtp_user = settings.SMTP_USER
        self.smtp_password = settings.SMTP_PASSWORD
        self.from_email = settings.SMTP_FROM_EMAIL
        self.from_name = settings.SMTP_FROM_NAME
        self.timeout = settings.NOTIFICATION_TIMEOUT_SECONDS

        self.env = Environment(
            loader=FileSystemLoader(str(TEMPLATE_DIR)),
            autoescape=select_autoescape(['html', 'xml'])
        )

    def render(self, template_name: str, **context: Any) -> str:
        return self.env.get_template(template_name).render(**context)

    def build_message(
        self,
        to_email: str,
        subject: str,
        body: str,
        html_body: Optional[str] = None,
    ) -> EmailMessage:
        msg = EmailMessage()
        msg['Subject'] = subject
        msg['From'] = f"{self.from_name} <{self.from_email}>"
        msg['To'] = to_email
        msg.set_content(body)
        if html_body:
            msg.add_alternative(html_body, subtype='html')
        return msg

    async def send_email(
        self,
        to_email: str,
        subject: str,
        body: str,
        html_body: Optional[str] = None,
    ) -> None:
        """Send a message; SMTP errors propagate to the caller"""
        msg = self.build_message(to_email, subject, body, html_body)

        # Run in thread pool to avoid blocking
        await asyncio.to_thread(self._send_sync, msg)
        logger.info(f"Email sent successfully to {to_email}")

    def _send_sync(self, msg: EmailMessage) -> None:
        if settings.SMTP_USE_TLS:
            server = smtplib.SMTP_SSL(self.smtp_host, self.smtp_port, timeout=self.timeout)
        else:
            server = smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout)

        with server:
            if settings.SMTP_START_TLS and not settings.SMTP_USE_TLS:
                server.starttls()
            if self.smtp_user:
                server.login(self.smtp_user, self.smtp_password or "")
            server.send_message(msg)

    async def send_order_confirmation(
        self,
        to_email: str,
        order_number: str,
        totals: Dict[str, Any]
    ) -> None:
        """Send order confirmation email"""
        context = {
            "order_number": order_number,
            "totals": {
                key: format_currency(value, settings.CURRENCY)
                for key, value in totals.items()
                if key != "item_count"
            },
            "item_count": totals.get("item_count"),
            "show_discount": bool(totals.get("discount")),
            "app_name": settings.SMTP_FROM_NAME,
            "orders_url": f"{settings.FRONTEND_URL}/orders/{order_number}",
        }

        await self.send_email(
            to_email=to_email,
            subject=f"Order Confirmed - #{order_number}",
            body=self.render("order_confirmation.txt", **context),
            html_body=self.render("order_confirmation.html", **context),
        )
