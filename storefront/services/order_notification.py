"""
Order notification dispatch
Confirmation messages are sent in the background and never fail a checkout
"""

import asyncio
import logging
from typing import Any, Dict, Optional, Protocol, Set

from storefront.core.config import settings
from .email_service import EmailService

logger = logging.getLogger(__name__)

class NotificationSender(Protocol):
    async def send_order_confirmation(self, to_email: str, order_number: str, totals: Dict[str, Any]) -> None:
        ...

class OrderNotificationService:
    """Fire-and-forget order confirmations"""

    def __init__(self, sender: Optional[NotificationSender] = None, timeout: Optional[float] = None):
        self.sender = sender or EmailService()
        self.timeout = settings.NOTIFICATION_TIMEOUT_SECONDS if timeout is None else timeout
        self._tasks: Set[asyncio.Task] = set()

    def send_order_confirmation(
        self,
        to_email: Optional[str],
        order_number: str,
        totals: Dict[str, Any]
    ) -> Optional[asyncio.Task]:
        """Schedule the confirmation and return immediately"""
        if not to_email:
            logger.warning(f"No email address for order {order_number}, confirmation skipped")
            return None

        task = asyncio.create_task(
            self._deliver(to_email, order_number, totals),
            name=f"order-confirmation-{order_number}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _deliver(self, to_email: str, order_number: str, totals: Dict[str, Any]) -> None:
        try:
            await asyncio.wait_for(
                self.sender.send_order_confirmation(to_email, order_number, totals),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.error(f"Order confirmation for {order_number} timed out after {self.timeout}s")
        except Exception:
            logger.exception(f"Order confirmation for {order_number} failed")
        else:
            logger.info(f"Order confirmation for {order_number} sent to {to_email}")

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def join(self) -> None:
        """Wait for in-flight confirmations (used at shutdown and in tests)"""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

order_notifications = OrderNotificationService()

def get_order_notifications() -> OrderNotificationService:
    """FastAPI dependency; overridden in tests"""
    return order_notifications
