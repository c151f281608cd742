"""
Payment service layer
Bridges gateway intents and order payment status
"""

from typing import Optional
import uuid
import logging
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.models import Order, OrderStatus, PaymentStatus
from storefront.core.config import settings
from storefront.core.exceptions import (
    BadRequestException,
    InvalidStateException,
    NotFoundException,
)
from storefront.api.v1.orders.services import OrderService
from .gateway import PaymentGateway, INTENT_SUCCEEDED, INTENT_FAILED
from .schemas import CreateIntentResponse, PaymentStatusResponse, WebhookAck

logger = logging.getLogger(__name__)

class PaymentService:
    """Payment service for business logic"""

    def __init__(self, db: AsyncSession, gateway: PaymentGateway):
        self.db = db
        self.gateway = gateway
        self.orders = OrderService(db)

    async def create_intent(self, user_id: uuid.UUID, order_id: uuid.UUID) -> CreateIntentResponse:
        """
        Start a payment for one of the user's orders

        Raises:
            NotFoundException: order missing or owned by someone else
            BadRequestException: order already paid
            InvalidStateException: order cancelled
        """
        order = await self.orders.get_order(order_id, user_id=user_id)

        if order.payment_status == PaymentStatus.PAID:
            raise BadRequestException("Order is already paid", "ALREADY_PAID")
        if order.status == OrderStatus.CANCELLED:
            raise InvalidStateException("Cancelled orders cannot be paid")

        intent = await self.gateway.create_intent(
            amount=order.total,
            currency=settings.CURRENCY,
            metadata={
                "order_id": str(order.id),
                "order_number": order.order_number,
                "user_id": str(user_id),
            },
        )
        await self.orders.set_payment_intent(order, intent.id)

        logger.info(f"Payment intent {intent.id} created for order {order.order_number}")
        return CreateIntentResponse(
            payment_intent_id=intent.id,
            client_secret=intent.client_secret or "",
            amount=order.total,
            currency=settings.CURRENCY,
        )

    async def confirm(
        self,
        user_id: uuid.UUID,
        order_id: uuid.UUID,
        payment_intent_id: str
    ) -> PaymentStatusResponse:
        """Ask the gateway how the intent ended and record it on the order"""
        order = await self.orders.get_order(order_id, user_id=user_id)

        if order.payment_intent_id and order.payment_intent_id != payment_intent_id:
            raise BadRequestException("Payment intent does not belong to this order", "INTENT_MISMATCH")

        outcome = await self.gateway.confirm_intent(payment_intent_id)

        if outcome == INTENT_SUCCEEDED:
            order = await self.orders.update_payment_status(order.id, PaymentStatus.PAID, payment_intent_id)
        elif outcome == INTENT_FAILED:
            order = await self.orders.update_payment_status(order.id, PaymentStatus.FAILED, payment_intent_id)
        else:
            logger.info(f"Payment intent {payment_intent_id} for order {order.order_number} still {outcome}")

        return self._status(order)

    async def get_status(self, user_id: uuid.UUID, order_id: uuid.UUID) -> PaymentStatusResponse:
        order = await self.orders.get_order(order_id, user_id=user_id)
        return self._status(order)

    async def handle_webhook(self, payload: bytes, signature: Optional[str]) -> WebhookAck:
        """
        Apply a verified gateway event

        Events for unknown orders and transitions the payment machine rejects
        are acknowledged so the gateway stops redelivering them.

        Raises:
            InvalidPaymentException: signature check failed
        """
        event = self.gateway.verify_webhook(payload, signature)

        if event.type == INTENT_SUCCEEDED:
            new_status = PaymentStatus.PAID
        elif event.type == INTENT_FAILED:
            new_status = PaymentStatus.FAILED
        else:
            logger.info(f"Unhandled webhook event: {event.raw_type or event.type}")
            return WebhookAck(event=event.raw_type or event.type)

        if not event.order_id:
            logger.warning(f"Webhook {event.raw_type} for intent {event.intent_id} has no order id")
            return WebhookAck(event=event.raw_type)

        try:
            order_id = uuid.UUID(event.order_id)
            await self.orders.update_payment_status(order_id, new_status, event.intent_id)
        except ValueError:
            logger.warning(f"Webhook {event.raw_type} carries malformed order id {event.order_id!r}")
        except NotFoundException:
            logger.warning(f"Webhook {event.raw_type} for unknown order {event.order_id}")
        except InvalidStateException as e:
            logger.warning(f"Webhook {event.raw_type} for order {event.order_id} ignored: {e.detail}")
        else:
            logger.info(f"Webhook {event.raw_type} applied to order {event.order_id}")

        return WebhookAck(event=event.raw_type)

    @staticmethod
    def _status(order: Order) -> PaymentStatusResponse:
        return PaymentStatusResponse(
            order_id=order.id,
            order_number=order.order_number,
            payment_status=order.payment_status,
            order_status=order.status,
            payment_intent_id=order.payment_intent_id,
        )
