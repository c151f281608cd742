"""
Payment gateway integration (Stripe PaymentIntents)
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from functools import lru_cache
from typing import Any, Dict, Optional, Protocol

import stripe

from storefront.core.config import settings
from storefront.core.exceptions import InvalidPaymentException, ServiceUnavailableException

logger = logging.getLogger(__name__)

INTENT_SUCCEEDED = "succeeded"
INTENT_FAILED = "failed"
INTENT_PENDING = "pending"

@dataclass(frozen=True)
class PaymentIntent:
    id: str
    client_secret: Optional[str]
    amount: Decimal
    currency: str
    status: str = INTENT_PENDING

@dataclass(frozen=True)
class GatewayEvent:
    """Webhook event reduced to what order processing needs"""
    type: str
    intent_id: Optional[str] = None
    order_id: Optional[str] = None
    raw_type: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)

class PaymentGateway(Protocol):
    async def create_intent(self, amount: Decimal, currency: str, metadata: Dict[str, Any]) -> PaymentIntent:
        ...

    async def confirm_intent(self, intent_id: str) -> str:
        ...

    def verify_webhook(self, payload: bytes, signature: Optional[str]) -> GatewayEvent:
        ...

def to_minor_units(amount: Decimal) -> int:
    """Rupees to paise"""
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))

class StripeGateway:
    """Stripe client wrapper; every call is bounded by a timeout"""

    SUCCEEDED_EVENTS = {"payment_intent.succeeded"}
    FAILED_EVENTS = {"payment_intent.payment_failed"}

    def __init__(self, timeout: Optional[float] = None):
        self.api_key = settings.STRIPE_SECRET_KEY
        self.webhook_secret = settings.STRIPE_WEBHOOK_SECRET
        self.timeout = settings.PAYMENT_GATEWAY_TIMEOUT_SECONDS if timeout is None else timeout

    async def _call(self, action: str, func, *args, **kwargs):
        # The SDK is blocking, keep it off the event loop
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(func, *args, api_key=self.api_key, **kwargs),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.error(f"Stripe {action} timed out after {self.timeout}s")
            raise ServiceUnavailableException("Payment gateway timed out, please retry", "PAYMENT_GATEWAY_TIMEOUT")
        except stripe.APIConnectionError as e:
            logger.error(f"Stripe {action} unreachable: {e}")
            raise ServiceUnavailableException("Payment gateway unavailable, please retry", "PAYMENT_GATEWAY_UNAVAILABLE") from e
        except stripe.StripeError as e:
            logger.error(f"Stripe {action} failed: {e}")
            raise InvalidPaymentException(f"Failed to {action}: {e.user_message or e}") from e

    async def create_intent(self, amount: Decimal, currency: str, metadata: Dict[str, Any]) -> PaymentIntent:
        """
        Create a PaymentIntent for the amount

        Args:
            amount: Amount in major units (rupees)
            currency: Currency code
            metadata: Stored on the intent; must carry ``order_id``

        Returns:
            Intent id and the client secret the checkout page needs
        """
        intent = await self._call(
            "create payment intent",
            stripe.PaymentIntent.create,
            amount=to_minor_units(amount),
            currency=currency.lower(),
            metadata={key: str(value) for key, value in metadata.items()},
            automatic_payment_methods={"enabled": True},
        )
        return PaymentIntent(
            id=intent.id,
            client_secret=intent.client_secret,
            amount=Decimal(amount),
            currency=currency,
            status=INTENT_PENDING,
        )

    async def confirm_intent(self, intent_id: str) -> str:
        """Resolve an intent to succeeded, failed or pending"""
        intent = await self._call("retrieve payment intent", stripe.PaymentIntent.retrieve, intent_id)
        status = intent.status

        if status == "succeeded":
            return INTENT_SUCCEEDED
        if status == "canceled" or (
            status == "requires_payment_method" and intent.last_payment_error
        ):
            return INTENT_FAILED
        return INTENT_PENDING

    def verify_webhook(self, payload: bytes, signature: Optional[str]) -> GatewayEvent:
        """
        Check the webhook signature and extract the event

        Raises:
            InvalidPaymentException: missing or bad signature, malformed body
        """
        if not signature:
            raise InvalidPaymentException("Missing webhook signature")

        try:
            if isinstance(payload, bytes):
                payload = payload.decode("utf-8")
            stripe.WebhookSignature.verify_header(
                payload, signature, self.webhook_secret, stripe.Webhook.DEFAULT_TOLERANCE
            )
            event = json.loads(payload)
            event_type = event["type"]
            intent = event["data"]["object"]
        except stripe.SignatureVerificationError:
            logger.warning("Rejected webhook with invalid signature")
            raise InvalidPaymentException("Invalid webhook signature")
        except (ValueError, KeyError, TypeError):
            raise InvalidPaymentException("Malformed webhook payload")

        metadata = intent.get("metadata") or {}

        if event_type in self.SUCCEEDED_EVENTS:
            outcome = INTENT_SUCCEEDED
        elif event_type in self.FAILED_EVENTS:
            outcome = INTENT_FAILED
        else:
            outcome = event_type

        return GatewayEvent(
            type=outcome,
            intent_id=intent.get("id"),
            order_id=metadata.get("order_id"),
            raw_type=event_type,
        )

@lru_cache()
def get_payment_gateway() -> PaymentGateway:
    """FastAPI dependency; overridden in tests"""
    return StripeGateway()
