"""Tests for payment intents, confirmation and webhooks."""

import hashlib
import hmac
import json
import time
from decimal import Decimal

import pytest
import stripe

from storefront.api.v1.orders.schemas import OrderCreate
from storefront.api.v1.orders.services import OrderService
from storefront.api.v1.payments.gateway import (
    INTENT_FAILED,
    INTENT_PENDING,
    INTENT_SUCCEEDED,
    GatewayEvent,
    PaymentIntent,
    StripeGateway,
    to_minor_units,
)
from storefront.api.v1.payments.services import PaymentService
from storefront.core.exceptions import (
    BadRequestException,
    InvalidPaymentException,
    InvalidStateException,
    NotFoundException,
    ServiceUnavailableException,
)
from storefront.models import OrderStatus, PaymentStatus


class FakeGateway:
    def __init__(self, outcome=INTENT_SUCCEEDED):
        self.outcome = outcome
        self.created = []
        self.event = None

    async def create_intent(self, amount, currency, metadata):
        self.created.append((amount, currency, metadata))
        return PaymentIntent(
            id=f"pi_{len(self.created)}",
            client_secret=f"pi_{len(self.created)}_secret",
            amount=amount,
            currency=currency,
        )

    async def confirm_intent(self, intent_id):
        return self.outcome

    def verify_webhook(self, payload, signature):
        if signature != "valid":
            raise InvalidPaymentException("Invalid webhook signature")
        return self.event


def sign(payload, secret, timestamp=None):
    timestamp = timestamp or int(time.time())
    digest = hmac.new(secret.encode(), f"{timestamp}.{payload}".encode(), hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def paid_flow(db, make_user, make_product, add_to_cart, shipping_address, gateway):
    """Factory placing an order; returns (payment service, user, order)."""

    async def _place():
        user = make_user()
        _, (variant,) = make_product(variants=[("1000", 5)])
        add_to_cart(user, variant, 2)
        order = await OrderService(db).create_order(user.id, OrderCreate(shipping_address=shipping_address))
        return PaymentService(db, gateway), user, order

    return _place


@pytest.mark.anyio
class TestCreateIntent:
    async def test_creates_intent_for_order_total(self, paid_flow, gateway):
        service, user, order = await paid_flow()

        intent = await service.create_intent(user.id, order.id)

        assert intent.payment_intent_id == "pi_1"
        assert intent.client_secret == "pi_1_secret"
        assert intent.amount == Decimal("2459.00")
        assert intent.currency == "INR"
        ((amount, currency, metadata),) = gateway.created
        assert amount == Decimal("2459.00")
        assert metadata["order_id"] == str(order.id)
        assert metadata["order_number"] == order.order_number

    async def test_intent_id_stored_on_order(self, paid_flow):
        service, user, order = await paid_flow()

        await service.create_intent(user.id, order.id)

        assert (await service.get_status(user.id, order.id)).payment_intent_id == "pi_1"

    async def test_already_paid(self, paid_flow):
        service, user, order = await paid_flow()
        await service.orders.update_payment_status(order.id, PaymentStatus.PAID)

        with pytest.raises(BadRequestException) as exc_info:
            await service.create_intent(user.id, order.id)

        assert exc_info.value.error_code == "ALREADY_PAID"

    async def test_cancelled_order(self, paid_flow):
        service, user, order = await paid_flow()
        await service.orders.cancel_order(order.id, user_id=user.id)

        with pytest.raises(InvalidStateException):
            await service.create_intent(user.id, order.id)

    async def test_other_users_order(self, paid_flow, make_user):
        service, _, order = await paid_flow()

        with pytest.raises(NotFoundException):
            await service.create_intent(make_user().id, order.id)


@pytest.mark.anyio
class TestConfirmPayment:
    async def test_succeeded_marks_paid_and_confirms(self, paid_flow):
        service, user, order = await paid_flow()

        status = await service.confirm(user.id, order.id, "pi_1")

        assert status.payment_status == PaymentStatus.PAID
        assert status.order_status == OrderStatus.CONFIRMED
        assert status.payment_intent_id == "pi_1"

    async def test_failed_marks_failed(self, paid_flow, gateway):
        gateway.outcome = INTENT_FAILED
        service, user, order = await paid_flow()

        status = await service.confirm(user.id, order.id, "pi_1")

        assert status.payment_status == PaymentStatus.FAILED
        assert status.order_status == OrderStatus.PENDING

    async def test_pending_leaves_order_untouched(self, paid_flow, gateway):
        gateway.outcome = INTENT_PENDING
        service, user, order = await paid_flow()

        status = await service.confirm(user.id, order.id, "pi_1")

        assert status.payment_status == PaymentStatus.PENDING

    async def test_retry_after_failed_attempt(self, paid_flow, gateway):
        service, user, order = await paid_flow()
        await service.create_intent(user.id, order.id)
        gateway.outcome = INTENT_FAILED
        assert (await service.confirm(user.id, order.id, "pi_1")).payment_status == PaymentStatus.FAILED

        retry = await service.create_intent(user.id, order.id)
        gateway.outcome = INTENT_SUCCEEDED
        status = await service.confirm(user.id, order.id, retry.payment_intent_id)

        assert retry.payment_intent_id == "pi_2"
        assert status.payment_status == PaymentStatus.PAID
        assert status.order_status == OrderStatus.CONFIRMED
        assert status.payment_intent_id == "pi_2"

    async def test_mismatched_intent(self, paid_flow):
        service, user, order = await paid_flow()
        await service.create_intent(user.id, order.id)

        with pytest.raises(BadRequestException) as exc_info:
            await service.confirm(user.id, order.id, "pi_someone_else")

        assert exc_info.value.error_code == "INTENT_MISMATCH"


@pytest.mark.anyio
class TestWebhook:
    async def test_succeeded_event_marks_paid(self, paid_flow, gateway):
        service, user, order = await paid_flow()
        gateway.event = GatewayEvent(
            type=INTENT_SUCCEEDED, intent_id="pi_9", order_id=str(order.id), raw_type="payment_intent.succeeded"
        )

        ack = await service.handle_webhook(b"{}", "valid")

        assert ack.received
        assert ack.event == "payment_intent.succeeded"
        status = await service.get_status(user.id, order.id)
        assert status.payment_status == PaymentStatus.PAID
        assert status.order_status == OrderStatus.CONFIRMED

    async def test_redelivered_event_is_harmless(self, paid_flow, gateway):
        service, user, order = await paid_flow()
        gateway.event = GatewayEvent(
            type=INTENT_SUCCEEDED, intent_id="pi_9", order_id=str(order.id), raw_type="payment_intent.succeeded"
        )

        await service.handle_webhook(b"{}", "valid")
        await service.handle_webhook(b"{}", "valid")

        assert (await service.get_status(user.id, order.id)).payment_status == PaymentStatus.PAID

    async def test_failed_event(self, paid_flow, gateway):
        service, user, order = await paid_flow()
        gateway.event = GatewayEvent(
            type=INTENT_FAILED, intent_id="pi_9", order_id=str(order.id), raw_type="payment_intent.payment_failed"
        )

        await service.handle_webhook(b"{}", "valid")

        assert (await service.get_status(user.id, order.id)).payment_status == PaymentStatus.FAILED

    async def test_succeeded_after_failed_attempt(self, paid_flow, gateway):
        service, user, order = await paid_flow()
        await service.create_intent(user.id, order.id)
        await service.orders.update_payment_status(order.id, PaymentStatus.FAILED, "pi_1")
        retry = await service.create_intent(user.id, order.id)
        gateway.event = GatewayEvent(
            type=INTENT_SUCCEEDED,
            intent_id=retry.payment_intent_id,
            order_id=str(order.id),
            raw_type="payment_intent.succeeded",
        )

        await service.handle_webhook(b"{}", "valid")

        status = await service.get_status(user.id, order.id)
        assert status.payment_status == PaymentStatus.PAID
        assert status.order_status == OrderStatus.CONFIRMED
        assert status.payment_intent_id == "pi_2"

    async def test_unknown_order_is_acknowledged(self, db, gateway):
        gateway.event = GatewayEvent(
            type=INTENT_SUCCEEDED,
            intent_id="pi_9",
            order_id="5f0c6a4e-9d8b-4a52-9d6f-0b6f7d6f2a11",
            raw_type="payment_intent.succeeded",
        )

        ack = await PaymentService(db, gateway).handle_webhook(b"{}", "valid")

        assert ack.received

    async def test_invalid_transition_is_acknowledged(self, paid_flow, gateway):
        service, user, order = await paid_flow()
        await service.orders.update_payment_status(order.id, PaymentStatus.PAID)
        await service.orders.update_payment_status(order.id, PaymentStatus.REFUNDED)
        gateway.event = GatewayEvent(
            type=INTENT_SUCCEEDED, intent_id="pi_9", order_id=str(order.id), raw_type="payment_intent.succeeded"
        )

        ack = await service.handle_webhook(b"{}", "valid")

        assert ack.received
        assert (await service.get_status(user.id, order.id)).payment_status == PaymentStatus.REFUNDED

    async def test_unhandled_event_type(self, db, gateway):
        gateway.event = GatewayEvent(type="charge.refunded", raw_type="charge.refunded")

        ack = await PaymentService(db, gateway).handle_webhook(b"{}", "valid")

        assert ack.event == "charge.refunded"

    async def test_bad_signature(self, db, gateway):
        with pytest.raises(InvalidPaymentException):
            await PaymentService(db, gateway).handle_webhook(b"{}", "forged")


class TestStripeGateway:
    SECRET = "whsec_test"

    def gateway(self):
        gateway = StripeGateway(timeout=0.05)
        gateway.webhook_secret = self.SECRET
        return gateway

    def event_payload(self, event_type, order_id="order-1"):
        return json.dumps({
            "id": "evt_1",
            "object": "event",
            "type": event_type,
            "data": {"object": {"id": "pi_42", "object": "payment_intent", "metadata": {"order_id": order_id}}},
        })

    def test_minor_units(self):
        assert to_minor_units(Decimal("2459.00")) == 245900
        assert to_minor_units(Decimal("10.005")) == 1001

    def test_verified_succeeded_event(self):
        payload = self.event_payload("payment_intent.succeeded")

        event = self.gateway().verify_webhook(payload.encode(), sign(payload, self.SECRET))

        assert event.type == INTENT_SUCCEEDED
        assert event.intent_id == "pi_42"
        assert event.order_id == "order-1"
        assert event.raw_type == "payment_intent.succeeded"

    def test_verified_failed_event(self):
        payload = self.event_payload("payment_intent.payment_failed")

        event = self.gateway().verify_webhook(payload.encode(), sign(payload, self.SECRET))

        assert event.type == INTENT_FAILED

    def test_other_event_keeps_its_type(self):
        payload = self.event_payload("payment_intent.created")

        event = self.gateway().verify_webhook(payload.encode(), sign(payload, self.SECRET))

        assert event.type == "payment_intent.created"

    def test_wrong_secret(self):
        payload = self.event_payload("payment_intent.succeeded")

        with pytest.raises(InvalidPaymentException):
            self.gateway().verify_webhook(payload.encode(), sign(payload, "whsec_other"))

    def test_missing_signature(self):
        with pytest.raises(InvalidPaymentException):
            self.gateway().verify_webhook(b"{}", None)

    def test_stale_signature(self):
        payload = self.event_payload("payment_intent.succeeded")
        header = sign(payload, self.SECRET, timestamp=int(time.time()) - 3600)

        with pytest.raises(InvalidPaymentException):
            self.gateway().verify_webhook(payload.encode(), header)

    @pytest.mark.anyio
    async def test_timeout_maps_to_service_unavailable(self, monkeypatch):
        def slow_retrieve(intent_id, **kwargs):
            time.sleep(0.5)

        monkeypatch.setattr(stripe.PaymentIntent, "retrieve", slow_retrieve)

        with pytest.raises(ServiceUnavailableException):
            await self.gateway().confirm_intent("pi_42")

    @pytest.mark.anyio
    async def test_gateway_rejection_maps_to_invalid_payment(self, monkeypatch):
        def missing_intent(intent_id, **kwargs):
            raise stripe.InvalidRequestError("No such payment_intent: 'pi_42'", "id")

        monkeypatch.setattr(stripe.PaymentIntent, "retrieve", missing_intent)

        with pytest.raises(InvalidPaymentException):
            await self.gateway().confirm_intent("pi_42")
