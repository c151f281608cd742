"""
Order and payment state machines
"""

from typing import Dict, List, Set
from storefront.models.order import OrderStatus, PaymentStatus

class OrderStateMachine:
    """
    Manages valid order status transitions
    """

    def __init__(self):
        self.transitions: Dict[OrderStatus, Set[OrderStatus]] = {
            OrderStatus.PENDING: {
                OrderStatus.CONFIRMED,
                OrderStatus.CANCELLED
            },
            OrderStatus.CONFIRMED: {
                OrderStatus.PROCESSING,
                OrderStatus.CANCELLED
            },
            OrderStatus.PROCESSING: {
                OrderStatus.SHIPPED
            },
            OrderStatus.SHIPPED: {
                OrderStatus.DELIVERED
            },
            OrderStatus.DELIVERED: set(),
            OrderStatus.CANCELLED: set(),
        }

    def can_transition(
        self,
        current_status: OrderStatus,
        new_status: OrderStatus
    ) -> bool:
        """
        Check if transition is valid

        Args:
            current_status: Current order status
            new_status: Desired new status

        Returns:
            True if transition is allowed
        """
        return new_status in self.transitions.get(current_status, set())

    def get_valid_transitions(self, current_status: OrderStatus) -> List[OrderStatus]:
        return sorted(self.transitions.get(current_status, set()), key=lambda s: s.value)

    def is_terminal_state(self, status: OrderStatus) -> bool:
        return not self.transitions.get(status)

    def is_cancellable(self, status: OrderStatus) -> bool:
        return OrderStatus.CANCELLED in self.transitions.get(status, set())

class PaymentStateMachine:
    """PENDING -> PAID | FAILED, FAILED -> PAID on a retried payment, PAID -> REFUNDED"""

    def __init__(self):
        self.transitions: Dict[PaymentStatus, Set[PaymentStatus]] = {
            PaymentStatus.PENDING: {PaymentStatus.PAID, PaymentStatus.FAILED},
            PaymentStatus.PAID: {PaymentStatus.REFUNDED},
            PaymentStatus.FAILED: {PaymentStatus.PAID},
            PaymentStatus.REFUNDED: set(),
        }

    def can_transition(self, current_status: PaymentStatus, new_status: PaymentStatus) -> bool:
        return new_status in self.transitions.get(current_status, set())
