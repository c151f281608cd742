"""
Order pricing
Pure computation of subtotal, tax, shipping, discount and total
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional, Protocol

from storefront.core.config import settings

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

class PricedLine(Protocol):
    unit_price: Decimal
    quantity: int

def to_money(value) -> Decimal:
    """Round to cents, half away from zero"""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)

@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    shipping: Decimal
    total: Decimal
    item_count: int

    def as_dict(self) -> dict:
        return {
            "subtotal": self.subtotal,
            "discount": self.discount,
            "tax": self.tax,
            "shipping": self.shipping,
            "total": self.total,
            "item_count": self.item_count,
        }

def calculate_subtotal(lines: Iterable[PricedLine]) -> Decimal:
    return to_money(sum((Decimal(line.unit_price) * line.quantity for line in lines), ZERO))

def calculate_shipping(subtotal: Decimal, threshold: Optional[Decimal] = None, flat_fee: Optional[Decimal] = None) -> Decimal:
    threshold = settings.FREE_SHIPPING_THRESHOLD if threshold is None else threshold
    flat_fee = settings.FLAT_SHIPPING_FEE if flat_fee is None else flat_fee
    return ZERO if subtotal >= threshold else to_money(flat_fee)

def calculate_totals(
    lines: Iterable[PricedLine],
    discount: Decimal = ZERO,
    tax_rate: Optional[Decimal] = None,
) -> OrderTotals:
    """
    Price a set of lines

    Tax applies to the discounted subtotal; shipping is decided on the
    undiscounted subtotal. The total is summed from the already rounded
    components so that total == subtotal - discount + tax + shipping holds
    exactly on the stored values.
    """
    lines = list(lines)
    tax_rate = settings.TAX_RATE if tax_rate is None else Decimal(tax_rate)

    subtotal = calculate_subtotal(lines)
    discount = min(max(to_money(discount), ZERO), subtotal)
    tax = to_money((subtotal - discount) * tax_rate)
    shipping = calculate_shipping(subtotal)
    total = subtotal - discount + tax + shipping

    return OrderTotals(
        subtotal=subtotal,
        discount=discount,
        tax=tax,
        shipping=shipping,
        total=to_money(total),
        item_count=sum(line.quantity for line in lines),
    )
