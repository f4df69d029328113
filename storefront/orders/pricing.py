from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Tuple

TAX_RATE = Decimal("0.10")
FREE_SHIPPING_OVER = Decimal("100")
FLAT_SHIPPING = Decimal("15")


@dataclass(frozen=True)
class Pricing:
    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    total: Decimal


def price_order(lines: Iterable[Tuple[Decimal, int]]) -> Pricing:
    """Price ``(unit_price, quantity)`` lines.

    Tax is a flat 10% of the subtotal, kept unrounded; shipping is free only
    when the subtotal is strictly above 100.
    """
    subtotal = sum((Decimal(price) * quantity for price, quantity in lines), Decimal("0"))
    tax = subtotal * TAX_RATE
    shipping = Decimal("0") if subtotal > FREE_SHIPPING_OVER else FLAT_SHIPPING
    return Pricing(subtotal=subtotal, tax=tax, shipping=shipping, total=subtotal + tax + shipping)
