"""Platform fee arithmetic. Every caller that needs a fee or a total goes through here."""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

PLATFORM_FEE_RATE = Decimal("0.07")
CENT = Decimal("0.01")


@dataclass(frozen=True)
class Quote:
    price: Decimal
    platform_fee: Decimal
    total_amount: Decimal
    provider_payout: Decimal

    @property
    def amount_minor(self) -> int:
        return to_minor_units(self.total_amount)

    @property
    def fee_minor(self) -> int:
        return to_minor_units(self.platform_fee)


def to_decimal(value) -> Decimal:
    """Parse a price as received over the wire. str() first so floats keep their printed value."""
    if isinstance(value, bool):
        raise ValueError("price must be a number")
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"invalid amount {value!r}") from exc
    if not amount.is_finite():
        raise ValueError(f"invalid amount {value!r}")
    return amount


def is_whole_cents(amount) -> bool:
    d = to_decimal(amount)
    return d == d.quantize(CENT)


def platform_fee(price) -> Decimal:
    return (to_decimal(price) * PLATFORM_FEE_RATE).quantize(CENT, rounding=ROUND_HALF_UP)


def total_amount(price) -> Decimal:
    return to_decimal(price) + platform_fee(price)


def provider_payout(price) -> Decimal:
    return total_amount(price) - platform_fee(price)


def to_minor_units(amount) -> int:
    """Dollars to integer cents, rounding half-up."""
    return int((to_decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def quote(price) -> Quote:
    p = to_decimal(price)
    fee = platform_fee(p)
    total = p + fee
    return Quote(price=p, platform_fee=fee, total_amount=total, provider_payout=total - fee)
