"""Pricing for the custom per-subject plan.

The first subject is billed at a flat fee and every additional subject at a
lower linear fee. On the provider side this maps to two recurring prices: one
``ONE_SUBJECT`` item and ``ADDITIONAL_SUBJECT`` with quantity ``n - 1``.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

from maturamate.core.config import settings

CENTS = Decimal("0.01")

PLAN_NAME = "MaturaMate Pro"


class PriceKey(str, Enum):
    ONE_SUBJECT = "ONE_SUBJECT"
    ADDITIONAL_SUBJECT = "ADDITIONAL_SUBJECT"


@dataclass(frozen=True)
class LineItem:
    """A provider-agnostic subscription line item."""

    price_key: PriceKey
    quantity: int


def to_money(amount: Decimal | float | int) -> Decimal:
    """Round to cents, half up."""
    return Decimal(str(amount)).quantize(CENTS, rounding=ROUND_HALF_UP)


def calculate_custom_price(subject_count: int) -> Decimal:
    """Monthly price for ``subject_count`` subjects.

    Zero subjects price to zero.
    """
    if subject_count < 0:
        raise ValueError("Subject count cannot be negative")
    if subject_count == 0:
        return to_money(0)
    first = Decimal(settings.FIRST_SUBJECT_PRICE)
    additional = Decimal(settings.ADDITIONAL_SUBJECT_PRICE)
    return to_money(first + additional * max(0, subject_count - 1))


def get_custom_line_items(subject_count: int) -> list[LineItem]:
    if subject_count < 0:
        raise ValueError("Subject count cannot be negative")
    if subject_count == 0:
        return []
    items = [LineItem(PriceKey.ONE_SUBJECT, 1)]
    if subject_count > 1:
        items.append(LineItem(PriceKey.ADDITIONAL_SUBJECT, subject_count - 1))
    return items


def resolve_price_id(price_key: PriceKey) -> str:
    """Map a logical price key to the configured Stripe price id."""
    price_ids = {
        PriceKey.ONE_SUBJECT: settings.stripe_price_id_one_subject,
        PriceKey.ADDITIONAL_SUBJECT: settings.stripe_price_id_additional_subject,
    }
    return price_ids[price_key]


def get_stripe_line_items(subject_count: int) -> list[dict[str, str | int]]:
    return [
        {"price": resolve_price_id(item.price_key), "quantity": item.quantity}
        for item in get_custom_line_items(subject_count)
    ]
