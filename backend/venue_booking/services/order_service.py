"""
Order composer: turns selected add-on ids into priced line items.

PRICING RULE
============

Each selected item contributes `price - max(offer_price, 0)`, floored at
zero, and the order total is the sum over every selected item in every
category. `offer_price` is the discount amount, not the discounted price.

Selections arrive as {category name: [service item id, ...]}:
  - unknown category names and empty lists are ignored
  - a value that is not a list of integer ids is rejected
  - an id that is not in the resource's catalog under that category is
    rejected, and the error lists every offending id
  - a repeated id inside one category is counted once

Nothing is persisted here; the state machine stores the result.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from venue_booking.core.exceptions import InvalidSelectionError
from venue_booking.core.logging import get_logger
from venue_booking.core.money import ZERO, to_decimal
from venue_booking.models.service_item import ServiceCategory, ServiceLineItem

logger = get_logger(__name__)


@dataclass(frozen=True)
class ComposedLineItem:
    service_item_id: int
    category: ServiceCategory
    name: str
    price: Decimal
    offer_price: Optional[Decimal]
    amount: Decimal


@dataclass(frozen=True)
class ComposedOrder:
    line_items: tuple[ComposedLineItem, ...]
    total_price: Decimal


def line_item_amount(price, offer_price) -> Decimal:
    discount = max(to_decimal(offer_price or 0), ZERO)
    return max(to_decimal(price or 0) - discount, ZERO)


def _is_id(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def normalize_selections(selections: Optional[Mapping[Any, Any]]) -> dict[ServiceCategory, list[int]]:
    if not selections:
        return {}
    if not isinstance(selections, Mapping):
        raise InvalidSelectionError("Selections must map a service category to a list of ids")

    normalized: dict[ServiceCategory, list[int]] = {}
    for key, ids in selections.items():
        category = key if isinstance(key, ServiceCategory) else ServiceCategory.from_key(str(key))
        if category is None:
            logger.debug("unknown_category_ignored", category=str(key))
            continue
        if ids is None:
            continue
        if not isinstance(ids, (list, tuple)) or not all(_is_id(i) for i in ids):
            raise InvalidSelectionError(
                f"Selections for {category.value} must be a list of ids",
                category=category.value,
            )
        merged = normalized.setdefault(category, [])
        for item_id in ids:
            if item_id not in merged:
                merged.append(item_id)
    return {category: ids for category, ids in normalized.items() if ids}


async def compose_order(
    db: AsyncSession,
    resource_id: int,
    selections: Optional[Mapping[Any, Any]],
) -> ComposedOrder:
    normalized = normalize_selections(selections)
    if not normalized:
        return ComposedOrder(line_items=(), total_price=ZERO)

    requested_ids = {item_id for ids in normalized.values() for item_id in ids}
    result = await db.execute(
        select(ServiceLineItem).where(
            ServiceLineItem.resource_id == resource_id,
            ServiceLineItem.id.in_(requested_ids),
        )
    )
    catalog = {item.id: item for item in result.scalars().all()}

    line_items: list[ComposedLineItem] = []
    invalid: dict[str, list[int]] = {}

    # Fixed category order keeps line items stable regardless of request key order
    for category in ServiceCategory:
        for item_id in normalized.get(category, []):
            item = catalog.get(item_id)
            if item is None or item.category is not category:
                invalid.setdefault(category.value, []).append(item_id)
                continue
            line_items.append(
                ComposedLineItem(
                    service_item_id=item.id,
                    category=category,
                    name=item.name,
                    price=to_decimal(item.price),
                    offer_price=to_decimal(item.offer_price) if item.offer_price is not None else None,
                    amount=line_item_amount(item.price, item.offer_price),
                )
            )

    if invalid:
        logger.warning("invalid_service_selection", resource_id=resource_id, invalid=invalid)
        raise InvalidSelectionError(
            "Selected services are not offered by this resource",
            resource_id=resource_id,
            invalid=invalid,
        )

    total = sum((item.amount for item in line_items), ZERO)
    return ComposedOrder(line_items=tuple(line_items), total_price=total)
