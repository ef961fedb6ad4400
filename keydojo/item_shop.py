"""Items purchasable with the in-app currency."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Dict, Literal, Optional

from pydantic import BaseModel, Field

from .errors import InvalidInput
from .progression import ProgressionSnapshot

ItemCategory = Literal["power_up", "boost", "cosmetic"]


class ShopItem(BaseModel):
    id: str
    name: str
    description: str
    price: int = Field(gt=0)
    category: ItemCategory
    duration_hours: Optional[int] = None
    one_time: bool = False


STORE_ITEMS: Dict[str, ShopItem] = {
    item.id: item
    for item in (
        ShopItem(
            id="streak_freeze",
            name="Streak Freeze",
            description="Prevents your streak from breaking if you miss a day",
            price=30,
            category="power_up",
        ),
        ShopItem(
            id="heart_refill",
            name="Heart Refill",
            description="Refill all your hearts immediately",
            price=20,
            category="power_up",
        ),
        ShopItem(
            id="xp_boost",
            name="XP Boost",
            description="Earn double XP for the next 24 hours",
            price=40,
            category="boost",
            duration_hours=24,
        ),
        ShopItem(
            id="dark_theme",
            name="Dark IDE Theme",
            description="A sleek dark theme for the IDE simulator",
            price=50,
            category="cosmetic",
            one_time=True,
        ),
        ShopItem(
            id="retro_theme",
            name="Retro Terminal Theme",
            description="Old-school terminal look for the IDE simulator",
            price=75,
            category="cosmetic",
            one_time=True,
        ),
    )
}


def owns_item(snapshot: ProgressionSnapshot, item_id: str) -> bool:
    entry = snapshot.inventory.get(item_id)
    return entry is not None and entry.quantity > 0


def resolve_purchase(snapshot: ProgressionSnapshot, item_id: str) -> ShopItem:
    """Return the catalog item for ``item_id`` if it may be bought."""
    item = STORE_ITEMS.get(item_id)
    if item is None:
        raise InvalidInput(f"Unknown store item '{item_id}'.")
    if item.one_time and owns_item(snapshot, item_id):
        raise InvalidInput(f"'{item.name}' can only be purchased once.")
    return item


def is_boost_active(snapshot: ProgressionSnapshot, item_id: str, now: datetime) -> bool:
    boost = snapshot.active_boosts.get(item_id)
    return boost is not None and boost.started_at <= now < boost.ends_at


def boost_remaining(snapshot: ProgressionSnapshot, item_id: str, now: datetime) -> timedelta:
    boost = snapshot.active_boosts.get(item_id)
    if boost is None or now >= boost.ends_at:
        return timedelta(0)
    return boost.ends_at - now


__all__ = [
    "STORE_ITEMS",
    "ShopItem",
    "boost_remaining",
    "is_boost_active",
    "owns_item",
    "resolve_purchase",
]
