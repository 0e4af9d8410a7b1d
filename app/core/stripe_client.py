"""Stripe SDK setup and helpers for reading Stripe objects."""

import logging
from typing import Any, Optional

import stripe

from app.config import settings

logger = logging.getLogger(__name__)

stripe.api_key = settings.stripe_secret_key


def stripe_value(obj: Any, key: str, default: Any = None) -> Any:
    """Read a field from a Stripe object or a plain dict; missing and null both give the default."""
    if obj is None:
        return default
    try:
        value = obj[key]
    except (KeyError, IndexError, TypeError):
        return default
    return default if value is None else value


def expandable_id(value: Any) -> Optional[str]:
    """Stripe fields like `customer` are either an ID string or an expanded object."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return stripe_value(value, "id")


def first_subscription_item(subscription: Any) -> Optional[Any]:
    items = stripe_value(stripe_value(subscription, "items"), "data", [])
    return items[0] if items else None


def subscription_price_id(subscription: Any) -> Optional[str]:
    item = first_subscription_item(subscription)
    return stripe_value(stripe_value(item, "price"), "id")


def subscription_period(subscription: Any):
    """(current_period_start, current_period_end) as unix timestamps.

    Newer API versions carry the period on the subscription item instead of the subscription.
    """
    start = stripe_value(subscription, "current_period_start")
    end = stripe_value(subscription, "current_period_end")
    if start is None or end is None:
        item = first_subscription_item(subscription)
        start = start or stripe_value(item, "current_period_start")
        end = end or stripe_value(item, "current_period_end")
    return start, end
