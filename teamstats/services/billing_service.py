"""
Stripe billing service.

This service handles:
- Verifying and dispatching Stripe webhook events
- Mirroring a Stripe subscription into TeamSubscription (idempotent upsert)
- Creating checkout sessions for new teams and billing portal sessions

Stripe objects are handled as plain dicts. The stripe client is synchronous,
so API calls run in a worker thread.
"""

import asyncio
import json
import logging
import os
from collections.abc import Mapping
from typing import Any, Dict, Optional

import stripe
from sqlalchemy import select, update
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.ext.asyncio import AsyncSession

from teamstats.database.models import TeamSubscription, TeamUser, User

logger = logging.getLogger(__name__)

SUPPORTED_PLANS = ("yearly",)

SUBSCRIPTION_EVENTS = ("customer.subscription.updated", "customer.subscription.deleted")
INVOICE_EVENTS = ("invoice.paid", "invoice.payment_failed")
CHECKOUT_COMPLETED = "checkout.session.completed"


class SubscriptionInvariantError(Exception):
    """A paid team has no admin to attach the Stripe customer to. Never handled."""


class WebhookSignatureError(Exception):
    """The Stripe-Signature header did not match the payload."""


def _get_config():
    """Read Stripe configuration from environment at call time (not import time)."""
    return {
        "secret_key": os.getenv("STRIPE_SECRET_KEY"),
        "endpoint_secret": os.getenv("STRIPE_ENDPOINT_SECRET"),
        "yearly_price_id": os.getenv("STRIPE_YEARLY_PRICE_ID"),
        "product_id": os.getenv("STRIPE_TEAMSTATS_PRODUCT_ID"),
    }


def _require_secret_key() -> str:
    key = _get_config()["secret_key"]
    if not key:
        raise ValueError("STRIPE_SECRET_KEY environment variable is not set")
    return key


def _to_plain(obj: Any) -> Any:
    """Convert a StripeObject to plain nested dicts."""
    if not isinstance(obj, stripe.StripeObject):
        return obj
    return obj.to_dict()


def _first(items: Any) -> Optional[Mapping]:
    data = (items or {}).get("data") or []
    return data[0] if data else None


def _price_product(item: Optional[Mapping]) -> Optional[str]:
    if not item:
        return None
    price = item.get("price") or {}
    product = price.get("product")
    if isinstance(product, Mapping):
        return product.get("id")
    return product


def is_teamstats_product(product_id: Optional[str]) -> bool:
    expected = _get_config()["product_id"]
    return bool(product_id) and product_id == expected


# ============================================================================
# Webhook
# ============================================================================

def verify_webhook(payload: bytes, signature: Optional[str]) -> Dict:
    """
    Check the Stripe-Signature header and decode the event.

    Raises:
        WebhookSignatureError: Missing or invalid signature
    """
    if not signature:
        raise WebhookSignatureError("Invalid signature")
    secret = _get_config()["endpoint_secret"]
    if not secret:
        raise ValueError("STRIPE_ENDPOINT_SECRET environment variable is not set")

    text = payload.decode("utf-8") if isinstance(payload, bytes) else payload
    try:
        stripe.WebhookSignature.verify_header(text, signature, secret)
    except stripe.SignatureVerificationError as e:
        raise WebhookSignatureError(str(e)) from e
    return json.loads(text)


async def reconcile_subscription(session: AsyncSession, subscription: Mapping) -> Dict:
    """
    Apply a Stripe subscription snapshot to the database.

    Upserts the TeamSubscription row keyed by the Stripe subscription id and
    stores the Stripe customer on the team's first admin. Replaying the same
    snapshot leaves the database unchanged.

    Args:
        session: Database session
        subscription: Stripe subscription as a dict

    Returns:
        The values written for the subscription row

    Raises:
        ValueError: Missing team id or customer id (bad webhook payload)
        SubscriptionInvariantError: The team has no membership row
    """
    metadata = subscription.get("metadata") or {}
    team_id = metadata.get("team_id")
    if team_id is None or str(team_id).strip() == "":
        raise ValueError("No team id")
    customer_id = subscription.get("customer")
    if isinstance(customer_id, Mapping):
        customer_id = customer_id.get("id")
    if not isinstance(customer_id, str):
        raise ValueError("No customer id")

    period_end = subscription.get("current_period_end")
    if period_end is None:
        # Newer API versions only report the period on subscription items
        first_item = _first(subscription.get("items"))
        period_end = first_item.get("current_period_end") if first_item else None

    values = {
        "team_id": int(team_id),
        "stripe_subscription_id": subscription["id"],
        "status": subscription["status"],
        "cancel_at_period_end": bool(subscription.get("cancel_at_period_end")),
        "period_end": period_end,
    }

    try:
        stmt = insert(TeamSubscription).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["stripe_subscription_id"],
            set_={
                "team_id": stmt.excluded.team_id,
                "status": stmt.excluded.status,
                "cancel_at_period_end": stmt.excluded.cancel_at_period_end,
                "period_end": stmt.excluded.period_end,
            },
        )
        await session.execute(stmt)

        result = await session.execute(
            select(TeamUser)
            .where(TeamUser.team_id == values["team_id"])
            .order_by(TeamUser.id)
            .limit(1)
        )
        team_user = result.scalar_one_or_none()
        if team_user is None:
            raise SubscriptionInvariantError(f"No team user found for team {values['team_id']}")

        await session.execute(
            update(User).where(User.id == team_user.user_id).values(stripe_customer_id=customer_id)
        )
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    logger.info(
        f"Reconciled subscription {values['stripe_subscription_id']} "
        f"for team {values['team_id']}: {values['status']}"
    )
    return values


async def retrieve_subscription(subscription_id: str) -> Dict:
    api_key = _require_secret_key()
    sub = await asyncio.to_thread(stripe.Subscription.retrieve, subscription_id, api_key=api_key)
    return _to_plain(sub)


async def list_checkout_line_items(checkout_session_id: str) -> Dict:
    api_key = _require_secret_key()
    items = await asyncio.to_thread(
        stripe.checkout.Session.list_line_items, checkout_session_id, api_key=api_key
    )
    return _to_plain(items)


async def handle_stripe_event(session: AsyncSession, event: Mapping) -> bool:
    """
    Route a verified webhook event to the reconciler.

    Events for other products are accepted without touching the database,
    and unknown event types are ignored.

    Returns:
        True if a subscription was reconciled
    """
    event_type = event.get("type")
    obj = (event.get("data") or {}).get("object") or {}

    if event_type == CHECKOUT_COMPLETED:
        line_items = await list_checkout_line_items(obj["id"])
        if not is_teamstats_product(_price_product(_first(line_items))):
            logger.info(f"Ignoring {event_type}: not a TeamStats product")
            return False
        subscription_id = obj.get("subscription")
        if not isinstance(subscription_id, str):
            raise ValueError("No subscription id")
        await reconcile_subscription(session, await retrieve_subscription(subscription_id))
        return True

    if event_type in INVOICE_EVENTS:
        if not is_teamstats_product(_price_product(_first(obj.get("lines")))):
            logger.info(f"Ignoring {event_type}: not a TeamStats product")
            return False
        subscription_id = obj.get("subscription")
        if not isinstance(subscription_id, str):
            raise ValueError("No subscription id")
        await reconcile_subscription(session, await retrieve_subscription(subscription_id))
        return True

    if event_type in SUBSCRIPTION_EVENTS:
        if not is_teamstats_product(_price_product(_first(obj.get("items")))):
            logger.info(f"Ignoring {event_type}: not a TeamStats product")
            return False
        await reconcile_subscription(session, obj)
        return True

    logger.debug(f"Ignoring unhandled Stripe event type {event_type}")
    return False


# ============================================================================
# Checkout and portal
# ============================================================================

async def create_checkout_session(
    team_id: int,
    team_name: str,
    plan: str,
    origin: str,
    customer_id: Optional[str] = None,
) -> str:
    """
    Start a Stripe checkout for a new team's subscription.

    Returns:
        The hosted checkout URL

    Raises:
        ValueError: Unsupported plan or missing price configuration
    """
    if plan not in SUPPORTED_PLANS:
        raise ValueError(f"Invalid plan: {plan}")
    cfg = _get_config()
    price = cfg["yearly_price_id"]
    if not price:
        raise ValueError("STRIPE_YEARLY_PRICE_ID environment variable is not set")
    api_key = _require_secret_key()

    params = {
        "line_items": [{"price": price, "quantity": 1}],
        "mode": "subscription",
        "subscription_data": {
            "metadata": {"team_id": str(team_id)},
            "description": team_name,
        },
        "success_url": f"{origin}/thankyou?checkout_session_id={{CHECKOUT_SESSION_ID}}",
        "cancel_url": f"{origin}/canceled?checkout_session_id={{CHECKOUT_SESSION_ID}}",
    }
    if customer_id:
        params["customer"] = customer_id

    checkout = await asyncio.to_thread(stripe.checkout.Session.create, api_key=api_key, **params)
    url = _to_plain(checkout).get("url")
    if not url:
        raise RuntimeError("Stripe checkout session has no url")
    logger.info(f"Created checkout session for team {team_id}")
    return url


async def create_portal_session(customer_id: str, return_url: str) -> str:
    """Open the Stripe self-service billing portal; returns its URL."""
    api_key = _require_secret_key()
    portal = await asyncio.to_thread(
        stripe.billing_portal.Session.create,
        api_key=api_key,
        customer=customer_id,
        return_url=return_url,
    )
    return _to_plain(portal)["url"]
