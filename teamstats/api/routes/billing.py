"""Stripe webhook and billing portal route handlers."""

import logging
import os

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from teamstats.api.auth_dependencies import get_current_user
from teamstats.database.db import get_db_session
from teamstats.services import billing_service

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/stripe-webhook")
async def stripe_webhook(request: Request, session: AsyncSession = Depends(get_db_session)):
    """
    Receive Stripe events and mirror subscription state onto teams.

    Only the signature and malformed-event cases are answered with 400.
    A subscription that cannot be tied to a team admin is a data error and is
    left to surface as a server error so Stripe retries it.
    """
    payload = await request.body()
    try:
        event = billing_service.verify_webhook(payload, request.headers.get("stripe-signature"))
    except billing_service.WebhookSignatureError as e:
        logger.warning(f"Rejected Stripe webhook: {e}")
        raise HTTPException(status_code=400, detail=f"Webhook Error: {str(e)}")

    try:
        handled = await billing_service.handle_stripe_event(session, event)
    except ValueError as e:
        logger.error(f"Invalid Stripe event {event.get('type')}: {e}")
        raise HTTPException(status_code=400, detail=f"Webhook Error: {str(e)}")

    return {"received": True, "handled": handled}


@router.get("/api/manage-billing")
async def manage_billing(request: Request, user: dict = Depends(get_current_user)):
    """Send the user to the Stripe billing portal."""
    customer_id = user.get("stripe_customer_id")
    if not customer_id:
        raise HTTPException(status_code=401, detail="No billing account")

    return_url = request.headers.get("referer") or os.getenv("BASE_URL", "http://localhost:8000")
    try:
        url = await billing_service.create_portal_session(customer_id, return_url)
    except Exception as e:
        logger.error(f"Error creating billing portal session for user {user['id']}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error opening billing portal: {str(e)}")
    return RedirectResponse(url, status_code=303)
