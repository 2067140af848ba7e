"""
Email service using the Mailgun HTTP API for invite notifications.

All senders are best-effort: they log and return False on failure instead
of raising, so they can run on the background task runner.
"""

import os
import logging
import httpx
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)

MAILGUN_API_BASE = "https://api.mailgun.net/v3"
INVITE_FROM = "TeamStats Invite <invites@teamstats.tweeres.com>"
INVITE_REQUEST_FROM = "TeamStats Invite Request <invite_requests@teamstats.tweeres.com>"


def get_bool_env(key: str, default: bool = True) -> bool:
    """
    Parse a boolean environment variable from a string value.

    .env files store all values as strings, so this function converts string
    values like "true", "True", "TRUE", "1", "yes" to True, and everything
    else (including "false", "False", "0", "no", empty string) to False.

    Args:
        key: Environment variable name
        default: Default value if the variable is not set

    Returns:
        bool: Parsed boolean value
    """
    value = os.getenv(key)
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes")


def _get_config():
    """Read Mailgun configuration from environment at call time (not import time)."""
    return {
        "api_key": os.getenv("MAILGUN_API_KEY"),
        "domain": os.getenv("MAILGUN_DOMAIN"),
        "base_url": os.getenv("BASE_URL", "http://localhost:8000"),
        "enabled": get_bool_env("ENABLE_EMAIL", default=True),
    }


async def send_email(from_address: str, to: str, subject: str, text: str) -> bool:
    """
    Send a plain text email through Mailgun.

    Args:
        from_address: Sender, e.g. "Name <addr@domain>"
        to: Recipient email address
        subject: Subject line
        text: Plain text body

    Returns:
        bool: True if the email was sent (or sending is disabled), False on failure
    """
    cfg = _get_config()
    if not cfg["enabled"]:
        logger.info("Email sending is disabled. Email to %s skipped.", to)
        return True  # Return True to not break the flow, but log that email was skipped

    # If Mailgun is not configured, log warning and return True (don't fail the request)
    if not cfg["api_key"] or not cfg["domain"]:
        logger.warning("MAILGUN_API_KEY/MAILGUN_DOMAIN not configured. Email to %s skipped.", to)
        return True

    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.post(
                f"{MAILGUN_API_BASE}/{cfg['domain']}/messages",
                auth=("api", cfg["api_key"]),
                data={"from": from_address, "to": to, "subject": subject, "text": text},
            )
        if 200 <= response.status_code < 300:
            logger.info(f"Email '{subject}' sent to {to}")
            return True
        logger.error(f"Mailgun returned status {response.status_code}: {response.text}")
        return False
    except Exception as e:
        logger.error(f"Failed to send email to {to}: {str(e)}")
        return False


async def send_invite_email(
    email: str, inviter_name: str, team_name: str, invite_id: int, token: str
) -> bool:
    """Invite a person to claim a player on a team."""
    base_url = _get_config()["base_url"]
    return await send_email(
        INVITE_FROM,
        email,
        f"{inviter_name} invited you to join {team_name} on TeamStats",
        f"Accept your invite here: {base_url}/invites/{invite_id}?token={token}",
    )


async def send_invite_request_email(
    admin_email: str, requester_name: str, team_name: str, invite_request_id: int, token: str
) -> bool:
    """Tell a team admin that someone asked to join."""
    base_url = _get_config()["base_url"]
    return await send_email(
        INVITE_REQUEST_FROM,
        admin_email,
        f"{requester_name} has requested to join {team_name} on TeamStats",
        f"Accept their request here: {base_url}/invite-requests/{invite_request_id}?token={token}",
    )


async def send_invite_request_accepted_email(email: str, team_name: str, team_slug: str) -> bool:
    """Tell the requester that an admin linked them to a player."""
    base_url = _get_config()["base_url"]
    return await send_email(
        INVITE_REQUEST_FROM,
        email,
        f"TeamStats - Your request to join {team_name} has been accepted!",
        f"Check out stats here: {base_url}/{team_slug}\n\n"
        f"Check out games here: {base_url}/{team_slug}/games",
    )
