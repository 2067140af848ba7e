"""
LLM service for turning free text into structured team data.

This service handles:
- Parsing a game write-up ("Sam scored twice, assisted by Kim") into stat entries
- Fetching a league schedule page and extracting the team's games
- Google Gemini API integration (lazy client, calls run in a worker thread)

Model output is never trusted: every item is validated against what the
caller already knows (the team's roster, the allowed stat types) and
anything unrecognised is dropped.
"""

import asyncio
import json
import logging
import os
import re
from typing import Any, Dict, List, Optional, Sequence

import httpx

from teamstats.database.models import StatType
from teamstats.utils.datetime_utils import parse_timestamp

logger = logging.getLogger(__name__)

# Configuration
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.5-flash-lite")
MAX_SCHEDULE_HTML_CHARS = 200_000

_CODE_FENCE_START = re.compile(r"^```[a-zA-Z]*\s*\n?")
_CODE_FENCE_END = re.compile(r"\n?```\s*$")

# Gemini client (singleton); type is Any to allow lazy import
_gemini_client: Any = None


class LLMServiceError(Exception):
    """The model could not be reached or returned something unusable."""


def get_gemini_client():
    """Get or create Gemini client. Lazy-imports google.genai to avoid import-time dependency."""
    global _gemini_client
    if _gemini_client is None:
        api_key = os.getenv("GEMINI_API_KEY")
        if not api_key:
            raise ValueError("GEMINI_API_KEY environment variable is not set")
        from google import genai

        _gemini_client = genai.Client(api_key=api_key)
    return _gemini_client


def strip_code_fences(text: str) -> str:
    """Remove a surrounding ```json ... ``` block, if the model added one."""
    cleaned = (text or "").strip()
    cleaned = _CODE_FENCE_START.sub("", cleaned)
    cleaned = _CODE_FENCE_END.sub("", cleaned)
    return cleaned.strip()


async def _generate(system_prompt: str, user_message: str) -> str:
    client = get_gemini_client()

    def _call() -> str:
        response = client.models.generate_content(
            model=GEMINI_MODEL,
            contents=user_message,
            config={
                "response_mime_type": "application/json",
                "system_instruction": system_prompt,
            },
        )
        return (response.text or "") if response else ""

    return await asyncio.to_thread(_call)


# ============================================================================
# Stat parsing
# ============================================================================

def build_stats_prompt(players: Sequence[Dict]) -> str:
    players_list = ", ".join(f"{p['name']} (ID: {p['id']})" for p in players)
    return (
        "Parse the soccer game description and extract goals and assists. "
        "Return ONLY a JSON array. Each item should have: playerId (number), "
        'type ("goal" or "assist"), timestamp (use provided timestamp), '
        "gameId (use provided gameId or null). "
        f"Available players: {players_list}. "
        "If a player name doesn't match exactly, try to find the closest match. "
        "If no matches found, return empty array. Only respond with JSON array, no other text."
    )


def validate_parsed_stats(
    raw: Any, players: Sequence[Dict], game_id: Optional[int], timestamp: str
) -> List[Dict]:
    """
    Keep only items that name a known player and a known stat type.

    The model's timestamp and game id are ignored in favour of the values the
    caller supplied, so a hallucinated game cannot be attached.
    """
    if not isinstance(raw, list):
        raise LLMServiceError("Response is not an array")

    allowed_players = {int(p["id"]) for p in players}
    allowed_types = {t.value for t in StatType}
    stats = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        player_id = item.get("playerId", item.get("player_id"))
        try:
            player_id = int(player_id)
        except (TypeError, ValueError):
            continue
        if player_id not in allowed_players or item.get("type") not in allowed_types:
            continue
        stats.append(
            {
                "player_id": player_id,
                "type": item["type"],
                "timestamp": timestamp,
                "game_id": game_id,
            }
        )
    return stats


async def parse_stats_text(
    text: str, players: Sequence[Dict], game_id: Optional[int], timestamp: str
) -> List[Dict]:
    """
    Extract goal/assist entries from a free text game description.

    Args:
        text: What happened in the game
        players: Roster allow-list, [{id, name}]
        game_id: Game the stats belong to, or None
        timestamp: Timestamp to stamp on every entry

    Returns:
        [{player_id, type, timestamp, game_id}]

    Raises:
        LLMServiceError: If the model fails or returns something that is not a JSON array
    """
    user_message = f'Game description: "{text}". Game ID: {game_id}. Timestamp: {timestamp}'
    try:
        raw_text = await _generate(build_stats_prompt(players), user_message)
    except ValueError:
        raise
    except Exception as e:
        logger.error(f"Gemini API error while parsing stats: {e}")
        raise LLMServiceError(f"Gemini API error: {str(e)}") from e

    cleaned = strip_code_fences(raw_text)
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse AI response: {e}; response was: {cleaned[:500]}")
        raise LLMServiceError("Failed to parse AI response") from e
    return validate_parsed_stats(parsed, players, game_id, timestamp)


# ============================================================================
# Schedule import
# ============================================================================

def build_schedule_prompt(team_name: str) -> str:
    return (
        "Extract a JSON formatted list of games from the HTML provided. "
        f"Only include games for the team called {team_name}. "
        "Each game is an object with timestamp, opponent and location. "
        "Give the timestamp in ISO format but without the Z character. "
        "Only respond with JSON. Do not include any other enclosing text."
    )


def validate_parsed_games(raw: Any) -> List[Dict]:
    """Normalize model output to [{timestamp, opponent, location}], dropping anything malformed."""
    if not isinstance(raw, list):
        return []
    games = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        opponent = item.get("opponent")
        if not isinstance(opponent, str) or not opponent.strip():
            continue
        timestamp = item.get("timestamp")
        if timestamp is not None:
            try:
                timestamp = parse_timestamp(str(timestamp)).isoformat()
            except ValueError:
                timestamp = None
        location = item.get("location")
        games.append(
            {
                "timestamp": timestamp,
                "opponent": opponent.strip(),
                "location": location.strip() if isinstance(location, str) and location.strip() else None,
            }
        )
    return games


async def parse_schedule_html(html: str, team_name: str) -> List[Dict]:
    """
    Extract a team's games from a schedule page.

    Unparseable model output yields an empty list rather than an error.

    Raises:
        LLMServiceError: If the model cannot be reached
    """
    try:
        raw_text = await _generate(build_schedule_prompt(team_name), html[:MAX_SCHEDULE_HTML_CHARS])
    except ValueError:
        raise
    except Exception as e:
        logger.error(f"Gemini API error while parsing schedule: {e}")
        raise LLMServiceError(f"Gemini API error: {str(e)}") from e

    try:
        parsed = json.loads(strip_code_fences(raw_text))
    except json.JSONDecodeError:
        logger.warning("Schedule response was not valid JSON; returning no games")
        return []
    if isinstance(parsed, dict) and isinstance(parsed.get("games"), list):
        parsed = parsed["games"]
    return validate_parsed_games(parsed)


async def fetch_schedule_html(url: str) -> str:
    """Download a schedule page. Raises httpx errors on network or HTTP failure."""
    async with httpx.AsyncClient(timeout=15.0, follow_redirects=True) as client:
        resp = await client.get(url)
        resp.raise_for_status()
        return resp.text
