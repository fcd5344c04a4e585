"""
Discord service - channel messages via a bot token

The connection's access_token holds the bot token (api_key auth), sent as
``Authorization: Bot <token>``.
"""

import logging
from typing import Any, Dict, Optional

from ..engine.models import CheckResult, EvaluationContext
from ..errors import ExternalServiceError
from .base import Parameter, Reaction, Service, Trigger, advance_cursor
from .http import fetch_json, post_json

logger = logging.getLogger(__name__)

SERVICE_NAME = "discord"
API_BASE = "https://discord.com/api/v10"

# Discord channel type for a guild text channel
GUILD_TEXT_CHANNEL = 0


def _headers(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bot {token}"}


async def check_on_message(params: Dict[str, Any], context: EvaluationContext) -> CheckResult:
    token = context.require_access_token(SERVICE_NAME)
    channel_id = params.get("channelId")
    try:
        messages = await fetch_json(
            f"{API_BASE}/channels/{channel_id}/messages",
            service=SERVICE_NAME,
            headers=_headers(token),
            params={"limit": 1},
        )
    except ExternalServiceError as e:
        logger.warning(f"Discord on_message check failed for channel {channel_id}: {e}")
        return CheckResult.idle()

    if not isinstance(messages, list) or not messages:
        return CheckResult.idle()
    latest = messages[0]
    if not isinstance(latest, dict) or latest.get("id") is None:
        return CheckResult.idle()

    return advance_cursor(
        context.metadata,
        "lastMessageId",
        latest["id"],
        lambda: {
            "author": latest["author"].get("username", "") if isinstance(latest.get("author"), dict) else "",
            "content": latest.get("content", ""),
            "url": f"https://discord.com/channels/@me/{channel_id}/{latest['id']}",
        },
    )


async def setup_on_message(params: Dict[str, Any], context: EvaluationContext) -> Optional[Dict[str, Any]]:
    """Fail early when the bot cannot see the channel."""
    token = context.require_access_token(SERVICE_NAME)
    await fetch_json(
        f"{API_BASE}/channels/{params.get('channelId')}",
        service=SERVICE_NAME,
        headers=_headers(token),
    )
    return None


async def send_message(params: Dict[str, Any], context: EvaluationContext) -> None:
    token = context.require_access_token(SERVICE_NAME)
    channel_id = params.get("channelId")
    await post_json(
        f"{API_BASE}/channels/{channel_id}/messages",
        {"content": params.get("content", "")},
        service=SERVICE_NAME,
        headers=_headers(token),
    )
    logger.info(f"Discord message sent to channel {channel_id}")


async def create_channel(params: Dict[str, Any], context: EvaluationContext) -> None:
    token = context.require_access_token(SERVICE_NAME)
    guild_id = params.get("guildId")
    await post_json(
        f"{API_BASE}/guilds/{guild_id}/channels",
        {"name": params.get("name", ""), "type": GUILD_TEXT_CHANNEL},
        service=SERVICE_NAME,
        headers=_headers(token),
    )
    logger.info(f"Discord channel '{params.get('name')}' created in guild {guild_id}")


discord_service = Service(
    name=SERVICE_NAME,
    description="Connect your Discord server for notifications and actions",
    auth_type="api_key",
    triggers=(
        Trigger(
            name="on_message",
            description="Triggered when a new message is posted in a specific channel",
            check=check_on_message,
            setup=setup_on_message,
            params={
                "channelId": Parameter(
                    type="string",
                    label="Channel ID",
                    description="The ID of the Discord channel to monitor",
                ),
            },
            variables={
                "author": "Username of the message author",
                "content": "The content of the message",
                "url": "Link to the message",
            },
        ),
    ),
    reactions=(
        Reaction(
            name="send_message",
            description="Sends a message to a specific Discord channel",
            execute=send_message,
            params={
                "channelId": Parameter(type="string", label="Channel ID"),
                "content": Parameter(
                    type="string",
                    label="Message Content",
                    description="The content of the message to send (supports templates)",
                ),
            },
        ),
        Reaction(
            name="create_channel",
            description="Creates a new text channel on a server",
            execute=create_channel,
            params={
                "guildId": Parameter(type="string", label="Server (Guild) ID"),
                "name": Parameter(type="string", label="Channel Name"),
            },
        ),
    ),
)
