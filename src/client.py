"""Telegram client factory for tg-forward.

We explicitly manage the client's lifecycle (connect/run_until_disconnected)
so it is obvious when the session is created and when it ends. This avoids
implicit context-manager behavior for a long-running listener.
"""

from __future__ import annotations

import logging
import os
from typing import Optional

from dotenv import load_dotenv
from telethon import TelegramClient
from telethon.sessions import StringSession

from core.errors import CodecError
from core.models import SessionData
from core.session_codec import decode_session, encode_session, join_host_port


def build_client(session_string: Optional[str] = None) -> TelegramClient:
    """Create a Telethon client from environment variables.

    We read API_ID/API_HASH via python-dotenv to keep secrets out of the repo.
    With a portable session string the client logs in without any prompt;
    otherwise a local .session file named SESSION_NAME is used.
    """

    load_dotenv()

    api_id = os.getenv("API_ID")
    api_hash = os.getenv("API_HASH")
    session_name = os.getenv("SESSION_NAME", "tgforward")

    # Fail fast on missing credentials to avoid an ambiguous login prompt.
    if not api_id or not api_hash:
        raise RuntimeError("Missing API_ID or API_HASH in environment")

    logger = logging.getLogger(__name__)
    logger.info("Initializing Telegram client")

    if session_string:
        # Round-trip through our codec: validates the string and restores padding.
        canonical = encode_session(decode_session(session_string.strip()))
        logger.info("Using portable session string from environment")
        return TelegramClient(StringSession(canonical), int(api_id), api_hash)

    return TelegramClient(session_name, int(api_id), api_hash)


def export_session(client: TelegramClient) -> SessionData:
    """Read the authenticated session material out of a connected client."""

    session = client.session
    if session.auth_key is None or not session.server_address:
        raise CodecError("session is not authenticated yet")
    return SessionData(
        dc_id=session.dc_id,
        address=join_host_port(session.server_address, session.port),
        auth_key=session.auth_key.key,
    )
