"""Telethon client factory for the local-session channel.

The client's lifecycle (connect/run_until_disconnected) is managed explicitly
by app.py so it is obvious when the session is created and when it ends.
"""

from __future__ import annotations

import logging
import os

from telethon import TelegramClient

import settings


def build_client() -> TelegramClient:
    """Create a Telethon client from API_ID/API_HASH in the environment.

    settings.py has already loaded .env; the session name decides which local
    .session file holds the login.
    """

    api_id = os.getenv("API_ID")
    api_hash = os.getenv("API_HASH")

    # Fail fast on missing credentials to avoid an ambiguous login prompt.
    if not api_id or not api_hash:
        raise RuntimeError("Missing API_ID or API_HASH in environment")

    logging.getLogger(__name__).info("Initializing session client %s", settings.SESSION_NAME)

    return TelegramClient(settings.SESSION_NAME, int(api_id), api_hash)
