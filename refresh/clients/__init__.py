"""
Provider fetch clients.

Clients are built once per process and handed to the orchestrator keyed by
provider name.
"""

from typing import Dict, Optional
from refresh.clients.base import FetchClient
from refresh.clients.room_list import RoomListAPIClient
from core.config import Settings, settings as default_settings


def build_fetch_clients(config: Optional[Settings] = None) -> Dict[str, FetchClient]:
    """Create the configured fetch clients, keyed by provider"""
    config = config or default_settings
    room_list = RoomListAPIClient(
        api_url=config.ROOM_LIST_API_URL,
        api_key=config.ROOM_LIST_API_KEY,
        api_host=config.ROOM_LIST_API_HOST,
        provider=config.ROOM_LIST_PROVIDER,
        currency=config.ROOM_LIST_CURRENCY,
        max_retries=config.FETCH_MAX_RETRIES,
        retry_delay=config.FETCH_RETRY_DELAY,
    )
    return {room_list.provider: room_list}


__all__ = ["FetchClient", "RoomListAPIClient", "build_fetch_clients"]
