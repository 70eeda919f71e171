"""Summary: Application factory wiring the bridge and core services.

Importance: The single owner of the token provider, REST bridge, and entity cache per process.
Alternatives: Keep module-level singletons for the token and cache.
"""

from __future__ import annotations

from dataclasses import dataclass

import httpx

from clanbridge.cache import EntityCache
from clanbridge.config import AppConfig
from clanbridge.ids import IdGenerator
from clanbridge.oauth import TokenProvider
from clanbridge.services import ConversationService, NotificationService, UserService
from clanbridge.storage.rest_bridge import RestBridge, TokenSource


@dataclass(frozen=True)
class AppServices:
    """Summary: Bundle of long-lived services for ClanBridge.

    Importance: Simplifies passing dependencies to the API and CLI layers.
    Alternatives: Use a dependency injection container.
    """

    config: AppConfig
    tokens: TokenSource
    bridge: RestBridge
    cache: EntityCache
    users: UserService
    notifications: NotificationService
    conversations: ConversationService

    async def aclose(self) -> None:
        await self.bridge.aclose()


def build_services(
    config: AppConfig,
    client: httpx.AsyncClient | None = None,
    tokens: TokenSource | None = None,
) -> AppServices:
    """Summary: Build core services from configuration.

    Importance: Provides a single construction path so one token and one cache exist per process.
    Alternatives: Instantiate services directly within each entrypoint.
    """

    if tokens is None:
        tokens = TokenProvider(config, client=client)
    bridge = RestBridge(config.database_url, tokens, client=client, timeout=config.http_timeout)
    cache = EntityCache(
        ttl_seconds=config.cache_ttl_seconds, max_entries=config.cache_max_entries
    )
    ids = IdGenerator()
    users = UserService(bridge=bridge, cache=cache)
    notifications = NotificationService(bridge=bridge, ids=ids)
    conversations = ConversationService(
        bridge=bridge, users=users, notifications=notifications, ids=ids
    )
    return AppServices(
        config=config,
        tokens=tokens,
        bridge=bridge,
        cache=cache,
        users=users,
        notifications=notifications,
        conversations=conversations,
    )
