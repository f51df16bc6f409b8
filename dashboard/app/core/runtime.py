from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta

from dashboard.app.core import redis_client as redis_module
from dashboard.app.core.config import Settings, settings as default_settings
from dashboard.app.services.broadcast import (
    BroadcastChannel,
    LocalBroadcastChannel,
    RedisBroadcastChannel,
    VisibilityEvents,
)
from dashboard.app.services.dashboard import ViewRegistry
from dashboard.app.services.remote import RemoteApi
from dashboard.app.services.session import SessionManager
from dashboard.app.services.storage import CredentialStore, MemoryCredentialStore, RedisCredentialStore
from dashboard.app.services.tenant_config import AccountService, TenantConfigService

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    settings: Settings
    api: RemoteApi
    session: SessionManager
    channel: BroadcastChannel
    visibility: VisibilityEvents
    config_service: TenantConfigService
    account_service: AccountService
    views: ViewRegistry = field(default_factory=ViewRegistry)

    async def close(self) -> None:
        await self.views.close()
        await self.session.close()
        await self.api.aclose()


runtime: Runtime | None = None


async def init_runtime(
    *,
    config: Settings | None = None,
    api: RemoteApi | None = None,
    store: CredentialStore | None = None,
    channel: BroadcastChannel | None = None,
) -> Runtime:
    """Wire the process-wide services. Collaborators can be passed in for tests."""
    global runtime
    config = config or default_settings
    client = redis_module.redis_client

    if api is None:
        api = RemoteApi.from_url(config.API_BASE_URL, timeout=config.HTTP_TIMEOUT_SECONDS)
    if store is None:
        store = (
            RedisCredentialStore(client, config.SESSION_STORAGE_KEY)
            if client is not None
            else MemoryCredentialStore(config.SESSION_STORAGE_KEY)
        )
    if channel is None:
        channel = (
            RedisBroadcastChannel(client, config.BROADCAST_CHANNEL)
            if client is not None
            else LocalBroadcastChannel(config.BROADCAST_CHANNEL)
        )

    session = SessionManager(
        api,
        store,
        renewal_lead=timedelta(seconds=config.RENEWAL_LEAD_SECONDS),
        min_renewal_delay=timedelta(seconds=config.MIN_RENEWAL_DELAY_SECONDS),
        login_path=config.LOGIN_PATH,
    )
    runtime = Runtime(
        settings=config,
        api=api,
        session=session,
        channel=channel,
        visibility=VisibilityEvents(),
        config_service=TenantConfigService(api, session),
        account_service=AccountService(api),
    )
    logger.info("Dashboard runtime ready (redis=%s)", client is not None)
    return runtime


async def close_runtime() -> None:
    global runtime
    if runtime is not None:
        await runtime.close()
        runtime = None
