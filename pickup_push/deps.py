"""
FastAPI dependencies for authentication, database, and push services.
"""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from pickup_push.db import get_db
from pickup_push.errors import AuthError
from pickup_push.services.auth import AuthProviderClient
from pickup_push.services.keys import KeyManager
from pickup_push.services.push import FanoutDispatcher, WebPushTransport
from pickup_push.services.subscriptions import SubscriptionStore
from pickup_push.settings import settings

# Type alias for database dependency
DBSession = Annotated[AsyncSession, Depends(get_db)]

bearer_scheme = HTTPBearer(auto_error=False)


@lru_cache
def get_key_manager() -> KeyManager:
    """Process-wide key manager; the identity inside is built on first use."""
    return KeyManager(settings)


@lru_cache
def get_dispatcher() -> FanoutDispatcher:
    return FanoutDispatcher(
        key_manager=get_key_manager(),
        transport=WebPushTransport(ttl=settings.push_ttl_seconds),
        max_concurrency=settings.push_max_concurrency,
        timeout=settings.push_timeout_seconds,
    )


@lru_cache
def get_auth_client() -> AuthProviderClient:
    return AuthProviderClient(
        base_url=settings.auth_provider_url,
        service_key=settings.auth_service_key,
        timeout=settings.auth_timeout_seconds,
    )


def get_subscription_store(db: DBSession) -> SubscriptionStore:
    return SubscriptionStore(db)


async def get_current_user_id(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    auth_client: Annotated[AuthProviderClient, Depends(get_auth_client)],
) -> str:
    """Resolve the bearer token to a user id (raises AuthError -> 401)."""
    if not credentials or credentials.scheme.lower() != "bearer" or not credentials.credentials:
        raise AuthError("Missing or invalid authorization header")
    return await auth_client.get_user_id(credentials.credentials)


# Type aliases for route signatures
CurrentUserId = Annotated[str, Depends(get_current_user_id)]
Store = Annotated[SubscriptionStore, Depends(get_subscription_store)]
Dispatcher = Annotated[FanoutDispatcher, Depends(get_dispatcher)]
Keys = Annotated[KeyManager, Depends(get_key_manager)]
