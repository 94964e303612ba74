"""
FastAPI dependency injection module for the Quota Gate backend.

This module provides reusable FastAPI dependencies so endpoint handlers never
reach for module globals directly. In tests, any of them can be replaced via
`app.dependency_overrides`.

Key Dependencies Provided:
- SettingsDep: the cached Settings singleton
- OracleDep: a QuotaOracleClient bound to the shared client
- StoreDep: the process-wide key-value store
- SessionRegistryDep: live respondent protocols keyed by share token

Usage:
    @router.post("/{token}/start")
    async def start(token: str, oracle: OracleDep, store: StoreDep,
                    settings: SettingsDep, registry: SessionRegistryDep):
        protocol = await registry.start(token, oracle, store, settings)
"""

from functools import lru_cache
from typing import Annotated

import httpx
from fastapi import Depends

from quotagate.core.config import Settings, get_settings
from quotagate.core.http import get_http_client
from quotagate.core.storage import InMemoryKeyValueStore, KeyValueStore
from quotagate.services.qualification import ProtocolRegistry
from quotagate.services.quota_oracle import QuotaOracleClient


# =============================================================================
# Settings Dependency
# =============================================================================

def get_settings_dependency() -> Settings:
    """
    Return the Settings singleton instance.

    This is a thin wrapper around get_settings() so tests can override it:
    app.dependency_overrides[get_settings_dependency] = lambda: test_settings
    """
    return get_settings()


# =============================================================================
# Remote API Dependencies
# =============================================================================

async def get_http_client_dependency() -> httpx.AsyncClient:
    return await get_http_client()


def get_oracle(
    client: Annotated[httpx.AsyncClient, Depends(get_http_client_dependency)],
    settings: Annotated[Settings, Depends(get_settings_dependency)],
) -> QuotaOracleClient:
    return QuotaOracleClient(client, settings)


# =============================================================================
# Process-wide State
# =============================================================================

@lru_cache()
def get_store() -> KeyValueStore:
    """Process-wide key-value store; replace via dependency_overrides in tests."""
    return InMemoryKeyValueStore()


@lru_cache()
def get_session_registry() -> ProtocolRegistry:
    return ProtocolRegistry()


# =============================================================================
# Type Aliases for Dependency Injection
# =============================================================================

SettingsDep = Annotated[Settings, Depends(get_settings_dependency)]

OracleDep = Annotated[QuotaOracleClient, Depends(get_oracle)]

StoreDep = Annotated[KeyValueStore, Depends(get_store)]

SessionRegistryDep = Annotated[ProtocolRegistry, Depends(get_session_registry)]
