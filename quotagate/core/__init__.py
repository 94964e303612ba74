"""
Core infrastructure package for the Quota Gate backend.

Provides:
- Configuration management via pydantic-settings
- The shared httpx client used for every remote call
- The injected key-value store

This module re-exports key components from submodules for convenient importing:

    from quotagate.core import get_settings, init_http_client

FastAPI dependencies live in quotagate.core.dependencies and are imported from
there directly, since they wire in the service layer.
"""

# =============================================================================
# Re-exports from quotagate.core.config
# =============================================================================
from quotagate.core.config import Settings, get_settings

# =============================================================================
# Re-exports from quotagate.core.http
# =============================================================================
from quotagate.core.http import init_http_client, get_http_client, close_http_client

# =============================================================================
# Re-exports from quotagate.core.storage
# =============================================================================
from quotagate.core.storage import KeyValueStore, InMemoryKeyValueStore, submitted_key

__all__ = [
    # Configuration management (from config.py)
    'Settings',
    'get_settings',
    # HTTP client lifecycle (from http.py)
    'init_http_client',
    'get_http_client',
    'close_http_client',
    # Key-value store (from storage.py)
    'KeyValueStore',
    'InMemoryKeyValueStore',
    'submitted_key',
]
