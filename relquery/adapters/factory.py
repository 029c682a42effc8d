"""
Adapter Factory for relquery

Maps engine names to adapter classes and optionally keeps connected adapters
around for reuse.

Usage:
    from relquery.adapters import get_adapter

    adapter = get_adapter("duckdb", {"database": ":memory:"})
    shared = get_adapter("sqlite", {"database": "app.db"}, use_cache=True)
"""

import hashlib
import json
import logging
import threading
from typing import Any, Dict, List, Optional, Type

from relquery.adapters.base import BaseAdapter, ConnectionError
from relquery.adapters.duckdb_adapter import DuckDBAdapter
from relquery.adapters.sqlite_adapter import SQLiteAdapter
from relquery.core.config import settings

logger = logging.getLogger(__name__)


# =============================================================================
# ADAPTER REGISTRY
# =============================================================================

_ADAPTER_REGISTRY: Dict[str, Type[BaseAdapter]] = {
    "duckdb": DuckDBAdapter,
    "sqlite": SQLiteAdapter,
    "sqlite3": SQLiteAdapter,
}

_ADAPTER_CACHE: Dict[str, BaseAdapter] = {}
_CACHE_LOCK = threading.Lock()


def register_adapter(engine: str, adapter_class: Type[BaseAdapter]) -> None:
    """Make ``adapter_class`` available under ``engine`` (case-insensitive)."""
    _ADAPTER_REGISTRY[engine.lower()] = adapter_class
    logger.debug(f"Registered adapter {adapter_class.__name__} for engine: {engine}")


def list_adapters() -> List[str]:
    return sorted(_ADAPTER_REGISTRY)


# =============================================================================
# ADAPTER FACTORY
# =============================================================================

def get_adapter(
    engine: Optional[str] = None,
    config: Optional[Dict[str, Any]] = None,
    cache_key: Optional[str] = None,
    use_cache: bool = False
) -> BaseAdapter:
    """
    Return a connected adapter.

    Args:
        engine: Engine name (defaults to settings.default_engine)
        config: Connection configuration for the adapter
        cache_key: Cache slot name (defaults to a hash of engine + config)
        use_cache: Reuse, or store, the adapter in the cache

    Raises:
        ConnectionError: If the engine is unknown or the store cannot be opened
    """
    engine = (engine or settings.default_engine).lower()
    config = config or {}

    adapter_class = _ADAPTER_REGISTRY.get(engine)
    if adapter_class is None:
        raise ConnectionError(
            f"Unsupported engine: {engine}. Available: {', '.join(list_adapters())}",
            engine=engine
        )

    if not use_cache:
        return _connect(adapter_class, config)

    key = cache_key or _config_hash(engine, config)
    with _CACHE_LOCK:
        adapter = _ADAPTER_CACHE.get(key)
        if adapter is not None:
            if adapter.health_check():
                return adapter
            logger.warning(f"Cached {engine} adapter '{key}' is unhealthy, reconnecting")
            adapter.disconnect()

        adapter = _connect(adapter_class, config)
        _ADAPTER_CACHE[key] = adapter
        return adapter


def close_adapter(cache_key: str) -> bool:
    """Disconnect and forget a cached adapter; False when the key is unknown."""
    with _CACHE_LOCK:
        adapter = _ADAPTER_CACHE.pop(cache_key, None)
    if adapter is None:
        return False
    adapter.disconnect()
    return True


def close_all_adapters() -> int:
    """Disconnect every cached adapter and return how many were closed."""
    with _CACHE_LOCK:
        keys = list(_ADAPTER_CACHE)
    return sum(1 for key in keys if close_adapter(key))


def _connect(adapter_class: Type[BaseAdapter], config: Dict[str, Any]) -> BaseAdapter:
    adapter = adapter_class(config)
    adapter.connect()
    return adapter


def _config_hash(engine: str, config: Dict[str, Any]) -> str:
    payload = f"{engine}:{json.dumps(config, sort_keys=True, default=str)}"
    return hashlib.md5(payload.encode()).hexdigest()[:12]
