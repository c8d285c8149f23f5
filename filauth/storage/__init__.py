"""Persistent state: store interface, kv and sql backends, migrations"""
from filauth.config import DB_TYPE_KV, Settings
from filauth.storage.migration import migrate
from filauth.storage.store import Store


def open_store(settings: Settings) -> Store:
    """Open the configured backend and bring its data to the latest version"""
    if settings.db_type == DB_TYPE_KV:
        from filauth.storage.kv import KVStore

        store: Store = KVStore(
            settings.kv_path,
            map_size=settings.KV_MAP_SIZE,
            compact_interval=settings.KV_COMPACT_INTERVAL,
        )
    else:
        from filauth.storage.sql import SQLStore

        store = SQLStore(
            settings.DATABASE_URL,
            pool_size=settings.DATABASE_POOL_SIZE,
            max_overflow=settings.DATABASE_MAX_OVERFLOW,
            pool_timeout=settings.DATABASE_POOL_TIMEOUT,
            pool_recycle=settings.DATABASE_POOL_RECYCLE,
        )

    try:
        migrate(store)
    except Exception:
        store.close()
        raise
    return store


__all__ = ["Store", "migrate", "open_store"]
