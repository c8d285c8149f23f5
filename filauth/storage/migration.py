"""Store schema migration engine"""
from typing import Callable, Dict

from filauth.errors import StorageError
from filauth.storage.store import Store
from filauth.utils.logger import logger

# version the data is at -> step that moves it to the next version
MIGRATION_SCHEDULE: Dict[int, Callable[[Store], None]] = {
    0: lambda store: store.migrate_to_v1(),
    1: lambda store: store.migrate_to_v2(),
    2: lambda store: store.migrate_to_v3(),
    3: lambda store: store.migrate_to_v4(),
}

LATEST_VERSION = max(MIGRATION_SCHEDULE) + 1


def migrate(store: Store, schedule: Dict[int, Callable[[Store], None]] = MIGRATION_SCHEDULE) -> int:
    """Apply scheduled steps until the stored version has none; returns the final version.

    Every step bumps the version in the same transaction as its data changes,
    so a failed step leaves the store at the previous version and the next
    start retries it.
    """
    while True:
        version = store.version()
        step = schedule.get(version)
        if step is None:
            return version

        logger.info(f"Migrating store from version {version}", extra={"action": "migrate"})
        step(store)

        new_version = store.version()
        if new_version <= version:
            raise StorageError(f"migration from version {version} did not advance the store version")
        logger.info(f"Store migrated to version {new_version}", extra={"action": "migrate"})
