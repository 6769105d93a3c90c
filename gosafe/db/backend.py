# gosafe/db/backend.py
import logging

from gosafe.settings import Settings

log = logging.getLogger(__name__)


def build_store(settings: Settings):
    """Store selected by STORE_BACKEND ("dynamo" unless told otherwise)."""
    if settings.store_backend == "memory":
        from gosafe.db.memory import MemoryStore
        log.warning("STORE_BACKEND=memory: reports live only as long as this process")
        return MemoryStore()
    if settings.store_backend != "dynamo":
        raise RuntimeError(f"Unknown STORE_BACKEND {settings.store_backend!r} (expected 'dynamo' or 'memory')")
    from gosafe.db.dynamo import DynamoStore
    return DynamoStore.from_settings(settings)
