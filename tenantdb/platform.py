"""Wiring of the long-lived service objects.

One Platform is built at startup and stored on `app.state.platform`;
routers reach it through the `get_platform` dependency. Tests build their
own Platform over a MemoryDocumentStore.
"""

from tenantdb.auth import KeyRegistry
from tenantdb.config import Settings
from tenantdb.database import DocumentStore, TableLockManager, create_document_store
from tenantdb.engine import TableEngine
from tenantdb.realtime import ChangeBus
from tenantdb.storage import BucketStore
from tenantdb.tenants import TenantStore
from tenantdb.users import DEFAULT_HASH_ROUNDS, AuthUserStore


class Platform:
    """Every component, sharing one DocumentStore and one TableLockManager."""

    def __init__(
        self,
        store: DocumentStore,
        keys: KeyRegistry | None = None,
        base_url: str = "",
        hash_rounds: int = DEFAULT_HASH_ROUNDS,
        realtime_queue_size: int = 256,
    ) -> None:
        self.store = store
        self.keys = keys or KeyRegistry()
        self.lock_manager = TableLockManager()
        self.change_bus = ChangeBus()
        self.realtime_queue_size = realtime_queue_size

        self.tenants = TenantStore(store, self.keys, self.lock_manager, base_url=base_url)
        self.engine = TableEngine(store, self.tenants, self.lock_manager, self.change_bus)
        self.buckets = BucketStore(store, self.tenants, self.lock_manager)
        self.users = AuthUserStore(store, self.tenants, self.lock_manager, hash_rounds=hash_rounds)


def build_platform(settings: Settings) -> Platform:
    """Create the store from settings, initialize it and wire the components."""
    store = create_document_store(settings.storage_backend, settings.metadata_db_path)
    store.initialize()

    return Platform(
        store,
        keys=KeyRegistry(admin_accounts=settings.admin_accounts),
        base_url=f"{settings.public_url.rstrip('/')}{settings.api_prefix}",
        hash_rounds=settings.password_hash_rounds,
        realtime_queue_size=settings.realtime_queue_size,
    )
