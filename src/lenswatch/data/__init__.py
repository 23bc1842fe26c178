from lenswatch.data.storage import Database, InterventionBackend
from lenswatch.data.store import InterventionStore, StoreStatus

__all__ = ["Database", "InterventionBackend", "InterventionStore", "StoreStatus"]
