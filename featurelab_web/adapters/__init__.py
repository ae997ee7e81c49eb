from .sqlserver_storage import SqlServerStorage
from .storage import InMemoryStorage, JsonFileStorage, KeyValueStorage

__all__ = [
    "KeyValueStorage",
    "InMemoryStorage",
    "JsonFileStorage",
    "SqlServerStorage",
]
