"""
Stockage clé/valeur côté client (équivalent sessionStorage / localStorage).
Les modules de session ne dépendent que du protocole Storage; MemoryStorage
est l'implémentation en mémoire utilisée par la bibliothèque et les tests.
"""
import json
import logging
from typing import Any, Dict, List, Optional, Protocol

logger = logging.getLogger(__name__)


class Storage(Protocol):
    def get_item(self, key: str) -> Optional[str]: ...
    def set_item(self, key: str, value: str) -> None: ...
    def remove_item(self, key: str) -> None: ...
    def keys(self) -> List[str]: ...


class MemoryStorage:
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._data[key] = str(value)

    def remove_item(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._data.keys())

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, key: object) -> bool:
        return key in self._data

# module intake_backend.session.storage
def read_json(storage: Storage, key: str, default: Any = None) -> Any:
    """JSON stocké sous `key`, ou `default` si absent ou illisible (jamais d'exception)."""
    raw = storage.get_item(key)
    if raw is None:
        return default
    try:
        return json.loads(raw)
    except ValueError:
        logger.warning("session.storage malformed json key=%s", key)
        return default

def write_json(storage: Storage, key: str, value: Any) -> None:
    storage.set_item(key, json.dumps(value, separators=(",", ":")))
