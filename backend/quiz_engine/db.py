from __future__ import annotations

import copy
import threading
from typing import Any, Dict, List, Optional

from pymongo import MongoClient

from .config import Settings, get_settings

HISTORY_COLLECTION = "quiz_history"


class InMemoryCollection:
    """Stands in for the pymongo history collection when no MONGO_URL is set.

    Only equality lookups are supported; documents are copied on the way in
    and out so callers never share state with the store.
    """

    def __init__(self):
        self._docs: List[Dict[str, Any]] = []
        self._lock = threading.Lock()

    def find_one(self, query: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        with self._lock:
            for doc in self._docs:
                if self._matches(doc, query):
                    return copy.deepcopy(doc)
        return None

    def replace_one(self, query: Dict[str, Any], replacement: Dict[str, Any], upsert: bool = False):
        with self._lock:
            for idx, doc in enumerate(self._docs):
                if self._matches(doc, query):
                    self._docs[idx] = copy.deepcopy(replacement)
                    return
            if upsert:
                self._docs.append(copy.deepcopy(replacement))

    @staticmethod
    def _matches(doc: Dict[str, Any], query: Dict[str, Any]) -> bool:
        return all(doc.get(key) == expected for key, expected in query.items())


def get_history_collection(settings: Optional[Settings] = None) -> Any:
    """Return a pymongo collection when MONGO_URL is configured, else an in-memory one."""
    settings = settings or get_settings()
    if settings.MONGO_URL:
        client: MongoClient = MongoClient(settings.MONGO_URL)
        return client[settings.MONGO_DB][HISTORY_COLLECTION]
    return InMemoryCollection()
