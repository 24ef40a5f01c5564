from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Protocol

from .utils import now_ts

logger = logging.getLogger(__name__)


class HistoryRecorder(Protocol):
    def record_completed_quiz(
        self, room_code: str, quiz_name: str, rankings: List[dict], quiz_id: Optional[str] = None
    ) -> Dict[str, Any]:
        ...

    def get_history(self, room_code: str) -> Optional[Dict[str, Any]]:
        ...


class CollectionHistoryRecorder:
    """Stores one document per completed room in a pymongo-style collection."""

    def __init__(self, collection: Any):
        self._collection = collection

    def record_completed_quiz(
        self, room_code: str, quiz_name: str, rankings: List[dict], quiz_id: Optional[str] = None
    ) -> Dict[str, Any]:
        doc = {
            "_id": room_code,
            "room_code": room_code,
            "quiz_id": quiz_id,
            "quiz_name": quiz_name,
            "completed_at": now_ts(),
            "player_count": len(rankings),
            "rankings": rankings,
        }
        # Restarting a finished room and completing it again overwrites the entry.
        self._collection.replace_one({"_id": room_code}, doc, upsert=True)
        logger.info("Saved history for room %s (%d players)", room_code, len(rankings))
        return doc

    def get_history(self, room_code: str) -> Optional[Dict[str, Any]]:
        return self._collection.find_one({"_id": room_code})
