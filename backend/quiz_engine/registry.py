from __future__ import annotations

import logging
import random
from typing import Callable, Dict, List, Optional, Sequence

from . import flow, membership
from .errors import RoomNotFound
from .flow import AdvanceResult, QuestionResults
from .membership import LeaveResult
from .models import Player, Question, Room
from .scheduler import AsyncioScheduler, Scheduler, ScheduledTask
from .scoring import ScoreResult
from .utils import generate_room_code, now_ts

logger = logging.getLogger(__name__)

ExpireCallback = Callable[[str], None]


class RoomRegistry:
    """Owns every live room, keyed by its 6-digit code.

    Handlers fetch, mutate and release rooms within one synchronous call;
    the only deferred work is the per-room ScheduledTask handles.
    """

    def __init__(
        self,
        scheduler: Optional[Scheduler] = None,
        clock: Callable[[], float] = now_ts,
        rng: Optional[random.Random] = None,
    ):
        self._rooms: Dict[str, Room] = {}
        self._scheduler = scheduler or AsyncioScheduler()
        self._clock = clock
        self._rng = rng or random.Random()

    # ---- lifecycle ----

    def create_room(
        self,
        quiz_id: str,
        host_session_id: str,
        questions: Sequence[Question],
        quiz_name: Optional[str] = None,
    ) -> str:
        if not questions:
            raise ValueError("Quiz must contain at least one question.")

        code = generate_room_code(self._rng)
        while code in self._rooms:
            code = generate_room_code(self._rng)

        self._rooms[code] = Room(
            code=code,
            quiz_id=quiz_id,
            quiz_name=quiz_name or quiz_id,
            questions=list(questions),
            host_session_id=host_session_id,
            created_at=self._clock(),
        )
        logger.info("Created room %s for quiz %s", code, quiz_id)
        return code

    def get_room(self, code: str) -> Optional[Room]:
        return self._rooms.get(code)

    def rooms(self) -> List[Room]:
        return list(self._rooms.values())

    def delete_room(self, code: str) -> bool:
        room = self._rooms.pop(code, None)
        if room is None:
            return False
        flow.cancel_deadline(room)
        if room.cleanup_timer is not None:
            room.cleanup_timer.cancel()
            room.cleanup_timer = None
        room.members.clear()
        room.connection_to_identity.clear()
        logger.info("Deleted room %s", code)
        return True

    def find_rooms_for_connection(self, connection_id: str) -> List[Room]:
        return [r for r in self._rooms.values() if connection_id in r.connection_to_identity]

    def hosted_by(self, connection_id: str) -> List[Room]:
        return [r for r in self._rooms.values() if r.host_connection_id == connection_id]

    def _require(self, code: str) -> Room:
        room = self._rooms.get(code)
        if room is None:
            raise RoomNotFound()
        return room

    # ---- membership ----

    def join(self, code: str, connection_id: str, identity: str, display_name: str) -> Player:
        return membership.join(self._require(code), connection_id, identity, display_name)

    def leave(self, code: str, connection_id: str) -> LeaveResult:
        room = self._rooms.get(code)
        if room is None:
            return LeaveResult()
        return membership.leave(room, connection_id)

    def disconnect(self, code: str, connection_id: str) -> Optional[Player]:
        room = self._rooms.get(code)
        if room is None:
            return None
        return membership.disconnect(room, connection_id)

    # ---- question flow ----

    def start(self, code: str) -> bool:
        room = self._rooms.get(code)
        if room is None:
            return False
        # A restarted room is live again; its completed-room expiry no longer applies.
        self.cancel_cleanup(code)
        flow.start(room, self._clock())
        return True

    def current_question(self, code: str) -> Optional[Question]:
        room = self._rooms.get(code)
        if room is None:
            return None
        return flow.current_question(room)

    def remaining_seconds(self, code: str) -> float:
        return flow.remaining_seconds(self._require(code), self._clock())

    def submit_answer(self, code: str, connection_id: str, selected_option_index: int) -> ScoreResult:
        return flow.submit_answer(self._require(code), connection_id, selected_option_index, self._clock())

    def all_answered(self, code: str) -> bool:
        room = self._rooms.get(code)
        if room is None:
            return False
        return flow.all_answered(room)

    def end_question(self, code: str) -> Optional[QuestionResults]:
        room = self._rooms.get(code)
        if room is None:
            return None
        return flow.end_question(room)

    def advance(self, code: str) -> AdvanceResult:
        return flow.advance(self._require(code), self._clock())

    # ---- timers ----

    def schedule_deadline(self, code: str, time_limit_seconds: float, on_expire: ExpireCallback) -> ScheduledTask:
        room = self._require(code)
        flow.cancel_deadline(room)
        task = self._arm(room, "deadline_timer", time_limit_seconds, on_expire)
        room.deadline_timer = task
        return task

    def schedule_cleanup(self, code: str, delay_seconds: float, on_expire: ExpireCallback) -> ScheduledTask:
        room = self._require(code)
        if room.cleanup_timer is not None:
            room.cleanup_timer.cancel()
        task = self._arm(room, "cleanup_timer", delay_seconds, on_expire)
        room.cleanup_timer = task
        return task

    def cancel_cleanup(self, code: str) -> bool:
        room = self._rooms.get(code)
        if room is None or room.cleanup_timer is None:
            return False
        room.cleanup_timer.cancel()
        room.cleanup_timer = None
        return True

    def _arm(self, room: Room, slot: str, delay: float, on_expire: ExpireCallback) -> ScheduledTask:
        code = room.code
        index = room.current_question_index
        label = f"room={code} slot={slot} question={index} delay={delay}s"

        def _fire() -> None:
            current = self._rooms.get(code)
            if current is not room or getattr(current, slot) is not task:
                logger.info("[timer-abort] %s room gone or task superseded", label)
                return
            setattr(current, slot, None)
            logger.info("[timer-fire] %s", label)
            on_expire(code)

        task = self._scheduler.call_later(delay, _fire, label=label)
        logger.info("[timer-set] %s", label)
        return task

    def __contains__(self, code: str) -> bool:
        return code in self._rooms

    def __len__(self) -> int:
        return len(self._rooms)
