from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from .catalog import QuizCatalog
from .config import Settings, get_settings
from .errors import QuizEngineError, RoomNotFound, Unauthorized
from .events import EventStore
from .flow import build_results
from .history import HistoryRecorder
from .models import Player, Room
from .registry import RoomRegistry
from .schemas import (
    AnswerAcceptedOut,
    CreateRoomIn,
    DeleteRoomIn,
    DisconnectIn,
    ErrorOut,
    GetRankingsIn,
    GetRoomInfoIn,
    HostJoinedOut,
    HostJoinIn,
    JoinedOut,
    JoinIn,
    LeaveIn,
    NewQuestionOut,
    PlayerDisconnectedOut,
    PlayerJoinedOut,
    PlayerLeftOut,
    PlayerSummary,
    QuizStartedOut,
    RankingsOut,
    RequestAdvanceIn,
    RoomCreatedOut,
    RoomDeletedOut,
    RoomInfoOut,
    StartQuizIn,
    SubmitAnswerIn,
    inbound_adapter,
)
from .sessions import HostSessions
from .utils import build_rankings

logger = logging.getLogger(__name__)


class GameController:
    """Turns inbound tagged messages into registry calls and outbound events.

    Every handler runs to completion synchronously. Failures the engine
    reports are converted into error events here; nothing propagates back
    to the transport.
    """

    def __init__(
        self,
        registry: RoomRegistry,
        events: EventStore,
        catalog: QuizCatalog,
        history: HistoryRecorder,
        sessions: Optional[HostSessions] = None,
        settings: Optional[Settings] = None,
    ):
        self.registry = registry
        self.events = events
        self.catalog = catalog
        self.history = history
        self.sessions = sessions or HostSessions()
        self.settings = settings or get_settings()
        self._handlers: Dict[str, Callable[[str, Any], None]] = {
            "create_room": self.create_room,
            "host_join": self.host_join,
            "join": self.join,
            "leave": self.leave,
            "disconnect": self.disconnect,
            "start_quiz": self.start_quiz,
            "submit_answer": self.submit_answer,
            "request_advance": self.request_advance,
            "get_room_info": self.get_room_info,
            "get_rankings": self.get_rankings,
            "delete_room": self.delete_room,
        }

    def dispatch(self, connection_id: str, message: Dict[str, Any]) -> None:
        try:
            event = inbound_adapter.validate_python(message)
        except ValidationError as exc:
            logger.warning("Rejected payload from %s: %s", connection_id, exc.errors()[:1])
            self._error(connection_id, "error", "invalid_payload", "Invalid event payload")
            return
        self._handlers[event.type](connection_id, event)

    # ---- host events ----

    def create_room(self, connection_id: str, event: CreateRoomIn) -> None:
        quiz = self.catalog.get_quiz(event.quiz_id)
        if quiz is None:
            logger.warning("Quiz not found: %s", event.quiz_id)
            self._error(connection_id, "room_error", "quiz_not_found", "Quiz not found")
            return

        code = self.registry.create_room(quiz.id, event.host_session_id, quiz.questions, quiz.name)
        room = self.registry.get_room(code)
        room.host_connection_id = connection_id
        self.sessions.bind(connection_id, event.host_session_id)

        self.events.to_connection(
            connection_id,
            "room_created",
            RoomCreatedOut(room_code=code, quiz_id=quiz.id, quiz_name=room.display_name),
        )
        logger.info("Host created room %s for quiz %s", code, quiz.id)

    def host_join(self, connection_id: str, event: HostJoinIn) -> None:
        room = self.registry.get_room(event.room_code)
        if room is None:
            doc = self.history.get_history(event.room_code)
            if doc is not None:
                self.events.to_connection(connection_id, "rankings", self._rankings_from_history(doc))
                return
            self._error(connection_id, "room_error", RoomNotFound.code, RoomNotFound.default_message)
            return

        if room.host_session_id != event.host_session_id:
            logger.warning("Host session mismatch for room %s from %s", room.code, connection_id)
            self._error(connection_id, "room_error", Unauthorized.code, "Another host is already hosting this room")
            return

        room.host_connection_id = connection_id
        self.sessions.bind(connection_id, event.host_session_id)
        if not room.is_completed:
            self.registry.cancel_cleanup(room.code)
        logger.info("Host %s joined room %s", event.host_session_id, room.code)

        self.events.to_connection(
            connection_id,
            "host_joined",
            HostJoinedOut(
                room_code=room.code,
                is_active=room.is_active,
                is_completed=room.is_completed,
                players=self._players(room),
            ),
        )
        if room.is_completed:
            self.events.to_connection(connection_id, "rankings", self._rankings(room))
        elif room.is_active:
            self._replay_state(room, connection_id, None)

    def start_quiz(self, connection_id: str, event: StartQuizIn) -> None:
        room = self._host_room(connection_id, event.room_code)
        if room is None:
            return

        self.registry.start(room.code)
        self.events.to_room(room.code, "quiz_started", QuizStartedOut(room_code=room.code, total_questions=room.total_questions))
        self._present_question(room)

    def request_advance(self, connection_id: str, event: RequestAdvanceIn) -> None:
        room = self._host_room(connection_id, event.room_code)
        if room is None:
            return
        if room.is_completed:
            self.events.to_connection(connection_id, "rankings", self._rankings(room))
            return
        if not room.is_active:
            self._error(connection_id, "room_error", "room_not_active", "Quiz has not started")
            return

        # Close out the running question so every member has an answer recorded.
        if not room.question_ended:
            self._end_question(room.code)
        self._advance(room.code)

    def get_room_info(self, connection_id: str, event: GetRoomInfoIn) -> None:
        room = self._host_room(connection_id, event.room_code)
        if room is None:
            return
        self.events.to_connection(
            connection_id,
            "room_info",
            RoomInfoOut(
                room_code=room.code,
                quiz_name=room.display_name,
                is_active=room.is_active,
                is_completed=room.is_completed,
                current_question_index=room.current_question_index,
                total_questions=room.total_questions,
                students=self._players(room),
            ),
        )

    def delete_room(self, connection_id: str, event: DeleteRoomIn) -> None:
        room = self._host_room(connection_id, event.room_code)
        if room is None:
            return
        self.events.to_room(room.code, "room_deleted", RoomDeletedOut(room_code=room.code, message="Room was deleted by the host"))
        self.registry.delete_room(room.code)
        logger.info("Room %s was deleted by host", room.code)

    # ---- participant events ----

    def join(self, connection_id: str, event: JoinIn) -> None:
        try:
            player = self.registry.join(event.room_code, connection_id, event.identity, event.display_name)
        except QuizEngineError as exc:
            self._error(connection_id, "join_error", exc.code, exc.message)
            return

        room = self.registry.get_room(event.room_code)
        question = self.registry.current_question(room.code) if room.is_active else None
        self.events.to_connection(
            connection_id,
            "joined",
            JoinedOut(
                room_code=room.code,
                quiz_name=room.display_name,
                is_active=room.is_active,
                question_id=question.id if question else None,
                players=self._players(room),
            ),
        )
        if room.is_active and not room.is_completed:
            self._replay_state(room, connection_id, player)

        self.events.to_room(
            room.code,
            "player_joined",
            PlayerJoinedOut(
                connection_id=connection_id,
                identity=player.identity,
                display_name=player.display_name,
                players=self._players(room),
            ),
        )

    def leave(self, connection_id: str, event: LeaveIn) -> None:
        result = self.registry.leave(event.room_code, connection_id)
        if not result.removed:
            return
        room = self.registry.get_room(event.room_code)
        self.events.to_room(
            room.code,
            "player_left",
            PlayerLeftOut(connection_id=connection_id, identity=result.identity, players=self._players(room)),
        )

    def submit_answer(self, connection_id: str, event: SubmitAnswerIn) -> None:
        try:
            result = self.registry.submit_answer(event.room_code, connection_id, event.option_index)
        except QuizEngineError as exc:
            logger.debug("Answer rejected in room %s: %s", event.room_code, exc.code)
            self._error(connection_id, "answer_error", exc.code, exc.message)
            return

        self.events.to_connection(
            connection_id,
            "answer_accepted",
            AnswerAcceptedOut(
                is_correct=result.is_correct,
                points_earned=result.points_earned,
                streak=result.new_streak,
                total_score=result.total_score_after,
            ),
        )
        logger.debug("Answer submitted in room %s by %s", event.room_code, connection_id)

        if self.registry.all_answered(event.room_code):
            self._end_question(event.room_code)

    def get_rankings(self, connection_id: str, event: GetRankingsIn) -> None:
        room = self.registry.get_room(event.room_code)
        if room is not None:
            self.events.to_connection(connection_id, "rankings", self._rankings(room))
            return
        doc = self.history.get_history(event.room_code)
        if doc is None:
            self._error(connection_id, "rankings_error", "rankings_not_found", "Quiz results not found")
            return
        self.events.to_connection(connection_id, "rankings", self._rankings_from_history(doc))

    def disconnect(self, connection_id: str, event: Optional[DisconnectIn] = None) -> None:
        """Handle a dropped connection, for hosts and participants alike."""
        self.sessions.release(connection_id)
        for room in self.registry.hosted_by(connection_id):
            room.host_connection_id = None
            if room.is_completed:
                continue
            grace = self.settings.HOST_GRACE_ACTIVE_SEC if room.is_active else self.settings.HOST_GRACE_LOBBY_SEC
            self.registry.schedule_cleanup(room.code, grace, self._on_host_grace_elapsed)
            logger.info("Host disconnected from room %s, waiting %ss", room.code, grace)

        if event is not None and event.room_code:
            room = self.registry.get_room(event.room_code)
            rooms = [room] if room is not None else []
        else:
            rooms = self.registry.find_rooms_for_connection(connection_id)

        for room in rooms:
            player = self.registry.disconnect(room.code, connection_id)
            if player is None:
                continue
            self.events.to_room(
                room.code,
                "player_disconnected",
                PlayerDisconnectedOut(
                    connection_id=connection_id,
                    identity=player.identity,
                    display_name=player.display_name,
                ),
            )

    # ---- question progression ----

    def _present_question(self, room: Room) -> None:
        question = self.registry.current_question(room.code)
        if question is None:
            return
        for player in room.connected_players():
            self.events.to_connection(player.connection_id, "new_question", self._question_payload(room, player))
        if room.host_connection_id:
            self.events.to_connection(room.host_connection_id, "new_question", self._question_payload(room, None))
        logger.info(
            "Question %d/%d in room %s",
            room.current_question_index + 1,
            room.total_questions,
            room.code,
        )
        self.registry.schedule_deadline(room.code, question.time_limit_seconds, self._on_deadline)

    def _on_deadline(self, code: str) -> None:
        room = self.registry.get_room(code)
        if room is None or room.question_ended:
            return
        self._end_question(code)

    def _end_question(self, code: str) -> None:
        results = self.registry.end_question(code)
        if results is None:
            return
        self.events.to_room(code, "question_ended", results)
        logger.debug("Question ended in room %s", code)

        hold = self.settings.RESULTS_HOLD_SEC
        if hold and hold > 0:
            self.registry.schedule_deadline(code, hold, self._advance)

    def _advance(self, code: str) -> None:
        room = self.registry.get_room(code)
        if room is None or room.is_completed:
            return
        try:
            result = self.registry.advance(code)
        except QuizEngineError as exc:
            logger.warning("Cannot move to next question in room %s: %s", code, exc.code)
            return

        if result.completed:
            self._complete(room)
            return
        self._present_question(room)

    def _complete(self, room: Room) -> None:
        rankings = build_rankings(room.members.values())
        self.history.record_completed_quiz(room.code, room.display_name, rankings, quiz_id=room.quiz_id)
        self.events.to_room(room.code, "quiz_completed", self._rankings(room))
        self.registry.schedule_cleanup(room.code, self.settings.COMPLETED_ROOM_TTL_SEC, self._on_completed_room_expired)
        logger.info("Quiz ended in room %s, saved as history %s", room.code, room.code)

    def _on_completed_room_expired(self, code: str) -> None:
        logger.debug("Cleaning up completed room %s", code)
        self.registry.delete_room(code)

    def _on_host_grace_elapsed(self, code: str) -> None:
        room = self.registry.get_room(code)
        if room is None or room.host_connection_id is not None:
            return
        message = "Host disconnected" if room.is_active else "Room closed due to host inactivity"
        self.events.to_room(code, "room_deleted", RoomDeletedOut(room_code=code, message=message))
        self.registry.delete_room(code)
        logger.info("Room %s deleted, host did not return", code)

    def _replay_state(self, room: Room, connection_id: str, player: Optional[Player]) -> None:
        question = self.registry.current_question(room.code)
        if question is None:
            return
        if room.question_ended:
            self.events.to_connection(connection_id, "question_ended", build_results(room, question))
            return
        self.events.to_connection(connection_id, "new_question", self._question_payload(room, player))

    # ---- helpers ----

    def _host_room(self, connection_id: str, code: str) -> Optional[Room]:
        room = self.registry.get_room(code)
        if room is None:
            self._error(connection_id, "room_error", RoomNotFound.code, RoomNotFound.default_message)
            return None
        try:
            self.authorize_host(room, connection_id)
        except Unauthorized as exc:
            self._error(connection_id, "room_error", exc.code, exc.message)
            return None
        return room

    def authorize_host(self, room: Room, connection_id: str) -> None:
        if room.host_connection_id == connection_id:
            return
        host_session_id = self.sessions.resolve(connection_id)
        if host_session_id is None or host_session_id != room.host_session_id:
            raise Unauthorized()
        # Same host session on a new connection.
        room.host_connection_id = connection_id
        if not room.is_completed:
            self.registry.cancel_cleanup(room.code)
        logger.info("Re-authorized host for room %s on %s", room.code, connection_id)

    def _question_payload(self, room: Room, player: Optional[Player]) -> NewQuestionOut:
        question = self.registry.current_question(room.code)
        return NewQuestionOut(
            question_id=question.id,
            text=question.text,
            options=list(question.options),
            time_limit_seconds=question.time_limit_seconds,
            remaining_seconds=self.registry.remaining_seconds(room.code),
            current_question_index=room.current_question_index,
            total_questions=room.total_questions,
            current_score=player.score if player else None,
            current_streak=player.streak if player else None,
            has_answered=player.has_answered(question.id) if player else False,
        )

    def _players(self, room: Room) -> List[PlayerSummary]:
        return [
            PlayerSummary(
                identity=p.identity,
                display_name=p.display_name,
                connection_id=p.connection_id,
                score=p.score,
                connected=p.connection_id is not None,
            )
            for p in room.members.values()
        ]

    def _rankings(self, room: Room) -> RankingsOut:
        rankings = build_rankings(room.members.values())
        return RankingsOut(
            room_code=room.code,
            quiz_id=room.quiz_id,
            quiz_name=room.display_name,
            completed_at=room.completed_at,
            player_count=len(rankings),
            rankings=rankings,
        )

    def _rankings_from_history(self, doc: Dict[str, Any]) -> RankingsOut:
        return RankingsOut(
            room_code=doc["room_code"],
            quiz_id=doc.get("quiz_id"),
            quiz_name=doc.get("quiz_name", doc["room_code"]),
            completed_at=doc.get("completed_at"),
            player_count=doc.get("player_count", len(doc.get("rankings", []))),
            rankings=doc.get("rankings", []),
        )

    def _error(self, connection_id: str, event_type: str, code: str, message: str) -> None:
        self.events.to_connection(connection_id, event_type, ErrorOut(code=code, message=message))
