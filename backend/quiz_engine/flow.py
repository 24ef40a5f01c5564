"""Question progression for a single room.

These functions operate on a Room that the registry has already looked up;
they never touch the registry themselves.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from pydantic import BaseModel

from .errors import DuplicateAnswer, NoCurrentQuestion, RoomNotActive, UnknownParticipant
from .models import PlayerAnswer, Question, Room
from .scoring import ScoreResult, score_answer

logger = logging.getLogger(__name__)


class PlayerResult(BaseModel):
    identity: str
    display_name: str
    connection_id: Optional[str] = None
    selected_option_index: Optional[int] = None
    is_correct: bool
    score: int
    streak: int


class QuestionResults(BaseModel):
    question_id: int
    text: str
    options: List[str]
    correct_option_index: int
    current_question_index: int
    total_questions: int
    player_results: List[PlayerResult]


class AdvanceResult(BaseModel):
    completed: bool
    index: Optional[int] = None
    total: Optional[int] = None


def cancel_deadline(room: Room) -> None:
    if room.deadline_timer is not None:
        room.deadline_timer.cancel()
        room.deadline_timer = None


def start(room: Room, now: float) -> None:
    cancel_deadline(room)
    for player in room.members.values():
        player.reset_progress()
    room.is_active = True
    room.is_completed = False
    room.completed_at = None
    room.current_question_index = 0
    room.question_started_at = now
    room.question_ended = False
    logger.info("Quiz started in room %s with %d players", room.code, len(room.members))


def current_question(room: Room) -> Optional[Question]:
    if 0 <= room.current_question_index < len(room.questions):
        return room.questions[room.current_question_index]
    return None


def elapsed_seconds(room: Room, question: Question, now: float) -> float:
    if room.question_started_at is None:
        return question.time_limit_seconds
    elapsed = now - room.question_started_at
    return min(question.time_limit_seconds, max(0.0, elapsed))


def remaining_seconds(room: Room, now: float) -> float:
    question = current_question(room)
    if question is None:
        return 0.0
    return question.time_limit_seconds - elapsed_seconds(room, question, now)


def submit_answer(room: Room, connection_id: str, selected_option_index: int, now: float) -> ScoreResult:
    if not room.is_active:
        raise RoomNotActive()

    player = room.player_for_connection(connection_id)
    if player is None:
        raise UnknownParticipant()

    question = current_question(room)
    if question is None:
        raise NoCurrentQuestion()

    if player.has_answered(question.id):
        raise DuplicateAnswer()

    elapsed = elapsed_seconds(room, question, now)
    result = score_answer(question, selected_option_index, elapsed, player.streak, player.score)
    player.answers.append(
        PlayerAnswer(
            question_id=question.id,
            selected_option_index=selected_option_index,
            is_correct=result.is_correct,
            time_taken_seconds=elapsed,
        )
    )
    player.streak = result.new_streak
    player.score = result.total_score_after
    return result


def all_answered(room: Room) -> bool:
    question = current_question(room)
    if question is None:
        return False
    return all(p.has_answered(question.id) for p in room.members.values())


def build_results(room: Room, question: Question) -> QuestionResults:
    player_results = []
    for player in room.members.values():
        answer = player.answer_for(question.id)
        player_results.append(
            PlayerResult(
                identity=player.identity,
                display_name=player.display_name,
                connection_id=player.connection_id,
                selected_option_index=answer.selected_option_index if answer else None,
                is_correct=answer.is_correct if answer else False,
                score=player.score,
                streak=player.streak,
            )
        )
    return QuestionResults(
        question_id=question.id,
        text=question.text,
        options=list(question.options),
        correct_option_index=question.correct_option_index,
        current_question_index=room.current_question_index,
        total_questions=room.total_questions,
        player_results=player_results,
    )


def end_question(room: Room) -> Optional[QuestionResults]:
    cancel_deadline(room)
    question = current_question(room)
    if question is None:
        return None

    room.question_ended = True
    room.question_started_at = None

    for player in room.members.values():
        if player.has_answered(question.id):
            continue
        # A missed deadline scores like a wrong answer.
        result = score_answer(question, None, question.time_limit_seconds, player.streak, player.score)
        player.answers.append(
            PlayerAnswer(
                question_id=question.id,
                selected_option_index=None,
                is_correct=False,
                time_taken_seconds=question.time_limit_seconds,
            )
        )
        player.streak = result.new_streak

    return build_results(room, question)


def advance(room: Room, now: float) -> AdvanceResult:
    if not room.is_active:
        raise RoomNotActive()

    cancel_deadline(room)
    total = room.total_questions
    room.current_question_index = min(room.current_question_index + 1, total)

    if room.current_question_index >= total:
        if not room.is_completed:
            room.is_completed = True
            room.completed_at = now
            logger.info("Quiz completed in room %s", room.code)
        room.question_started_at = None
        return AdvanceResult(completed=True)

    room.question_started_at = now
    room.question_ended = False
    return AdvanceResult(completed=False, index=room.current_question_index, total=total)
