"""Points and streak calculation for a single submission.

A correct answer earns ``floor(points * time_bonus * multiplier)`` where the
time bonus falls linearly from 1 at the start of the question to 0 at the
deadline, and the multiplier grows by 0.1 per consecutive correct answer
(counting this one) up to 1.5. Anything else earns nothing and breaks the
streak.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional

from .models import Question

STREAK_STEP_TENTHS = 1
MAX_MULTIPLIER_TENTHS = 15


@dataclass(frozen=True)
class ScoreResult:
    is_correct: bool
    points_earned: int
    new_streak: int
    total_score_after: int


def time_bonus(elapsed_seconds: float, time_limit_seconds: float) -> float:
    bonus = 1 - elapsed_seconds / time_limit_seconds
    return min(1.0, max(0.0, bonus))


def streak_multiplier_tenths(streak: int) -> int:
    # Tenths keep floor() exact when the time bonus is a whole number.
    return min(10 + streak * STREAK_STEP_TENTHS, MAX_MULTIPLIER_TENTHS)


def score_answer(
    question: Question,
    selected_option_index: Optional[int],
    elapsed_seconds: float,
    streak: int,
    score: int = 0,
) -> ScoreResult:
    is_correct = selected_option_index is not None and selected_option_index == question.correct_option_index
    if not is_correct:
        return ScoreResult(is_correct=False, points_earned=0, new_streak=0, total_score_after=score)

    new_streak = streak + 1
    bonus = time_bonus(elapsed_seconds, question.time_limit_seconds)
    points = math.floor(question.points * bonus * streak_multiplier_tenths(new_streak) / 10)
    return ScoreResult(
        is_correct=True,
        points_earned=points,
        new_streak=new_streak,
        total_score_after=score + points,
    )
