"""Quiz content lookup consumed when a host creates a room."""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Protocol

from pydantic import BaseModel, field_validator

from .models import Question


class QuizSet(BaseModel):
    id: str
    name: str
    questions: List[Question]

    @field_validator("questions")
    @classmethod
    def _not_empty(cls, questions: List[Question]) -> List[Question]:
        if not questions:
            raise ValueError("Quiz must contain at least one question.")
        return questions


class QuizCatalog(Protocol):
    def get_quiz(self, quiz_id: str) -> Optional[QuizSet]:
        ...


class InMemoryQuizCatalog:
    def __init__(self, quizzes: Iterable[QuizSet] = ()):
        self._quizzes: Dict[str, QuizSet] = {}
        for quiz in quizzes:
            self.add(quiz)

    def add(self, quiz: QuizSet) -> None:
        self._quizzes[quiz.id] = quiz

    def get_quiz(self, quiz_id: str) -> Optional[QuizSet]:
        return self._quizzes.get(quiz_id)

    def __len__(self) -> int:
        return len(self._quizzes)
