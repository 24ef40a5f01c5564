from typing import Dict, List, Optional, Set

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .scheduler import ScheduledTask
from .utils import now_ts

OPTION_COUNT = 4


class Question(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    text: str = Field(min_length=1)
    options: List[str]
    correct_option_index: int = Field(ge=0, le=OPTION_COUNT - 1)
    time_limit_seconds: float = Field(gt=0)
    points: int = Field(default=1000, gt=0)

    @field_validator("options")
    @classmethod
    def _exactly_four_options(cls, options: List[str]) -> List[str]:
        if len(options) != OPTION_COUNT:
            raise ValueError("Each question must have exactly four options.")
        return options


class PlayerAnswer(BaseModel):
    question_id: int
    selected_option_index: Optional[int] = None  # None: nothing recorded by the deadline
    is_correct: bool
    time_taken_seconds: float


class Player(BaseModel):
    identity: str
    connection_id: Optional[str] = None
    display_name: str
    score: int = 0
    streak: int = 0
    answers: List[PlayerAnswer] = Field(default_factory=list)

    def answer_for(self, question_id: int) -> Optional[PlayerAnswer]:
        return next((a for a in self.answers if a.question_id == question_id), None)

    def has_answered(self, question_id: int) -> bool:
        return self.answer_for(question_id) is not None

    def reset_progress(self) -> None:
        self.score = 0
        self.streak = 0
        self.answers = []


# States: pending -> active(question i) -> ... -> completed
class Room(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    code: str
    quiz_id: str
    quiz_name: str = ""
    questions: List[Question]
    current_question_index: int = 0
    is_active: bool = False
    is_completed: bool = False
    completed_at: Optional[float] = None
    members: Dict[str, Player] = Field(default_factory=dict)
    connection_to_identity: Dict[str, str] = Field(default_factory=dict)
    ever_joined: Set[str] = Field(default_factory=set)
    host_connection_id: Optional[str] = None
    host_session_id: str
    created_at: float = Field(default_factory=now_ts)
    question_started_at: Optional[float] = None
    question_ended: bool = False
    deadline_timer: Optional[ScheduledTask] = Field(default=None, exclude=True)
    cleanup_timer: Optional[ScheduledTask] = Field(default=None, exclude=True)

    @property
    def total_questions(self) -> int:
        return len(self.questions)

    @property
    def display_name(self) -> str:
        return self.quiz_name or self.quiz_id

    def player_for_connection(self, connection_id: str) -> Optional[Player]:
        identity = self.connection_to_identity.get(connection_id)
        if identity is None:
            return None
        return self.members.get(identity)

    def connected_players(self) -> List[Player]:
        return [p for p in self.members.values() if p.connection_id]
