from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from .models import OPTION_COUNT


class _InboundBase(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")


class CreateRoomIn(_InboundBase):
    type: Literal["create_room"]
    quiz_id: str = Field(min_length=1)
    host_session_id: str = Field(min_length=1)


class HostJoinIn(_InboundBase):
    type: Literal["host_join"]
    room_code: str = Field(min_length=1)
    host_session_id: str = Field(min_length=1)


class JoinIn(_InboundBase):
    type: Literal["join"]
    room_code: str = Field(min_length=1)
    identity: str = Field(min_length=1)
    display_name: str = Field(min_length=1)


class LeaveIn(_InboundBase):
    type: Literal["leave"]
    room_code: str = Field(min_length=1)


class DisconnectIn(_InboundBase):
    type: Literal["disconnect"]
    room_code: Optional[str] = None


class StartQuizIn(_InboundBase):
    type: Literal["start_quiz"]
    room_code: str = Field(min_length=1)


class SubmitAnswerIn(_InboundBase):
    type: Literal["submit_answer"]
    room_code: str = Field(min_length=1)
    option_index: int = Field(ge=0, le=OPTION_COUNT - 1)


class RequestAdvanceIn(_InboundBase):
    type: Literal["request_advance"]
    room_code: str = Field(min_length=1)


class GetRoomInfoIn(_InboundBase):
    type: Literal["get_room_info"]
    room_code: str = Field(min_length=1)


class GetRankingsIn(_InboundBase):
    type: Literal["get_rankings"]
    room_code: str = Field(min_length=1)


class DeleteRoomIn(_InboundBase):
    type: Literal["delete_room"]
    room_code: str = Field(min_length=1)


InboundEvent = Annotated[
    Union[
        CreateRoomIn,
        HostJoinIn,
        JoinIn,
        LeaveIn,
        DisconnectIn,
        StartQuizIn,
        SubmitAnswerIn,
        RequestAdvanceIn,
        GetRoomInfoIn,
        GetRankingsIn,
        DeleteRoomIn,
    ],
    Field(discriminator="type"),
]

inbound_adapter = TypeAdapter(InboundEvent)


# ---- outbound payloads ----


class PlayerSummary(BaseModel):
    identity: str
    display_name: str
    connection_id: Optional[str] = None
    score: int
    connected: bool


class RoomCreatedOut(BaseModel):
    room_code: str
    quiz_id: str
    quiz_name: str


class HostJoinedOut(BaseModel):
    room_code: str
    is_active: bool
    is_completed: bool
    players: List[PlayerSummary]


class JoinedOut(BaseModel):
    room_code: str
    quiz_name: str
    is_active: bool
    question_id: Optional[int] = None
    players: List[PlayerSummary]


class PlayerJoinedOut(BaseModel):
    connection_id: str
    identity: str
    display_name: str
    players: List[PlayerSummary]


class PlayerLeftOut(BaseModel):
    connection_id: str
    identity: Optional[str] = None
    players: List[PlayerSummary]


class PlayerDisconnectedOut(BaseModel):
    connection_id: str
    identity: str
    display_name: str


class QuizStartedOut(BaseModel):
    room_code: str
    total_questions: int


class NewQuestionOut(BaseModel):
    question_id: int
    text: str
    options: List[str]
    time_limit_seconds: float
    remaining_seconds: float
    current_question_index: int
    total_questions: int
    current_score: Optional[int] = None
    current_streak: Optional[int] = None
    has_answered: bool = False


class AnswerAcceptedOut(BaseModel):
    is_correct: bool
    points_earned: int
    streak: int
    total_score: int


class RankingEntry(BaseModel):
    rank: int
    identity: str
    display_name: str
    connection_id: Optional[str] = None
    score: int


class RankingsOut(BaseModel):
    room_code: str
    quiz_id: Optional[str] = None
    quiz_name: str
    completed_at: Optional[float] = None
    player_count: int
    rankings: List[RankingEntry]


class RoomInfoOut(BaseModel):
    room_code: str
    quiz_name: str
    is_active: bool
    is_completed: bool
    current_question_index: int
    total_questions: int
    students: List[PlayerSummary]


class RoomDeletedOut(BaseModel):
    room_code: str
    message: str


class ErrorOut(BaseModel):
    code: str
    message: str
