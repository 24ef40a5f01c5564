"""Expected, caller-recoverable failures raised by the room engine.

They subclass ``ValueError`` so transport code can keep the usual
``except ValueError`` boundary; ``code`` is a stable tag for error events.
"""


class QuizEngineError(ValueError):
    """Abstract base; raise one of the subclasses, which set both attributes."""

    code: str
    default_message: str

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)


class RoomNotFound(QuizEngineError):
    code = "room_not_found"
    default_message = "Room does not exist"


class RoomAlreadyStarted(QuizEngineError):
    code = "room_already_started"
    default_message = "Quiz already started. Cannot join this room."


class RoomNotActive(QuizEngineError):
    code = "room_not_active"
    default_message = "Quiz has not started"


class UnknownParticipant(QuizEngineError):
    code = "unknown_participant"
    default_message = "Student not found in room"


class NoCurrentQuestion(QuizEngineError):
    code = "no_current_question"
    default_message = "No current question available"


class DuplicateAnswer(QuizEngineError):
    code = "duplicate_answer"
    default_message = "You have already answered this question"


class Unauthorized(QuizEngineError):
    code = "unauthorized"
    default_message = "Not authorized to manage this room"
